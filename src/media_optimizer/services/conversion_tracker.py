"""Conversion ledger: which asset exists in which format, and at what size."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from ..domain.models import ConversionRecord, ConversionStatistics, Format
from ..exceptions import handle_sqlalchemy_errors
from ..infrastructure.sqlalchemy.schema import conversions
from ..infrastructure.sqlalchemy.upsert import dialect_insert
from .quota_manager import QuotaManager

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=30)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class StatisticsFilter:
    format: Format | None = None
    since: datetime | None = None
    until: datetime | None = None

    def conditions(self) -> list[sa.ColumnElement[bool]]:
        clauses: list[sa.ColumnElement[bool]] = []
        if self.format is not None:
            clauses.append(conversions.c.file_type == self.format.value)
        if self.since is not None:
            clauses.append(conversions.c.converted_at >= self.since)
        if self.until is not None:
            clauses.append(conversions.c.converted_at < self.until)
        return clauses


class ConversionTracker:
    """Single source of truth for completed conversions."""

    def __init__(
        self,
        engine: Engine,
        *,
        quota: QuotaManager | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._engine = engine
        self._quota = quota
        self._clock = clock or _utcnow

    def record_conversion(
        self,
        asset_id: int,
        fmt: Format,
        original_size: int,
        converted_size: int,
    ) -> ConversionRecord:
        """Insert or overwrite the ``(asset_id, fmt)`` record in one statement.

        When a quota manager is attached the artifact is metered in the same
        transaction.
        """

        now = self._clock()
        with handle_sqlalchemy_errors(entity="conversion"), self._engine.begin() as conn:
            insert_stmt = dialect_insert(conn, conversions).values(
                attachment_id=asset_id,
                file_type=fmt.value,
                original_size=max(int(original_size), 0),
                converted_size=max(int(converted_size), 0),
                converted_at=now,
            )
            excluded = insert_stmt.excluded
            conn.execute(
                insert_stmt.on_conflict_do_update(
                    index_elements=[conversions.c.attachment_id, conversions.c.file_type],
                    set_={
                        "original_size": excluded.original_size,
                        "converted_size": excluded.converted_size,
                        "converted_at": excluded.converted_at,
                    },
                )
            )
            if self._quota is not None:
                self._quota.record_usage(fmt.media_type, connection=conn)

        logger.info(
            "conversion.recorded",
            extra={
                "asset_id": asset_id,
                "format": fmt.value,
                "original_size": original_size,
                "converted_size": converted_size,
            },
        )
        return ConversionRecord(
            asset_id=asset_id,
            format=fmt,
            original_size=max(int(original_size), 0),
            converted_size=max(int(converted_size), 0),
            converted_at=now,
        )

    def get_attachment_conversions(self, asset_id: int) -> list[ConversionRecord]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                sa.select(conversions)
                .where(conversions.c.attachment_id == asset_id)
                .order_by(conversions.c.converted_at.desc(), conversions.c.id.desc())
            ).mappings()
            return [self._to_record(row) for row in rows]

    def get_converted_formats(self, asset_id: int) -> list[Format]:
        with self._engine.connect() as conn:
            values = conn.execute(
                sa.select(conversions.c.file_type)
                .where(conversions.c.attachment_id == asset_id)
                .order_by(conversions.c.id)
            ).scalars()
            return [Format(value) for value in values]

    def has_conversion(self, asset_id: int, fmt: Format) -> bool:
        with self._engine.connect() as conn:
            found = conn.execute(
                sa.select(conversions.c.id).where(
                    conversions.c.attachment_id == asset_id,
                    conversions.c.file_type == fmt.value,
                )
            ).first()
        return found is not None

    def delete_attachment_conversions(self, asset_id: int) -> int:
        with handle_sqlalchemy_errors(entity="conversion"), self._engine.begin() as conn:
            result = conn.execute(
                sa.delete(conversions).where(conversions.c.attachment_id == asset_id)
            )
        return int(result.rowcount or 0)

    def delete_conversions(self, pairs: Iterable[tuple[int, Format]]) -> int:
        removed = 0
        with handle_sqlalchemy_errors(entity="conversion"), self._engine.begin() as conn:
            for asset_id, fmt in pairs:
                result = conn.execute(
                    sa.delete(conversions).where(
                        conversions.c.attachment_id == asset_id,
                        conversions.c.file_type == fmt.value,
                    )
                )
                removed += int(result.rowcount or 0)
        return removed

    def list_records_before(self, cutoff: datetime) -> list[ConversionRecord]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                sa.select(conversions)
                .where(conversions.c.converted_at < cutoff)
                .order_by(conversions.c.id)
            ).mappings()
            return [self._to_record(row) for row in rows]

    def cleanup_old_records(
        self,
        days: int = 30,
        *,
        should_delete: Callable[[ConversionRecord], bool] | None = None,
    ) -> int:
        """Prune records older than ``days``; ``should_delete`` narrows the set."""
        cutoff = self._clock() - timedelta(days=max(days, 0))
        candidates = self.list_records_before(cutoff)
        if should_delete is not None:
            candidates = [record for record in candidates if should_delete(record)]
        removed = self.delete_conversions((record.asset_id, record.format) for record in candidates)
        logger.info("conversion.cleanup", extra={"days": days, "removed": removed})
        return removed

    def get_statistics(self, filters: StatisticsFilter | None = None) -> ConversionStatistics:
        filters = filters or StatisticsFilter()
        conditions = filters.conditions()
        day = sa.func.date(conversions.c.converted_at)
        recent_cutoff = self._clock() - RECENT_WINDOW

        def _where(stmt: sa.Select) -> sa.Select:
            return stmt.where(*conditions) if conditions else stmt

        with self._engine.connect() as conn:
            totals = conn.execute(
                _where(
                    sa.select(
                        sa.func.count(conversions.c.id),
                        sa.func.coalesce(sa.func.sum(conversions.c.original_size), 0),
                        sa.func.coalesce(sa.func.sum(conversions.c.converted_size), 0),
                    )
                )
            ).one()
            by_format = conn.execute(
                _where(
                    sa.select(conversions.c.file_type, sa.func.count(conversions.c.id))
                ).group_by(conversions.c.file_type)
            ).all()
            by_date = conn.execute(
                _where(sa.select(day.label("day"), sa.func.count(conversions.c.id)))
                .group_by(day)
                .order_by(day)
            ).all()
            recent = conn.execute(
                _where(sa.select(sa.func.count(conversions.c.id))).where(
                    conversions.c.converted_at >= recent_cutoff
                )
            ).scalar_one()

        return ConversionStatistics(
            total_conversions=int(totals[0] or 0),
            by_format={str(file_type): int(count) for file_type, count in by_format},
            by_date={str(value): int(count) for value, count in by_date if value is not None},
            recent_conversions=int(recent or 0),
            total_original_bytes=int(totals[1] or 0),
            total_converted_bytes=int(totals[2] or 0),
        )

    @staticmethod
    def size_reduction(original_path: Path | str, converted_path: Path | str) -> float:
        """``(original - converted) / original``; 0 when undefined."""
        try:
            original_size = Path(original_path).stat().st_size
            converted_size = Path(converted_path).stat().st_size
        except OSError:
            return 0.0
        if original_size <= 0:
            return 0.0
        return (original_size - converted_size) / original_size

    @staticmethod
    def _as_utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def _to_record(cls, row: sa.RowMapping) -> ConversionRecord:
        return ConversionRecord(
            asset_id=int(row["attachment_id"]),
            format=Format(row["file_type"]),
            original_size=int(row["original_size"]),
            converted_size=int(row["converted_size"]),
            converted_at=cls._as_utc(row["converted_at"]),
        )


__all__ = ["ConversionTracker", "StatisticsFilter"]
