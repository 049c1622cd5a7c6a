"""Monthly admission control for conversions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine

from ..core.config import QuotaLimits
from ..domain.models import MediaType, QuotaCounter
from ..exceptions import QuotaExceededError, handle_sqlalchemy_errors
from ..infrastructure.sqlalchemy.schema import quota_usage
from ..infrastructure.sqlalchemy.upsert import dialect_insert

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def period_key(moment: datetime) -> str:
    """Calendar month bucket, e.g. ``2024-01``."""
    return f"{moment.year:04d}-{moment.month:02d}"


class QuotaManager:
    """Gate conversions per media type and calendar month.

    Usage rows are keyed by ``(media_type, period_key)``. A new month simply
    has no row yet, so rollover happens lazily on the first lookup. Increments
    are a single ``INSERT ... ON CONFLICT DO UPDATE`` statement.
    """

    def __init__(self, engine: Engine, limits: QuotaLimits, *, clock: Clock | None = None) -> None:
        self._engine = engine
        self._limits = limits
        self._clock = clock or _utcnow

    def current_period(self) -> str:
        return period_key(self._clock())

    def get_usage(self, media_type: MediaType) -> QuotaCounter:
        key = self.current_period()
        with self._engine.connect() as conn:
            used = conn.execute(
                sa.select(quota_usage.c.used_count).where(
                    quota_usage.c.media_type == media_type.value,
                    quota_usage.c.period_key == key,
                )
            ).scalar_one_or_none()
        return QuotaCounter(
            media_type=media_type,
            period_key=key,
            used_count=int(used or 0),
            limit=self._limits.for_type(media_type),
        )

    def can_convert(self, media_type: MediaType) -> bool:
        if self._limits.for_type(media_type) is None:
            return True
        return not self.get_usage(media_type).exhausted

    def ensure_can_convert(self, media_type: MediaType) -> None:
        counter = self.get_usage(media_type)
        if counter.exhausted:
            logger.info(
                "quota.exceeded",
                extra={
                    "media_type": media_type.value,
                    "period": counter.period_key,
                    "used": counter.used_count,
                    "limit": counter.limit,
                },
            )
            raise QuotaExceededError(
                media_type.value, used=counter.used_count, limit=int(counter.limit or 0)
            )

    def record_usage(self, media_type: MediaType, *, connection: Connection | None = None) -> None:
        """Count one converted artifact; joins ``connection`` when given."""
        if connection is not None:
            self._increment(connection, media_type)
            return
        with handle_sqlalchemy_errors(entity="quota_usage"), self._engine.begin() as conn:
            self._increment(conn, media_type)

    def get_quota_progress(self) -> dict[str, dict[str, object]]:
        progress: dict[str, dict[str, object]] = {}
        for media_type in (MediaType.IMAGE, MediaType.VIDEO):
            counter = self.get_usage(media_type)
            percentage = None
            if counter.limit == 0:
                percentage = 100.0
            elif counter.limit is not None:
                percentage = round(min(counter.used_count / counter.limit, 1.0) * 100, 2)
            progress[media_type.value] = {
                "period": counter.period_key,
                "used": counter.used_count,
                "limit": counter.limit,
                "remaining": counter.remaining,
                "percentage": percentage,
                "unbounded": counter.unbounded,
            }
        return progress

    def _increment(self, conn: Connection, media_type: MediaType) -> None:
        now = self._clock()
        insert_stmt = dialect_insert(conn, quota_usage).values(
            media_type=media_type.value,
            period_key=period_key(now),
            used_count=1,
            updated_at=now,
        )
        conn.execute(
            insert_stmt.on_conflict_do_update(
                index_elements=[quota_usage.c.media_type, quota_usage.c.period_key],
                set_={
                    "used_count": quota_usage.c.used_count + 1,
                    "updated_at": now,
                },
            )
        )


__all__ = ["QuotaManager", "period_key"]
