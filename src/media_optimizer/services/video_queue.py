"""Deferred video conversions backed by the ``video_jobs`` table."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from ..domain.models import VideoJob, VideoJobStatus
from ..exceptions import handle_sqlalchemy_errors
from ..infrastructure.sqlalchemy.schema import video_jobs
from ..infrastructure.sqlalchemy.upsert import dialect_insert

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def pending_key(asset_id: int, source_path: str) -> str:
    return f"{asset_id}:{source_path}"


class VideoJobQueue:
    """SQL work queue with a duplicate guard on pending ``(asset, path)`` pairs."""

    def __init__(self, engine: Engine, *, clock: Clock | None = None) -> None:
        self._engine = engine
        self._clock = clock or _utcnow

    def enqueue(self, asset_id: int, source_path: str, *, run_at: datetime | None = None) -> bool:
        """Schedule a conversion; ``False`` when the same job is already pending."""
        scheduled_at = run_at or self._clock()
        with handle_sqlalchemy_errors(entity="video_job"), self._engine.begin() as conn:
            stmt = (
                dialect_insert(conn, video_jobs)
                .values(
                    attachment_id=asset_id,
                    source_path=source_path,
                    status=VideoJobStatus.PENDING.value,
                    pending_key=pending_key(asset_id, source_path),
                    scheduled_at=scheduled_at,
                )
                .on_conflict_do_nothing(index_elements=[video_jobs.c.pending_key])
            )
            result = conn.execute(stmt)
        queued = bool(result.rowcount)
        logger.info(
            "video.job.enqueued" if queued else "video.job.duplicate",
            extra={"asset_id": asset_id, "source_path": source_path},
        )
        return queued

    def acquire_next(self, now: datetime | None = None) -> VideoJob | None:
        """Claim the oldest due pending job, or ``None`` when idle."""
        moment = now or self._clock()
        with handle_sqlalchemy_errors(entity="video_job"), self._engine.begin() as conn:
            candidates = conn.execute(
                sa.select(video_jobs.c.id)
                .where(
                    video_jobs.c.status == VideoJobStatus.PENDING.value,
                    video_jobs.c.scheduled_at <= moment,
                )
                .order_by(video_jobs.c.scheduled_at, video_jobs.c.id)
                .limit(5)
            ).scalars().all()
            for job_id in candidates:
                claimed = conn.execute(
                    sa.update(video_jobs)
                    .where(
                        video_jobs.c.id == job_id,
                        video_jobs.c.status == VideoJobStatus.PENDING.value,
                    )
                    .values(
                        status=VideoJobStatus.PROCESSING.value,
                        pending_key=None,
                        started_at=moment,
                    )
                )
                if claimed.rowcount:
                    row = conn.execute(
                        sa.select(video_jobs).where(video_jobs.c.id == job_id)
                    ).mappings().one()
                    return self._to_domain(row)
        return None

    def mark_done(self, job_id: int, *, now: datetime | None = None) -> None:
        self._finish(job_id, VideoJobStatus.DONE, error=None, now=now)

    def mark_failed(self, job_id: int, error: str, *, now: datetime | None = None) -> None:
        self._finish(job_id, VideoJobStatus.FAILED, error=error, now=now)

    def get(self, job_id: int) -> VideoJob | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                sa.select(video_jobs).where(video_jobs.c.id == job_id)
            ).mappings().first()
        return self._to_domain(row) if row is not None else None

    def pending_count(self) -> int:
        with self._engine.connect() as conn:
            return int(
                conn.execute(
                    sa.select(sa.func.count(video_jobs.c.id)).where(
                        video_jobs.c.status == VideoJobStatus.PENDING.value
                    )
                ).scalar_one()
            )

    def _finish(
        self,
        job_id: int,
        status: VideoJobStatus,
        *,
        error: str | None,
        now: datetime | None,
    ) -> None:
        with handle_sqlalchemy_errors(entity="video_job"), self._engine.begin() as conn:
            conn.execute(
                sa.update(video_jobs)
                .where(video_jobs.c.id == job_id)
                .values(
                    status=status.value,
                    pending_key=None,
                    finished_at=now or self._clock(),
                    error=error,
                )
            )

    @staticmethod
    def _as_utc(value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def _to_domain(cls, row: sa.RowMapping) -> VideoJob:
        return VideoJob(
            id=int(row["id"]),
            asset_id=int(row["attachment_id"]),
            source_path=row["source_path"],
            status=VideoJobStatus(row["status"]),
            scheduled_at=cls._as_utc(row["scheduled_at"]),  # type: ignore[arg-type]
            started_at=cls._as_utc(row["started_at"]),
            finished_at=cls._as_utc(row["finished_at"]),
            error=row["error"],
        )


__all__ = ["VideoJobQueue", "pending_key"]
