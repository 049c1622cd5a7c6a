"""Periodic sweep converting assets uploaded before the pipeline existed."""

from __future__ import annotations

import asyncio
import logging

from ..services.media_pipeline import BackfillReport, MediaPipeline
from .video_worker import run_sync

logger = logging.getLogger(__name__)


class BackfillScheduler:
    """Walks unconverted assets in small id-ordered batches.

    The cursor advances past assets that stay unconverted (skipped or failed)
    so they cannot starve the rest of the library; it wraps around once a
    batch comes back short.
    """

    def __init__(
        self,
        pipeline: MediaPipeline,
        *,
        batch_size: int = 5,
        interval_seconds: float = 3600.0,
    ) -> None:
        self.pipeline = pipeline
        self.batch_size = max(1, batch_size)
        self.interval_seconds = interval_seconds
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def run_once(self) -> BackfillReport:
        report = self.pipeline.backfill(self.batch_size, after_id=self._cursor)
        if report.examined < self.batch_size or report.last_asset_id is None:
            self._cursor = 0
        else:
            self._cursor = report.last_asset_id
        logger.info(
            "backfill.batch",
            extra={
                "examined": report.examined,
                "converted": report.converted,
                "queued": report.queued,
                "cursor": self._cursor,
            },
        )
        return report

    async def run_forever(self, *, shutdown_event: asyncio.Event) -> None:
        """Sweep once per interval; shutdown interrupts the wait immediately."""
        try:
            while not shutdown_event.is_set():
                await run_sync(self.run_once)
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    continue
        except asyncio.CancelledError:
            logger.debug("backfill.scheduler.cancelled")
            raise
