"""Background worker draining the deferred video conversion queue."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from ..services.media_pipeline import MediaPipeline, OutcomeStatus
from ..services.video_queue import VideoJobQueue

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


def wrap_sleep(sleep: Callable[[float], Any] | None) -> Sleeper:
    """Accept plain or coroutine sleep callables; tests inject synchronous ones."""
    if sleep is None:
        return asyncio.sleep

    async def _sleep(delay: float) -> None:
        outcome = sleep(delay)
        if inspect.isawaitable(outcome):
            await outcome

    return _sleep


run_sync = asyncio.to_thread


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoWorker:
    """Claims one due video job at a time and hands it to the pipeline.

    Encoding blocks for minutes, so queue access and conversion run in a
    thread while the event loop keeps serving shutdown requests.
    """

    def __init__(
        self,
        *,
        queue: VideoJobQueue,
        pipeline: MediaPipeline,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Any] | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.queue = queue
        self.pipeline = pipeline
        self._now = clock or _utcnow
        self._sleep = wrap_sleep(sleep)
        self.poll_interval = poll_interval

    async def run_once(
        self,
        *,
        now: datetime | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> bool:
        """Handle at most one job; ``False`` means nothing was due."""
        if shutdown_event is not None and shutdown_event.is_set():
            return False

        job = await run_sync(self.queue.acquire_next, now or self._now())
        if job is None:
            return False
        context = {"job_id": job.id, "asset_id": job.asset_id}

        try:
            outcome = await run_sync(self.pipeline.process_video_job, job)
        except Exception as exc:  # noqa: BLE001 - a broken job must not stop the worker
            logger.exception("video.job.crashed", extra=context)
            await run_sync(self.queue.mark_failed, job.id, str(exc), now=self._now())
            return True

        if outcome.status is OutcomeStatus.FAILED:
            reason = outcome.reason or "conversion failed"
            await run_sync(self.queue.mark_failed, job.id, reason, now=self._now())
            logger.warning("video.job.failed", extra={**context, "reason": reason})
        else:
            await run_sync(self.queue.mark_done, job.id, now=self._now())
            logger.info("video.job.finished", extra={**context, "status": outcome.status.value})
        return True

    async def run_forever(self, *, shutdown_event: asyncio.Event) -> None:
        """Poll the queue until ``shutdown_event`` is set; idle rounds sleep."""
        try:
            while not shutdown_event.is_set():
                if not await self.run_once(shutdown_event=shutdown_event):
                    await self._sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug("video.worker.cancelled")
            raise
