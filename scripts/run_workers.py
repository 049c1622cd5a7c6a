"""Run the video conversion worker and the backfill sweep until interrupted."""

from __future__ import annotations

import asyncio
import signal

from src.media_optimizer.config import load_config
from src.media_optimizer.dependencies import build_services
from src.media_optimizer.logging import configure_logging
from src.media_optimizer.workers.backfill import BackfillScheduler
from src.media_optimizer.workers.video_worker import VideoWorker


async def run() -> None:
    configure_logging()
    config = load_config()
    services = build_services(config)
    settings = config.settings

    worker = VideoWorker(
        queue=services.video_queue,
        pipeline=services.pipeline,
        poll_interval=settings.video_poll_interval_ms / 1000,
    )
    backfill = BackfillScheduler(
        services.pipeline,
        batch_size=settings.backfill_batch_size,
        interval_seconds=settings.backfill_interval_seconds,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await asyncio.gather(
        worker.run_forever(shutdown_event=shutdown_event),
        backfill.run_forever(shutdown_event=shutdown_event),
    )


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
