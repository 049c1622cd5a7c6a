"""Shared helpers for media pipeline tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from src.media_optimizer.config import UploadPaths

UPLOAD_BASE_URL = "https://example.test/wp-content/uploads"


class FrozenClock:
    """Mutable clock handed to services that accept ``clock=``."""

    def __init__(self, moment: datetime | None = None) -> None:
        self.moment = moment or datetime(2024, 1, 15, 12, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = moment


def write_upload(
    upload_paths: UploadPaths,
    relative_path: str,
    payload: bytes = b"original-bytes" * 64,
) -> Path:
    path = upload_paths.absolute(relative_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path
