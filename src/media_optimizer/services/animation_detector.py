"""Static versus animated GIF classification."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Callable

from PIL import Image

logger = logging.getLogger(__name__)

GIF_MAGIC = b"GIF"
# Signature, version and logical screen descriptor.
HEADER_SIZE = 13
GLOBAL_TABLE_FLAG = 0x80
IMAGE_SEPARATOR = 0x2C
CHUNK_SIZE = 8192

FrameCounter = Callable[[Path], int]


def pillow_frame_count(path: Path) -> int:
    with Image.open(path) as img:
        return int(getattr(img, "n_frames", 1))


def global_color_table_size(header: bytes) -> int:
    """Byte length of the colour table following a 13-byte GIF header."""
    flags = header[10]
    if not flags & GLOBAL_TABLE_FLAG:
        return 0
    return 3 * 2 ** ((flags & 0x07) + 1)


class AnimationDetector:
    """Decide whether a GIF carries more than one frame.

    Anything without a complete GIF header is static. Frames are counted
    through the image library first; when that fails the file body is
    scanned for image separator bytes instead, two separators meaning two
    frames.
    """

    def __init__(self, frame_counter: FrameCounter | None = pillow_frame_count) -> None:
        self._frame_counter = frame_counter

    def is_animated(self, path: Path | str) -> bool:
        path = Path(path)
        if not path.is_file():
            return False
        try:
            with path.open("rb") as handle:
                header = handle.read(HEADER_SIZE)
                if len(header) < HEADER_SIZE or not header.startswith(GIF_MAGIC):
                    return False
                if self._frame_counter is not None:
                    try:
                        return self._frame_counter(path) > 1
                    except Exception as exc:  # noqa: BLE001 - any decoder failure falls back to the scan
                        logger.debug(
                            "animation.frame_count_failed",
                            extra={"path": str(path), "error": str(exc)},
                        )
                return self._scan(handle, header)
        except OSError as exc:
            logger.warning("animation.scan_failed", extra={"path": str(path), "error": str(exc)})
        return False

    @staticmethod
    def _scan(handle: BinaryIO, header: bytes) -> bool:
        handle.seek(HEADER_SIZE + global_color_table_size(header))
        separators = 0
        while chunk := handle.read(CHUNK_SIZE):
            separators += chunk.count(IMAGE_SEPARATOR)
            if separators > 1:
                return True
        return False


__all__ = ["AnimationDetector", "global_color_table_size", "pillow_frame_count"]
