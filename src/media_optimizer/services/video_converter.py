"""Video conversion engine (AV1 primary, WebM secondary)."""

from __future__ import annotations

from ..domain.models import Format, MediaType
from .conversion_engine import ConversionEngine


class VideoConversionEngine(ConversionEngine):
    media_type = MediaType.VIDEO
    supported_mime_types = frozenset(
        {
            "video/mp4",
            "video/x-msvideo",
            "video/avi",
            "video/quicktime",
            "video/x-ms-wmv",
            "video/x-flv",
            "video/webm",
            "video/ogg",
        }
    )
    # threads=0 lets the encoder pick a thread count.
    default_options = {
        Format.AV1: {"crf": 28, "preset": "medium", "cpu_used": 4, "threads": 0},
        Format.WEBM: {"crf": 30, "preset": "medium", "threads": 0},
    }


__all__ = ["VideoConversionEngine"]
