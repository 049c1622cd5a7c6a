"""Image conversion engine (WebP primary, AVIF secondary)."""

from __future__ import annotations

from ..domain.models import Format, MediaType
from .conversion_engine import ConversionEngine


class ImageConversionEngine(ConversionEngine):
    media_type = MediaType.IMAGE
    supported_mime_types = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
    default_options = {
        Format.WEBP: {"quality": 85, "lossless": False, "method": 4},
        Format.AVIF: {"quality": 80, "speed": 6},
    }


__all__ = ["ImageConversionEngine"]
