"""ImageMagick backend driven through the Wand binding."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from ..domain.models import Format, MediaType, ProcessorKind
from .base import EncoderBackend, output_written

try:  # pragma: no cover - depends on libmagickwand being installed
    from wand.image import Image as WandImage
    from wand.version import MAGICK_VERSION, formats as magick_formats
except ImportError:  # pragma: no cover - binding or shared library missing
    WandImage = None  # type: ignore[assignment,misc]
    magick_formats = None  # type: ignore[assignment]
    MAGICK_VERSION = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_MAGICK_NAMES = {Format.WEBP: "WEBP", Format.AVIF: "AVIF"}


class WandBackend(EncoderBackend):
    """Higher fidelity image encoder; usually provides both WebP and AVIF."""

    kind = ProcessorKind.IMAGEMAGICK
    media_type = MediaType.IMAGE

    def query_formats(self) -> frozenset[Format]:
        if WandImage is None or magick_formats is None:
            return frozenset()
        try:
            available = {name.upper() for name in magick_formats()}
        except Exception as exc:  # noqa: BLE001 - MagickWand raises its own hierarchy
            logger.warning("processor.imagemagick.query_failed", extra={"error": str(exc)})
            return frozenset()
        return frozenset(fmt for fmt, name in _MAGICK_NAMES.items() if name in available)

    def version(self) -> str | None:
        if MAGICK_VERSION is None:
            return None
        return str(MAGICK_VERSION)

    def convert(
        self,
        source: Path,
        destination: Path,
        fmt: Format,
        options: Mapping[str, Any],
    ) -> bool:
        if WandImage is None:
            return False
        with WandImage(filename=str(source)) as img:
            img.format = _MAGICK_NAMES[fmt]
            img.compression_quality = int(options["quality"])
            if fmt is Format.WEBP:
                img.options["webp:lossless"] = "true" if options.get("lossless") else "false"
                img.options["webp:method"] = str(int(options.get("method", 4)))
            else:
                img.options["heic:speed"] = str(int(options.get("speed", 6)))
            img.save(filename=str(destination))
        return output_written(destination)


__all__ = ["WandBackend"]
