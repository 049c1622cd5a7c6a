"""Pillow backend used when ImageMagick is missing or incomplete."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import PIL
from PIL import Image, features

from ..domain.models import Format, MediaType, ProcessorKind
from .base import EncoderBackend, output_written

_PILLOW_NAMES = {Format.WEBP: "WEBP", Format.AVIF: "AVIF"}


class PillowBackend(EncoderBackend):
    """Limited image encoder; AVIF needs a Pillow build with libavif."""

    kind = ProcessorKind.PILLOW
    media_type = MediaType.IMAGE

    def query_formats(self) -> frozenset[Format]:
        Image.init()
        supported: set[Format] = set()
        for fmt, name in _PILLOW_NAMES.items():
            if name in Image.SAVE and features.check(fmt.value):
                supported.add(fmt)
        return frozenset(supported)

    def version(self) -> str | None:
        return PIL.__version__

    def convert(
        self,
        source: Path,
        destination: Path,
        fmt: Format,
        options: Mapping[str, Any],
    ) -> bool:
        with Image.open(source) as img:
            img.load()
            has_alpha = "A" in img.getbands() or "transparency" in img.info
            frame = img if img.mode in ("RGB", "RGBA") else img.convert("RGBA" if has_alpha else "RGB")

            params: dict[str, Any] = {"quality": int(options["quality"])}
            if fmt is Format.WEBP:
                params["lossless"] = bool(options.get("lossless", False))
                params["method"] = int(options.get("method", 4))
            else:
                params["speed"] = int(options.get("speed", 6))
            frame.save(destination, format=_PILLOW_NAMES[fmt], **params)
        return output_written(destination)


__all__ = ["PillowBackend"]
