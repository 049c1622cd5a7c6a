from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image, features

from src.media_optimizer.domain.models import Format
from src.media_optimizer.processors.pillow_backend import PillowBackend


@pytest.mark.unit
def test_pillow_reports_webp_when_available() -> None:
    if not features.check("webp"):
        pytest.skip("Pillow built without WebP")

    assert Format.WEBP in PillowBackend().query_formats()


@pytest.mark.unit
def test_pillow_converts_palette_png_to_webp(tmp_path: Path) -> None:
    if not features.check("webp"):
        pytest.skip("Pillow built without WebP")
    source = tmp_path / "img.png"
    Image.new("P", (16, 16), color=3).save(source)
    destination = tmp_path / "img.webp"

    converted = PillowBackend().convert(
        source, destination, Format.WEBP, {"quality": 85, "lossless": False, "method": 4}
    )

    assert converted is True
    with Image.open(destination) as img:
        assert img.format == "WEBP"
        assert img.size == (16, 16)
