from __future__ import annotations

import pytest

from src.media_optimizer.domain.models import (
    Format,
    MediaType,
    ProcessorCapability,
    ProcessorKind,
)
from src.media_optimizer.processors.capability import (
    ProcessorCapabilityProbe,
    select_capability,
)
from tests.mocks.backends import FakeBackend

IMAGE_TARGETS = (Format.WEBP, Format.AVIF)


def _capability(kind: ProcessorKind, *formats: Format) -> ProcessorCapability:
    return ProcessorCapability(processor_kind=kind, supported_formats=frozenset(formats))


@pytest.mark.unit
def test_preferred_backend_wins_when_it_covers_every_target() -> None:
    magick = _capability(ProcessorKind.IMAGEMAGICK, Format.WEBP, Format.AVIF)
    pillow = _capability(ProcessorKind.PILLOW, Format.WEBP, Format.AVIF)

    assert select_capability([magick, pillow], IMAGE_TARGETS) is magick


@pytest.mark.unit
def test_fallback_chosen_when_preferred_is_incomplete() -> None:
    magick = _capability(ProcessorKind.IMAGEMAGICK, Format.WEBP)
    pillow = _capability(ProcessorKind.PILLOW, Format.WEBP)

    assert select_capability([magick, pillow], IMAGE_TARGETS) is pillow


@pytest.mark.unit
def test_partial_preferred_used_when_no_fallback_matches() -> None:
    magick = _capability(ProcessorKind.IMAGEMAGICK, Format.AVIF)
    pillow = _capability(ProcessorKind.PILLOW)

    assert select_capability([magick, pillow], IMAGE_TARGETS) is magick


@pytest.mark.unit
def test_nothing_selected_without_matching_formats() -> None:
    magick = _capability(ProcessorKind.IMAGEMAGICK)
    pillow = _capability(ProcessorKind.PILLOW)

    assert select_capability([magick, pillow], IMAGE_TARGETS) is None
    assert select_capability([], IMAGE_TARGETS) is None


@pytest.mark.unit
def test_probe_caches_detection_until_refresh() -> None:
    backend = FakeBackend(kind=ProcessorKind.IMAGEMAGICK)
    probe = ProcessorCapabilityProbe(image_backends=[backend])

    first = probe.detect_image_processor()
    second = probe.detect_image_processor()

    assert first is not None
    assert first.processor_kind is ProcessorKind.IMAGEMAGICK
    assert first.supported_formats == frozenset(IMAGE_TARGETS)
    assert backend.query_calls == 1
    assert second is first

    probe.refresh()
    probe.detect_image_processor()
    assert backend.query_calls == 2


@pytest.mark.unit
def test_probe_falls_back_to_pillow_without_avif_in_imagemagick() -> None:
    magick = FakeBackend(kind=ProcessorKind.IMAGEMAGICK, formats=[Format.WEBP])
    pillow = FakeBackend(kind=ProcessorKind.PILLOW, formats=[Format.WEBP, Format.AVIF])
    probe = ProcessorCapabilityProbe(image_backends=[magick, pillow])

    selected = probe.select(MediaType.IMAGE)

    assert selected is not None
    assert selected.backend is pillow
    assert selected.capability.processor_kind is ProcessorKind.PILLOW


@pytest.mark.unit
def test_probe_treats_query_errors_as_absence() -> None:
    broken = FakeBackend(kind=ProcessorKind.IMAGEMAGICK, query_error=RuntimeError("no libmagick"))
    pillow = FakeBackend(kind=ProcessorKind.PILLOW, formats=[Format.WEBP])
    probe = ProcessorCapabilityProbe(image_backends=[broken, pillow])

    capability = probe.detect_image_processor()

    assert capability is not None
    assert capability.processor_kind is ProcessorKind.PILLOW
    assert capability.supported_formats == frozenset({Format.WEBP})


@pytest.mark.unit
def test_probe_limits_formats_to_configured_targets() -> None:
    backend = FakeBackend(kind=ProcessorKind.IMAGEMAGICK)
    probe = ProcessorCapabilityProbe(image_backends=[backend], image_targets=[Format.WEBP])

    capability = probe.detect_image_processor()

    assert capability is not None
    assert capability.supported_formats == frozenset({Format.WEBP})


@pytest.mark.unit
def test_video_processor_absent_without_backends() -> None:
    probe = ProcessorCapabilityProbe()

    assert probe.detect_video_processor() is None
    assert probe.status()["video"] == {"available": False, "processor": None, "formats": []}


@pytest.mark.unit
def test_status_reports_selected_backend() -> None:
    ffmpeg = FakeBackend(
        kind=ProcessorKind.FFMPEG,
        media_type=MediaType.VIDEO,
        formats=[Format.AV1, Format.WEBM],
        version="6.1",
    )
    probe = ProcessorCapabilityProbe(video_backends=[ffmpeg])

    status = probe.status()

    assert status["video"] == {
        "available": True,
        "processor": "ffmpeg",
        "version": "6.1",
        "formats": ["av1", "webm"],
    }
