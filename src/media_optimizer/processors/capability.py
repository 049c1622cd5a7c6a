"""Encoder capability negotiation.

Backends are held in preference order. Each one is asked which formats it
can produce; :func:`select_capability` then picks a backend purely from those
answers. Results are cached for the lifetime of the probe instance.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Collection, Sequence

import structlog

from ..domain.models import Format, MediaType, ProcessorCapability
from .base import EncoderBackend

logger = structlog.get_logger(__name__)

_UNSET = object()


def select_capability(
    capabilities: Sequence[ProcessorCapability],
    targets: Collection[Format],
) -> ProcessorCapability | None:
    """Pick a backend for ``targets`` from capabilities in preference order.

    The preferred (first) backend wins when it covers every target. Otherwise
    the first fallback covering at least one target is chosen, then the
    preferred backend's partial coverage; ``None`` when nothing matches.
    """

    wanted = frozenset(targets)
    if not capabilities or not wanted:
        return None
    preferred, fallbacks = capabilities[0], capabilities[1:]
    if wanted <= preferred.supported_formats:
        return preferred
    for candidate in fallbacks:
        if wanted & candidate.supported_formats:
            return candidate
    if wanted & preferred.supported_formats:
        return preferred
    return None


@dataclass(slots=True)
class SelectedProcessor:
    """Backend chosen by the probe together with its queried capability."""

    backend: EncoderBackend
    capability: ProcessorCapability


class ProcessorCapabilityProbe:
    """Detect usable encoders without performing any conversion."""

    def __init__(
        self,
        *,
        image_backends: Sequence[EncoderBackend] = (),
        video_backends: Sequence[EncoderBackend] = (),
        image_targets: Collection[Format] = (Format.WEBP, Format.AVIF),
        video_targets: Collection[Format] = (Format.AV1, Format.WEBM),
    ) -> None:
        self._backends = {
            MediaType.IMAGE: list(image_backends),
            MediaType.VIDEO: list(video_backends),
        }
        self._targets = {
            MediaType.IMAGE: tuple(image_targets),
            MediaType.VIDEO: tuple(video_targets),
        }
        self._cache: dict[MediaType, object] = {
            MediaType.IMAGE: _UNSET,
            MediaType.VIDEO: _UNSET,
        }
        self._lock = threading.Lock()

    def detect_image_processor(self) -> ProcessorCapability | None:
        selected = self.select(MediaType.IMAGE)
        return selected.capability if selected else None

    def detect_video_processor(self) -> ProcessorCapability | None:
        selected = self.select(MediaType.VIDEO)
        return selected.capability if selected else None

    def select(self, media_type: MediaType) -> SelectedProcessor | None:
        """Return the cached backend selection for ``media_type``."""
        with self._lock:
            cached = self._cache[media_type]
            if cached is _UNSET:
                cached = self._detect(media_type)
                self._cache[media_type] = cached
        return cached  # type: ignore[return-value]

    def refresh(self) -> None:
        """Forget cached detections so the next lookup queries again."""
        with self._lock:
            for key in self._cache:
                self._cache[key] = _UNSET

    def status(self) -> dict[str, dict[str, object]]:
        """Summarise detection results for diagnostics endpoints."""
        summary: dict[str, dict[str, object]] = {}
        for media_type in (MediaType.IMAGE, MediaType.VIDEO):
            selected = self.select(media_type)
            if selected is None:
                summary[media_type.value] = {"available": False, "processor": None, "formats": []}
                continue
            capability = selected.capability
            summary[media_type.value] = {
                "available": True,
                "processor": capability.processor_kind.value,
                "version": capability.version,
                "formats": sorted(fmt.value for fmt in capability.supported_formats),
            }
        return summary

    def _detect(self, media_type: MediaType) -> SelectedProcessor | None:
        targets = self._targets[media_type]
        queried: list[tuple[EncoderBackend, ProcessorCapability]] = []
        for backend in self._backends[media_type]:
            try:
                formats = backend.query_formats()
                version = backend.version()
            except Exception as exc:  # noqa: BLE001 - absence is a normal outcome
                logger.warning(
                    "processor.query_failed",
                    processor=backend.kind.value,
                    error=str(exc),
                )
                formats, version = frozenset(), None
            queried.append(
                (
                    backend,
                    ProcessorCapability(
                        processor_kind=backend.kind,
                        supported_formats=frozenset(formats) & frozenset(targets),
                        version=version,
                    ),
                )
            )

        chosen = select_capability([capability for _, capability in queried], targets)
        if chosen is None:
            logger.warning(
                "processor.unavailable",
                media_type=media_type.value,
                candidates=[backend.kind.value for backend, _ in queried],
            )
            return None
        backend = next(backend for backend, capability in queried if capability is chosen)
        missing = sorted(fmt.value for fmt in set(targets) - chosen.supported_formats)
        logger.info(
            "processor.selected",
            media_type=media_type.value,
            processor=chosen.processor_kind.value,
            version=chosen.version,
            formats=sorted(fmt.value for fmt in chosen.supported_formats),
            missing=missing,
        )
        return SelectedProcessor(backend=backend, capability=chosen)


__all__ = ["ProcessorCapabilityProbe", "SelectedProcessor", "select_capability"]
