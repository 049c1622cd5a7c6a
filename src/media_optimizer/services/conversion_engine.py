"""Shared conversion flow for the image and video engines.

One call converts a single source file into every requested target format.
Structural problems (missing source, unusable destination) raise before any
encoder runs; everything that goes wrong for an individual format is isolated
and reported in :attr:`ConversionResult.errors`.
"""

from __future__ import annotations

import mimetypes
import os
from pathlib import Path
from typing import Any, ClassVar, Mapping

import structlog

from ..core.config import ConversionSettings
from ..domain.models import (
    HYBRID_PAIRS,
    ConversionResult,
    ConversionTarget,
    Format,
    MediaType,
)
from ..exceptions import DestinationError, SourceNotFoundError
from ..processors.base import output_written
from ..processors.capability import ProcessorCapabilityProbe, SelectedProcessor

logger = structlog.get_logger(__name__)

_EXTENSION_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpe": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".webm": "video/webm",
    ".ogv": "video/ogg",
    ".ogg": "video/ogg",
}


def guess_mime_type(path: Path | str) -> str | None:
    """Sniff a MIME type from the file extension."""
    suffix = Path(path).suffix.lower()
    if suffix in _EXTENSION_MIME_TYPES:
        return _EXTENSION_MIME_TYPES[suffix]
    return mimetypes.guess_type(str(path))[0]


class ConversionEngine:
    """Convert one source into several formats through the selected backend."""

    media_type: ClassVar[MediaType]
    supported_mime_types: ClassVar[frozenset[str]]
    default_options: ClassVar[Mapping[Format, Mapping[str, Any]]]

    def __init__(self, probe: ProcessorCapabilityProbe) -> None:
        self._probe = probe

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_supported(self, path: Path | str, mime_type: str | None = None) -> bool:
        detected = mime_type or guess_mime_type(path)
        return detected in self.supported_mime_types

    def available_formats(self) -> frozenset[Format]:
        selected = self._probe.select(self.media_type)
        if selected is None:
            return frozenset()
        return selected.capability.supported_formats

    def merged_options(self, fmt: Format, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Defaults for ``fmt`` with ``overrides`` applied key by key."""
        options = dict(self.default_options.get(fmt, {}))
        options.update(overrides or {})
        return options

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------
    def process(
        self,
        source_path: Path | str,
        destination_paths: Mapping[Format, Path | str],
        settings: ConversionSettings,
        *,
        mime_type: str | None = None,
    ) -> ConversionResult:
        source = Path(source_path)
        log = logger.bind(source=str(source), media_type=self.media_type.value)
        if not source.is_file():
            raise SourceNotFoundError(source)

        result = ConversionResult()
        detected = mime_type or guess_mime_type(source)
        if detected not in self.supported_mime_types:
            message = f"Unsupported {self.media_type.value} format: {detected or 'unknown'}"
            log.warning("conversion.unsupported_input", mime_type=detected)
            result.errors.append(message)
            return result

        normalized = {Format(fmt): Path(path) for fmt, path in destination_paths.items()}
        selected = self._probe.select(self.media_type)
        targets = self._plan_targets(normalized, settings, selected, result)
        if not targets:
            if not result.errors:
                result.errors.append(f"No {self.media_type.value} target formats requested")
            return result

        destinations = {target.format: normalized[target.format] for target in targets}
        self._validate_destinations(source, destinations)

        for target in targets:
            self._convert_target(source, destinations[target.format], target, selected, result)

        self._log_outcome(log, targets, result)
        return result

    def _plan_targets(
        self,
        destination_paths: Mapping[Format, Path],
        settings: ConversionSettings,
        selected: SelectedProcessor | None,
        result: ConversionResult,
    ) -> list[ConversionTarget]:
        order = HYBRID_PAIRS[self.media_type]
        requested: list[Format] = []
        for fmt in destination_paths:
            if fmt.media_type is not self.media_type:
                result.errors.append(f"{fmt.value} is not a {self.media_type.value} format")
                continue
            requested.append(fmt)
        requested.sort(key=order.index)

        if len(requested) > 1 and not settings.hybrid:
            # Single-format mode: first requested format the backend can produce.
            supported = selected.capability.supported_formats if selected else frozenset()
            preferred = next((fmt for fmt in requested if fmt in supported), requested[0])
            requested = [preferred]

        return [
            ConversionTarget(format=fmt, options=self.merged_options(fmt, settings.options_for(fmt)))
            for fmt in requested
        ]

    @staticmethod
    def _validate_destinations(source: Path, destinations: Mapping[Format, Path]) -> None:
        for fmt, destination in destinations.items():
            directory = destination.parent
            if not directory.is_dir():
                raise DestinationError(
                    f"destination directory for {fmt.value} does not exist: {directory}"
                )
            if not os.access(directory, os.W_OK):
                raise DestinationError(
                    f"destination directory for {fmt.value} is not writable: {directory}"
                )
            if destination.resolve() == source.resolve():
                raise DestinationError(f"destination for {fmt.value} would overwrite the source")

    def _convert_target(
        self,
        source: Path,
        destination: Path,
        target: ConversionTarget,
        selected: SelectedProcessor | None,
        result: ConversionResult,
    ) -> None:
        fmt = target.format
        log = logger.bind(source=str(source), format=fmt.value)
        if selected is None or not selected.capability.supports(fmt):
            log.warning("conversion.processor_unavailable", media_type=self.media_type.value)
            result.errors.append(f"No {self.media_type.value} processor available for {fmt.value}")
            return

        backend = selected.backend
        try:
            converted = backend.convert(source, destination, fmt, target.options)
        except Exception as exc:  # noqa: BLE001 - one format never aborts its siblings
            log.error("conversion.format_failed", processor=backend.kind.value, error=str(exc))
            result.errors.append(f"{fmt.value} conversion failed: {exc}")
            return

        if not converted or not output_written(destination):
            log.error("conversion.format_failed", processor=backend.kind.value, error="no output")
            result.errors.append(f"{fmt.value} conversion failed: encoder produced no output")
            return

        log.debug("conversion.format_completed", processor=backend.kind.value)
        result.add_converted(fmt, destination)

    def _log_outcome(self, log: Any, targets: list[ConversionTarget], result: ConversionResult) -> None:
        requested = [target.format.value for target in targets]
        converted = [fmt.value for fmt in result.converted_formats]
        if len(targets) > 1:
            if len(converted) == len(targets):
                log.info("conversion.hybrid.completed", formats=converted)
            elif converted:
                log.warning(
                    "conversion.hybrid.partial",
                    requested=requested,
                    converted=converted,
                    errors=result.errors,
                )
            else:
                log.error("conversion.hybrid.failed", requested=requested, errors=result.errors)
            return
        if converted:
            log.info("conversion.completed", formats=converted)
        else:
            log.error("conversion.failed", requested=requested, errors=result.errors)


__all__ = ["ConversionEngine", "guess_mime_type"]
