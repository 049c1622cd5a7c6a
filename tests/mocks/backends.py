"""Scripted encoder backends for engine and probe tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

from src.media_optimizer.domain.models import Format, MediaType, ProcessorKind
from src.media_optimizer.processors.base import EncoderBackend


class FakeBackend(EncoderBackend):
    """Writes a small payload instead of encoding; failures are scripted per format."""

    def __init__(
        self,
        *,
        kind: ProcessorKind = ProcessorKind.PILLOW,
        media_type: MediaType = MediaType.IMAGE,
        formats: Iterable[Format] = (Format.WEBP, Format.AVIF),
        failing: Iterable[Format] = (),
        raising: Iterable[Format] = (),
        empty_output: Iterable[Format] = (),
        version: str | None = "1.0",
        query_error: Exception | None = None,
    ) -> None:
        self.kind = kind
        self.media_type = media_type
        self._formats = frozenset(formats)
        self._failing = frozenset(failing)
        self._raising = frozenset(raising)
        self._empty_output = frozenset(empty_output)
        self._version = version
        self._query_error = query_error
        self.query_calls = 0
        self.calls: list[tuple[Path, Path, Format, dict[str, Any]]] = []

    def query_formats(self) -> frozenset[Format]:
        self.query_calls += 1
        if self._query_error is not None:
            raise self._query_error
        return self._formats

    def version(self) -> str | None:
        return self._version

    def convert(
        self,
        source: Path,
        destination: Path,
        fmt: Format,
        options: Mapping[str, Any],
    ) -> bool:
        self.calls.append((source, destination, fmt, dict(options)))
        if fmt in self._raising:
            raise RuntimeError(f"{fmt.value} encoder crashed")
        if fmt in self._failing:
            return False
        if fmt in self._empty_output:
            destination.write_bytes(b"")
            return True
        destination.write_bytes(b"converted-" + fmt.value.encode())
        return True

    def converted_formats(self) -> list[Format]:
        return [call[2] for call in self.calls]
