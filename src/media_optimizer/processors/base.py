"""Base interface for encoder backends.

A backend wraps one external encoder (an image library binding or the
ffmpeg binary). Backends answer two questions: which target formats they can
produce right now, and how to turn one source file into one destination file.
Availability problems are reported through an empty format set, never raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping

from ..domain.models import Format, MediaType, ProcessorKind


class EncoderBackend(ABC):
    """Abstract encoder queried by :class:`ProcessorCapabilityProbe`."""

    kind: ProcessorKind
    media_type: MediaType

    @abstractmethod
    def query_formats(self) -> frozenset[Format]:
        """Return the target formats this backend can currently encode."""

    def version(self) -> str | None:
        """Return the encoder version string when it can be determined."""
        return None

    @abstractmethod
    def convert(
        self,
        source: Path,
        destination: Path,
        fmt: Format,
        options: Mapping[str, Any],
    ) -> bool:
        """Encode ``source`` into ``destination`` as ``fmt``.

        ``options`` is the fully merged parameter set. Returns ``False`` when
        the encoder reports failure; unexpected errors may propagate.
        """


def output_written(path: Path) -> bool:
    """True when ``path`` exists and holds at least one byte."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


__all__ = ["EncoderBackend", "output_written"]
