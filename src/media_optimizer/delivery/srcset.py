"""Parsing and formatting of width-indexed candidate lists."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

_DESCRIPTOR = re.compile(r"^(?P<url>\S+)(?:\s+(?P<descriptor>\d+w|\d+(?:\.\d+)?x))?$")


@dataclass(frozen=True, slots=True)
class SrcsetCandidate:
    url: str
    descriptor: str | None = None

    def render(self) -> str:
        return f"{self.url} {self.descriptor}" if self.descriptor else self.url


def parse_srcset(value: str) -> list[SrcsetCandidate]:
    """Split ``srcset`` into candidates, ignoring malformed entries."""
    candidates: list[SrcsetCandidate] = []
    for part in re.split(r",\s+|,(?=\S+\s+\d)", value.strip()):
        part = part.strip().rstrip(",")
        if not part:
            continue
        match = _DESCRIPTOR.match(part)
        if match is None:
            continue
        candidates.append(SrcsetCandidate(url=match["url"], descriptor=match["descriptor"]))
    return candidates


def format_srcset(candidates: list[SrcsetCandidate]) -> str:
    return ", ".join(candidate.render() for candidate in candidates)


def swap_extension(url: str, extension: str) -> str:
    """Replace the file extension of ``url``, keeping host and query."""
    parts = urlsplit(url)
    root, _ = posixpath.splitext(parts.path)
    return urlunsplit(parts._replace(path=root + extension))


__all__ = ["SrcsetCandidate", "format_srcset", "parse_srcset", "swap_extension"]
