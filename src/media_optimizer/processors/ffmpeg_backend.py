"""Video backend: ffmpeg-python binding plus the ffmpeg executable."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from ..domain.models import Format, MediaType, ProcessorKind
from .base import EncoderBackend, output_written

try:  # pragma: no cover - exercised through capability probing
    import ffmpeg
except ImportError:  # pragma: no cover - binding missing means "unavailable"
    ffmpeg = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

# Preferred encoder first.
_ENCODERS: dict[Format, tuple[str, ...]] = {
    Format.AV1: ("libaom-av1", "libsvtav1", "librav1e"),
    Format.WEBM: ("libvpx-vp9", "libvpx"),
}
_CONTAINERS = {Format.AV1: "mp4", Format.WEBM: "webm"}
_AUDIO_CODECS = {Format.AV1: "aac", Format.WEBM: "libopus"}

Runner = Callable[..., subprocess.CompletedProcess]


def _vpx_deadline(preset: str) -> str:
    if preset in ("ultrafast", "superfast", "veryfast", "faster", "fast"):
        return "realtime"
    if preset in ("slow", "slower", "veryslow", "placebo"):
        return "best"
    return "good"


def parse_encoders(listing: str) -> set[str]:
    """Extract encoder names from ``ffmpeg -encoders`` output."""
    names: set[str] = set()
    started = False
    for line in listing.splitlines():
        stripped = line.strip()
        if stripped.startswith("------"):
            started = True
            continue
        if not started or not stripped:
            continue
        parts = stripped.split()
        if len(parts) >= 2 and parts[0].startswith("V"):
            names.add(parts[1])
    return names


class FFmpegBackend(EncoderBackend):
    """External video encoder invoked as a blocking subprocess."""

    kind = ProcessorKind.FFMPEG
    media_type = MediaType.VIDEO

    def __init__(
        self,
        *,
        binary: str = "ffmpeg",
        probe_timeout: float = 10.0,
        runner: Runner | None = None,
        binding_available: bool | None = None,
    ) -> None:
        self.binary = binary
        self.probe_timeout = probe_timeout
        self._runner = runner or subprocess.run
        self._binding_available = ffmpeg is not None if binding_available is None else binding_available
        self._version: str | None = None
        self._encoders: dict[Format, str] = {}

    def _invoke(self, args: Sequence[str]) -> subprocess.CompletedProcess | None:
        try:
            completed = self._runner(
                [self.binary, *args],
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning(
                "processor.ffmpeg.probe_failed",
                extra={"binary": self.binary, "probe_args": list(args), "error": str(exc)},
            )
            return None
        if completed.returncode != 0:
            logger.warning(
                "processor.ffmpeg.probe_failed",
                extra={"binary": self.binary, "probe_args": list(args), "returncode": completed.returncode},
            )
            return None
        return completed

    def query_formats(self) -> frozenset[Format]:
        if not self._binding_available:
            logger.warning("processor.ffmpeg.binding_missing")
            return frozenset()
        version_probe = self._invoke(["-version"])
        if version_probe is None:
            return frozenset()
        first_line = (version_probe.stdout or "").splitlines()[:1]
        if first_line:
            tokens = first_line[0].split()
            self._version = tokens[2] if len(tokens) > 2 else first_line[0]

        listing = self._invoke(["-hide_banner", "-encoders"])
        if listing is None:
            return frozenset()
        available = parse_encoders(listing.stdout or "")
        self._encoders = {}
        for fmt, candidates in _ENCODERS.items():
            for name in candidates:
                if name in available:
                    self._encoders[fmt] = name
                    break
        return frozenset(self._encoders)

    def version(self) -> str | None:
        return self._version

    def encoder_for(self, fmt: Format) -> str | None:
        return self._encoders.get(fmt)

    def output_arguments(self, fmt: Format, options: Mapping[str, Any]) -> dict[str, Any]:
        """Build ffmpeg output keyword arguments for ``fmt``."""
        encoder = self._encoders.get(fmt) or _ENCODERS[fmt][0]
        args: dict[str, Any] = {
            "format": _CONTAINERS[fmt],
            "vcodec": encoder,
            "crf": int(options["crf"]),
            "b:v": 0,
            "acodec": _AUDIO_CODECS[fmt],
            "threads": int(options.get("threads", 0)),
        }
        if encoder == "libaom-av1":
            args["cpu-used"] = int(options.get("cpu_used", 4))
        elif encoder == "libsvtav1":
            args["preset"] = int(options.get("cpu_used", 4))
        elif encoder == "librav1e":
            args["speed"] = int(options.get("cpu_used", 4))
        else:
            args["deadline"] = _vpx_deadline(str(options.get("preset", "medium")))
            if "speed" in options:
                args["cpu-used"] = int(options["speed"])
        if fmt is Format.AV1:
            args["movflags"] = "+faststart"
        return args

    def convert(
        self,
        source: Path,
        destination: Path,
        fmt: Format,
        options: Mapping[str, Any],
    ) -> bool:
        if ffmpeg is None:
            return False
        stream = ffmpeg.input(str(source)).output(str(destination), **self.output_arguments(fmt, options))
        try:
            ffmpeg.run(
                stream,
                cmd=self.binary,
                capture_stdout=True,
                capture_stderr=True,
                overwrite_output=True,
            )
        except ffmpeg.Error as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace")
            logger.error(
                "processor.ffmpeg.encode_failed",
                extra={"source": str(source), "format": fmt.value, "stderr": stderr[-2000:]},
            )
            return False
        return output_written(destination)


__all__ = ["FFmpegBackend", "parse_encoders"]
