"""Encoder backends and capability negotiation."""

from .base import EncoderBackend
from .capability import ProcessorCapabilityProbe, SelectedProcessor, select_capability
from .ffmpeg_backend import FFmpegBackend
from .pillow_backend import PillowBackend
from .wand_backend import WandBackend

__all__ = [
    "EncoderBackend",
    "FFmpegBackend",
    "PillowBackend",
    "ProcessorCapabilityProbe",
    "SelectedProcessor",
    "WandBackend",
    "select_capability",
]
