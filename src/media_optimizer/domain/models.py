"""Domain dataclasses shared between services and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterator, Mapping


class MediaType(str, Enum):
    """Media classes metered and converted independently."""

    IMAGE = "image"
    VIDEO = "video"


class Format(str, Enum):
    """Closed set of conversion target formats."""

    WEBP = "webp"
    AVIF = "avif"
    AV1 = "av1"
    WEBM = "webm"

    @property
    def media_type(self) -> MediaType:
        if self in (Format.WEBP, Format.AVIF):
            return MediaType.IMAGE
        return MediaType.VIDEO

    @property
    def extension(self) -> str:
        """Suffix of the sibling file holding this format."""
        return f".{self.value}"

    @property
    def mime_type(self) -> str:
        return _FORMAT_MIME_TYPES[self]

    @classmethod
    def for_media_type(cls, media_type: MediaType) -> tuple["Format", ...]:
        """Formats of ``media_type`` ordered most modern first."""
        return DELIVERY_ORDER[media_type]


_FORMAT_MIME_TYPES: dict[Format, str] = {
    Format.WEBP: "image/webp",
    Format.AVIF: "image/avif",
    Format.AV1: 'video/mp4; codecs="av01.0.05M.08"',
    Format.WEBM: "video/webm",
}

# Most compressed first; the original element always follows.
DELIVERY_ORDER: dict[MediaType, tuple[Format, ...]] = {
    MediaType.IMAGE: (Format.AVIF, Format.WEBP),
    MediaType.VIDEO: (Format.AV1, Format.WEBM),
}

# (primary, secondary) pair of the hybrid strategy.
HYBRID_PAIRS: dict[MediaType, tuple[Format, Format]] = {
    MediaType.IMAGE: (Format.WEBP, Format.AVIF),
    MediaType.VIDEO: (Format.AV1, Format.WEBM),
}


class ProcessorKind(str, Enum):
    """Encoder backends known to the capability probe."""

    IMAGEMAGICK = "imagemagick"
    PILLOW = "pillow"
    FFMPEG = "ffmpeg"


class VideoJobStatus(str, Enum):
    """Lifecycle states of a deferred video conversion."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class MediaAsset:
    """Host-owned media library entry; read-only to the pipeline."""

    id: int
    relative_path: str
    mime_type: str
    url: str | None = None
    width: int | None = None
    height: int | None = None
    size_variants: list[str] = field(default_factory=list)
    cdn_urls: list[str] = field(default_factory=list)
    conversion_disabled: bool = False
    created_at: datetime | None = None

    @property
    def media_type(self) -> MediaType | None:
        if self.mime_type.startswith("image/"):
            return MediaType.IMAGE
        if self.mime_type.startswith("video/"):
            return MediaType.VIDEO
        return None


@dataclass(frozen=True, slots=True)
class ConversionTarget:
    """Requested output format together with its encoder parameters."""

    format: Format
    options: Mapping[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class ConversionRecord:
    """Persisted fact that ``asset_id`` has been converted to ``format``."""

    asset_id: int
    format: Format
    original_size: int
    converted_size: int
    converted_at: datetime

    @property
    def size_reduction(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return (self.original_size - self.converted_size) / self.original_size


@dataclass(slots=True)
class ConvertedFileSet:
    """Mapping of format to converted sibling file for one asset."""

    asset_id: int
    files: dict[Format, Path] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.files)

    def __iter__(self) -> Iterator[Format]:
        return iter(self.files)

    def get(self, fmt: Format) -> Path | None:
        return self.files.get(fmt)


@dataclass(slots=True)
class QuotaCounter:
    """Usage of one media type within one quota period."""

    media_type: MediaType
    period_key: str
    used_count: int
    limit: int | None

    @property
    def unbounded(self) -> bool:
        return self.limit is None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(self.limit - self.used_count, 0)

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.used_count >= self.limit


@dataclass(frozen=True, slots=True)
class ProcessorCapability:
    """Formats a backend can produce, queried without converting anything."""

    processor_kind: ProcessorKind
    supported_formats: frozenset[Format]
    version: str | None = None

    def supports(self, fmt: Format) -> bool:
        return fmt in self.supported_formats


@dataclass(slots=True)
class ConversionResult:
    """Outcome of one engine call covering every requested format."""

    success: bool = False
    converted_formats: list[Format] = field(default_factory=list)
    converted_files: dict[Format, Path] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def add_converted(self, fmt: Format, path: Path) -> None:
        self.converted_formats.append(fmt)
        self.converted_files[fmt] = path
        self.success = True

    @property
    def partial(self) -> bool:
        return self.success and bool(self.errors)


@dataclass(slots=True)
class ConversionStatistics:
    """Aggregated view over the conversion ledger."""

    total_conversions: int
    by_format: dict[str, int]
    by_date: dict[str, int]
    recent_conversions: int
    total_original_bytes: int
    total_converted_bytes: int

    @property
    def bytes_saved(self) -> int:
        return max(self.total_original_bytes - self.total_converted_bytes, 0)

    @property
    def size_reduction(self) -> float:
        if self.total_original_bytes <= 0:
            return 0.0
        return (self.total_original_bytes - self.total_converted_bytes) / self.total_original_bytes


@dataclass(slots=True)
class VideoJob:
    """Deferred video conversion queued for the worker."""

    id: int
    asset_id: int
    source_path: str
    status: VideoJobStatus
    scheduled_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None


__all__ = [
    "DELIVERY_ORDER",
    "HYBRID_PAIRS",
    "ConversionRecord",
    "ConversionResult",
    "ConversionStatistics",
    "ConversionTarget",
    "ConvertedFileSet",
    "Format",
    "MediaAsset",
    "MediaType",
    "ProcessorCapability",
    "ProcessorKind",
    "QuotaCounter",
    "VideoJob",
    "VideoJobStatus",
]
