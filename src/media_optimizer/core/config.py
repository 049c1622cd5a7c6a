"""Environment driven settings and the conversion configuration values.

Settings are read once at startup by :func:`src.media_optimizer.config.load_config`.
Everything downstream receives explicit :class:`ConversionSettings` and
:class:`QuotaLimits` values instead of reading the environment itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.models import Format, MediaType


def _default_upload_root() -> Path:
    return Path("./var/uploads")


@dataclass(frozen=True, slots=True)
class ConversionSettings:
    """Per-call conversion configuration for one media class."""

    formats: tuple[Format, ...]
    hybrid: bool = True
    options: Mapping[Format, Mapping[str, Any]] = field(default_factory=dict)

    def options_for(self, fmt: Format) -> dict[str, Any]:
        """Caller overrides for ``fmt``; merged over engine defaults per key."""
        return dict(self.options.get(fmt, {}))


@dataclass(frozen=True, slots=True)
class QuotaLimits:
    """Per-period conversion limits; ``None`` means unbounded."""

    image: int | None = None
    video: int | None = None

    def for_type(self, media_type: MediaType) -> int | None:
        if media_type is MediaType.IMAGE:
            return self.image
        return self.video


class Settings(BaseSettings):
    """Pydantic settings container for the conversion service."""

    model_config = cast(Any, SettingsConfigDict(env_prefix="MEDIA_OPTIMIZER_"))

    database_url: str = Field(
        default="sqlite:///media_optimizer.db",
        description="SQLAlchemy URL of the conversion ledger database.",
    )
    upload_root: Path = Field(
        default_factory=_default_upload_root,
        description="Filesystem root of the media library uploads.",
    )
    upload_base_url: str = Field(
        default="http://localhost/uploads",
        description="Public URL under which ``upload_root`` is served.",
    )
    image_formats: tuple[Format, ...] = Field(
        default=(Format.WEBP, Format.AVIF),
        description="Image target formats produced on upload.",
    )
    video_formats: tuple[Format, ...] = Field(
        default=(Format.AV1, Format.WEBM),
        description="Video target formats produced by the video worker.",
    )
    hybrid_conversion: bool = Field(
        default=True,
        description="Produce both the primary and the secondary format per asset.",
    )
    auto_convert_images: bool = Field(default=True, description="Convert images on upload.")
    auto_convert_videos: bool = Field(default=True, description="Queue videos on upload.")
    skip_animated_gifs: bool = Field(
        default=True,
        description="Leave animated GIFs untouched instead of flattening them.",
    )
    webp_quality: int = Field(default=85, ge=1, le=100, description="WebP quality percentage.")
    webp_lossless: bool = Field(default=False, description="Encode WebP losslessly.")
    avif_quality: int = Field(default=80, ge=1, le=100, description="AVIF quality percentage.")
    avif_speed: int = Field(default=6, ge=0, le=10, description="AVIF encoder speed (0 slowest).")
    video_av1_crf: int = Field(default=28, ge=0, le=63, description="AV1 constant rate factor.")
    video_av1_preset: str = Field(default="medium", description="AV1 encoder preset.")
    video_av1_cpu_used: int = Field(default=4, ge=0, le=8, description="libaom cpu-used speed.")
    video_webm_crf: int = Field(default=30, ge=0, le=63, description="VP9 constant rate factor.")
    video_webm_preset: str = Field(default="medium", description="VP9 encoder preset.")
    ffmpeg_binary: str = Field(default="ffmpeg", description="ffmpeg executable name or path.")
    ffmpeg_probe_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout of the ffmpeg availability probe in seconds.",
    )
    image_quota_limit: int | None = Field(
        default=None,
        ge=0,
        description="Monthly image conversions allowed; unset for unbounded.",
    )
    video_quota_limit: int | None = Field(
        default=None,
        ge=0,
        description="Monthly video conversions allowed; unset for unbounded.",
    )
    backfill_batch_size: int = Field(
        default=5,
        ge=1,
        description="Assets examined per backfill sweep.",
    )
    backfill_interval_seconds: int = Field(
        default=3600,
        ge=1,
        description="Delay between backfill sweeps in seconds.",
    )
    video_poll_interval_ms: int = Field(
        default=1_000,
        ge=10,
        description="Polling interval for VideoWorker.run_forever in milliseconds.",
    )
    cleanup_retention_days: int = Field(
        default=30,
        ge=1,
        description="Age after which conversion records are pruned by cleanup.",
    )

    def image_settings(self) -> ConversionSettings:
        return ConversionSettings(
            formats=tuple(fmt for fmt in self.image_formats if fmt.media_type is MediaType.IMAGE),
            hybrid=self.hybrid_conversion,
            options={
                Format.WEBP: {"quality": self.webp_quality, "lossless": self.webp_lossless},
                Format.AVIF: {"quality": self.avif_quality, "speed": self.avif_speed},
            },
        )

    def video_settings(self) -> ConversionSettings:
        return ConversionSettings(
            formats=tuple(fmt for fmt in self.video_formats if fmt.media_type is MediaType.VIDEO),
            hybrid=self.hybrid_conversion,
            options={
                Format.AV1: {
                    "crf": self.video_av1_crf,
                    "preset": self.video_av1_preset,
                    "cpu_used": self.video_av1_cpu_used,
                },
                Format.WEBM: {"crf": self.video_webm_crf, "preset": self.video_webm_preset},
            },
        )

    def quota_limits(self) -> QuotaLimits:
        return QuotaLimits(image=self.image_quota_limit, video=self.video_quota_limit)


__all__ = ["ConversionSettings", "QuotaLimits", "Settings"]
