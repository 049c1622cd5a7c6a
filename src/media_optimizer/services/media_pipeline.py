"""Orchestrates conversions for media library events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable

from ..config import UploadPaths
from ..core.config import ConversionSettings
from ..domain.models import (
    ConversionRecord,
    ConversionResult,
    ConvertedFileSet,
    Format,
    MediaAsset,
    MediaType,
    VideoJob,
)
from ..exceptions import ConversionError, ensure_found
from ..repositories.attachment_repository import AttachmentRepository
from .animation_detector import AnimationDetector
from .conversion_tracker import ConversionTracker
from .image_converter import ImageConversionEngine
from .quota_manager import QuotaManager
from .video_converter import VideoConversionEngine
from .video_queue import VideoJobQueue

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    CONVERTED = "converted"
    QUEUED = "queued"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class PipelineOutcome:
    """What happened to one asset after an event was handled."""

    asset_id: int
    status: OutcomeStatus
    reason: str | None = None
    result: ConversionResult | None = None

    @classmethod
    def skipped(cls, asset_id: int, reason: str) -> "PipelineOutcome":
        return cls(asset_id=asset_id, status=OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, asset_id: int, reason: str, result: ConversionResult | None = None) -> "PipelineOutcome":
        return cls(asset_id=asset_id, status=OutcomeStatus.FAILED, reason=reason, result=result)


@dataclass(slots=True)
class BackfillReport:
    examined: int = 0
    converted: int = 0
    queued: int = 0
    skipped: int = 0
    failed: int = 0
    last_asset_id: int | None = None

    def count(self, outcome: PipelineOutcome) -> None:
        self.examined += 1
        self.last_asset_id = outcome.asset_id
        if outcome.status is OutcomeStatus.CONVERTED:
            self.converted += 1
        elif outcome.status is OutcomeStatus.QUEUED:
            self.queued += 1
        elif outcome.status is OutcomeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


def sibling_path(source: Path, fmt: Format) -> Path:
    """``uploads/2024/01/img.jpg`` -> ``uploads/2024/01/img.avif``."""
    return source.with_suffix(fmt.extension)


@dataclass(slots=True)
class MediaPipeline:
    """Coordinates eligibility, admission, conversion and bookkeeping."""

    attachments: AttachmentRepository
    upload_paths: UploadPaths
    image_engine: ImageConversionEngine
    video_engine: VideoConversionEngine
    quota: QuotaManager
    tracker: ConversionTracker
    video_queue: VideoJobQueue
    image_settings: ConversionSettings
    video_settings: ConversionSettings
    animation_detector: AnimationDetector = field(default_factory=AnimationDetector)
    auto_convert_images: bool = True
    auto_convert_videos: bool = True
    skip_animated_gifs: bool = True
    log: logging.Logger = field(default_factory=lambda: logger)

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------
    def handle_upload(self, asset_id: int) -> PipelineOutcome:
        """Images convert in place; videos are deferred to the worker."""
        asset, skip = self._eligible_asset(asset_id)
        if asset is None:
            return skip  # type: ignore[return-value]
        media_type = asset.media_type
        if media_type is MediaType.IMAGE:
            if not self.auto_convert_images:
                return PipelineOutcome.skipped(asset_id, "image auto conversion disabled")
            return self.convert_image(asset)
        if media_type is MediaType.VIDEO:
            if not self.auto_convert_videos:
                return PipelineOutcome.skipped(asset_id, "video auto conversion disabled")
            return self.enqueue_video(asset)
        return PipelineOutcome.skipped(asset_id, f"unsupported mime type {asset.mime_type}")

    def handle_metadata_update(self, asset_id: int) -> PipelineOutcome:
        """Regenerated size variants or editor saves; converted files are overwritten."""
        return self.handle_upload(asset_id)

    def handle_file_replaced(self, asset_id: int) -> PipelineOutcome:
        """Drop output of the previous file before converting the new one."""
        asset = self.attachments.get(asset_id)
        if asset is not None:
            self._remove_converted_files(
                asset_id, self.upload_paths.absolute(asset.relative_path), asset.size_variants
            )
            self.tracker.delete_attachment_conversions(asset_id)
        return self.handle_upload(asset_id)

    def convert_attachment(self, asset_id: int) -> PipelineOutcome:
        """Manual conversion; raises when the asset is unknown or quota is spent."""
        asset = self._require(asset_id)
        if asset.conversion_disabled:
            return PipelineOutcome.skipped(asset_id, "conversion disabled for attachment")
        media_type = asset.media_type
        if media_type is None:
            return PipelineOutcome.skipped(asset_id, f"unsupported mime type {asset.mime_type}")
        self.quota.ensure_can_convert(media_type)
        if media_type is MediaType.IMAGE:
            return self.convert_image(asset)
        return self.enqueue_video(asset)

    def handle_deletion(self, asset_id: int, *, relative_path: str | None = None) -> int:
        """Remove converted siblings and ledger rows of a deleted asset."""
        asset = self.attachments.get(asset_id)
        removed_files = 0
        path = relative_path or (asset.relative_path if asset else None)
        if path is not None:
            variants = asset.size_variants if asset else []
            removed_files = self._remove_converted_files(asset_id, self.upload_paths.absolute(path), variants)
        removed_records = self.tracker.delete_attachment_conversions(asset_id)
        self.log.info(
            "pipeline.asset_deleted",
            extra={"asset_id": asset_id, "files": removed_files, "records": removed_records},
        )
        return removed_files

    def disable_conversion(self, asset_id: int) -> int:
        """Delete converted output and stop converting this asset."""
        asset = self._require(asset_id)
        removed = self._remove_converted_files(
            asset_id, self.upload_paths.absolute(asset.relative_path), asset.size_variants
        )
        self.tracker.delete_attachment_conversions(asset_id)
        self.attachments.set_conversion_disabled(asset_id, True)
        self.log.info("pipeline.conversion_disabled", extra={"asset_id": asset_id, "files": removed})
        return removed

    def enable_conversion(self, asset_id: int) -> None:
        self._require(asset_id)
        self.attachments.set_conversion_disabled(asset_id, False)
        self.log.info("pipeline.conversion_enabled", extra={"asset_id": asset_id})

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------
    def convert_image(self, asset: MediaAsset) -> PipelineOutcome:
        source = self.upload_paths.absolute(asset.relative_path)
        if not source.is_file():
            return PipelineOutcome.failed(asset.id, "source file missing")
        if not self.image_engine.is_supported(source, asset.mime_type):
            return PipelineOutcome.skipped(asset.id, f"unsupported image type {asset.mime_type}")
        if (
            self.skip_animated_gifs
            and asset.mime_type == "image/gif"
            and self.animation_detector.is_animated(source)
        ):
            self.log.info("pipeline.animated_gif_skipped", extra={"asset_id": asset.id})
            return PipelineOutcome.skipped(asset.id, "animated gif")
        return self._convert(asset, source, MediaType.IMAGE)

    def enqueue_video(self, asset: MediaAsset) -> PipelineOutcome:
        source = self.upload_paths.absolute(asset.relative_path)
        if not self.video_engine.is_supported(source, asset.mime_type):
            return PipelineOutcome.skipped(asset.id, f"unsupported video type {asset.mime_type}")
        if self.video_queue.enqueue(asset.id, str(source)):
            return PipelineOutcome(asset_id=asset.id, status=OutcomeStatus.QUEUED)
        return PipelineOutcome.skipped(asset.id, "already queued")

    def process_video_job(self, job: VideoJob) -> PipelineOutcome:
        """Re-validate a queued video and convert it."""
        asset, skip = self._eligible_asset(job.asset_id)
        if asset is None:
            return skip  # type: ignore[return-value]
        source = Path(job.source_path)
        if not source.is_file():
            return PipelineOutcome.failed(asset.id, "source file missing")
        if not self.video_engine.is_supported(source, asset.mime_type):
            return PipelineOutcome.skipped(asset.id, f"unsupported video type {asset.mime_type}")
        return self._convert(asset, source, MediaType.VIDEO)

    def backfill(self, batch_size: int = 5, *, after_id: int = 0) -> BackfillReport:
        """Sweep a batch of assets that were never converted."""
        report = BackfillReport()
        for asset in self.attachments.list_unconverted(batch_size, after_id=after_id):
            try:
                if asset.media_type is MediaType.IMAGE:
                    outcome = self.convert_image(asset)
                else:
                    outcome = self.enqueue_video(asset)
            except ConversionError as exc:
                self.log.warning(
                    "pipeline.backfill_failed",
                    extra={"asset_id": asset.id, "error": str(exc)},
                )
                outcome = PipelineOutcome.failed(asset.id, str(exc))
            report.count(outcome)
        self.log.info(
            "pipeline.backfill_completed",
            extra={
                "examined": report.examined,
                "converted": report.converted,
                "queued": report.queued,
                "skipped": report.skipped,
                "failed": report.failed,
            },
        )
        return report

    # ------------------------------------------------------------------
    # Delivery helpers
    # ------------------------------------------------------------------
    def converted_files(self, asset_id: int) -> ConvertedFileSet:
        """Tracked conversions of ``asset_id`` whose files are on disk."""
        file_set = ConvertedFileSet(asset_id=asset_id)
        asset = self.attachments.get(asset_id)
        if asset is None or asset.conversion_disabled:
            return file_set
        source = self.upload_paths.absolute(asset.relative_path)
        for fmt in self.tracker.get_converted_formats(asset_id):
            candidate = sibling_path(source, fmt)
            if candidate.is_file():
                file_set.files[fmt] = candidate
        return file_set

    def destination_paths(self, source: Path, formats: Iterable[Format]) -> dict[Format, Path]:
        """Sibling destinations, skipping formats the source already has."""
        return {
            fmt: sibling_path(source, fmt)
            for fmt in formats
            if source.suffix.lower() != fmt.extension
        }

    def cleanup_old_records(self, days: int = 30) -> int:
        """Prune old ledger rows that no longer describe a file on disk."""
        return self.tracker.cleanup_old_records(days, should_delete=self._is_orphaned)

    def orphaned_records(self, days: int = 30) -> list[ConversionRecord]:
        """Rows :meth:`cleanup_old_records` would delete right now."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=max(days, 0))
        return [record for record in self.tracker.list_records_before(cutoff) if self._is_orphaned(record)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _convert(self, asset: MediaAsset, source: Path, media_type: MediaType) -> PipelineOutcome:
        if not self.quota.can_convert(media_type):
            self.log.info(
                "quota.exceeded",
                extra={"asset_id": asset.id, "media_type": media_type.value},
            )
            return PipelineOutcome.skipped(asset.id, "quota exceeded")

        settings = self.image_settings if media_type is MediaType.IMAGE else self.video_settings
        engine = self.image_engine if media_type is MediaType.IMAGE else self.video_engine
        destinations = self.destination_paths(source, settings.formats)
        if not destinations:
            return PipelineOutcome.skipped(asset.id, "no target formats configured")

        result = engine.process(source, destinations, settings, mime_type=asset.mime_type)
        self._record(asset, source, result)
        if not result.success:
            return PipelineOutcome.failed(asset.id, "; ".join(result.errors), result)

        if media_type is MediaType.IMAGE and asset.size_variants:
            self._convert_size_variants(asset, source, result.converted_formats)
        return PipelineOutcome(asset_id=asset.id, status=OutcomeStatus.CONVERTED, result=result)

    def _record(self, asset: MediaAsset, source: Path, result: ConversionResult) -> None:
        if not result.success:
            return
        original_size = source.stat().st_size
        for fmt in result.converted_formats:
            converted_size = result.converted_files[fmt].stat().st_size
            self.tracker.record_conversion(asset.id, fmt, original_size, converted_size)

    def _convert_size_variants(self, asset: MediaAsset, source: Path, formats: list[Format]) -> None:
        settings = ConversionSettings(
            formats=tuple(formats),
            hybrid=True,
            options=self.image_settings.options,
        )
        for name in asset.size_variants:
            variant = source.parent / name
            if not variant.is_file():
                continue
            try:
                result = self.image_engine.process(
                    variant,
                    self.destination_paths(variant, formats),
                    settings,
                    mime_type=asset.mime_type,
                )
            except ConversionError as exc:
                self.log.warning(
                    "pipeline.size_variant_failed",
                    extra={"asset_id": asset.id, "variant": name, "error": str(exc)},
                )
                continue
            if result.errors:
                self.log.warning(
                    "pipeline.size_variant_partial",
                    extra={"asset_id": asset.id, "variant": name, "errors": result.errors},
                )

    def _remove_converted_files(self, asset_id: int, source: Path, variants: Iterable[str]) -> int:
        formats = set(self.tracker.get_converted_formats(asset_id))
        originals = [source, *(source.parent / name for name in variants)]
        removed = 0
        for original in originals:
            for fmt in formats:
                candidate = sibling_path(original, fmt)
                if candidate == original or not candidate.is_file():
                    continue
                try:
                    candidate.unlink()
                    removed += 1
                except OSError as exc:
                    self.log.warning(
                        "pipeline.file_removal_failed",
                        extra={"asset_id": asset_id, "path": str(candidate), "error": str(exc)},
                    )
        return removed

    def _is_orphaned(self, record: ConversionRecord) -> bool:
        asset = self.attachments.get(record.asset_id)
        if asset is None:
            return True
        source = self.upload_paths.absolute(asset.relative_path)
        return not sibling_path(source, record.format).is_file()

    def _eligible_asset(self, asset_id: int) -> tuple[MediaAsset | None, PipelineOutcome | None]:
        asset = self.attachments.get(asset_id)
        if asset is None:
            return None, PipelineOutcome.skipped(asset_id, "attachment not found")
        if asset.conversion_disabled:
            return None, PipelineOutcome.skipped(asset_id, "conversion disabled for attachment")
        return asset, None

    def _require(self, asset_id: int) -> MediaAsset:
        asset = self.attachments.get(asset_id)
        return ensure_found(asset, entity="attachment", identifier=asset_id)


__all__ = [
    "BackfillReport",
    "MediaPipeline",
    "OutcomeStatus",
    "PipelineOutcome",
    "sibling_path",
]
