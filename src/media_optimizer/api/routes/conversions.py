"""Routes for conversion bookkeeping and manual actions."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from ...domain.models import Format
from ...services.conversion_tracker import ConversionTracker, StatisticsFilter
from ...services.media_pipeline import MediaPipeline
from ..schemas import (
    AttachmentConversionsResponse,
    CleanupResponse,
    ConversionRecordPayload,
    ConversionStatisticsResponse,
    ConversionToggleResponse,
    ConvertResponse,
)

router = APIRouter(prefix="/api", tags=["conversions"])


def get_tracker(request: Request) -> ConversionTracker:
    try:
        return request.app.state.tracker  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ConversionTracker is not configured") from exc


def get_pipeline(request: Request) -> MediaPipeline:
    try:
        return request.app.state.pipeline  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("MediaPipeline is not configured") from exc


@router.get("/conversions/stats", response_model=ConversionStatisticsResponse)
def conversion_statistics(
    format: Format | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    tracker: ConversionTracker = Depends(get_tracker),
) -> ConversionStatisticsResponse:
    """Aggregate counts by format and day plus size savings."""
    stats = tracker.get_statistics(StatisticsFilter(format=format, since=since, until=until))
    return ConversionStatisticsResponse.from_statistics(stats)


@router.post("/conversions/cleanup", response_model=CleanupResponse)
def cleanup_conversions(
    days: int = Query(default=30, ge=1),
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> CleanupResponse:
    return CleanupResponse(days=days, removed_records=pipeline.cleanup_old_records(days))


@router.get("/attachments/{attachment_id}/conversions", response_model=AttachmentConversionsResponse)
def attachment_conversions(
    attachment_id: int,
    tracker: ConversionTracker = Depends(get_tracker),
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> AttachmentConversionsResponse:
    records = tracker.get_attachment_conversions(attachment_id)
    files = pipeline.converted_files(attachment_id)
    return AttachmentConversionsResponse(
        attachment_id=attachment_id,
        conversions=[ConversionRecordPayload.from_record(record) for record in records],
        converted_files={fmt.value: str(path) for fmt, path in files.files.items()},
    )


@router.post("/attachments/{attachment_id}/convert", response_model=ConvertResponse)
def convert_attachment(
    attachment_id: int,
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> ConvertResponse:
    """Convert an image now or queue a video for the worker."""
    outcome = pipeline.convert_attachment(attachment_id)
    result = outcome.result
    return ConvertResponse(
        attachment_id=attachment_id,
        status=outcome.status.value,
        reason=outcome.reason,
        converted_formats=[fmt.value for fmt in result.converted_formats] if result else [],
        errors=list(result.errors) if result else [],
    )


@router.post("/attachments/{attachment_id}/conversion/disable", response_model=ConversionToggleResponse)
def disable_conversion(
    attachment_id: int,
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> ConversionToggleResponse:
    removed = pipeline.disable_conversion(attachment_id)
    return ConversionToggleResponse(
        attachment_id=attachment_id, conversion_disabled=True, removed_files=removed
    )


@router.post("/attachments/{attachment_id}/conversion/enable", response_model=ConversionToggleResponse)
def enable_conversion(
    attachment_id: int,
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> ConversionToggleResponse:
    pipeline.enable_conversion(attachment_id)
    return ConversionToggleResponse(attachment_id=attachment_id, conversion_disabled=False)


@router.delete("/attachments/{attachment_id}/conversions", response_model=ConversionToggleResponse)
def delete_conversions(
    attachment_id: int,
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> ConversionToggleResponse:
    """Remove converted files and records, e.g. after the host deleted the asset."""
    removed = pipeline.handle_deletion(attachment_id)
    return ConversionToggleResponse(
        attachment_id=attachment_id, conversion_disabled=False, removed_files=removed
    )
