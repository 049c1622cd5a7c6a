"""Routes for quota progress and encoder status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ...processors.capability import ProcessorCapabilityProbe
from ...services.quota_manager import QuotaManager
from ..schemas import QuotaProgressResponse, QuotaUsagePayload

router = APIRouter(prefix="/api", tags=["system"])


def get_quota_manager(request: Request) -> QuotaManager:
    try:
        return request.app.state.quota_manager  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("QuotaManager is not configured") from exc


def get_probe(request: Request) -> ProcessorCapabilityProbe:
    try:
        return request.app.state.capability_probe  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ProcessorCapabilityProbe is not configured") from exc


@router.get("/quota/progress", response_model=QuotaProgressResponse)
def quota_progress(quota: QuotaManager = Depends(get_quota_manager)) -> QuotaProgressResponse:
    progress = quota.get_quota_progress()
    return QuotaProgressResponse(
        image=QuotaUsagePayload(**progress["image"]),
        video=QuotaUsagePayload(**progress["video"]),
    )


@router.get("/system/processors")
def processor_status(probe: ProcessorCapabilityProbe = Depends(get_probe)) -> dict[str, Any]:
    """Report which encoders were detected and what they can produce."""
    return probe.status()
