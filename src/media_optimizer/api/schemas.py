"""Pydantic schemas for the conversion admin API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..domain.models import ConversionRecord, ConversionStatistics


class ConversionRecordPayload(BaseModel):
    format: str
    original_size: int = Field(..., ge=0)
    converted_size: int = Field(..., ge=0)
    size_reduction: float
    converted_at: datetime

    @classmethod
    def from_record(cls, record: ConversionRecord) -> "ConversionRecordPayload":
        return cls(
            format=record.format.value,
            original_size=record.original_size,
            converted_size=record.converted_size,
            size_reduction=round(record.size_reduction, 4),
            converted_at=record.converted_at,
        )


class AttachmentConversionsResponse(BaseModel):
    attachment_id: int
    conversions: list[ConversionRecordPayload]
    converted_files: dict[str, str] = Field(default_factory=dict)


class ConversionStatisticsResponse(BaseModel):
    total_conversions: int
    by_format: dict[str, int]
    by_date: dict[str, int]
    recent_conversions: int
    total_original_bytes: int
    total_converted_bytes: int
    bytes_saved: int
    size_reduction: float

    @classmethod
    def from_statistics(cls, stats: ConversionStatistics) -> "ConversionStatisticsResponse":
        return cls(
            total_conversions=stats.total_conversions,
            by_format=stats.by_format,
            by_date=stats.by_date,
            recent_conversions=stats.recent_conversions,
            total_original_bytes=stats.total_original_bytes,
            total_converted_bytes=stats.total_converted_bytes,
            bytes_saved=stats.bytes_saved,
            size_reduction=round(stats.size_reduction, 4),
        )


class ConvertResponse(BaseModel):
    attachment_id: int
    status: str
    reason: str | None = None
    converted_formats: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ConversionToggleResponse(BaseModel):
    attachment_id: int
    conversion_disabled: bool
    removed_files: int = 0


class CleanupResponse(BaseModel):
    days: int
    removed_records: int


class QuotaUsagePayload(BaseModel):
    period: str
    used: int
    limit: int | None
    remaining: int | None
    percentage: float | None
    unbounded: bool


class QuotaProgressResponse(BaseModel):
    image: QuotaUsagePayload
    video: QuotaUsagePayload
