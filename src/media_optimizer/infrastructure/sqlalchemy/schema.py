"""SQLAlchemy Core tables for the conversion and quota ledgers."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

conversions = Table(
    "conversions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("attachment_id", Integer, nullable=False),
    Column("file_type", String(16), nullable=False),
    Column("original_size", BigInteger, nullable=False, default=0),
    Column("converted_size", BigInteger, nullable=False, default=0),
    Column("converted_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("attachment_id", "file_type", name="uq_conversions_attachment_type"),
)

Index("ix_conversions_converted_at", conversions.c.converted_at)
Index("ix_conversions_file_type", conversions.c.file_type)

quota_usage = Table(
    "quota_usage",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("media_type", String(16), nullable=False),
    Column("period_key", String(16), nullable=False),
    Column("used_count", Integer, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("media_type", "period_key", name="uq_quota_usage_type_period"),
)

video_jobs = Table(
    "video_jobs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("attachment_id", Integer, nullable=False),
    Column("source_path", Text, nullable=False),
    Column("status", String(16), nullable=False),
    # Set while pending, cleared once a worker picks the job up.
    Column("pending_key", String(600), nullable=True, unique=True),
    Column("scheduled_at", DateTime(timezone=True), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=True),
    Column("finished_at", DateTime(timezone=True), nullable=True),
    Column("error", Text, nullable=True),
)

Index("ix_video_jobs_status_scheduled", video_jobs.c.status, video_jobs.c.scheduled_at)

__all__ = ["metadata", "conversions", "quota_usage", "video_jobs"]
