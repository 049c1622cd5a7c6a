"""Dependency wiring helpers."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI

from .api.routes.conversions import router as conversions_router
from .api.routes.system import router as system_router
from .config import AppConfig
from .delivery.content_rewriter import ContentRewriter
from .processors import FFmpegBackend, PillowBackend, ProcessorCapabilityProbe, WandBackend
from .repositories.attachment_repository import AttachmentRepository
from .services.animation_detector import AnimationDetector
from .services.attachment_resolver import AttachmentResolver
from .services.conversion_tracker import ConversionTracker
from .services.image_converter import ImageConversionEngine
from .services.media_pipeline import MediaPipeline
from .services.quota_manager import QuotaManager
from .services.video_converter import VideoConversionEngine
from .services.video_queue import VideoJobQueue


@dataclass(slots=True)
class ServiceContainer:
    attachments: AttachmentRepository
    capability_probe: ProcessorCapabilityProbe
    quota_manager: QuotaManager
    tracker: ConversionTracker
    video_queue: VideoJobQueue
    resolver: AttachmentResolver
    pipeline: MediaPipeline
    rewriter: ContentRewriter


def build_capability_probe(config: AppConfig) -> ProcessorCapabilityProbe:
    """ImageMagick is preferred over Pillow; ffmpeg is the only video backend."""
    settings = config.settings
    return ProcessorCapabilityProbe(
        image_backends=[WandBackend(), PillowBackend()],
        video_backends=[
            FFmpegBackend(
                binary=settings.ffmpeg_binary,
                probe_timeout=settings.ffmpeg_probe_timeout_seconds,
            )
        ],
        image_targets=config.image_settings.formats,
        video_targets=config.video_settings.formats,
    )


def build_services(
    config: AppConfig,
    *,
    probe: ProcessorCapabilityProbe | None = None,
) -> ServiceContainer:
    attachments = AttachmentRepository(config.session_factory)
    capability_probe = probe or build_capability_probe(config)
    quota_manager = QuotaManager(config.engine, config.quota_limits)
    tracker = ConversionTracker(config.engine, quota=quota_manager)
    video_queue = VideoJobQueue(config.engine)
    resolver = AttachmentResolver(attachments, config.upload_paths)
    pipeline = MediaPipeline(
        attachments=attachments,
        upload_paths=config.upload_paths,
        image_engine=ImageConversionEngine(capability_probe),
        video_engine=VideoConversionEngine(capability_probe),
        quota=quota_manager,
        tracker=tracker,
        video_queue=video_queue,
        image_settings=config.image_settings,
        video_settings=config.video_settings,
        animation_detector=AnimationDetector(),
        auto_convert_images=config.settings.auto_convert_images,
        auto_convert_videos=config.settings.auto_convert_videos,
        skip_animated_gifs=config.settings.skip_animated_gifs,
    )
    rewriter = ContentRewriter(
        config.upload_paths,
        resolver=resolver,
        files_lookup=pipeline.converted_files,
    )
    return ServiceContainer(
        attachments=attachments,
        capability_probe=capability_probe,
        quota_manager=quota_manager,
        tracker=tracker,
        video_queue=video_queue,
        resolver=resolver,
        pipeline=pipeline,
        rewriter=rewriter,
    )


def include_routers(app: FastAPI, config: AppConfig, services: ServiceContainer | None = None) -> None:
    """Mount module routers and attach services."""
    services = services or build_services(config)

    app.state.config = config
    app.state.services = services
    app.state.attachments = services.attachments
    app.state.capability_probe = services.capability_probe
    app.state.quota_manager = services.quota_manager
    app.state.tracker = services.tracker
    app.state.video_queue = services.video_queue
    app.state.pipeline = services.pipeline
    app.state.rewriter = services.rewriter

    app.include_router(conversions_router)
    app.include_router(system_router)
