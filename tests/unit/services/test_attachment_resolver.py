from __future__ import annotations

from pathlib import Path

import pytest

from src.media_optimizer.config import UploadPaths
from src.media_optimizer.repositories.attachment_repository import AttachmentRepository
from src.media_optimizer.services.attachment_resolver import (
    AttachmentResolver,
    strip_size_suffix,
)
from tests.helpers.media import UPLOAD_BASE_URL


@pytest.fixture
def resolver(attachments: AttachmentRepository, upload_paths: UploadPaths) -> AttachmentResolver:
    return AttachmentResolver(attachments, upload_paths)


@pytest.mark.unit
def test_strip_size_suffix() -> None:
    assert strip_size_suffix("2024/01/img-300x200.jpg") == "2024/01/img.jpg"
    assert strip_size_suffix("2024/01/img.jpg") == "2024/01/img.jpg"
    assert strip_size_suffix("2024/01/img-final.jpg") == "2024/01/img-final.jpg"


@pytest.mark.unit
def test_url_and_path_round_trip(
    resolver: AttachmentResolver,
    attachments: AttachmentRepository,
    upload_paths: UploadPaths,
) -> None:
    asset = attachments.add(relative_path="2024/01/img.jpg", mime_type="image/jpeg")

    url_for_asset = upload_paths.url_for(upload_paths.absolute(asset.relative_path))

    assert url_for_asset == f"{UPLOAD_BASE_URL}/2024/01/img.jpg"
    assert resolver.resolve(url_for_asset) == asset.id
    assert resolver.resolve(upload_paths.absolute("2024/01/img.jpg")) == asset.id


@pytest.mark.unit
def test_canonical_url_lookup_first(resolver: AttachmentResolver, attachments: AttachmentRepository) -> None:
    asset = attachments.add(
        relative_path="2024/02/photo.png",
        mime_type="image/png",
        url="https://media.example.test/photo.png",
    )

    assert resolver.from_url("https://media.example.test/photo.png") == asset.id


@pytest.mark.unit
def test_http_and_https_resolve_to_same_asset(
    resolver: AttachmentResolver, attachments: AttachmentRepository
) -> None:
    asset = attachments.add(relative_path="2024/01/img.jpg", mime_type="image/jpeg")

    insecure = UPLOAD_BASE_URL.replace("https://", "http://") + "/2024/01/img.jpg"

    assert resolver.from_url(insecure) == asset.id


@pytest.mark.unit
def test_size_variant_url_resolves_to_original(
    resolver: AttachmentResolver, attachments: AttachmentRepository
) -> None:
    asset = attachments.add(
        relative_path="2024/01/img.jpg",
        mime_type="image/jpeg",
        size_variants=["img-300x200.jpg"],
    )

    assert resolver.from_url(f"{UPLOAD_BASE_URL}/2024/01/img-300x200.jpg") == asset.id


@pytest.mark.unit
def test_cdn_url_resolves_with_query_string(
    resolver: AttachmentResolver, attachments: AttachmentRepository
) -> None:
    asset = attachments.add(
        relative_path="2024/03/cdn.jpg",
        mime_type="image/jpeg",
        cdn_urls=["https://cdn.example.net/abc/cdn.jpg"],
    )

    assert resolver.from_url("https://cdn.example.net/abc/cdn.jpg") == asset.id
    assert resolver.from_url("https://cdn.example.net/abc/cdn.jpg?ver=3") == asset.id


@pytest.mark.unit
def test_unknown_references_resolve_to_none(resolver: AttachmentResolver, tmp_path: Path) -> None:
    assert resolver.resolve("https://elsewhere.example.org/img.jpg") is None
    assert resolver.resolve(tmp_path / "outside" / "img.jpg") is None
    assert resolver.resolve("") is None
