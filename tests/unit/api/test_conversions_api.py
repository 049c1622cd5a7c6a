from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.media_optimizer.config import AppConfig, load_config
from src.media_optimizer.core.config import Settings
from src.media_optimizer.dependencies import ServiceContainer, build_services
from src.media_optimizer.domain.models import Format, MediaType, ProcessorKind
from src.media_optimizer.main import create_app
from src.media_optimizer.processors.capability import ProcessorCapabilityProbe
from tests.helpers.media import UPLOAD_BASE_URL, write_upload
from tests.mocks.backends import FakeBackend


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        upload_root=tmp_path / "uploads",
        upload_base_url=UPLOAD_BASE_URL,
        image_quota_limit=4,
    )
    return load_config(settings)


@pytest.fixture
def services(config: AppConfig) -> ServiceContainer:
    probe = ProcessorCapabilityProbe(
        image_backends=[FakeBackend(kind=ProcessorKind.IMAGEMAGICK)],
        video_backends=[
            FakeBackend(
                kind=ProcessorKind.FFMPEG,
                media_type=MediaType.VIDEO,
                formats=[Format.AV1, Format.WEBM],
                version="6.1",
            )
        ],
    )
    return build_services(config, probe=probe)


@pytest.fixture
def client(config: AppConfig, services: ServiceContainer) -> TestClient:
    app = create_app(config, services)
    return TestClient(app)


def _add_image(services: ServiceContainer, relative_path: str = "2024/01/img.jpg") -> int:
    write_upload(services.pipeline.upload_paths, relative_path)
    return services.attachments.add(relative_path=relative_path, mime_type="image/jpeg").id


@pytest.mark.unit
def test_manual_convert_and_listing(client: TestClient, services: ServiceContainer) -> None:
    asset_id = _add_image(services)

    response = client.post(f"/api/attachments/{asset_id}/convert")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "converted"
    assert body["converted_formats"] == ["webp", "avif"]

    listing = client.get(f"/api/attachments/{asset_id}/conversions").json()
    assert {item["format"] for item in listing["conversions"]} == {"webp", "avif"}
    assert set(listing["converted_files"]) == {"webp", "avif"}


@pytest.mark.unit
def test_convert_unknown_attachment_returns_404(client: TestClient) -> None:
    response = client.post("/api/attachments/999/convert")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


@pytest.mark.unit
def test_convert_returns_429_when_quota_spent(client: TestClient, services: ServiceContainer) -> None:
    first = _add_image(services, "2024/01/a.jpg")
    second = _add_image(services, "2024/01/b.jpg")
    third = _add_image(services, "2024/01/c.jpg")
    client.post(f"/api/attachments/{first}/convert")
    client.post(f"/api/attachments/{second}/convert")

    response = client.post(f"/api/attachments/{third}/convert")

    assert response.status_code == 429
    assert response.json()["error"]["code"] == "quota_exceeded"


@pytest.mark.unit
def test_statistics_and_quota_progress(client: TestClient, services: ServiceContainer) -> None:
    asset_id = _add_image(services)
    client.post(f"/api/attachments/{asset_id}/convert")

    stats = client.get("/api/conversions/stats").json()
    assert stats["total_conversions"] == 2
    assert stats["by_format"] == {"webp": 1, "avif": 1}

    filtered = client.get("/api/conversions/stats", params={"format": "avif"}).json()
    assert filtered["total_conversions"] == 1

    progress = client.get("/api/quota/progress").json()
    assert progress["image"]["used"] == 2
    assert progress["image"]["limit"] == 4
    assert progress["video"]["unbounded"] is True


@pytest.mark.unit
def test_disable_and_enable_conversion(client: TestClient, services: ServiceContainer) -> None:
    asset_id = _add_image(services)
    client.post(f"/api/attachments/{asset_id}/convert")

    disabled = client.post(f"/api/attachments/{asset_id}/conversion/disable").json()
    assert disabled == {"attachment_id": asset_id, "conversion_disabled": True, "removed_files": 2}
    assert client.get(f"/api/attachments/{asset_id}/conversions").json()["conversions"] == []

    skipped = client.post(f"/api/attachments/{asset_id}/convert").json()
    assert skipped["status"] == "skipped"

    enabled = client.post(f"/api/attachments/{asset_id}/conversion/enable").json()
    assert enabled["conversion_disabled"] is False


@pytest.mark.unit
def test_cleanup_endpoint_validates_days(client: TestClient) -> None:
    assert client.post("/api/conversions/cleanup", params={"days": 0}).status_code == 422

    response = client.post("/api/conversions/cleanup", params={"days": 30})
    assert response.json() == {"days": 30, "removed_records": 0}


@pytest.mark.unit
def test_processor_status(client: TestClient) -> None:
    status = client.get("/api/system/processors").json()

    assert status["image"]["processor"] == "imagemagick"
    assert status["image"]["formats"] == ["avif", "webp"]
    assert status["video"]["version"] == "6.1"
