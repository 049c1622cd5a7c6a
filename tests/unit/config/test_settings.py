from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import inspect

from src.media_optimizer.config import UploadPaths, load_config
from src.media_optimizer.core.config import Settings
from src.media_optimizer.domain.models import Format, MediaType


@pytest.mark.unit
def test_settings_defaults_build_conversion_settings() -> None:
    settings = Settings(_env_file=None)

    image = settings.image_settings()
    video = settings.video_settings()

    assert image.formats == (Format.WEBP, Format.AVIF)
    assert image.hybrid is True
    assert image.options_for(Format.WEBP) == {"quality": 85, "lossless": False}
    assert video.formats == (Format.AV1, Format.WEBM)
    assert video.options_for(Format.AV1)["crf"] == 28
    assert settings.quota_limits().for_type(MediaType.IMAGE) is None


@pytest.mark.unit
def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MEDIA_OPTIMIZER_HYBRID_CONVERSION", "false")
    monkeypatch.setenv("MEDIA_OPTIMIZER_IMAGE_QUOTA_LIMIT", "100")
    monkeypatch.setenv("MEDIA_OPTIMIZER_WEBP_QUALITY", "70")

    settings = Settings()

    assert settings.image_settings().hybrid is False
    assert settings.quota_limits().image == 100
    assert settings.image_settings().options_for(Format.WEBP)["quality"] == 70


@pytest.mark.unit
def test_upload_paths_mapping(tmp_path: Path) -> None:
    paths = UploadPaths(root=tmp_path, base_url="https://x.test/wp-content/uploads/")

    assert paths.base_url == "https://x.test/wp-content/uploads"
    assert paths.relative_path(tmp_path / "2024" / "01" / "img.jpg") == "2024/01/img.jpg"
    assert paths.relative_path(tmp_path.parent / "other.jpg") is None
    assert paths.relative_from_url("https://x.test/wp-content/uploads/2024/01/a%20b.jpg") == "2024/01/a b.jpg"
    assert paths.relative_from_url("https://other.test/wp-content/uploads/a.jpg") is None
    assert paths.path_for_url("https://x.test/wp-content/uploads/2024/01/img.jpg?v=2") == (
        tmp_path / "2024/01/img.jpg"
    )


@pytest.mark.unit
def test_load_config_creates_schema_and_upload_root(tmp_path: Path) -> None:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
        upload_root=tmp_path / "uploads",
    )

    config = load_config(settings)

    assert config.upload_paths.root.is_dir()
    assert config.image_settings.formats == (Format.WEBP, Format.AVIF)
    tables = set(inspect(config.engine).get_table_names())
    assert {"attachments", "conversions", "quota_usage", "video_jobs"} <= tables
