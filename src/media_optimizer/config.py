"""Application configuration builder."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .core.config import ConversionSettings, QuotaLimits, Settings
from .db.db_init import init_db


@dataclass(slots=True)
class UploadPaths:
    """Filesystem root of the media library and the URL it is served from."""

    root: Path
    base_url: str

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.base_url = self.base_url.rstrip("/")

    def absolute(self, relative_path: str) -> Path:
        return self.root / relative_path

    def relative_path(self, path: Path | str) -> str | None:
        """Return ``path`` relative to :attr:`root` or ``None`` outside of it."""
        normalized = posixpath.normpath(Path(path).as_posix())
        root = posixpath.normpath(self.root.as_posix())
        prefix = root.rstrip("/") + "/"
        if not normalized.startswith(prefix):
            return None
        return normalized[len(prefix):]

    def relative_from_url(self, url: str) -> str | None:
        """Return the storage path of ``url`` when it lives under :attr:`base_url`."""
        base = self._strip_scheme(self.base_url) + "/"
        candidate = self._strip_scheme(url)
        if not candidate.startswith(base):
            return None
        relative = candidate[len(base):]
        return relative or None

    def url_for(self, path: Path | str) -> str | None:
        relative = self.relative_path(path)
        if relative is None:
            return None
        return f"{self.base_url}/{relative}"

    def path_for_url(self, url: str) -> Path | None:
        relative = self.relative_from_url(url)
        if relative is None:
            return None
        return self.absolute(relative)

    @staticmethod
    def _strip_scheme(url: str) -> str:
        # http and https variants of the same upload URL are equivalent
        parts = urlsplit(url)
        return f"{parts.netloc}{unquote(parts.path)}"


@dataclass(slots=True)
class AppConfig:
    settings: Settings
    upload_paths: UploadPaths
    image_settings: ConversionSettings
    video_settings: ConversionSettings
    quota_limits: QuotaLimits
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]


def create_session_factory(database_url: str) -> tuple[Engine, sessionmaker[Session]]:
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    return engine, session_factory


def load_config(settings: Settings | None = None) -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    settings = settings or Settings()
    upload_paths = UploadPaths(root=settings.upload_root, base_url=settings.upload_base_url)
    upload_paths.root.mkdir(parents=True, exist_ok=True)

    engine, session_factory = create_session_factory(settings.database_url)
    init_db(engine)

    return AppConfig(
        settings=settings,
        upload_paths=upload_paths,
        image_settings=settings.image_settings(),
        video_settings=settings.video_settings(),
        quota_limits=settings.quota_limits(),
        database_url=settings.database_url,
        engine=engine,
        session_factory=session_factory,
    )
