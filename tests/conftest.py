from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.media_optimizer.config import UploadPaths, create_session_factory
from src.media_optimizer.db.db_init import init_db
from src.media_optimizer.repositories.attachment_repository import AttachmentRepository
from tests.helpers.media import UPLOAD_BASE_URL, FrozenClock


@dataclass
class DatabaseFixture:
    engine: Engine
    session_factory: sessionmaker[Session]


@pytest.fixture
def database(tmp_path: Path) -> DatabaseFixture:
    engine, session_factory = create_session_factory(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield DatabaseFixture(engine=engine, session_factory=session_factory)
    engine.dispose()


@pytest.fixture
def upload_paths(tmp_path: Path) -> UploadPaths:
    root = tmp_path / "uploads"
    root.mkdir()
    return UploadPaths(root=root, base_url=UPLOAD_BASE_URL)


@pytest.fixture
def attachments(database: DatabaseFixture) -> AttachmentRepository:
    return AttachmentRepository(database.session_factory)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()
