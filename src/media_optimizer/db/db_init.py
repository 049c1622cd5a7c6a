"""Database initialization helpers."""

from __future__ import annotations

from sqlalchemy.engine import Engine

from ..infrastructure.sqlalchemy.schema import metadata as ledger_metadata
from .db_models import Base


def init_db(engine: Engine) -> None:
    """Create the media library and ledger tables when missing."""
    Base.metadata.create_all(engine)
    ledger_metadata.create_all(engine)
