"""Dialect aware ``INSERT ... ON CONFLICT`` constructors."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection

from ...exceptions import DatabaseOperationError


def dialect_insert(conn: Connection, table: Table) -> Any:
    """Return an insert construct supporting ``on_conflict_*`` for ``conn``."""

    name = conn.dialect.name
    if name == "postgresql":
        return pg_insert(table)
    if name == "sqlite":
        return sqlite_insert(table)
    raise DatabaseOperationError(f"atomic upsert is not supported on dialect '{name}'")


__all__ = ["dialect_insert"]
