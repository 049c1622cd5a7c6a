"""Error hierarchy of the media optimizer.

Persistence failures surface as :class:`RepositoryError` subclasses so callers
never need to import SQLAlchemy. Conversion requests that cannot be carried
out at all raise :class:`ConversionError`; per-format encoder failures are
reported in results instead.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, TypeVar

from sqlalchemy import exc as sa_exc

T = TypeVar("T")

__all__ = [
    "MediaOptimizerError",
    "RepositoryError",
    "NotFoundError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "ConversionError",
    "SourceNotFoundError",
    "DestinationError",
    "QuotaExceededError",
    "ensure_found",
    "handle_sqlalchemy_errors",
]


class MediaOptimizerError(Exception):
    """Root of every error raised on purpose by this package."""


class RepositoryError(MediaOptimizerError):
    """Ledger or media library storage failed."""


class NotFoundError(RepositoryError):
    """The requested attachment or row does not exist."""


class IntegrityConstraintViolation(RepositoryError):
    pass


class DatabaseOperationError(RepositoryError):
    pass


class ConversionError(MediaOptimizerError):
    """Base class for structurally invalid conversion requests."""


class SourceNotFoundError(ConversionError):
    """Raised when the source file of a conversion does not exist."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(f"source file does not exist: {path}")
        self.path = Path(path)


class DestinationError(ConversionError):
    """Raised when a destination path cannot receive converted output."""


class QuotaExceededError(MediaOptimizerError):
    """Raised when the conversion quota for a media type is exhausted."""

    def __init__(self, media_type: str, *, used: int, limit: int) -> None:
        super().__init__(f"{media_type} conversion quota exhausted ({used}/{limit})")
        self.media_type = media_type
        self.used = used
        self.limit = limit


def ensure_found(record: T | None, *, entity: str, identifier: object) -> T:
    """Return ``record`` or raise :class:`NotFoundError` naming the lookup."""

    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


def _describe(entity: str | None, message: str) -> str:
    return f"{entity}: {message}" if entity else message


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Re-raise driver errors as repository errors tagged with ``entity``."""

    try:
        yield
    except sa_exc.IntegrityError as exc:
        raise IntegrityConstraintViolation(_describe(entity, "constraint violated")) from exc
    except sa_exc.DBAPIError as exc:
        raise DatabaseOperationError(_describe(entity, f"statement failed ({type(exc.orig).__name__})")) from exc
