"""Translate domain exceptions into the JSON error envelope used by the API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..exceptions import ConversionError, MediaOptimizerError, NotFoundError, QuotaExceededError


@dataclass(slots=True)
class ApiError(Exception):
    """Error raised by route handlers with an explicit HTTP status."""

    status_code: int
    code: str
    message: str
    headers: Mapping[str, str] | None = None

    def to_response(self) -> JSONResponse:
        payload = {"error": {"code": self.code, "message": self.message}}
        return JSONResponse(status_code=self.status_code, content=payload, headers=dict(self.headers or {}))


# Most specific class first; lookup walks this in order.
_DOMAIN_STATUS: tuple[tuple[type[MediaOptimizerError], int, str], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (QuotaExceededError, status.HTTP_429_TOO_MANY_REQUESTS, "quota_exceeded"),
    (ConversionError, 422, "conversion_error"),
)


def api_error_for(exc: MediaOptimizerError) -> ApiError:
    for error_type, status_code, code in _DOMAIN_STATUS:
        if isinstance(exc, error_type):
            return ApiError(status_code, code, str(exc))
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", str(exc))


async def api_error_handler(_: Request, exc: ApiError) -> JSONResponse:
    return exc.to_response()


async def domain_error_handler(_: Request, exc: MediaOptimizerError) -> JSONResponse:
    return api_error_for(exc).to_response()


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    for error_type, _status, _code in _DOMAIN_STATUS:
        app.add_exception_handler(error_type, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(MediaOptimizerError, domain_error_handler)  # type: ignore[arg-type]


__all__ = ["ApiError", "api_error_for", "register_error_handlers"]
