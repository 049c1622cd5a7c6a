from __future__ import annotations

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.media_optimizer.api.errors import ApiError, api_error_for, register_error_handlers
from src.media_optimizer.domain.models import MediaType
from src.media_optimizer.exceptions import (
    DatabaseOperationError,
    DestinationError,
    MediaOptimizerError,
    NotFoundError,
    QuotaExceededError,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("exc", "status_code", "code"),
    [
        (NotFoundError("attachment 7 not found"), 404, "not_found"),
        (QuotaExceededError(MediaType.IMAGE, used=3, limit=3), 429, "quota_exceeded"),
        (DestinationError("directory missing"), 422, "conversion_error"),
        (MediaOptimizerError("boom"), 500, "internal_error"),
    ],
)
def test_domain_errors_map_to_http_status(exc: MediaOptimizerError, status_code: int, code: str) -> None:
    error = api_error_for(exc)

    assert error.status_code == status_code
    assert error.code == code


@pytest.mark.unit
def test_api_error_renders_envelope_with_headers() -> None:
    response = ApiError(429, "quota_exceeded", "slow down", headers={"Retry-After": "60"}).to_response()

    assert response.status_code == 429
    assert response.headers["retry-after"] == "60"
    assert json.loads(response.body) == {"error": {"code": "quota_exceeded", "message": "slow down"}}


@pytest.mark.unit
def test_unmapped_domain_error_uses_envelope() -> None:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/broken")
    def _broken() -> None:
        raise DatabaseOperationError("conversion: statement failed (OperationalError)")

    @app.get("/missing-source")
    def _missing() -> None:
        raise DestinationError("destination directory for webp does not exist")

    client = TestClient(app)

    broken = client.get("/broken")
    assert broken.status_code == 500
    assert broken.json()["error"]["code"] == "internal_error"

    missing = client.get("/missing-source")
    assert missing.status_code == 422
    assert missing.json()["error"]["code"] == "conversion_error"
