"""
Unit tests for the error handling middleware and service exceptions.
"""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from kanji_srs.middleware.error_handling import (
    ConcurrencyConflictError,
    NotFoundError,
    ServiceError,
    SupplyExhaustedError,
    ValidationError,
    setup_error_handling,
)


def build_app(debug: bool) -> FastAPI:
    app = FastAPI()
    setup_error_handling(app, debug=debug)

    @app.get("/not-found")
    async def not_found():
        raise NotFoundError("Item k5-99 not found", details={"item_id": "k5-99"})

    @app.get("/conflict")
    async def conflict():
        raise ConcurrencyConflictError("modified concurrently")

    @app.get("/http")
    async def http_error():
        raise HTTPException(status_code=418, detail="teapot")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    return app


class TestServiceErrors:
    """Status and error codes of the exception hierarchy."""

    @pytest.mark.parametrize(
        "error_class, status, code",
        [
            (ValidationError, 422, "validation_error"),
            (NotFoundError, 404, "not_found"),
            (SupplyExhaustedError, 409, "supply_exhausted"),
            (ConcurrencyConflictError, 409, "concurrency_conflict"),
        ],
    )
    def test_codes(self, error_class, status, code):
        error = error_class("message")
        assert isinstance(error, ServiceError)
        assert error.status_code == status
        assert error.error_code == code
        assert str(error) == "message"

    def test_overrides(self):
        error = ServiceError("down", status_code=503, error_code="store_down", details={"a": 1})
        assert error.status_code == 503
        assert error.error_code == "store_down"
        assert error.details == {"a": 1}


class TestErrorHandlingMiddleware:
    """Responses produced by ErrorHandlingMiddleware."""

    def test_service_error_body(self):
        client = TestClient(build_app(debug=True))

        response = client.get("/not-found")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["message"] == "Item k5-99 not found"
        assert body["details"] == {"item_id": "k5-99"}
        assert len(body["error_id"]) == 8
        assert "timestamp" in body

    def test_details_hidden_outside_debug(self):
        client = TestClient(build_app(debug=False))

        body = client.get("/not-found").json()
        assert body["details"] is None

    def test_conflict_status(self):
        client = TestClient(build_app(debug=False))
        assert client.get("/conflict").status_code == 409

    def test_http_exception_passes_through(self):
        client = TestClient(build_app(debug=False))

        response = client.get("/http")

        assert response.status_code == 418
        assert response.json() == {"detail": "teapot"}

    def test_unexpected_error_is_sanitized(self):
        client = TestClient(build_app(debug=False))

        response = client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "internal_server_error"
        assert "secret internals" not in response.text

    def test_unexpected_error_details_in_debug(self):
        client = TestClient(build_app(debug=True))

        body = client.get("/boom").json()
        assert body["details"]["exception"] == "RuntimeError"
