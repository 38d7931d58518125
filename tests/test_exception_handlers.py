"""Tests for global exception handlers.

Validates that errors escaping to routes are rendered consistently with
proper HTTP status codes and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from rate_gate.core.errors import (
    AppError,
    ConfigurationAppError,
    KeyExtractionAppError,
    StoreUnavailableAppError,
)
from rate_gate.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_store_unavailable_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message="Redis window store failed during peek",
                details={"backend": "redis", "error_type": "ConnectionError"},
            )

        response = client.get("/test-store")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "store_unavailable"
        assert data["error"]["details"]["backend"] == "redis"
        assert "request_id" in data["error"]

    def test_configuration_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-config")
        async def test_endpoint():
            raise ConfigurationAppError(code="invalid_configuration", message="max_requests must be > 0")

        response = client.get("/test-config")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "invalid_configuration"

    def test_other_app_errors_return_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-key")
        async def test_endpoint():
            raise KeyExtractionAppError(code="key_extraction_failed", message="no identity")

        response = client.get("/test-key")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["message"] == "no identity"
        assert "details" not in data["error"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_logic(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: lua script crashed")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "lua script" not in data["error"]["message"]
        assert "request_id" in data["error"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("boom")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers


def test_app_error_str_is_message():
    error = StoreUnavailableAppError(code="store_unavailable", message="timed out")

    assert str(error) == "timed out"
