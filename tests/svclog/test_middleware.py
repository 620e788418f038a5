"""Tests for the ASGI request context middleware.

Tests verify:
- The request context carries the X-Trace-ID header, or a generated ID
- Handlers get the context from request.state or current_context()
- The trace ID is echoed in the response headers
- The binding is restored after requests, including failing ones
- Context-aware log calls inside handlers pick up the request's trace ID
"""

import json

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from svclog.context import TRACE_ID, TRACE_ID_HEADER, background, current_context, trace_id_from
from svclog.middleware import (
    STATE_KEY,
    RequestContextMiddleware,
    add_request_context_middleware,
    context_from_request,
)


@pytest.fixture()
def app() -> FastAPI:
    """Create a test FastAPI application."""
    app = FastAPI()

    @app.get("/test")
    async def test_endpoint(request: Request) -> dict:
        """Test endpoint that reports the context seen both ways."""
        return {
            "bound": trace_id_from(current_context()),
            "state": trace_id_from(context_from_request(request)),
        }

    return app


class TestAddRequestContextMiddleware:
    """Test suite for add_request_context_middleware helper."""

    def test_context_carries_header_trace_id(self, app: FastAPI) -> None:
        add_request_context_middleware(app)
        client = TestClient(app)

        response = client.get("/test", headers={TRACE_ID_HEADER: "helper-test"})

        assert response.status_code == 200
        assert response.json() == {"bound": "helper-test", "state": "helper-test"}
        assert response.headers[TRACE_ID_HEADER] == "helper-test"

    def test_generates_trace_id_when_missing(self, app: FastAPI) -> None:
        add_request_context_middleware(app)
        client = TestClient(app)

        response = client.get("/test")

        trace_id = response.json()["state"]
        assert len(trace_id) == 36
        assert response.json()["bound"] == trace_id
        assert response.headers[TRACE_ID_HEADER] == trace_id

    def test_blank_header_is_replaced(self, app: FastAPI) -> None:
        add_request_context_middleware(app)
        client = TestClient(app)

        response = client.get("/test", headers={TRACE_ID_HEADER: "   "})

        assert len(response.json()["state"]) == 36

    def test_different_trace_ids_for_different_requests(self, app: FastAPI) -> None:
        add_request_context_middleware(app)
        client = TestClient(app)

        response1 = client.get("/test", headers={TRACE_ID_HEADER: "trace-1"})
        response2 = client.get("/test", headers={TRACE_ID_HEADER: "trace-2"})

        assert response1.json()["state"] == "trace-1"
        assert response2.json()["state"] == "trace-2"

    def test_custom_header(self, app: FastAPI) -> None:
        add_request_context_middleware(app, header="X-Request-ID")
        client = TestClient(app)

        response = client.get("/test", headers={"X-Request-ID": "custom-1"})

        assert response.json()["state"] == "custom-1"
        assert response.headers["X-Request-ID"] == "custom-1"

    def test_state_holds_the_context_mapping(self, app: FastAPI) -> None:
        @app.get("/state")
        async def state_endpoint(request: Request) -> dict:
            ctx = getattr(request.state, STATE_KEY)
            return {"trace_id": ctx[TRACE_ID], "keys": len(ctx)}

        add_request_context_middleware(app)
        client = TestClient(app)

        response = client.get("/state", headers={TRACE_ID_HEADER: "state-1"})

        assert response.json() == {"trace_id": "state-1", "keys": 1}

    def test_sync_endpoint_sees_bound_context(self, app: FastAPI) -> None:
        @app.get("/sync")
        def sync_endpoint() -> dict:
            return {"trace_id": trace_id_from(current_context())}

        add_request_context_middleware(app)
        client = TestClient(app)

        response = client.get("/sync", headers={TRACE_ID_HEADER: "sync-1"})

        assert response.json()["trace_id"] == "sync-1"

    def test_restores_context_when_endpoint_raises(self, app: FastAPI) -> None:
        """Test that the binding is restored even when the endpoint raises."""

        @app.get("/error")
        async def error_endpoint() -> dict:
            raise ValueError("Test error")

        add_request_context_middleware(app)
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/error", headers={TRACE_ID_HEADER: "error-trace"})

        assert response.status_code == 500
        assert current_context() is background()

    def test_handler_logs_with_request_context(self, app: FastAPI, make_logger) -> None:
        log, stream = make_logger()

        @app.post("/orders")
        async def create_order(request: Request, body: dict) -> dict:
            log.error_with_context(context_from_request(request), body, None, "order rejected")
            return {}

        add_request_context_middleware(app)
        client = TestClient(app)

        client.post("/orders", json={"symbol": "AAPL"}, headers={TRACE_ID_HEADER: "req-42"})

        record = json.loads(stream.getvalue())
        assert record["trace_id"] == "req-42"
        assert record["request"] == {"symbol": "AAPL"}
        assert record["func"] == "create_order"


class TestContextFromRequest:
    """Test suite for context_from_request without the middleware."""

    def test_falls_back_to_background(self, app: FastAPI) -> None:
        client = TestClient(app)

        response = client.get("/test", headers={TRACE_ID_HEADER: "ignored"})

        assert response.json() == {"bound": "", "state": ""}
        assert TRACE_ID_HEADER not in response.headers


class TestRequestContextMiddleware:
    """Test suite for wrapping an ASGI app directly."""

    def test_wraps_any_asgi_app(self, app: FastAPI) -> None:
        client = TestClient(RequestContextMiddleware(app))  # type: ignore[arg-type]

        response = client.get("/test", headers={TRACE_ID_HEADER: "asgi-test"})

        assert response.status_code == 200
        assert response.json()["bound"] == "asgi-test"
        assert response.headers[TRACE_ID_HEADER] == "asgi-test"

    def test_restores_context(self, app: FastAPI) -> None:
        client = TestClient(RequestContextMiddleware(app))  # type: ignore[arg-type]

        client.get("/test", headers={TRACE_ID_HEADER: "asgi-cleanup"})

        assert current_context() is background()

    def test_build_context(self) -> None:
        middleware = RequestContextMiddleware(FastAPI())
        scope = {"type": "http", "headers": [(b"x-trace-id", b"built-1")]}

        ctx = middleware.build_context(scope)

        assert dict(ctx) == {TRACE_ID: "built-1"}

    def test_handles_lifespan(self) -> None:
        """Test that non-HTTP scopes pass straight through."""
        app = FastAPI()

        with TestClient(RequestContextMiddleware(app)) as client:  # type: ignore[arg-type]
            assert client.app is not None
