"""ASGI middleware that gives every HTTP request its own logging context.

The middleware reads the trace ID from the ``X-Trace-ID`` request header,
generating one when the header is missing or blank, and builds the request
context with ``with_trace_id(background(), trace_id)``. Handlers get that
context without building it themselves, either from ``current_context()`` or
from ``request.state.log_context``, and pass it straight to the
``*_with_context`` log calls. The trace ID is echoed in the response headers.

Example:
    >>> from fastapi import FastAPI, Request
    >>> from svclog import error_with_context
    >>> from svclog.middleware import add_request_context_middleware, context_from_request
    >>>
    >>> app = FastAPI()
    >>> add_request_context_middleware(app)
    >>>
    >>> @app.post("/orders")
    ... async def create_order(request: Request, body: dict) -> dict:
    ...     error_with_context(context_from_request(request), body, None, "order rejected")
    ...     return {}
"""

from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI, Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from svclog.context import (
    TRACE_ID_HEADER,
    background,
    bind_context,
    current_context,
    new_trace_id,
    reset_context,
    trace_id_from,
    with_trace_id,
)

# Attribute of request.state holding the request context
STATE_KEY = "log_context"


def _header_value(scope: Scope, name: bytes) -> str:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1").strip()
    return ""


class RequestContextMiddleware:
    """Bind a trace-carrying request context for each HTTP request.

    Non-HTTP scopes (lifespan, websocket) pass through untouched. The context
    is bound before the app runs and the previous binding is restored
    afterwards, including when the app raises.

    Args:
        app: The wrapped ASGI application
        header: Request and response header carrying the trace ID
    """

    def __init__(self, app: ASGIApp, header: str = TRACE_ID_HEADER) -> None:
        self.app = app
        self.header = header
        self._header_key = header.lower().encode("latin-1")

    def build_context(self, scope: Scope) -> Mapping[Any, Any]:
        """Build the request context from the incoming headers."""
        trace_id = _header_value(scope, self._header_key) or new_trace_id()
        return with_trace_id(background(), trace_id)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        ctx = self.build_context(scope)
        scope.setdefault("state", {})[STATE_KEY] = ctx
        trace_header = (self._header_key, trace_id_from(ctx).encode("latin-1"))

        async def send_with_trace_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), trace_header]
            await send(message)

        token = bind_context(ctx)
        try:
            await self.app(scope, receive, send_with_trace_id)
        finally:
            reset_context(token)


def context_from_request(request: Request) -> Mapping[Any, Any]:
    """Return the context the middleware stored on ``request``.

    Falls back to the currently bound context when the middleware is not
    installed, which is ``background()`` outside any request scope.
    """
    return getattr(request.state, STATE_KEY, None) or current_context()


def add_request_context_middleware(app: FastAPI, header: str = TRACE_ID_HEADER) -> None:
    """Install ``RequestContextMiddleware`` on a FastAPI application."""
    app.add_middleware(RequestContextMiddleware, header=header)
