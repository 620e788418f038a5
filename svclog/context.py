"""Request contexts and trace ID propagation for log correlation.

Context-aware log calls take an explicit request context: an immutable mapping
that may carry a trace ID under the exported ``TRACE_ID`` key. Contexts are
built with ``background()``, ``with_value()`` and ``with_trace_id()`` and are
only ever read by the logger.

Request-scoped code that does not thread a context through every call can
bind one to the current async context with ``request_scope()`` or the ASGI
middleware, then fetch it with ``current_context()``.

Example:
    >>> from svclog.context import background, trace_id_from, with_trace_id
    >>> ctx = with_trace_id(background(), "111222121")
    >>> trace_id_from(ctx)
    '111222121'
    >>> trace_id_from(background())
    ''
"""

import contextvars
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class ContextKey:
    """Key type for values stored in a request context.

    A dedicated type keeps svclog keys from colliding with plain string keys
    that other code stores in the same mapping.
    """

    name: str


# Well-known key for the trace identifier
TRACE_ID = ContextKey("traceId")

# HTTP header name for trace ID propagation
TRACE_ID_HEADER = "X-Trace-ID"

# Request context bound by the middleware or request_scope()
_request_context_var: contextvars.ContextVar[Mapping[Any, Any] | None] = contextvars.ContextVar(
    "svclog_request_context", default=None
)

_EMPTY: Mapping[Any, Any] = MappingProxyType({})


def background() -> Mapping[Any, Any]:
    """Return an empty request context."""
    return _EMPTY


def with_value(ctx: Mapping[Any, Any] | None, key: Any, value: Any) -> Mapping[Any, Any]:
    """Derive a new context carrying ``value`` under ``key``.

    The parent context is left untouched.

    Args:
        ctx: Parent context, or None for an empty one
        key: Key to set, normally a ``ContextKey``
        value: Value to store

    Returns:
        Read-only mapping with the parent's entries plus the new one
    """
    values = dict(ctx) if ctx else {}
    values[key] = value
    return MappingProxyType(values)


def with_trace_id(ctx: Mapping[Any, Any] | None, trace_id: str) -> Mapping[Any, Any]:
    """Derive a new context carrying ``trace_id`` under ``TRACE_ID``."""
    return with_value(ctx, TRACE_ID, trace_id)


def trace_id_from(ctx: Mapping[Any, Any] | None) -> str:
    """Read the trace ID from a request context.

    Args:
        ctx: Request context; may be None

    Returns:
        The trace ID, or an empty string when the context is missing, lacks
        the key, or holds a non-string value

    Example:
        >>> trace_id_from(with_value(background(), TRACE_ID, 42))
        ''
    """
    if not isinstance(ctx, Mapping):
        return ""
    trace_id = ctx.get(TRACE_ID)
    return trace_id if isinstance(trace_id, str) else ""


def new_trace_id() -> str:
    """Generate a trace ID for a request that arrived without one."""
    return str(uuid.uuid4())


def bind_context(ctx: Mapping[Any, Any]) -> contextvars.Token:
    """Make ``ctx`` the request context for the current async context.

    Returns:
        Token to pass to ``reset_context`` when the request scope ends
    """
    return _request_context_var.set(ctx)


def reset_context(token: contextvars.Token) -> None:
    """Restore the request context that was bound before ``bind_context``."""
    _request_context_var.reset(token)


def current_context() -> Mapping[Any, Any]:
    """Return the bound request context, or ``background()`` outside a request.

    Example:
        >>> with request_scope("request-123"):
        ...     trace_id_from(current_context())
        'request-123'
    """
    ctx = _request_context_var.get()
    return ctx if ctx is not None else background()


@contextmanager
def request_scope(trace_id: str | None = None) -> Iterator[Mapping[Any, Any]]:
    """Bind a request context carrying ``trace_id`` for the enclosed block.

    The new context derives from the one already bound, so values set by an
    outer scope stay visible. Useful for work outside an HTTP request, such as
    a queue consumer handling one message.

    Args:
        trace_id: Trace ID for the scope; a new one is generated when omitted

    Yields:
        The bound context
    """
    ctx = with_trace_id(current_context(), trace_id or new_trace_id())
    token = bind_context(ctx)
    try:
        yield ctx
    finally:
        reset_context(token)
