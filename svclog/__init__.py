"""Structured JSON logging with caller attribution and trace correlation.

Every record carries the calling function and ``file:line``, and context-aware
calls add the request's trace ID, request/response payloads and the service
name. Records emitted inside an OpenTelemetry span are correlated with it, and
error records are reported to the span.

Usage:
    from svclog import background, error_with_context, info, with_trace_id

    info("service started")

    ctx = with_trace_id(background(), "111222121")
    error_with_context(ctx, body, None, "order rejected")

Environment:
    PRETTY_PRINT_LOGGER  indent JSON output when true
    SERVICE_NAME         reported as service_name on context-aware calls
    LOG_LEVEL            initial minimum level (default info)
"""

from svclog.apm import APMCorrelationFilter, capture_exception
from svclog.caller import (
    AttributionStrategy,
    CallerFrame,
    NoopAttribution,
    StackAttribution,
    package_from_symbol,
)
from svclog.config import LoggerSettings
from svclog.context import (
    TRACE_ID,
    TRACE_ID_HEADER,
    ContextKey,
    background,
    bind_context,
    current_context,
    new_trace_id,
    request_scope,
    reset_context,
    trace_id_from,
    with_trace_id,
    with_value,
)
from svclog.formatter import JSONFormatter
from svclog.logger import (
    LogEntry,
    StructuredLogger,
    debug,
    debug_with_context,
    error,
    error_with_context,
    get_logger,
    info,
    info_with_context,
    set_level,
    warn,
    warn_with_context,
)

__all__ = [
    # Emission
    "get_logger",
    "set_level",
    "info",
    "debug",
    "warn",
    "error",
    "info_with_context",
    "debug_with_context",
    "warn_with_context",
    "error_with_context",
    "StructuredLogger",
    "LogEntry",
    "LoggerSettings",
    # Request context
    "ContextKey",
    "TRACE_ID",
    "TRACE_ID_HEADER",
    "background",
    "with_value",
    "with_trace_id",
    "trace_id_from",
    "current_context",
    "bind_context",
    "reset_context",
    "request_scope",
    "new_trace_id",
    # Caller attribution
    "AttributionStrategy",
    "CallerFrame",
    "StackAttribution",
    "NoopAttribution",
    "package_from_symbol",
    # Formatting and APM
    "JSONFormatter",
    "APMCorrelationFilter",
    "capture_exception",
]
