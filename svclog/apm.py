"""APM integration: correlate log records with OpenTelemetry spans.

``APMCorrelationFilter`` is installed on the logger's handler. For every record
emitted while a span is active it attaches the span's trace and span IDs, so
log lines and traces can be joined in the backend. Records at error level or
above are also mirrored onto the span as a ``log`` event and reported as a
span error.

The tracer provider and exporter belong to the service; when none is
configured the OpenTelemetry API hands out non-recording spans and this module
does nothing.

Example:
    >>> from svclog.apm import capture_exception
    >>> try:
    ...     risky()
    ... except Exception as exc:
    ...     capture_exception(exc)
    ...     raise
"""

import logging

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

TRACE_ID_FIELD = "trace.id"
SPAN_ID_FIELD = "span.id"

LOG_EVENT_NAME = "log"


def capture_exception(exc: BaseException, span: Span | None = None) -> None:
    """Report an exception to the APM backend as an error on a span.

    Args:
        exc: The exception to report
        span: Span to report on; defaults to the current span
    """
    if span is None:
        span = trace.get_current_span()
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}"))


class APMCorrelationFilter(logging.Filter):
    """Logging filter that links records to the active trace span.

    Attributes:
        report_level: Records at or above this level are reported to the span
            as errors

    Example:
        >>> handler = logging.StreamHandler()
        >>> handler.addFilter(APMCorrelationFilter())
    """

    def __init__(self, report_level: int = logging.ERROR) -> None:
        super().__init__()
        self.report_level = report_level

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach trace correlation IDs and report errors.

        Args:
            record: The log record to filter

        Returns:
            True (always allows the record through)
        """
        span = trace.get_current_span()
        span_context = span.get_span_context()
        if not span_context.is_valid:
            return True

        record.apm_fields = {
            TRACE_ID_FIELD: format(span_context.trace_id, "032x"),
            SPAN_ID_FIELD: format(span_context.span_id, "016x"),
        }

        if record.levelno >= self.report_level:
            self._report(span, record)

        return True

    def _report(self, span: Span, record: logging.LogRecord) -> None:
        message = record.getMessage()
        span.add_event(
            LOG_EVENT_NAME,
            attributes={
                "log.severity": record.levelname,
                "log.message": message,
                "log.logger": record.name,
            },
        )
        if record.exc_info and record.exc_info[1] is not None:
            span.record_exception(record.exc_info[1])
        span.set_status(Status(StatusCode.ERROR, message))
