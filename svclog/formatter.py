"""JSON log formatter for structured logging.

Renders each record as one JSON object with the schema shared by every
service:

    {
        "time": "2025-10-21T10:30:00.000Z",
        "level": "error",
        "msg": "failed",
        "func": "create_order",
        "file": "/srv/app/orders.py:42",
        "trace_id": "111222121",
        "request": {"Name": "x"},
        "response": null,
        "service_name": "orders"
    }

``func`` and ``file`` come from the attribution strategy rather than from the
``LogRecord``, because the record's own caller info points at the facade.
"""

import json
import logging
import traceback
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

from pydantic_core import to_jsonable_python

from svclog.caller import AttributionStrategy, StackAttribution

PRETTY_PRINT_INDENT = 2


def to_json_value(value: Any) -> Any:
    """Convert a request/response payload to a JSON-compatible value.

    The whole value is walked, so pydantic models and dataclasses nested in
    dicts or lists become plain objects too. Values with no JSON form fall
    back to ``str()``.

    Example:
        >>> from dataclasses import dataclass
        >>> @dataclass
        ... class Body:
        ...     Name: str
        >>> to_json_value({"body": Body(Name="x"), "tags": ["a"]})
        {'body': {'Name': 'x'}, 'tags': ['a']}
    """
    return to_jsonable_python(value, fallback=str)


class JSONFormatter(logging.Formatter):
    """Formatter that outputs records as JSON with caller attribution.

    Attributes:
        attribution: Strategy used to find the calling frame
        pretty_print: Indent output across multiple lines
        disable_timestamp: Leave out the ``time`` field

    Example:
        >>> formatter = JSONFormatter(pretty_print=True)
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(formatter)
    """

    def __init__(
        self,
        attribution: AttributionStrategy | None = None,
        pretty_print: bool = False,
        disable_timestamp: bool = False,
    ) -> None:
        super().__init__()
        self.attribution = attribution if attribution is not None else StackAttribution()
        self.pretty_print = pretty_print
        self.disable_timestamp = disable_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format

        Returns:
            JSON string, single-line unless pretty printing is enabled
        """
        log_entry: dict[str, Any] = {}
        if not self.disable_timestamp:
            log_entry["time"] = self._format_timestamp(record.created)
        log_entry["level"] = record.levelname.lower()
        log_entry["msg"] = record.getMessage()

        frame = self.attribution.resolve()
        if frame is not None:
            log_entry["func"] = frame.short_function
            log_entry["file"] = frame.location

        fields = getattr(record, "fields", None)
        if fields:
            for key, value in fields.items():
                log_entry[key] = to_json_value(value)

        apm_fields = getattr(record, "apm_fields", None)
        if apm_fields:
            log_entry.update(apm_fields)

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self._format_exception(record.exc_info),
            }

        indent = PRETTY_PRINT_INDENT if self.pretty_print else None
        return json.dumps(log_entry, default=str, indent=indent)

    def _format_timestamp(self, created: float) -> str:
        """Format timestamp as ISO 8601 in UTC with millisecond precision.

        Example:
            >>> JSONFormatter()._format_timestamp(1697884200.0)
            '2023-10-21T10:30:00.000Z'
        """
        dt = datetime.fromtimestamp(created, tz=UTC)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def _format_exception(
        self,
        exc_info: tuple[type[BaseException] | None, BaseException | None, TracebackType | None],
    ) -> str:
        return "".join(traceback.format_exception(*exc_info))
