"""Structured logger facade shared by every service.

``StructuredLogger`` owns one configured ``logging.Logger`` and the bound
``LogEntry`` all emissions go through. Configuration happens lazily, exactly
once, on first use, so constructing a logger at import time is free.

Example:
    >>> from svclog import error_with_context, info, with_trace_id, background
    >>> info("service started")
    >>> ctx = with_trace_id(background(), "111222121")
    >>> error_with_context(ctx, {"Name": "anis"}, None, "order rejected")
"""

import logging
import os
import sys
import threading
from collections.abc import Mapping, MutableMapping
from typing import IO, Any

from svclog.apm import APMCorrelationFilter
from svclog.caller import AttributionStrategy, StackAttribution
from svclog.config import LoggerSettings, parse_level
from svclog.context import trace_id_from
from svclog.formatter import JSONFormatter

DEFAULT_LOGGER_NAME = "svclog"

SERVICE_NAME_ENV = "SERVICE_NAME"


class LogEntry(logging.LoggerAdapter):
    """Logger plus a set of bound fields.

    Bound fields are passed to the formatter as ``record.fields``.

    Example:
        >>> entry = LogEntry(logging.getLogger("svclog"))
        >>> entry.with_fields(order_id="o-1").info("placed")
    """

    def __init__(self, logger: logging.Logger, fields: Mapping[str, Any] | None = None) -> None:
        super().__init__(logger, dict(fields or {}))

    def with_fields(self, **fields: Any) -> "LogEntry":
        """Return a new entry with ``fields`` merged over the bound ones."""
        return LogEntry(self.logger, {**self.extra, **fields})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {"fields": dict(self.extra)}
        return msg, kwargs


def _join_message(args: tuple[Any, ...]) -> str:
    return " ".join(str(arg) for arg in args)


class StructuredLogger:
    """Process-wide structured logger.

    Args:
        name: Name of the underlying ``logging.Logger``
        settings: Settings to use; loaded from the environment on first use
            when omitted
        stream: Output stream; defaults to stdout
        attribution: Caller attribution strategy; defaults to stack inspection

    Settings are read once, on first use. The exception is ``SERVICE_NAME``,
    which context-aware calls re-read from the environment every time and
    which takes precedence over ``settings.service_name`` when set.

    Example:
        >>> log = StructuredLogger(name="orders")
        >>> log.set_level("warn")
        >>> log.info("dropped")
        >>> log.warn("kept")
    """

    def __init__(
        self,
        name: str = DEFAULT_LOGGER_NAME,
        settings: LoggerSettings | None = None,
        stream: IO[str] | None = None,
        attribution: AttributionStrategy | None = None,
    ) -> None:
        self.name = name
        self._settings = settings
        self._stream = stream
        self._attribution = attribution
        self._lock = threading.Lock()
        self._logger: logging.Logger | None = None
        self._entry: LogEntry | None = None

    @property
    def logger(self) -> logging.Logger:
        """The configured ``logging.Logger``, configuring it if needed."""
        self._ensure_entry()
        assert self._logger is not None
        return self._logger

    @property
    def settings(self) -> LoggerSettings:
        self._ensure_entry()
        assert self._settings is not None
        return self._settings

    def _ensure_entry(self) -> LogEntry:
        entry = self._entry
        if entry is not None:
            return entry
        with self._lock:
            if self._entry is None:
                self._configure()
            assert self._entry is not None
            return self._entry

    def _configure(self) -> None:
        """Build the logger, handler and entry. Called once, under the lock."""
        if self._settings is None:
            self._settings = LoggerSettings()
        settings = self._settings

        logger = logging.getLogger(self.name)
        logger.setLevel(settings.log_level)
        logger.propagate = False

        # Remove existing handlers to avoid duplicate output
        logger.handlers.clear()

        handler = logging.StreamHandler(self._stream if self._stream is not None else sys.stdout)
        handler.setFormatter(
            JSONFormatter(
                attribution=self._attribution if self._attribution is not None else StackAttribution(),
                pretty_print=settings.pretty_print_logger,
            )
        )
        handler.addFilter(APMCorrelationFilter())
        logger.addHandler(handler)

        self._logger = logger
        self._entry = LogEntry(logger)

    def set_level(self, level: int | str) -> None:
        """Set the minimum level and rebuild the bound entry.

        Emissions already in flight may still use the previous entry.

        Args:
            level: ``logging`` level number or name (debug, info, warn,
                warning, error, critical)

        Raises:
            ValueError: If level is not a known level name
        """
        numeric_level = parse_level(level)
        self._ensure_entry()
        with self._lock:
            assert self._logger is not None
            self._logger.setLevel(numeric_level)
            self._entry = LogEntry(self._logger)

    def info(self, *args: Any) -> None:
        self._ensure_entry().log(logging.INFO, _join_message(args))

    def debug(self, *args: Any) -> None:
        self._ensure_entry().log(logging.DEBUG, _join_message(args))

    def warn(self, *args: Any) -> None:
        self._ensure_entry().log(logging.WARNING, _join_message(args))

    def error(self, *args: Any) -> None:
        self._ensure_entry().log(logging.ERROR, _join_message(args))

    def info_with_context(
        self, ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any
    ) -> None:
        self._log_with_context(logging.INFO, ctx, request, response, message)

    def debug_with_context(
        self, ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any
    ) -> None:
        self._log_with_context(logging.DEBUG, ctx, request, response, message)

    def warn_with_context(
        self, ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any
    ) -> None:
        self._log_with_context(logging.WARNING, ctx, request, response, message)

    def error_with_context(
        self, ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any
    ) -> None:
        self._log_with_context(logging.ERROR, ctx, request, response, message)

    def _log_with_context(
        self,
        level: int,
        ctx: Mapping[Any, Any] | None,
        request: Any,
        response: Any,
        message: tuple[Any, ...],
    ) -> None:
        entry = self._ensure_entry()
        entry.with_fields(
            trace_id=trace_id_from(ctx),
            request=request,
            response=response,
            service_name=self._service_name(),
        ).log(level, _join_message(message))

    def _service_name(self) -> str:
        # SERVICE_NAME may change after configuration
        return os.environ.get(SERVICE_NAME_ENV, self.settings.service_name)


_default_logger = StructuredLogger()


def get_logger() -> StructuredLogger:
    """Return the process-wide default logger."""
    return _default_logger


def set_level(level: int | str) -> None:
    _default_logger.set_level(level)


def info(*args: Any) -> None:
    _default_logger.info(*args)


def debug(*args: Any) -> None:
    _default_logger.debug(*args)


def warn(*args: Any) -> None:
    _default_logger.warn(*args)


def error(*args: Any) -> None:
    _default_logger.error(*args)


def info_with_context(ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any) -> None:
    _default_logger.info_with_context(ctx, request, response, *message)


def debug_with_context(ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any) -> None:
    _default_logger.debug_with_context(ctx, request, response, *message)


def warn_with_context(ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any) -> None:
    _default_logger.warn_with_context(ctx, request, response, *message)


def error_with_context(ctx: Mapping[Any, Any] | None, request: Any, response: Any, *message: Any) -> None:
    _default_logger.error_with_context(ctx, request, response, *message)
