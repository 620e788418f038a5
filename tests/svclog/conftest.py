"""Shared fixtures for svclog tests."""

import logging
import uuid
from collections.abc import Callable, Iterator
from io import StringIO

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Tracer

from svclog.caller import AttributionStrategy
from svclog.config import LoggerSettings
from svclog.context import background, bind_context, reset_context
from svclog.logger import StructuredLogger

LoggerFactory = Callable[..., tuple[StructuredLogger, StringIO]]


@pytest.fixture()
def make_logger() -> Iterator[LoggerFactory]:
    """Build StructuredLoggers writing to in-memory streams.

    Each logger gets a unique name so handlers never leak between tests.
    """
    names: list[str] = []

    def factory(
        settings: LoggerSettings | None = None,
        attribution: AttributionStrategy | None = None,
    ) -> tuple[StructuredLogger, StringIO]:
        stream = StringIO()
        name = f"svclog-test-{uuid.uuid4()}"
        names.append(name)
        logger = StructuredLogger(
            name=name,
            settings=settings if settings is not None else LoggerSettings(),
            stream=stream,
            attribution=attribution,
        )
        return logger, stream

    yield factory

    for name in names:
        logging.getLogger(name).handlers.clear()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    """In-memory exporter collecting finished spans."""
    return InMemorySpanExporter()


@pytest.fixture()
def tracer(span_exporter: InMemorySpanExporter) -> Tracer:
    """Tracer from a private provider, so the global provider stays untouched."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("svclog-tests")


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep logger env vars and the bound request context from leaking between tests."""
    for var in ("PRETTY_PRINT_LOGGER", "SERVICE_NAME", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    token = bind_context(background())
    yield
    reset_context(token)
