"""Logger settings loaded from environment variables.

Uses Pydantic Settings so every service configures the logger the same way.
Malformed values never stop a service from logging: an unparseable boolean
reads as false and an unknown level name falls back to info.

Example:
    >>> import os
    >>> os.environ["PRETTY_PRINT_LOGGER"] = "true"
    >>> LoggerSettings().pretty_print_logger
    True
"""

import logging
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Accepted spellings, matching the usual strconv-style boolean parsing
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})

_LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def parse_bool(value: Any) -> bool:
    """Parse a boolean flag, treating anything unrecognised as false.

    Example:
        >>> parse_bool("T"), parse_bool("yes"), parse_bool(None)
        (True, False, False)
    """
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return False
    return value in _TRUE_VALUES


def parse_level(level: int | str) -> int:
    """Convert a level name or number to a ``logging`` level.

    Args:
        level: ``logging`` level number, or a case-insensitive name
            (debug, info, warn, warning, error, critical, fatal)

    Returns:
        Numeric logging level

    Raises:
        ValueError: If the name is not a known level
    """
    if isinstance(level, int) and not isinstance(level, bool):
        return level
    if isinstance(level, str):
        if level.strip().isdigit():
            return int(level)
        numeric = _LEVEL_NAMES.get(level.strip().lower())
        if numeric is not None:
            return numeric
    raise ValueError(f"Invalid log level: {level}")


class LoggerSettings(BaseSettings):
    """Logger configuration.

    All settings can be overridden via environment variables with uppercase
    names, e.g. ``SERVICE_NAME`` overrides ``service_name``.

    Attributes:
        pretty_print_logger: Emit indented multi-line JSON instead of one line
        service_name: Reported as ``service_name`` on context-aware log calls
        log_level: Initial minimum level
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    pretty_print_logger: bool = Field(
        default=False,
        description="Indent JSON output across multiple lines",
    )
    service_name: str = Field(
        default="",
        description="Service name attached to context-aware log records",
    )
    log_level: int = Field(
        default=logging.INFO,
        description="Minimum log level (DEBUG, INFO, WARN, ERROR, CRITICAL)",
    )

    @field_validator("pretty_print_logger", mode="before")
    @classmethod
    def _lenient_bool(cls, value: Any) -> bool:
        return parse_bool(value)

    @field_validator("log_level", mode="before")
    @classmethod
    def _lenient_level(cls, value: Any) -> int:
        try:
            return parse_level(value)
        except ValueError:
            return logging.INFO
