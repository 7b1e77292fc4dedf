"""
Record-Spine Logging - structured logging for the data-access layer.

Hands out structlog loggers and, when asked, configures the process-wide
pipeline. The repositories and units of work log snake_case events with
key/value fields (``transaction_begun``, ``bulk_upsert_chunk``, ...), never
formatted prose.

The library never configures logging on import. Applications either call
:func:`configure_logging` themselves, call
:func:`configure_logging_from_settings` to apply ``RECORDSPINE_LOG_*``, or
build their factory with ``ConnectionFactory(settings, configure_logs=True)``.

Architecture:
    ::

        RecordSpineSettings(log_level, log_json, log_service)
            │  configure_logging_from_settings()
            ▼
        configure_logging(level, json_format, service)
            │
            ▼
        structlog processor chain:
          1. TimeStamper (iso, utc)
          2. merge_contextvars
          3. add_log_level / add_logger_name
          4. service tag
          5. JSONRenderer or ConsoleRenderer

Examples:
    >>> from recordspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("bulk_upsert_completed", entity="Widget", inserted=2, updated=0)

Tags:
    logging, structlog, observability, record-spine
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from recordspine.core.settings import RecordSpineSettings, get_settings

# Loggers of this package follow the configured level even when the root
# logger was configured elsewhere.
_PACKAGE_LOGGER = "recordspine"


class _ServiceTag:
    """Processor stamping every event with the service name."""

    def __init__(self, service: str) -> None:
        self.service = service

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", self.service)
        return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "recordspine",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Value of the ``service`` field on every event
        add_timestamp: Include a UTC ISO timestamp in logs
    """
    numeric_level = getattr(logging, level.upper())

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _ServiceTag(service),
    ]

    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    logging.getLogger(_PACKAGE_LOGGER).setLevel(numeric_level)


def configure_logging_from_settings(settings: RecordSpineSettings | None = None) -> None:
    """Apply ``log_level``, ``log_json`` and ``log_service`` from settings.

    Uses the process-wide :func:`get_settings` instance when ``settings`` is
    omitted.
    """
    settings = settings or get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service=settings.log_service,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(request_id="abc123")
        logger.info("transaction_begun")  # Includes request_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    Example:
        with LogContext(entity="Widget"):
            repo.upsert_list_batch(widgets)
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
