"""
Structured logging for the MatchPulse pipeline.

Log lines go to stderr so that alert output on stdout (``replay
--json-output``) stays machine readable. Connector tasks bind their name
into the context so that every line logged while serving a feed carries it.
"""

import logging
import sys
import time
from typing import Any, Dict, Optional, TextIO
import structlog
from structlog.stdlib import LoggerFactory
from matchpulse.core.config import settings


def setup_logging(
    level: Optional[str] = None,
    json_logs: Optional[bool] = None,
    include_timestamp: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON instead of the console format
        include_timestamp: Whether to include timestamps in logs
        stream: Output stream, stderr by default
    """
    log_level = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.json_logs

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_app_context,
    ]

    if include_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="ISO", utc=True))

    if json_logs or settings.is_production:
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def add_app_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp the service name, version and environment on every line."""
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("version", settings.app_version)
    if not settings.is_development:
        event_dict.setdefault("environment", settings.environment)
    return event_dict


def bind_log_context(**fields: Any) -> None:
    """Bind fields for the current task; tasks started afterwards inherit them."""
    structlog.contextvars.bind_contextvars(**fields)


def get_logger(name: str = "matchpulse") -> structlog.BoundLogger:
    return structlog.get_logger(name)


class LoggerMixin:
    """Gives a class a ``logger`` named after its module and class."""

    @property
    def logger(self) -> structlog.BoundLogger:
        return get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")


class PerformanceLogger:
    """
    Time a named operation and log its outcome.

    Usable with ``with`` and ``async with``. Failures are logged and
    re-raised.
    """

    def __init__(self, operation: str, logger: Optional[structlog.BoundLogger] = None, **fields: Any):
        self.operation = operation
        self.logger = logger or get_logger()
        self.fields = fields
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.monotonic()
        self.logger.debug("Operation started", operation=self.operation, **self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = time.monotonic() - self.start_time
        if exc_type is None:
            self.logger.info(
                "Operation completed",
                operation=self.operation,
                duration_seconds=round(self.duration, 3),
                **self.fields,
            )
        else:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_seconds=round(self.duration, 3),
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.fields,
            )

    async def __aenter__(self) -> "PerformanceLogger":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)
