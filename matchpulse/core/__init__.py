"""
Core utilities and configuration for the MatchPulse pipeline.
"""

from matchpulse.core.config import settings, get_settings, Settings
from matchpulse.core.logging import get_logger, setup_logging, bind_log_context, LoggerMixin, PerformanceLogger
from matchpulse.core.exceptions import (
    MatchPulseError,
    TransportError,
    SessionStalledError,
    MalformedMessageError,
    EventValidationError,
    ConnectorFailedError,
)

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "get_logger",
    "setup_logging",
    "bind_log_context",
    "LoggerMixin",
    "PerformanceLogger",
    "MatchPulseError",
    "TransportError",
    "SessionStalledError",
    "MalformedMessageError",
    "EventValidationError",
    "ConnectorFailedError",
]
