"""
Error taxonomy for the ingestion-to-alert pipeline.
"""

from typing import List, Optional


class MatchPulseError(Exception):
    """Base class for all pipeline errors."""


class TransportError(MatchPulseError):
    """A stream session failed to connect, read or write."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class SessionStalledError(TransportError):
    """No traffic arrived within the liveness threshold."""


class MalformedMessageError(MatchPulseError):
    """A raw payload could not be decoded."""


class EventValidationError(MatchPulseError):
    """An event is missing fields required for deduplication."""

    def __init__(self, problems: List[str]):
        super().__init__("; ".join(problems))
        self.problems = problems


class ConnectorFailedError(MatchPulseError):
    """The connector exhausted its reconnect attempts and must be reset."""
