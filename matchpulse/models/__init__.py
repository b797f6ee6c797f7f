"""
Canonical event and alert models.
"""

from matchpulse.models.events import (
    Event,
    EventType,
    TeamSide,
    Score,
    GoalDetails,
    CardDetails,
    validate_event,
    ensure_valid,
    utc_now,
)
from matchpulse.models.alerts import Alert, AlertSeverity

__all__ = [
    "Event",
    "EventType",
    "TeamSide",
    "Score",
    "GoalDetails",
    "CardDetails",
    "validate_event",
    "ensure_valid",
    "utc_now",
    "Alert",
    "AlertSeverity",
]
