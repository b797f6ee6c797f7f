"""
Alert model handed to the dispatch boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from matchpulse.models.events import Event, utc_now


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


@dataclass(frozen=True)
class Alert:
    """A rendered alert. Alerts are never retracted once dispatched."""
    type: str
    severity: AlertSeverity
    match_id: Optional[str]
    source: Optional[str]
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    data: Dict[str, Any] = field(default_factory=dict, compare=False)
    rule: Optional[str] = None

    @classmethod
    def from_event(
        cls,
        event: Event,
        type: str,
        severity: AlertSeverity,
        message: str,
        rule: Optional[str] = None,
        **extra: Any,
    ) -> "Alert":
        """Build an alert whose data mirrors the triggering event."""
        data = {
            "event_type": event.event_type.value if event.event_type else None,
            "home_team": event.home_team,
            "away_team": event.away_team,
            "score": {"home": event.score.home, "away": event.score.away} if event.score else None,
            "minute": event.minute,
            "added_time": event.added_time,
            "team": event.team.value if event.team else None,
            "team_name": event.team_name,
            "player": event.player,
            "tournament": event.tournament,
            "inferred": event.inferred,
        }
        payload = event.payload
        if payload is not None:
            for name in ("assist_by", "is_own_goal", "is_penalty", "reason"):
                if hasattr(payload, name):
                    data[name] = getattr(payload, name)
        data.update(extra)
        return cls(
            type=type,
            severity=severity,
            match_id=event.match_id,
            source=event.source,
            message=message,
            data=data,
            rule=rule,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "match_id": self.match_id,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "data": dict(self.data),
            "rule": self.rule,
        }
