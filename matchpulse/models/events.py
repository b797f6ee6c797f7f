"""
Canonical event model produced by every normalizer.

Absent or unresolved values are always ``None``; no placeholder strings are
used for teams or players, so consumers can tell missing data from real data.
"""

import re
from dataclasses import dataclass, field, replace, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from matchpulse.core.exceptions import EventValidationError


class EventType(str, Enum):
    """Kinds of match occurrence the pipeline understands."""
    GOAL = "goal"
    RED_CARD = "red_card"
    YELLOW_CARD = "yellow_card"
    MATCH_START = "match_start"
    MATCH_END = "match_end"
    PERIOD_CHANGE = "period_change"
    UNKNOWN = "unknown"

    @property
    def is_card(self) -> bool:
        return self in (EventType.RED_CARD, EventType.YELLOW_CARD)


class TeamSide(str, Enum):
    """Side of the pitch a team plays for."""
    HOME = "home"
    AWAY = "away"

    @property
    def opponent(self) -> "TeamSide":
        return TeamSide.AWAY if self is TeamSide.HOME else TeamSide.HOME

    @classmethod
    def coerce(cls, value: Any) -> Optional["TeamSide"]:
        """Map provider team markers (``home``, ``1``, ``True``...) to a side."""
        if value is None:
            return None
        if isinstance(value, TeamSide):
            return value
        if isinstance(value, bool):
            return cls.HOME if value else cls.AWAY
        text = str(value).strip().lower()
        if text in ("home", "h", "1"):
            return cls.HOME
        if text in ("away", "a", "2"):
            return cls.AWAY
        return None


_SCORE_PATTERN = re.compile(r"^\s*(\d+)\s*[-:]\s*(\d+)\s*$")


@dataclass(frozen=True)
class Score:
    """Scoreline snapshot at the time of an event."""
    home: int
    away: int

    @property
    def total(self) -> int:
        return self.home + self.away

    @property
    def diff(self) -> int:
        """Home minus away."""
        return self.home - self.away

    @classmethod
    def parse(cls, value: Any) -> Optional["Score"]:
        """Parse ``"2-1"``, ``"2:1"`` or ``{"home": 2, "away": 1}``."""
        if value is None:
            return None
        if isinstance(value, Score):
            return value
        if isinstance(value, dict):
            home, away = value.get("home"), value.get("away")
            if home is None or away is None:
                return None
            try:
                return cls(int(home), int(away))
            except (TypeError, ValueError):
                return None
        match = _SCORE_PATTERN.match(str(value))
        if not match:
            return None
        return cls(int(match.group(1)), int(match.group(2)))

    def __str__(self) -> str:
        return f"{self.home}-{self.away}"


@dataclass(frozen=True)
class GoalDetails:
    team: Optional[TeamSide] = None
    player: Optional[str] = None
    assist_by: Optional[str] = None
    is_own_goal: Optional[bool] = None
    is_penalty: Optional[bool] = None


@dataclass(frozen=True)
class CardDetails:
    team: Optional[TeamSide] = None
    player: Optional[str] = None
    reason: Optional[str] = None


Payload = Union[GoalDetails, CardDetails, None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """
    A normalized match event.

    ``received_at`` is the ingestion time and is distinct from the in-match
    ``minute``. ``inferred`` marks events whose type was derived from score or
    card-count changes instead of being tagged by the provider.
    """
    source: Optional[str]
    received_at: Optional[datetime]
    event_type: Optional[EventType]
    match_id: Optional[str]
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    score: Optional[Score] = None
    minute: Optional[int] = None
    added_time: Optional[int] = None
    period: Optional[int] = None
    tournament: Optional[str] = None
    payload: Payload = None
    inferred: bool = False
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def fingerprint(self) -> Tuple[Any, ...]:
        """Identity of the wire record, used by the dedup gate."""
        event_type = self.event_type.value if self.event_type else None
        return (self.source, self.match_id, event_type, self.minute, self.received_at)

    @property
    def team(self) -> Optional[TeamSide]:
        return self.payload.team if self.payload is not None else None

    @property
    def player(self) -> Optional[str]:
        return self.payload.player if self.payload is not None else None

    @property
    def team_name(self) -> Optional[str]:
        """Display name of the team the payload refers to, when resolved."""
        if self.team is TeamSide.HOME:
            return self.home_team
        if self.team is TeamSide.AWAY:
            return self.away_team
        return None

    def with_teams(
        self,
        home_team: Optional[str] = None,
        away_team: Optional[str] = None,
        tournament: Optional[str] = None,
    ) -> "Event":
        """Return a copy with absent team fields backfilled; known values win."""
        updates = {}
        if self.home_team is None and home_team is not None:
            updates["home_team"] = home_team
        if self.away_team is None and away_team is not None:
            updates["away_team"] = away_team
        if self.tournament is None and tournament is not None:
            updates["tournament"] = tournament
        return replace(self, **updates) if updates else self

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "source": self.source,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "event_type": self.event_type.value if self.event_type else None,
            "match_id": self.match_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "score": {"home": self.score.home, "away": self.score.away} if self.score else None,
            "minute": self.minute,
            "added_time": self.added_time,
            "period": self.period,
            "tournament": self.tournament,
            "inferred": self.inferred,
            "payload": None,
        }
        if self.payload is not None:
            payload = asdict(self.payload)
            if payload.get("team") is not None:
                payload["team"] = payload["team"].value
            data["payload"] = payload
        return data


REQUIRED_FIELDS = ("source", "match_id", "event_type", "received_at")


def validate_event(event: Optional[Event]) -> List[str]:
    """
    Check that an event can enter the dedup gate.

    Returns:
        A list of problems; empty when the event is valid
    """
    if event is None:
        return ["event is missing"]

    problems = []
    for name in REQUIRED_FIELDS:
        value = getattr(event, name, None)
        if value is None or value == "":
            problems.append(f"missing {name}")
    return problems


def ensure_valid(event: Optional[Event]) -> Event:
    """Return the event unchanged or raise ``EventValidationError``."""
    problems = validate_event(event)
    if problems:
        raise EventValidationError(problems)
    return event
