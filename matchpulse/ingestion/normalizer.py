"""
Normalizer base class and the shared parsing helpers.

A normalizer turns one provider's raw frame into a canonical ``Event``. It
never raises: undecodable frames are counted as malformed, recognized
non-event frames (keep-alives, subscription acks) as ignored.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from matchpulse.core.exceptions import MalformedMessageError
from matchpulse.core.logging import get_logger
from matchpulse.models.events import Event, EventType, Score, TeamSide, utc_now

logger = get_logger(__name__)

CardSlot = Tuple[EventType, TeamSide]

_CARD_SLOTS_SHORT = (
    (EventType.RED_CARD, TeamSide.HOME),
    (EventType.RED_CARD, TeamSide.AWAY),
)
_CARD_SLOTS_LONG = (
    (EventType.YELLOW_CARD, TeamSide.HOME),
    (EventType.YELLOW_CARD, TeamSide.AWAY),
    (EventType.RED_CARD, TeamSide.HOME),
    (EventType.RED_CARD, TeamSide.AWAY),
)

_MINUTE_PATTERN = re.compile(r"^\s*(\d+)\s*'?\s*(?:\+\s*(\d+))?\s*'?\s*$")

FIRST_HALF_MINUTES = 45
FULL_TIME_MINUTES = 90


def parse_cards_code(code: Any) -> Optional[Dict[CardSlot, int]]:
    """
    Decode a card-count digit string.

    Two digits are ``<home reds><away reds>``; four digits are
    ``<home yellows><away yellows><home reds><away reds>``.
    """
    if code is None:
        return None
    text = str(code).strip()
    if not text.isdigit():
        return None
    if len(text) == 2:
        slots = _CARD_SLOTS_SHORT
    elif len(text) == 4:
        slots = _CARD_SLOTS_LONG
    else:
        return None
    return {slot: int(digit) for slot, digit in zip(slots, text)}


def parse_minute(value: Any) -> Tuple[Optional[int], Optional[int]]:
    """Parse ``67``, ``"67'"`` or ``"45+2"`` into ``(minute, added_time)``."""
    if value is None or isinstance(value, bool):
        return None, None
    if isinstance(value, (int, float)):
        return (int(value), None) if value >= 0 else (None, None)
    match = _MINUTE_PATTERN.match(str(value))
    if not match:
        return None, None
    added = int(match.group(2)) if match.group(2) else None
    return int(match.group(1)), added


def derive_minute(
    period: Optional[int],
    elapsed_seconds: Optional[float],
    explicit: Any = None,
) -> Optional[int]:
    """
    Work out the match minute.

    An explicit provider minute always wins. Otherwise first-half minutes are
    clamped to 0-45 and second-half minutes are ``45 + elapsed`` capped at 90.
    """
    minute, _ = parse_minute(explicit)
    if minute is not None:
        return minute
    if elapsed_seconds is None or period not in (1, 2):
        return None

    elapsed = max(0, int(elapsed_seconds // 60))
    if period == 1:
        return min(elapsed, FIRST_HALF_MINUTES)
    return min(FIRST_HALF_MINUTES + elapsed, FULL_TIME_MINUTES)


def int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def bool_or_none(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "y"):
        return True
    if text in ("0", "false", "no", "n"):
        return False
    return None


def name_of(value: Any) -> Optional[str]:
    """Pull a display name out of ``"Name"`` or ``{"name": "Name"}``."""
    if isinstance(value, dict):
        return str_or_none(value.get("name") or value.get("shortName"))
    return str_or_none(value)


@dataclass
class MatchState:
    score: Optional[Score] = None
    status: Any = None
    cards: Optional[Dict[CardSlot, int]] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class MatchMemory:
    """
    Last known state per match for diff-based inference.

    The first observation of a match only initializes memory, so a feed that
    joins a match at 2-1 never produces synthetic goals for it.
    """

    def __init__(self):
        self._matches: Dict[str, MatchState] = {}

    def __len__(self) -> int:
        return len(self._matches)

    def __contains__(self, match_id: str) -> bool:
        return match_id in self._matches

    def state(self, match_id: str) -> MatchState:
        return self._matches.setdefault(match_id, MatchState())

    def observe_score(self, match_id: str, score: Optional[Score]) -> List[TeamSide]:
        """
        Record a score snapshot.

        Returns:
            Sides whose tally went up since the last snapshot
        """
        if score is None:
            return []
        state = self.state(match_id)
        previous, state.score = state.score, score
        if previous is None:
            return []

        if score.home < previous.home or score.away < previous.away:
            logger.info(
                "Score corrected downwards",
                match_id=match_id,
                previous=str(previous),
                current=str(score),
            )
        scored = []
        if score.home > previous.home:
            scored.append(TeamSide.HOME)
        if score.away > previous.away:
            scored.append(TeamSide.AWAY)
        return scored

    def observe_status(self, match_id: str, status: Any) -> Tuple[Any, bool]:
        """Record a status code; returns ``(previous, changed)``."""
        if status is None:
            return None, False
        state = self.state(match_id)
        previous, state.status = state.status, status
        return previous, previous is not None and previous != status

    def observe_cards(self, match_id: str, code: Any) -> List[CardSlot]:
        """Record a cards code; returns the slots whose count went up."""
        counts = parse_cards_code(code)
        if counts is None:
            return []
        state = self.state(match_id)
        previous, state.cards = state.cards, counts
        if previous is None:
            return []
        return [
            slot for slot, count in counts.items()
            if slot in previous and count > previous[slot]
        ]

    def forget(self, match_id: str) -> None:
        self._matches.pop(match_id, None)


class Normalizer(ABC):
    """
    Base class for per-provider normalizers.

    Subclasses implement ``translate``; ``decode`` defaults to JSON.
    """

    source: str = "unknown"
    event_types: Dict[str, EventType] = {}

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.memory = MatchMemory()
        self.stats = {"normalized": 0, "ignored": 0, "malformed": 0}

    def normalize(self, raw: Union[str, bytes, Dict[str, Any]]) -> Optional[Event]:
        """Translate one raw frame; returns ``None`` for anything that is not an event."""
        received_at = self.clock()

        try:
            message = self.decode(raw)
        except MalformedMessageError as e:
            self.stats["malformed"] += 1
            logger.debug("Dropping malformed frame", source=self.source, error=str(e))
            return None

        try:
            event = self.translate(message, received_at)
        except Exception as e:
            self.stats["malformed"] += 1
            logger.warning(
                "Failed to translate frame",
                source=self.source,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if event is None:
            self.stats["ignored"] += 1
            return None

        self.stats["normalized"] += 1
        if event.event_type is EventType.MATCH_END and event.match_id is not None:
            self.memory.forget(event.match_id)
        return event

    def decode(self, raw: Union[str, bytes, Dict[str, Any]]) -> Any:
        """Decode a frame into structured data."""
        if isinstance(raw, (dict, list)):
            return raw
        text = self.to_text(raw)
        try:
            return json.loads(text)
        except ValueError as e:
            raise MalformedMessageError(f"Invalid JSON: {e}") from e

    @staticmethod
    def to_text(raw: Union[str, bytes]) -> str:
        if isinstance(raw, bytes):
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedMessageError(f"Frame is not UTF-8: {e}") from e
        if not isinstance(raw, str):
            raise MalformedMessageError(f"Unsupported frame type {type(raw).__name__}")
        return raw

    def map_event_type(self, value: Any) -> EventType:
        """Map a provider type tag; unrecognized tags become ``unknown``."""
        if value is None:
            return EventType.UNKNOWN
        mapped = self.event_types.get(str(value))
        if mapped is not None:
            return mapped
        try:
            return EventType(str(value))
        except ValueError:
            return EventType.UNKNOWN

    @abstractmethod
    def translate(self, message: Any, received_at: datetime) -> Optional[Event]:
        """Build an ``Event`` from decoded data, or ``None`` if it is not one."""
