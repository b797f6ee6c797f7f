"""
Rule base classes.

A rule consumes one event and returns nothing, one ``Alert`` or several.
Stateful rules keep their memory in explicit per-match state objects that
are dropped when the match ends or goes quiet.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Union
from matchpulse.core.logging import get_logger
from matchpulse.models.alerts import Alert, AlertSeverity
from matchpulse.models.events import Event, EventType

logger = get_logger(__name__)

RuleResult = Union[None, Alert, Iterable[Alert]]

DEFAULT_STATE_TTL = 3 * 3600.0


class Rule(ABC):
    """Base class for built-in rules. Instances are callable."""

    name: str = "rule"

    def __call__(self, event: Event) -> RuleResult:
        return self.evaluate(event)

    @abstractmethod
    def evaluate(self, event: Event) -> RuleResult:
        """Inspect one event and return the alerts it triggers, if any."""

    def alert(
        self,
        event: Event,
        type: str,
        severity: AlertSeverity,
        message: str,
        **extra: Any,
    ) -> Alert:
        return Alert.from_event(event, type, severity, message, rule=self.name, **extra)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


@dataclass
class _Entry:
    state: Any
    last_seen: float


class MatchStateRule(Rule):
    """
    Rule with private state keyed by match id.

    State for a match is created on first sight, dropped on ``match_end``
    and dropped when the match has not been seen for ``state_ttl`` seconds.
    Access is serialized by a lock.

    Args:
        state_ttl: Seconds of inactivity before a match's state is evicted
        clock: Monotonic clock used for idleness
    """

    def __init__(
        self,
        state_ttl: float = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state_ttl = state_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._matches: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._matches)

    def __contains__(self, match_id: str) -> bool:
        with self._lock:
            return match_id in self._matches

    @abstractmethod
    def new_state(self) -> Any:
        """Fresh state for a match seen for the first time."""

    @abstractmethod
    def update(self, state: Any, event: Event) -> RuleResult:
        """Fold the event into the match state and return any alerts."""

    def evaluate(self, event: Event) -> RuleResult:
        match_id = event.match_id
        if match_id is None:
            return None

        now = self._clock()
        with self._lock:
            self._evict_idle(now)
            if event.event_type is EventType.MATCH_END:
                if self._matches.pop(match_id, None) is not None:
                    logger.debug("Match state released", rule=self.name, match_id=match_id)
                return None

            entry = self._matches.get(match_id)
            if entry is None:
                entry = _Entry(state=self.new_state(), last_seen=now)
                self._matches[match_id] = entry
            entry.last_seen = now
            return self.update(entry.state, event)

    def forget(self, match_id: str) -> None:
        with self._lock:
            self._matches.pop(match_id, None)

    def _evict_idle(self, now: float) -> None:
        idle = [
            match_id for match_id, entry in self._matches.items()
            if now - entry.last_seen > self.state_ttl
        ]
        for match_id in idle:
            del self._matches[match_id]
        if idle:
            logger.debug("Evicted idle match state", rule=self.name, matches=len(idle))
