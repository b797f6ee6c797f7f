"""
Pattern rules: match-minute thresholds, windowed counts, per-player tallies
and cross-event correlations.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set
from matchpulse.core.logging import get_logger
from matchpulse.models.alerts import AlertSeverity
from matchpulse.models.events import Event, EventType, GoalDetails, TeamSide
from matchpulse.rules.base import DEFAULT_STATE_TTL, MatchStateRule, Rule, RuleResult
from matchpulse.rules.formatting import format_headline

logger = get_logger(__name__)


# Threshold rules

class EarlyGoalRule(Rule):
    """Goal at or before ``max_minute``."""

    name = "early_goal"

    def __init__(self, max_minute: int = 15):
        self.max_minute = max_minute

    def evaluate(self, event: Event) -> RuleResult:
        if event.event_type is not EventType.GOAL or event.minute is None:
            return None
        if event.minute > self.max_minute:
            return None
        return self.alert(
            event, "early_goal", AlertSeverity.MEDIUM,
            format_headline("🚀 EARLY GOAL!", event),
        )


class LateGoalRule(Rule):
    """Goal at or after ``min_minute``."""

    name = "late_goal"

    def __init__(self, min_minute: int = 80):
        self.min_minute = min_minute

    def evaluate(self, event: Event) -> RuleResult:
        if event.event_type is not EventType.GOAL or event.minute is None:
            return None
        if event.minute < self.min_minute:
            return None
        return self.alert(
            event, "late_goal", AlertSeverity.HIGH,
            format_headline("⏰ LATE GOAL!", event),
        )


class CriticalMomentRule(Rule):
    """A goal in a close game from ``goal_minute``, or a very late red card."""

    name = "critical_moment"

    def __init__(self, goal_minute: int = 80, red_card_minute: int = 85, max_margin: int = 1):
        self.goal_minute = goal_minute
        self.red_card_minute = red_card_minute
        self.max_margin = max_margin

    def evaluate(self, event: Event) -> RuleResult:
        if event.minute is None:
            return None

        if (
            event.event_type is EventType.GOAL
            and event.minute >= self.goal_minute
            and event.score is not None
            and abs(event.score.diff) <= self.max_margin
        ):
            return self.alert(
                event, "critical_goal", AlertSeverity.HIGH,
                format_headline("🚨 CRITICAL LATE GOAL! Match wide open!", event),
            )

        if event.event_type is EventType.RED_CARD and event.minute >= self.red_card_minute:
            return self.alert(
                event, "critical_red_card", AlertSeverity.HIGH,
                format_headline("🚨 LATE RED CARD! Match drama!", event),
            )
        return None


class HighScoringRule(Rule):
    """Goals that take the match total to an odd tally of ``min_total`` or more."""

    name = "high_scoring"

    def __init__(self, min_total: int = 5):
        self.min_total = min_total

    def evaluate(self, event: Event) -> RuleResult:
        if event.event_type is not EventType.GOAL or event.score is None:
            return None
        total = event.score.total
        if total < self.min_total or total % 2 == 0:
            return None
        return self.alert(
            event, "high_scoring", AlertSeverity.LOW,
            format_headline(f"🎯 HIGH SCORING! {total} goals in the match!", event),
            total_goals=total,
        )


# Windowed count rules

class CardStormRule(MatchStateRule):
    """
    ``threshold`` or more cards inside a trailing window of match minutes.

    Fires on every card that leaves the window at or above the threshold.
    """

    name = "card_storm"

    def __init__(
        self,
        window: int = 10,
        threshold: int = 3,
        state_ttl: float = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(state_ttl=state_ttl, clock=clock)
        self.window = window
        self.threshold = threshold

    def new_state(self) -> List[int]:
        return []

    def update(self, minutes: List[int], event: Event) -> RuleResult:
        if not event.event_type or not event.event_type.is_card or event.minute is None:
            return None

        minutes.append(event.minute)
        minutes[:] = [m for m in minutes if event.minute - m <= self.window]
        count = len(minutes)
        if count < self.threshold:
            return None

        logger.info("Card storm detected", match_id=event.match_id, count=count)
        return self.alert(
            event, "card_storm", AlertSeverity.MEDIUM,
            format_headline("🔥 CARD STORM! Multiple cards in short time", event),
            count=count,
            window_minutes=self.window,
        )


@dataclass
class _Mark:
    team: Optional[TeamSide]
    minute: int


class MomentumShiftRule(MatchStateRule):
    """One team scoring ``threshold`` or more goals inside a trailing window."""

    name = "momentum_shift"

    def __init__(
        self,
        window: int = 10,
        threshold: int = 2,
        state_ttl: float = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(state_ttl=state_ttl, clock=clock)
        self.window = window
        self.threshold = threshold

    def new_state(self) -> List[_Mark]:
        return []

    def update(self, goals: List[_Mark], event: Event) -> RuleResult:
        if event.event_type is not EventType.GOAL or event.minute is None:
            return None

        goals.append(_Mark(team=event.team, minute=event.minute))
        goals[:] = [g for g in goals if event.minute - g.minute <= self.window]
        if event.team is None:
            return None

        team_goals = sum(1 for g in goals if g.team is event.team)
        if team_goals < self.threshold:
            return None

        return self.alert(
            event, "momentum_shift", AlertSeverity.MEDIUM,
            format_headline(f"🔥 MOMENTUM SHIFT! {team_goals} goals in {self.window} minutes!", event),
            goals=team_goals,
        )


# Per-player accumulation

class HatTrickRule(MatchStateRule):
    """Third goal by the same player in a match. Own goals do not count."""

    name = "hat_trick"
    goals_needed = 3

    def new_state(self) -> Counter:
        return Counter()

    def update(self, tally: Counter, event: Event) -> RuleResult:
        if event.event_type is not EventType.GOAL or not event.player:
            return None
        if isinstance(event.payload, GoalDetails) and event.payload.is_own_goal:
            return None

        tally[event.player] += 1
        if tally[event.player] != self.goals_needed:
            return None

        logger.info("Hat-trick detected", match_id=event.match_id, player=event.player)
        return self.alert(
            event, "hat_trick", AlertSeverity.HIGH,
            format_headline(f"🎩 HAT-TRICK! {event.player}", event),
            goals=self.goals_needed,
        )


# Cross-event correlation

class RedCardImpactRule(MatchStateRule):
    """A goal within ``window`` minutes after the opposing team was shown red."""

    name = "red_card_impact"

    def __init__(
        self,
        window: int = 15,
        state_ttl: float = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(state_ttl=state_ttl, clock=clock)
        self.window = window

    def new_state(self) -> List[_Mark]:
        return []

    def update(self, red_cards: List[_Mark], event: Event) -> RuleResult:
        if event.minute is None:
            return None

        if event.event_type is EventType.RED_CARD:
            if event.team is not None:
                red_cards.append(_Mark(team=event.team, minute=event.minute))
            return None

        if event.event_type is not EventType.GOAL or event.team is None:
            return None

        red_cards[:] = [c for c in red_cards if event.minute - c.minute <= self.window]
        opposing = [
            c for c in red_cards
            if c.team is event.team.opponent and event.minute >= c.minute
        ]
        if not opposing:
            return None

        minutes_since = event.minute - opposing[-1].minute
        return self.alert(
            event, "red_card_impact", AlertSeverity.MEDIUM,
            format_headline("⚡ GOAL after red card! Man advantage paying off!", event),
            minutes_since_card=minutes_since,
        )


@dataclass
class _ComebackState:
    max_margin: Optional[int] = None
    alerted_minutes: Set[int] = field(default_factory=set)


class ComebackRule(MatchStateRule):
    """
    A side that trailed by ``min_deficit`` or more is back within one goal
    after ``after_minute``. Fires at most once per match minute.
    """

    name = "comeback"

    def __init__(
        self,
        min_deficit: int = 2,
        after_minute: int = 60,
        state_ttl: float = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(state_ttl=state_ttl, clock=clock)
        self.min_deficit = min_deficit
        self.after_minute = after_minute

    def new_state(self) -> _ComebackState:
        return _ComebackState()

    def update(self, state: _ComebackState, event: Event) -> RuleResult:
        if event.event_type is not EventType.GOAL or event.score is None:
            return None

        margin = abs(event.score.diff)
        previous_max = state.max_margin
        state.max_margin = margin if previous_max is None else max(previous_max, margin)
        if previous_max is None:
            return None

        if previous_max < self.min_deficit or margin > 1:
            return None
        if event.minute is None or event.minute <= self.after_minute:
            return None
        if event.minute in state.alerted_minutes:
            return None

        state.alerted_minutes.add(event.minute)
        return self.alert(
            event, "comeback", AlertSeverity.HIGH,
            format_headline("🔥 COMEBACK! Team fighting back!", event),
            previous_margin=previous_max,
            current_margin=margin,
        )
