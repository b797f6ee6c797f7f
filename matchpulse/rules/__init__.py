"""
Alerting rules and the rule engine.
"""

import time
from typing import Callable, List, Optional, Tuple
from matchpulse.core.config import Settings
from matchpulse.rules.base import Rule, MatchStateRule, RuleResult
from matchpulse.rules.engine import RuleEngine, RuleFn
from matchpulse.rules.incidents import (
    IncidentAlertRule,
    GoalAlertRule,
    RedCardAlertRule,
    YellowCardAlertRule,
)
from matchpulse.rules.patterns import (
    EarlyGoalRule,
    LateGoalRule,
    CriticalMomentRule,
    HighScoringRule,
    CardStormRule,
    MomentumShiftRule,
    HatTrickRule,
    RedCardImpactRule,
    ComebackRule,
)


def default_rules(
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.monotonic,
) -> List[Tuple[str, Rule]]:
    """
    Build the default rule set in evaluation order.

    Args:
        settings: Supplies the incident toggles and the per-match state TTL
        clock: Monotonic clock for stateful rules

    Returns:
        ``(name, rule)`` pairs ready for ``RuleEngine``
    """
    enabled = settings.enabled_events if settings else {}
    state_ttl = settings.rule_state_ttl if settings else 3 * 3600.0

    rules: List[Rule] = [
        GoalAlertRule(enabled=enabled.get("goals", True)),
        RedCardAlertRule(enabled=enabled.get("red_cards", True)),
        YellowCardAlertRule(enabled=enabled.get("yellow_cards", True)),
        EarlyGoalRule(),
        LateGoalRule(),
        CardStormRule(state_ttl=state_ttl, clock=clock),
        HatTrickRule(state_ttl=state_ttl, clock=clock),
        MomentumShiftRule(state_ttl=state_ttl, clock=clock),
        HighScoringRule(),
        ComebackRule(state_ttl=state_ttl, clock=clock),
        RedCardImpactRule(state_ttl=state_ttl, clock=clock),
        CriticalMomentRule(),
    ]
    return [(rule.name, rule) for rule in rules]


__all__ = [
    "Rule",
    "MatchStateRule",
    "RuleResult",
    "RuleEngine",
    "RuleFn",
    "IncidentAlertRule",
    "GoalAlertRule",
    "RedCardAlertRule",
    "YellowCardAlertRule",
    "EarlyGoalRule",
    "LateGoalRule",
    "CriticalMomentRule",
    "HighScoringRule",
    "CardStormRule",
    "MomentumShiftRule",
    "HatTrickRule",
    "RedCardImpactRule",
    "ComebackRule",
    "default_rules",
]
