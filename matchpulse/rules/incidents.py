"""
Incident alerts: one alert per goal or card.
"""

from typing import Callable
from matchpulse.core.logging import get_logger
from matchpulse.models.alerts import AlertSeverity
from matchpulse.models.events import Event, EventType
from matchpulse.rules.base import Rule, RuleResult
from matchpulse.rules.formatting import format_goal, format_red_card, format_yellow_card

logger = get_logger(__name__)


class IncidentAlertRule(Rule):
    """
    Emit an alert for every event of one type.

    Args:
        enabled: When false the rule stays registered but emits nothing
    """

    event_type: EventType = EventType.UNKNOWN
    alert_type: str = "incident"
    severity: AlertSeverity = AlertSeverity.MEDIUM
    render: Callable[[Event], str] = staticmethod(lambda event: event.event_type.value)

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def evaluate(self, event: Event) -> RuleResult:
        if not self.enabled or event.event_type is not self.event_type:
            return None

        home = event.home_team
        away = event.away_team
        logger.info(
            f"{self.alert_type.replace('_', ' ').upper()} detected",
            match_id=event.match_id,
            match=f"{home} vs {away}" if home and away else None,
            score=str(event.score) if event.score else None,
            minute=event.minute,
            player=event.player,
        )
        return self.alert(event, self.alert_type, self.severity, self.render(event))


class GoalAlertRule(IncidentAlertRule):
    name = "goal_alert"
    event_type = EventType.GOAL
    alert_type = "goal"
    severity = AlertSeverity.HIGH
    render = staticmethod(format_goal)


class RedCardAlertRule(IncidentAlertRule):
    name = "red_card_alert"
    event_type = EventType.RED_CARD
    alert_type = "red_card"
    severity = AlertSeverity.HIGH
    render = staticmethod(format_red_card)


class YellowCardAlertRule(IncidentAlertRule):
    name = "yellow_card_alert"
    event_type = EventType.YELLOW_CARD
    alert_type = "yellow_card"
    severity = AlertSeverity.MEDIUM
    render = staticmethod(format_yellow_card)
