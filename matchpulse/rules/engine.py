"""
Ordered rule registry and evaluation.
"""

import inspect
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from matchpulse.core.logging import LoggerMixin
from matchpulse.models.alerts import Alert, AlertSeverity
from matchpulse.models.events import Event

RuleFn = Callable[[Event], Any]


class RuleEngine(LoggerMixin):
    """
    Evaluate every admitted event against an ordered, mutable set of rules.

    A rule is any callable taking an ``Event``; it may be a coroutine
    function and may return ``None``, an ``Alert``, a dict with at least a
    ``type`` key, or an iterable of those. Rules run in registration order,
    and a rule that raises is logged and skipped without affecting the
    others.

    Args:
        rules: Initial ``(name, rule)`` pairs
        on_rule_error: Called with the rule name each time a rule raises
    """

    def __init__(
        self,
        rules: Optional[Iterable[Tuple[str, RuleFn]]] = None,
        on_rule_error: Optional[Callable[[str], None]] = None,
    ):
        self._rules: Dict[str, RuleFn] = {}
        self._lock = threading.Lock()
        self.on_rule_error = on_rule_error
        self.errors: Dict[str, int] = {}
        self.evaluations = 0
        for name, rule in rules or ():
            self.add_rule(name, rule)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: str) -> bool:
        return name in self._rules

    @property
    def rule_names(self) -> List[str]:
        with self._lock:
            return list(self._rules)

    def add_rule(self, name: str, rule: RuleFn) -> None:
        """Register a rule; re-registering a name replaces it in place."""
        if not callable(rule):
            raise TypeError(f"Rule {name!r} is not callable")
        with self._lock:
            replaced = name in self._rules
            self._rules[name] = rule
        self.logger.info("Rule replaced" if replaced else "Rule added", rule=name)

    def remove_rule(self, name: str) -> bool:
        with self._lock:
            removed = self._rules.pop(name, None) is not None
        if removed:
            self.logger.info("Rule removed", rule=name)
        else:
            self.logger.warning("Rule not registered", rule=name)
        return removed

    async def evaluate(self, event: Event) -> List[Alert]:
        """Run one event through every rule and collect alerts in rule order."""
        with self._lock:
            rules = list(self._rules.items())

        self.evaluations += 1
        alerts: List[Alert] = []
        for name, rule in rules:
            try:
                result = rule(event)
                if inspect.isawaitable(result):
                    result = await result
                alerts.extend(self._collect(name, event, result))
            except Exception as e:
                self.errors[name] = self.errors.get(name, 0) + 1
                self.logger.error(
                    "Rule execution error",
                    rule=name,
                    match_id=event.match_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if self.on_rule_error is not None:
                    self.on_rule_error(name)
        return alerts

    def _collect(self, name: str, event: Event, result: Any) -> List[Alert]:
        if result is None:
            return []
        if isinstance(result, (Alert, dict)):
            result = [result]
        return [self._to_alert(name, event, item) for item in result if item]

    @staticmethod
    def _to_alert(name: str, event: Event, item: Any) -> Alert:
        if isinstance(item, dict):
            fields = dict(item)
            alert_type = fields.pop("type", name)
            severity = AlertSeverity(fields.pop("severity", AlertSeverity.LOW))
            message = fields.pop("message", alert_type)
            return Alert.from_event(event, alert_type, severity, message, rule=name, **fields)
        if not isinstance(item, Alert):
            raise TypeError(f"Rule {name!r} returned {type(item).__name__}, expected Alert")
        return replace(
            item,
            rule=name,
            match_id=item.match_id if item.match_id is not None else event.match_id,
            source=item.source if item.source is not None else event.source,
        )
