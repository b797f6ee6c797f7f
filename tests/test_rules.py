import pytest
from matchpulse.core.config import Settings
from matchpulse.models.alerts import Alert, AlertSeverity
from matchpulse.models.events import EventType, TeamSide
from matchpulse.rules import (
    CardStormRule,
    ComebackRule,
    CriticalMomentRule,
    EarlyGoalRule,
    GoalAlertRule,
    HatTrickRule,
    HighScoringRule,
    LateGoalRule,
    MomentumShiftRule,
    RedCardImpactRule,
    RuleEngine,
    YellowCardAlertRule,
    default_rules,
)
from conftest import FakeClock, make_event


def as_list(result):
    if result is None:
        return []
    if isinstance(result, Alert):
        return [result]
    return list(result)


class TestThresholdRules:
    def test_early_goal(self):
        rule = EarlyGoalRule()
        assert as_list(rule(make_event(minute=15)))[0].type == "early_goal"
        assert rule(make_event(minute=16)) is None
        assert rule(make_event(minute=None)) is None
        assert rule(make_event(EventType.RED_CARD, minute=3)) is None

    def test_late_goal(self):
        rule = LateGoalRule()
        assert rule(make_event(minute=79)) is None
        alert = rule(make_event(minute=80))
        assert alert.type == "late_goal"
        assert alert.rule == "late_goal"

    def test_critical_moment(self):
        rule = CriticalMomentRule()
        assert rule(make_event(minute=85, score="2-1")).type == "critical_goal"
        assert rule(make_event(minute=85, score="3-1")) is None
        assert rule(make_event(EventType.RED_CARD, minute=86)).type == "critical_red_card"
        assert rule(make_event(EventType.RED_CARD, minute=82)) is None

    def test_high_scoring_on_odd_totals(self):
        rule = HighScoringRule()
        assert rule(make_event(score="2-2")) is None
        assert rule(make_event(score="3-2")).data["total_goals"] == 5
        assert rule(make_event(score="3-3")) is None
        assert rule(make_event(score="4-3")) is not None


class TestHatTrickRule:
    def test_fires_exactly_once_on_third_goal(self):
        rule = HatTrickRule()
        results = [as_list(rule(make_event(player="Haaland", minute=m))) for m in (10, 30, 55, 80)]
        assert [len(r) for r in results] == [0, 0, 1, 0]
        assert results[2][0].type == "hat_trick"
        assert results[2][0].data["player"] == "Haaland"

    def test_counts_per_player_and_match(self):
        rule = HatTrickRule()
        for player, match in (("A", "m1"), ("A", "m2"), ("B", "m1"), ("A", "m1")):
            assert rule(make_event(player=player, match_id=match)) is None
        assert rule(make_event(player="A", match_id="m1")) is not None

    def test_own_goals_do_not_count(self):
        rule = HatTrickRule()
        rule(make_event(player="A"))
        rule(make_event(player="A", is_own_goal=True))
        assert rule(make_event(player="A")) is None

    def test_state_released_on_match_end(self):
        rule = HatTrickRule()
        rule(make_event(player="A"))
        rule(make_event(player="A"))
        assert "m1" in rule
        rule(make_event(EventType.MATCH_END, minute=90))
        assert "m1" not in rule
        assert rule(make_event(player="A")) is None

    def test_idle_state_evicted(self):
        clock = FakeClock()
        rule = HatTrickRule(state_ttl=60, clock=clock)
        rule(make_event(player="A"))
        rule(make_event(player="A"))
        clock.advance(61)
        rule(make_event(match_id="other", player="B"))
        assert "m1" not in rule
        assert rule(make_event(player="A")) is None


class TestCardStormRule:
    def test_two_cards_then_third_within_window(self):
        rule = CardStormRule()
        assert rule(make_event(EventType.YELLOW_CARD, minute=20)) is None
        assert rule(make_event(EventType.RED_CARD, minute=24)) is None
        alert = rule(make_event(EventType.YELLOW_CARD, minute=30))
        assert alert.type == "card_storm"
        assert alert.data["count"] == 3

    def test_third_card_outside_window(self):
        rule = CardStormRule()
        rule(make_event(EventType.YELLOW_CARD, minute=20))
        rule(make_event(EventType.YELLOW_CARD, minute=24))
        assert rule(make_event(EventType.YELLOW_CARD, minute=31)) is None

    def test_ignores_goals(self):
        rule = CardStormRule()
        for minute in (1, 2, 3):
            assert rule(make_event(EventType.GOAL, minute=minute)) is None

    def test_matches_are_independent(self):
        rule = CardStormRule()
        rule(make_event(EventType.YELLOW_CARD, match_id="a", minute=1))
        rule(make_event(EventType.YELLOW_CARD, match_id="a", minute=2))
        assert rule(make_event(EventType.YELLOW_CARD, match_id="b", minute=3)) is None


class TestCorrelationRules:
    def test_momentum_shift(self):
        rule = MomentumShiftRule()
        assert rule(make_event(minute=50, team=TeamSide.HOME)) is None
        assert rule(make_event(minute=52, team=TeamSide.AWAY)) is None
        alert = rule(make_event(minute=58, team=TeamSide.HOME))
        assert alert.type == "momentum_shift"
        assert alert.data["goals"] == 2

    def test_momentum_needs_known_team(self):
        rule = MomentumShiftRule()
        rule(make_event(minute=50, team=None))
        assert rule(make_event(minute=51, team=None)) is None

    def test_red_card_impact(self):
        rule = RedCardImpactRule()
        assert rule(make_event(EventType.RED_CARD, minute=40, team=TeamSide.AWAY)) is None
        alert = rule(make_event(minute=50, team=TeamSide.HOME))
        assert alert.type == "red_card_impact"
        assert alert.data["minutes_since_card"] == 10

    def test_red_card_impact_same_team_or_too_late(self):
        rule = RedCardImpactRule()
        rule(make_event(EventType.RED_CARD, minute=40, team=TeamSide.AWAY))
        assert rule(make_event(minute=45, team=TeamSide.AWAY)) is None
        assert rule(make_event(minute=56, team=TeamSide.HOME)) is None

    def test_comeback_once_per_minute(self):
        rule = ComebackRule()
        assert rule(make_event(minute=20, score="0-1")) is None
        assert rule(make_event(minute=40, score="0-2")) is None
        assert rule(make_event(minute=65, score="1-2")).type == "comeback"
        assert rule(make_event(minute=65, score="1-2")) is None
        assert rule(make_event(minute=70, score="2-2")).data["previous_margin"] == 2

    def test_no_comeback_before_minute_sixty(self):
        rule = ComebackRule()
        rule(make_event(minute=10, score="0-1"))
        rule(make_event(minute=20, score="0-2"))
        assert rule(make_event(minute=50, score="1-2")) is None


class TestIncidentRules:
    def test_goal_alert_message(self):
        event = make_event(minute=67, player="Saka", score="2-1", home_team="Arsenal", away_team="Chelsea")
        alert = GoalAlertRule()(event)
        assert alert.type == "goal"
        assert alert.severity is AlertSeverity.HIGH
        assert "GOAL!" in alert.message
        assert "Arsenal vs Chelsea" in alert.message
        assert "Saka (Arsenal)" in alert.message
        assert "2-1" in alert.message
        assert alert.data["team_name"] == "Arsenal"

    def test_unknown_values_are_left_out(self):
        alert = GoalAlertRule()(make_event(minute=None))
        assert "None" not in alert.message
        assert alert.data["player"] is None

    def test_disabled_rule_is_silent(self):
        assert YellowCardAlertRule(enabled=False)(make_event(EventType.YELLOW_CARD)) is None
        assert YellowCardAlertRule()(make_event(EventType.YELLOW_CARD)).severity is AlertSeverity.MEDIUM


class TestRuleEngine:
    @pytest.mark.asyncio
    async def test_rules_run_in_registration_order(self):
        engine = RuleEngine()
        engine.add_rule("first", lambda e: {"type": "a"})
        engine.add_rule("second", lambda e: [{"type": "b"}, {"type": "c"}])
        alerts = await engine.evaluate(make_event())
        assert [a.type for a in alerts] == ["a", "b", "c"]
        assert [a.rule for a in alerts] == ["first", "second", "second"]
        assert all(a.match_id == "m1" for a in alerts)

    @pytest.mark.asyncio
    async def test_failing_rule_is_isolated(self):
        errors = []
        engine = RuleEngine(on_rule_error=errors.append)

        def broken(event):
            raise RuntimeError("boom")

        engine.add_rule("broken", broken)
        engine.add_rule("goal", GoalAlertRule())
        for _ in range(2):
            alerts = await engine.evaluate(make_event())
            assert [a.type for a in alerts] == ["goal"]
        assert engine.errors == {"broken": 2}
        assert errors == ["broken", "broken"]

    @pytest.mark.asyncio
    async def test_replace_keeps_position_and_last_wins(self):
        engine = RuleEngine()
        engine.add_rule("a", lambda e: {"type": "a1"})
        engine.add_rule("b", lambda e: {"type": "b"})
        engine.add_rule("a", lambda e: {"type": "a2"})
        assert engine.rule_names == ["a", "b"]
        alerts = await engine.evaluate(make_event())
        assert [a.type for a in alerts] == ["a2", "b"]

    @pytest.mark.asyncio
    async def test_remove_rule(self):
        engine = RuleEngine([("a", lambda e: {"type": "a"})])
        assert engine.remove_rule("a") is True
        assert engine.remove_rule("a") is False
        assert await engine.evaluate(make_event()) == []

    @pytest.mark.asyncio
    async def test_async_rules_and_bad_return_values(self):
        async def async_rule(event):
            return {"type": "async", "severity": "high", "message": "hi", "extra": 1}

        engine = RuleEngine()
        engine.add_rule("async", async_rule)
        engine.add_rule("bad", lambda e: 42)
        alerts = await engine.evaluate(make_event())
        assert len(alerts) == 1
        assert alerts[0].severity is AlertSeverity.HIGH
        assert alerts[0].data["extra"] == 1
        assert engine.errors == {"bad": 1}

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            RuleEngine().add_rule("x", "not callable")


class TestDefaultRules:
    def test_default_order_and_toggles(self):
        settings = Settings(enable_yellow_cards=False)
        rules = dict(default_rules(settings))
        names = [name for name, _ in default_rules(settings)]
        assert names[:3] == ["goal_alert", "red_card_alert", "yellow_card_alert"]
        assert "hat_trick" in names and "card_storm" in names
        assert rules["yellow_card_alert"].enabled is False
        assert rules["goal_alert"].enabled is True

    @pytest.mark.asyncio
    async def test_early_goal_produces_incident_then_pattern(self):
        engine = RuleEngine(default_rules())
        alerts = await engine.evaluate(make_event(minute=5, score="1-0"))
        assert [a.type for a in alerts] == ["goal", "early_goal"]
