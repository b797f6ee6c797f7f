import json
import pytest
from matchpulse.ingestion.bet365 import Bet365Normalizer, parse_clock, split_fixture
from matchpulse.ingestion.bwin import BwinNormalizer
from matchpulse.ingestion.normalizer import MatchMemory, derive_minute, parse_cards_code, parse_minute
from matchpulse.ingestion.sofascore import SofaScoreNormalizer
from matchpulse.models.events import EventType, Score, TeamSide, validate_event
from conftest import FakeWallClock


def broadcast(match_id=1, home=0, away=0, status_code=6, status_type="inprogress", **extra):
    event = {
        "id": match_id,
        "homeTeam": {"name": "Arsenal"},
        "awayTeam": {"name": "Chelsea"},
        "homeScore": {"current": home},
        "awayScore": {"current": away},
        "status": {"code": status_code, "type": status_type},
        "tournament": {"name": "Premier League"},
    }
    event.update(extra)
    return json.dumps({"data": {"event": event}})


class TestHelpers:
    def test_parse_minute_variants(self):
        assert parse_minute(67) == (67, None)
        assert parse_minute("67'") == (67, None)
        assert parse_minute("45+2") == (45, 2)
        assert parse_minute("abc") == (None, None)
        assert parse_minute(None) == (None, None)

    def test_derive_minute_first_half_clamped(self):
        assert derive_minute(1, 10 * 60) == 10
        assert derive_minute(1, 52 * 60) == 45
        assert derive_minute(1, -30) == 0

    def test_derive_minute_second_half(self):
        assert derive_minute(2, 20 * 60) == 65
        assert derive_minute(2, 60 * 60) == 90

    def test_explicit_minute_beats_derived(self):
        assert derive_minute(2, 60 * 60, explicit=93) == 93
        assert derive_minute(1, 5 * 60, explicit="12'") == 12

    def test_unknown_period_without_explicit(self):
        assert derive_minute(None, 600) is None
        assert derive_minute(3, 600) is None

    def test_parse_cards_code(self):
        assert parse_cards_code("10") == {
            (EventType.RED_CARD, TeamSide.HOME): 1,
            (EventType.RED_CARD, TeamSide.AWAY): 0,
        }
        long_code = parse_cards_code("2301")
        assert long_code[(EventType.YELLOW_CARD, TeamSide.HOME)] == 2
        assert long_code[(EventType.YELLOW_CARD, TeamSide.AWAY)] == 3
        assert long_code[(EventType.RED_CARD, TeamSide.AWAY)] == 1
        assert parse_cards_code("123") is None
        assert parse_cards_code("ab") is None


class TestMatchMemory:
    def test_first_observation_initializes_only(self):
        memory = MatchMemory()
        assert memory.observe_score("m1", Score(2, 1)) == []
        assert "m1" in memory

    def test_increase_reports_scoring_side(self):
        memory = MatchMemory()
        memory.observe_score("m1", Score(0, 0))
        assert memory.observe_score("m1", Score(1, 0)) == [TeamSide.HOME]
        assert memory.observe_score("m1", Score(1, 0)) == []
        assert memory.observe_score("m1", Score(1, 1)) == [TeamSide.AWAY]

    def test_downward_correction_is_not_a_goal(self):
        memory = MatchMemory()
        memory.observe_score("m1", Score(2, 0))
        assert memory.observe_score("m1", Score(1, 0)) == []

    def test_forget(self):
        memory = MatchMemory()
        memory.observe_score("m1", Score(0, 0))
        memory.forget("m1")
        assert len(memory) == 0


class TestSofaScoreNormalizer:
    @pytest.fixture
    def normalizer(self):
        return SofaScoreNormalizer(clock=FakeWallClock())

    def test_malformed_frame_returns_none(self, normalizer):
        assert normalizer.normalize("{not json") is None
        assert normalizer.normalize(b"\xff\xfe") is None
        assert normalizer.stats["malformed"] == 2

    def test_control_frame_is_ignored(self, normalizer):
        assert normalizer.normalize(json.dumps({"type": "subscribed"})) is None
        assert normalizer.stats["ignored"] == 1
        assert normalizer.stats["malformed"] == 0

    def test_score_diff_produces_exactly_one_home_goal(self, normalizer):
        assert normalizer.normalize(broadcast(home=0, away=0)) is None
        event = normalizer.normalize(broadcast(home=1, away=0))

        assert event is not None
        assert event.event_type is EventType.GOAL
        assert event.team is TeamSide.HOME
        assert event.inferred is True
        assert event.score == Score(1, 0)
        assert event.home_team == "Arsenal"
        assert event.team_name == "Arsenal"
        assert event.tournament == "Premier League"
        assert normalizer.normalize(broadcast(home=1, away=0)) is None

    def test_first_observation_mid_match_has_no_synthetic_goal(self, normalizer):
        assert normalizer.normalize(broadcast(home=2, away=1)) is None

    def test_cards_code_increase_infers_card(self, normalizer):
        assert normalizer.normalize(broadcast(cardsCode="00")) is None
        event = normalizer.normalize(broadcast(cardsCode="01"))
        assert event.event_type is EventType.RED_CARD
        assert event.team is TeamSide.AWAY
        assert event.inferred is True

    def test_card_in_goal_frame_surfaces_next_frame(self, normalizer):
        assert normalizer.normalize(broadcast(home=0, away=0, cardsCode="00")) is None
        goal = normalizer.normalize(broadcast(home=1, away=0, cardsCode="01"))
        assert goal.event_type is EventType.GOAL
        assert goal.team is TeamSide.HOME

        card = normalizer.normalize(broadcast(home=1, away=0, cardsCode="01"))
        assert card.event_type is EventType.RED_CARD
        assert card.team is TeamSide.AWAY
        assert card.inferred is True
        assert normalizer.normalize(broadcast(home=1, away=0, cardsCode="01")) is None

    def test_status_change_in_goal_frame_surfaces_next_frame(self, normalizer):
        assert normalizer.normalize(broadcast(home=0, away=0, status_code=6)) is None
        goal = normalizer.normalize(broadcast(home=0, away=1, status_code=7))
        assert goal.event_type is EventType.GOAL

        half = normalizer.normalize(broadcast(home=0, away=1, status_code=7))
        assert half.event_type is EventType.PERIOD_CHANGE
        assert half.period == 2

    def test_two_cards_in_one_frame_are_both_reported(self, normalizer):
        assert normalizer.normalize(broadcast(cardsCode="0000")) is None
        first = normalizer.normalize(broadcast(cardsCode="1001"))
        second = normalizer.normalize(broadcast(cardsCode="1001"))
        assert first.event_type is EventType.RED_CARD
        assert second.event_type is EventType.YELLOW_CARD
        assert first.team is not second.team
        assert normalizer.normalize(broadcast(cardsCode="1001")) is None

    def test_first_cards_code_only_initializes(self, normalizer):
        assert normalizer.normalize(broadcast(cardsCode="1100")) is None

    def test_status_transitions(self, normalizer):
        assert normalizer.normalize(broadcast(status_code=0, status_type="notstarted")) is None
        start = normalizer.normalize(broadcast(status_code=6))
        assert start.event_type is EventType.MATCH_START

        half = normalizer.normalize(broadcast(status_code=7))
        assert half.event_type is EventType.PERIOD_CHANGE
        assert half.period == 2

        end = normalizer.normalize(broadcast(status_code=100, status_type="finished"))
        assert end.event_type is EventType.MATCH_END
        assert "1" not in normalizer.memory

    def test_minute_derived_from_period_start(self):
        clock = FakeWallClock()
        normalizer = SofaScoreNormalizer(clock=clock)
        start = clock.now.timestamp()
        normalizer.normalize(broadcast(status_code=7, time={"currentPeriodStartTimestamp": start}))

        clock.now = clock.now.replace(minute=clock.now.minute + 20)
        event = normalizer.normalize(broadcast(home=1, status_code=7, time={"currentPeriodStartTimestamp": start}))
        assert event.minute == 65

    def test_explicit_minute_wins_over_clock(self, normalizer):
        normalizer.normalize(broadcast())
        event = normalizer.normalize(broadcast(home=1, minute=33, time={"currentPeriodStartTimestamp": 0}))
        assert event.minute == 33

    def test_incident_goal(self, normalizer):
        frame = {
            "type": "incident",
            "data": {
                "eventId": 99,
                "incidentType": "goal",
                "incidentClass": "penalty",
                "time": 78,
                "addedTime": None,
                "isHome": False,
                "player": {"name": "Palmer"},
                "assist1": {"name": "Jackson"},
                "homeScore": 1,
                "awayScore": 2,
            },
        }
        event = normalizer.normalize(json.dumps(frame))
        assert event.event_type is EventType.GOAL
        assert event.match_id == "99"
        assert event.minute == 78
        assert event.team is TeamSide.AWAY
        assert event.player == "Palmer"
        assert event.payload.assist_by == "Jackson"
        assert event.payload.is_penalty is True
        assert event.inferred is False
        assert event.home_team is None

    def test_tagged_goal_suppresses_later_score_diff(self, normalizer):
        normalizer.normalize(broadcast(match_id=99, home=0, away=1))
        incident = {
            "type": "incident",
            "data": {"eventId": 99, "incidentType": "goal", "time": 50, "isHome": True,
                     "homeScore": 1, "awayScore": 1},
        }
        assert normalizer.normalize(json.dumps(incident)).event_type is EventType.GOAL
        assert normalizer.normalize(broadcast(match_id=99, home=1, away=1)) is None

    def test_card_incident(self, normalizer):
        frame = {"type": "incident", "data": {"eventId": 5, "incidentType": "card",
                                              "incidentClass": "yellowRed", "time": "45+1"}}
        event = normalizer.normalize(json.dumps(frame))
        assert event.event_type is EventType.RED_CARD
        assert (event.minute, event.added_time) == (45, 1)

    def test_events_are_valid(self, normalizer):
        normalizer.normalize(broadcast())
        event = normalizer.normalize(broadcast(home=1))
        assert validate_event(event) == []


class TestBwinNormalizer:
    @pytest.fixture
    def normalizer(self):
        return BwinNormalizer(clock=FakeWallClock())

    def test_goal_event(self, normalizer):
        frame = {
            "type": "event",
            "eventType": "goal",
            "gameId": 42,
            "home": "Ajax",
            "away": "PSV",
            "score": {"home": 1, "away": 0},
            "matchTime": 12,
            "scoringTeam": "home",
            "scorer": "Brobbey",
            "isPenalty": False,
        }
        event = normalizer.normalize(json.dumps(frame))
        assert event.event_type is EventType.GOAL
        assert event.match_id == "42"
        assert event.minute == 12
        assert event.team_name == "Ajax"
        assert event.player == "Brobbey"
        assert event.payload.is_penalty is False
        assert event.payload.is_own_goal is None

    def test_unknown_type_is_kept_as_unknown(self, normalizer):
        event = normalizer.normalize(json.dumps({"type": "event", "eventType": "corner", "matchId": "1"}))
        assert event.event_type is EventType.UNKNOWN

    def test_non_event_frames_ignored(self, normalizer):
        assert normalizer.normalize(json.dumps({"type": "pong"})) is None
        assert normalizer.stats["ignored"] == 1

    def test_missing_score_stays_absent(self, normalizer):
        event = normalizer.normalize(json.dumps({"type": "event", "eventType": "redCard", "matchId": "1"}))
        assert event.event_type is EventType.RED_CARD
        assert event.score is None
        assert event.home_team is None


class TestBet365Normalizer:
    @pytest.fixture
    def normalizer(self):
        return Bet365Normalizer(clock=FakeWallClock())

    def test_zap_score_update_infers_goal(self, normalizer):
        first = "\x14OV123\x01U|IT=123;NA=Arsenal v Chelsea;SC=0-0;PS=2;MG=50;|"
        second = "\x14OV123\x01U|IT=123;NA=Arsenal v Chelsea;SC=0-1;PS=2;MG=51;|"
        assert normalizer.normalize(first) is None
        event = normalizer.normalize(second)
        assert event.event_type is EventType.GOAL
        assert event.team is TeamSide.AWAY
        assert event.minute == 51
        assert event.home_team == "Arsenal"
        assert event.away_team == "Chelsea"
        assert event.inferred is True

    def test_zap_card_counts_do_not_hide_goal(self, normalizer):
        assert normalizer.normalize("\x14OV1\x01U|IT=m1;SC=0-0;YC=1;|") is None
        event = normalizer.normalize("\x14OV1\x01U|IT=m1;SC=1-0;YC=1;|")
        assert event.event_type is EventType.GOAL
        assert event.team is TeamSide.HOME
        assert event.inferred is True

    def test_zap_goal_behind_tagged_card_is_not_lost(self, normalizer):
        assert normalizer.normalize("\x14OV2\x01U|IT=m2;SC=0-0;|") is None
        card = normalizer.normalize("\x14OV2\x01U|IT=m2;SC=0-1;EV=YC;TM=1;|")
        assert card.event_type is EventType.YELLOW_CARD
        goal = normalizer.normalize("\x14OV2\x01U|IT=m2;SC=0-1;|")
        assert goal.event_type is EventType.GOAL
        assert goal.team is TeamSide.AWAY

    def test_zap_tagged_card(self, normalizer):
        event = normalizer.normalize("\x14OV7\x01U|IT=7;EV=RC;TM=1;PL=Smith;MG=70;|")
        assert event.event_type is EventType.RED_CARD
        assert event.team is TeamSide.HOME
        assert event.player == "Smith"

    def test_zap_minute_derived_from_clock(self, normalizer):
        normalizer.normalize("\x14OV8\x01F|IT=8;SC=0-0;PS=1;TI=10:30;|")
        event = normalizer.normalize("\x14OV8\x01U|IT=8;SC=1-0;PS=1;TI=12:00;|")
        assert event.minute == 12

    def test_time_topic_ignored(self, normalizer):
        assert normalizer.normalize("\x14OVTIME\x01U|TI=10:00;SC=1-0;|") is None
        assert normalizer.stats["ignored"] == 1

    def test_zap_without_data_block_is_malformed(self, normalizer):
        assert normalizer.normalize("\x14OV1\x01Fnothing") is None
        assert normalizer.stats["malformed"] == 1

    def test_json_frame(self, normalizer):
        frame = {"type": "yellow-card", "id": "55", "minute": 30, "team": "away", "player": "Doe"}
        event = normalizer.normalize(json.dumps(frame))
        assert event.event_type is EventType.YELLOW_CARD
        assert event.match_id == "55"
        assert event.team is TeamSide.AWAY

    def test_parse_clock_and_fixture(self):
        assert parse_clock("23:41") == 23 * 60 + 41
        assert parse_clock("95") == 95.0
        assert parse_clock(None) is None
        assert split_fixture("Arsenal v Chelsea") == ("Arsenal", "Chelsea")
        assert split_fixture("Arsenal") == (None, None)
