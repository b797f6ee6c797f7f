import asyncio
from datetime import datetime, timedelta, timezone
import pytest
from matchpulse.models.events import (
    CardDetails,
    Event,
    EventType,
    GoalDetails,
    Score,
    TeamSide,
)

BASE_TIME = datetime(2024, 5, 4, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Datetime clock that ticks one millisecond per call."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now


class RecordingSleep:
    """Backoff sleep that records delays and yields without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


_sequence = {"n": 0}


def make_event(
    event_type=EventType.GOAL,
    match_id="m1",
    source="test",
    minute=10,
    team=TeamSide.HOME,
    player=None,
    score=None,
    received_at=None,
    **kwargs,
) -> Event:
    """Event factory; each call gets a distinct ``received_at`` unless given."""
    if received_at is None:
        _sequence["n"] += 1
        received_at = BASE_TIME + timedelta(seconds=_sequence["n"])
    payload = kwargs.pop("payload", None)
    if payload is None and event_type is EventType.GOAL:
        payload = GoalDetails(team=team, player=player, is_own_goal=kwargs.pop("is_own_goal", None))
    elif payload is None and event_type in (EventType.RED_CARD, EventType.YELLOW_CARD):
        payload = CardDetails(team=team, player=player)
    if isinstance(score, str):
        score = Score.parse(score)
    return Event(
        source=source,
        received_at=received_at,
        event_type=event_type,
        match_id=match_id,
        minute=minute,
        score=score,
        payload=payload,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()
