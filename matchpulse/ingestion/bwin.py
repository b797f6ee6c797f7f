"""
Bwin live feed: normalizer and connector.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from matchpulse.ingestion.connector import Connector
from matchpulse.ingestion.normalizer import (
    Normalizer,
    bool_or_none,
    int_or_none,
    name_of,
    parse_minute,
    str_or_none,
)
from matchpulse.models.events import (
    CardDetails,
    Event,
    EventType,
    GoalDetails,
    Score,
    TeamSide,
)

DEFAULT_CHANNELS = ("live.football",)
SUBSCRIBED_EVENTS = ("goal", "card", "match_start", "match_end")


def first_present(message: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among alternative field names."""
    for key in keys:
        value = message.get(key)
        if value is not None and value != "":
            return value
    return None


class BwinNormalizer(Normalizer):
    """Translate Bwin ``event`` frames; everything else is a control frame."""

    source = "bwin"
    event_types = {
        "goal": EventType.GOAL,
        "redCard": EventType.RED_CARD,
        "yellowCard": EventType.YELLOW_CARD,
        "matchStart": EventType.MATCH_START,
        "matchEnd": EventType.MATCH_END,
    }

    def translate(self, message: Any, received_at: datetime) -> Optional[Event]:
        if not isinstance(message, dict) or message.get("type") != "event":
            return None

        event_type = self.map_event_type(first_present(message, "eventType", "event"))
        match_id = str_or_none(first_present(message, "matchId", "gameId"))
        minute, added_time = parse_minute(first_present(message, "minute", "matchTime"))
        score = Score.parse(message.get("score"))
        team = TeamSide.coerce(first_present(message, "team", "scoringTeam"))
        player = name_of(first_present(message, "player", "scorer"))

        payload = None
        if event_type is EventType.GOAL:
            payload = GoalDetails(
                team=team,
                player=player,
                assist_by=name_of(first_present(message, "assist", "assistedBy")),
                is_own_goal=bool_or_none(message.get("isOwnGoal")),
                is_penalty=bool_or_none(message.get("isPenalty")),
            )
        elif event_type.is_card:
            payload = CardDetails(
                team=team,
                player=player,
                reason=str_or_none(message.get("reason")),
            )

        if match_id is not None and score is not None:
            self.memory.observe_score(match_id, score)

        return Event(
            source=self.source,
            received_at=received_at,
            event_type=event_type,
            match_id=match_id,
            home_team=name_of(first_present(message, "homeTeam", "home")),
            away_team=name_of(first_present(message, "awayTeam", "away")),
            score=score,
            minute=minute,
            added_time=added_time,
            period=int_or_none(message.get("period")),
            tournament=name_of(first_present(message, "competition", "league")),
            payload=payload,
            raw=message,
        )


class BwinConnector(Connector):
    """Connector for the Bwin websocket feed."""

    source = "bwin"
    normalizer_class = BwinNormalizer

    def __init__(self, *args: Any, subscriptions: Iterable[str] = (), **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.subscriptions: List[str] = list(subscriptions)

    async def subscribe(self) -> None:
        message = {
            "type": "subscribe",
            "channels": list(self.subscriptions or DEFAULT_CHANNELS),
            "events": list(SUBSCRIBED_EVENTS),
        }
        self.logger.info("Subscribing to Bwin channels", connector=self.name, channels=message["channels"])
        await self.send(message)

    async def subscribe_to_match(self, match_id: str) -> bool:
        sent = await self.send({"type": "subscribe", "matchId": str(match_id)})
        if sent:
            self.logger.info("Subscribed to Bwin match", connector=self.name, match_id=match_id)
        return sent

    async def unsubscribe_from_match(self, match_id: str) -> bool:
        sent = await self.send({"type": "unsubscribe", "matchId": str(match_id)})
        if sent:
            self.logger.info("Unsubscribed from Bwin match", connector=self.name, match_id=match_id)
        return sent
