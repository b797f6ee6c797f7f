"""
SofaScore live feed: normalizer and connector.

SofaScore pushes two shapes: tagged ``incident`` frames (goals, cards,
period markers) and untagged event broadcasts carrying the current score,
status and card counts. Broadcasts are diffed against per-match memory to
infer goals, cards and period changes.
"""

import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from matchpulse.ingestion.connector import Connector
from matchpulse.ingestion.normalizer import (
    CardSlot,
    MatchState,
    Normalizer,
    derive_minute,
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

# SofaScore status codes
STATUS_NOT_STARTED = 0
STATUS_FIRST_HALF = 6
STATUS_SECOND_HALF = 7
STATUS_HALFTIME = 31
STATUS_ENDED = 100

_PERIOD_BY_STATUS = {
    STATUS_FIRST_HALF: 1,
    STATUS_SECOND_HALF: 2,
}

_PERIOD_BY_NAME = {
    "period1": 1,
    "period2": 2,
}


class SofaScoreNormalizer(Normalizer):
    """Translate SofaScore incidents and event broadcasts."""

    source = "sofascore"
    event_types = {
        "goal": EventType.GOAL,
        "redCard": EventType.RED_CARD,
        "yellowCard": EventType.YELLOW_CARD,
        "period": EventType.PERIOD_CHANGE,
        "matchStart": EventType.MATCH_START,
        "matchEnd": EventType.MATCH_END,
    }
    card_classes = {
        "yellow": EventType.YELLOW_CARD,
        "red": EventType.RED_CARD,
        "yellowRed": EventType.RED_CARD,
    }

    def translate(self, message: Any, received_at: datetime) -> Optional[Event]:
        if not isinstance(message, dict):
            return None

        if message.get("type") == "incident" and isinstance(message.get("data"), dict):
            return self.translate_incident(message["data"], received_at)

        data = message.get("data")
        if isinstance(data, dict) and isinstance(data.get("event"), dict):
            return self.translate_broadcast(data["event"], received_at)

        return None

    def incident_type(self, incident: Dict[str, Any]) -> EventType:
        kind = incident.get("incidentType")
        if kind == "card":
            return self.card_classes.get(incident.get("incidentClass"), EventType.UNKNOWN)
        if kind == "period":
            text = str(incident.get("text") or "").upper()
            if text == "FT":
                return EventType.MATCH_END
            return EventType.PERIOD_CHANGE
        return self.map_event_type(kind)

    def translate_incident(self, incident: Dict[str, Any], received_at: datetime) -> Event:
        match_id = str_or_none(incident.get("eventId", incident.get("id")))
        event_type = self.incident_type(incident)
        minute, added_time = parse_minute(incident.get("time"))
        if incident.get("addedTime") is not None:
            added_time = int_or_none(incident.get("addedTime"))
        team = TeamSide.coerce(incident.get("isHome"))
        player = name_of(incident.get("player")) or str_or_none(incident.get("playerName"))
        incident_class = incident.get("incidentClass")

        score = None
        if incident.get("homeScore") is not None and incident.get("awayScore") is not None:
            score = Score.parse({"home": incident.get("homeScore"), "away": incident.get("awayScore")})

        payload = None
        if event_type is EventType.GOAL:
            payload = GoalDetails(
                team=team,
                player=player,
                assist_by=name_of(incident.get("assist1")),
                is_own_goal=(incident_class == "ownGoal") if incident_class else None,
                is_penalty=(incident_class == "penalty") if incident_class else None,
            )
        elif event_type.is_card:
            payload = CardDetails(
                team=team,
                player=player,
                reason=str_or_none(incident.get("reason")),
            )

        # Tagged goals advance the score memory so a later broadcast with the
        # same score is not reported again as an inferred goal.
        if match_id is not None and score is not None:
            self.memory.observe_score(match_id, score)

        return Event(
            source=self.source,
            received_at=received_at,
            event_type=event_type,
            match_id=match_id,
            score=score,
            minute=minute,
            added_time=added_time,
            payload=payload,
            raw=incident,
        )

    def translate_broadcast(self, event: Dict[str, Any], received_at: datetime) -> Optional[Event]:
        match_id = str_or_none(event.get("id"))
        status = event.get("status") if isinstance(event.get("status"), dict) else {}
        status_code = int_or_none(status.get("code"))
        period = _PERIOD_BY_STATUS.get(status_code)
        if period is None:
            period = _PERIOD_BY_NAME.get(str(event.get("lastPeriod") or ""))
        score = self.broadcast_score(event)

        clock = event.get("time")
        explicit_minute = event.get("minute")
        elapsed = None
        if isinstance(clock, dict):
            start = clock.get("currentPeriodStartTimestamp")
            if start is not None:
                elapsed = received_at.timestamp() - float(start)
        elif clock is not None:
            explicit_minute = explicit_minute if explicit_minute is not None else clock
        minute = derive_minute(period, elapsed, explicit_minute)

        tagged = event.get("incidentType") or event.get("type")
        explicit_type = self.map_event_type(tagged) if tagged else None
        if explicit_type is EventType.UNKNOWN:
            explicit_type = None

        if match_id is None:
            if explicit_type is None:
                return None
            scored, cards, status_change = [], [], None
        else:
            state = self.memory.state(match_id)
            before = MatchState(score=state.score, status=state.status, cards=state.cards)
            scored = self.memory.observe_score(match_id, score)
            cards = self.memory.observe_cards(match_id, event.get("cardsCode"))
            status_change = self.status_transition(match_id, status_code, status.get("type"))

        event_type = explicit_type
        payload = None
        inferred = False
        card_slot = None
        if event_type is None and scored:
            event_type, inferred = EventType.GOAL, True
            team = scored[0] if len(scored) == 1 else None
            payload = GoalDetails(team=team)
        if event_type is None and cards:
            reds = [slot for slot in cards if slot[0] is EventType.RED_CARD]
            card_slot = (reds or cards)[0]
            card_type, team = card_slot
            event_type, inferred = card_type, True
            payload = CardDetails(team=team)
        if event_type is None and status_change is not None:
            event_type = status_change
        if event_type is None:
            return None
        if match_id is not None:
            self.defer_unreported(match_id, before, event_type, scored, cards, status_change, card_slot)

        return Event(
            source=self.source,
            received_at=received_at,
            event_type=event_type,
            match_id=match_id,
            home_team=name_of(event.get("homeTeam")),
            away_team=name_of(event.get("awayTeam")),
            score=score,
            minute=minute,
            period=period,
            tournament=name_of(event.get("tournament")),
            payload=payload,
            inferred=inferred,
            raw=event,
        )

    def defer_unreported(
        self,
        match_id: str,
        before: MatchState,
        emitted: EventType,
        scored: List[TeamSide],
        cards: List[CardSlot],
        status_change: Optional[EventType],
        card_slot: Optional[CardSlot],
    ) -> None:
        """
        Roll back the changes ``emitted`` does not report.

        A broadcast yields one event; a card or status change that arrives
        in the same frame as a goal is left in memory as unseen and surfaces
        on the next frame.
        """
        state = self.memory.state(match_id)
        if scored and emitted is not EventType.GOAL:
            state.score = before.score
        if cards and not emitted.is_card:
            state.cards = before.cards
        elif cards and card_slot is not None:
            kept = dict(before.cards)
            kept[card_slot] = state.cards[card_slot]
            state.cards = kept
        if status_change is not None and emitted is not status_change:
            state.status = before.status

    @staticmethod
    def broadcast_score(event: Dict[str, Any]) -> Optional[Score]:
        home, away = event.get("homeScore"), event.get("awayScore")
        if isinstance(home, dict):
            home = home.get("current")
        if isinstance(away, dict):
            away = away.get("current")
        if home is None or away is None:
            return None
        return Score.parse({"home": home, "away": away})

    def status_transition(
        self, match_id: str, code: Optional[int], kind: Optional[str]
    ) -> Optional[EventType]:
        if code is None:
            return None
        previous, changed = self.memory.observe_status(match_id, code)
        if not changed:
            return None
        if kind == "finished" or code == STATUS_ENDED:
            return EventType.MATCH_END
        if previous == STATUS_NOT_STARTED:
            return EventType.MATCH_START
        return EventType.PERIOD_CHANGE


class SofaScoreConnector(Connector):
    """Connector for the SofaScore websocket feed."""

    source = "sofascore"
    normalizer_class = SofaScoreNormalizer

    def __init__(self, *args: Any, match_ids: Iterable[str] = (), **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.match_ids: List[str] = [str(m) for m in match_ids]

    async def subscribe(self) -> None:
        message = {
            "_tid": int(time.time() * 1000),
            "type": "subscribe",
            "data": {
                "uniqueTournamentIds": [],
                "matchIds": list(self.match_ids),
            },
        }
        self.logger.info("Subscribing to SofaScore matches", connector=self.name, match_ids=self.match_ids)
        await self.send(message)

    async def subscribe_to_match(self, match_id: str) -> None:
        match_id = str(match_id)
        if match_id not in self.match_ids:
            self.match_ids.append(match_id)
        if self.connected:
            await self.send({
                "_tid": int(time.time() * 1000),
                "type": "subscribe",
                "data": {"matchIds": [match_id]},
            })
            self.logger.info("Subscribed to SofaScore match", connector=self.name, match_id=match_id)

    async def unsubscribe_from_match(self, match_id: str) -> None:
        match_id = str(match_id)
        if match_id in self.match_ids:
            self.match_ids.remove(match_id)
        if self.connected:
            await self.send({
                "_tid": int(time.time() * 1000),
                "type": "unsubscribe",
                "data": {"matchIds": [match_id]},
            })
            self.logger.info("Unsubscribed from SofaScore match", connector=self.name, match_id=match_id)
