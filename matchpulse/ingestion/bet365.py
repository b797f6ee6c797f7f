"""
Bet365 live feed: normalizer and connector.

Bet365 mixes occasional JSON frames with its ZAP text protocol. ZAP updates
often carry only a new score (``SC``) without an event tag, so goals are
also inferred from score changes.
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union
from matchpulse.core.exceptions import MalformedMessageError
from matchpulse.ingestion.bwin import first_present
from matchpulse.ingestion.connector import Connector
from matchpulse.ingestion.normalizer import (
    Normalizer,
    bool_or_none,
    derive_minute,
    int_or_none,
    name_of,
    parse_minute,
    str_or_none,
)
from matchpulse.ingestion.zap import ZapMessage, ZapParser
from matchpulse.models.events import (
    CardDetails,
    Event,
    EventType,
    GoalDetails,
    Score,
    TeamSide,
)

_CLOCK_PATTERN = re.compile(r"^\s*(\d+):(\d{1,2})\s*$")
_PERIOD_PATTERN = re.compile(r"(\d)")
_FIXTURE_SEPARATOR = re.compile(r"\s+(?:v|vs|-)\s+", re.IGNORECASE)


def parse_clock(value: Any) -> Optional[float]:
    """Seconds elapsed in the period from ``"23:41"`` or a plain seconds count."""
    if value is None or value is True:
        return None
    match = _CLOCK_PATTERN.match(str(value))
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))
    seconds = int_or_none(value)
    return float(seconds) if seconds is not None and seconds >= 0 else None


def parse_period(value: Any) -> Optional[int]:
    if value is None or value is True:
        return None
    match = _PERIOD_PATTERN.search(str(value))
    return int(match.group(1)) if match else None


def split_fixture(name: Any) -> Tuple[Optional[str], Optional[str]]:
    """Split ``"Arsenal v Chelsea"`` into team names."""
    text = str_or_none(name)
    if text is None:
        return None, None
    parts = _FIXTURE_SEPARATOR.split(text, maxsplit=1)
    if len(parts) != 2:
        return None, None
    return str_or_none(parts[0]), str_or_none(parts[1])


class Bet365Normalizer(Normalizer):
    """Translate Bet365 JSON frames and ZAP updates."""

    source = "bet365"
    event_types = {
        "goal": EventType.GOAL,
        "red-card": EventType.RED_CARD,
        "yellow-card": EventType.YELLOW_CARD,
        "redCard": EventType.RED_CARD,
        "yellowCard": EventType.YELLOW_CARD,
    }

    def decode(self, raw: Union[str, bytes, Dict[str, Any]]) -> Any:
        if isinstance(raw, (dict, list)):
            return raw
        text = self.to_text(raw)
        if text.lstrip().startswith(("{", "[")):
            return super().decode(text)

        message = ZapParser.parse(text)
        if message.kind == "malformed":
            raise MalformedMessageError(f"ZAP frame without data block on topic {message.topic}")
        return message

    def translate(self, message: Any, received_at: datetime) -> Optional[Event]:
        if isinstance(message, ZapMessage):
            return self.translate_zap(message, received_at)
        if isinstance(message, dict):
            return self.translate_json(message, received_at)
        return None

    def translate_json(self, message: Dict[str, Any], received_at: datetime) -> Optional[Event]:
        tag = first_present(message, "type", "eventType")
        if tag is None:
            return None
        event_type = self.map_event_type(tag)
        match_id = str_or_none(first_present(message, "matchId", "id", "gameId"))
        minute, added_time = parse_minute(first_present(message, "minute", "time"))
        score = Score.parse(message.get("score"))
        team = TeamSide.coerce(first_present(message, "team", "scoringTeam"))
        player = name_of(first_present(message, "player", "scorer"))

        payload = None
        if event_type is EventType.GOAL:
            payload = GoalDetails(
                team=team,
                player=player,
                assist_by=name_of(message.get("assist")),
                is_own_goal=bool_or_none(message.get("isOwnGoal")),
                is_penalty=bool_or_none(message.get("isPenalty")),
            )
        elif event_type.is_card:
            payload = CardDetails(team=team, player=player, reason=str_or_none(message.get("reason")))

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
            payload=payload,
            raw=message,
        )

    def translate_zap(self, message: ZapMessage, received_at: datetime) -> Optional[Event]:
        if not ZapParser.is_match_event(message):
            return None

        fields = ZapParser.extract_match_data(message) or {}
        match_id = str_or_none(fields.get("match_id")) or str_or_none(message.topic)
        if match_id is None:
            return None

        score = Score.parse(fields.get("score"))
        period = parse_period(fields.get("period"))
        minute = derive_minute(period, parse_clock(fields.get("time")), fields.get("minute"))
        home_team, away_team = split_fixture(fields.get("name"))

        tagged = fields.get("event")
        previous = self.memory.state(match_id).score if match_id in self.memory else None
        scored = self.memory.observe_score(match_id, score)

        payload = None
        inferred = False
        if tagged is not None:
            event_type = EventType(tagged)
            team = TeamSide.coerce(fields.get("team"))
            player = str_or_none(fields.get("player"))
            if event_type is EventType.GOAL:
                payload = GoalDetails(team=team, player=player)
            else:
                payload = CardDetails(team=team, player=player)
                if scored:
                    # The goal in this frame is reported on the next one
                    self.memory.state(match_id).score = previous
        elif scored:
            event_type, inferred = EventType.GOAL, True
            payload = GoalDetails(team=scored[0] if len(scored) == 1 else None)
        else:
            return None

        return Event(
            source=self.source,
            received_at=received_at,
            event_type=event_type,
            match_id=match_id,
            home_team=home_team,
            away_team=away_team,
            score=score,
            minute=minute,
            period=period,
            payload=payload,
            inferred=inferred,
            raw=message.raw,
        )


class Bet365Connector(Connector):
    """
    Connector for the Bet365 feed.

    The feed pushes data as soon as the socket is open, so there is no
    subscription handshake. A valid session usually has to come from a
    browser; wrap it in a ``PreAuthenticatedSession`` in that case.
    """

    source = "bet365"
    normalizer_class = Bet365Normalizer
    default_headers = {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:145.0) Gecko/20100101 Firefox/145.0",
        "Origin": "https://www.bet365.com",
        "Accept-Language": "en-GB,en;q=0.5",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }
    protocols = ("zap-protocol-v1",)
    compress = True

    async def subscribe(self) -> None:
        self.logger.info("Connected to Bet365 feed, awaiting data", connector=self.name)
