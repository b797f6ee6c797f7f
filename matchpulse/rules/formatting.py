"""
Message rendering for alerts.

Unknown values are left out of the rendered text rather than replaced with
a placeholder.
"""

from typing import List, Optional
from matchpulse.models.events import Event, GoalDetails, CardDetails


def fixture_line(event: Event) -> Optional[str]:
    if event.home_team and event.away_team:
        return f"🏟️ {event.home_team} vs {event.away_team}"
    return None


def minute_label(event: Event) -> Optional[str]:
    """``67'`` or ``90' +3``."""
    if event.minute is None:
        return None
    label = f"{event.minute}'"
    if event.added_time:
        label += f" +{event.added_time}"
    return label


def player_label(event: Event) -> Optional[str]:
    if not event.player:
        return None
    if event.team_name:
        return f"{event.player} ({event.team_name})"
    return event.player


def _join(title: str, lines: List[Optional[str]], tournament: Optional[str]) -> str:
    body = [line for line in lines if line]
    text = title + "\n\n" + "\n".join(body) if body else title
    if tournament:
        text += f"\n\n🏆 {tournament}"
    return text


def format_goal(event: Event) -> str:
    details = event.payload if isinstance(event.payload, GoalDetails) else GoalDetails()
    minute = minute_label(event)
    player = player_label(event)
    lines = [
        fixture_line(event),
        f"📊 Score: {event.score}" if event.score else None,
        f"⏱️ {minute}" if minute else None,
        f"⚽ {player}" if player else None,
        f"🎯 Assist: {details.assist_by}" if details.assist_by else None,
        "⚡ PENALTY GOAL" if details.is_penalty else None,
        "😱 OWN GOAL" if details.is_own_goal else None,
    ]
    return _join("⚽ GOAL!", lines, event.tournament)


def format_card(event: Event, title: str) -> str:
    details = event.payload if isinstance(event.payload, CardDetails) else CardDetails()
    minute = minute_label(event)
    player = player_label(event)
    lines = [
        fixture_line(event),
        f"⏱️ {minute}" if minute else None,
        f"👤 {player}" if player else None,
        f"📝 {details.reason}" if details.reason else None,
    ]
    return _join(title, lines, event.tournament)


def format_red_card(event: Event) -> str:
    return format_card(event, "🟥 RED CARD!")


def format_yellow_card(event: Event) -> str:
    return format_card(event, "🟨 YELLOW CARD!")


def format_headline(headline: str, event: Event) -> str:
    """Short pattern alert: headline plus the fixture and minute when known."""
    context = [part for part in (fixture_line(event), minute_label(event)) if part]
    if not context:
        return headline
    return headline + "\n" + " | ".join(context)
