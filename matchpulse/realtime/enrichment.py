"""
Enrichment boundary: asynchronous backfill of team names and tournament.

Lookups run in the background; the event that triggered a lookup passes
through unchanged and later events for the same match pick up the result.
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Optional
import aiohttp
from matchpulse.core.logging import LoggerMixin
from matchpulse.ingestion.normalizer import name_of
from matchpulse.models.events import Event

MatchDetails = Dict[str, Optional[str]]
DetailsFetcher = Callable[[str], Awaitable[Optional[MatchDetails]]]


class MatchEnricher(LoggerMixin):
    """
    Cache-backed match details lookup.

    Args:
        fetch_match_details: Coroutine returning ``{home_team, away_team,
            tournament}`` for a match id, or ``None``
        timeout: Seconds allowed for one lookup
        retry_after: Seconds before a failed match is looked up again
        clock: Monotonic clock for the retry delay
    """

    def __init__(
        self,
        fetch_match_details: DetailsFetcher,
        timeout: float = 5.0,
        retry_after: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetch_match_details = fetch_match_details
        self.timeout = timeout
        self.retry_after = retry_after
        self._clock = clock
        self._details: Dict[str, MatchDetails] = {}
        self._failed_at: Dict[str, float] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self.stats = {"lookups": 0, "hits": 0, "failures": 0}

    def details(self, match_id: str) -> Optional[MatchDetails]:
        return self._details.get(match_id)

    def apply(self, event: Event) -> Event:
        """Backfill from cache and schedule a lookup for unseen matches. Never awaits."""
        match_id = event.match_id
        if match_id is None:
            return event

        cached = self._details.get(match_id)
        if cached is not None:
            return event.with_teams(
                home_team=cached.get("home_team"),
                away_team=cached.get("away_team"),
                tournament=cached.get("tournament"),
            )

        if event.home_team and event.away_team:
            return event
        self._schedule(match_id)
        return event

    def forget(self, match_id: str) -> None:
        self._details.pop(match_id, None)
        self._failed_at.pop(match_id, None)

    async def close(self) -> None:
        """Cancel lookups still in flight."""
        pending = list(self._pending.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

        closer = getattr(self.fetch_match_details, "close", None)
        if closer is not None and inspect.iscoroutinefunction(closer):
            await closer()

    def _schedule(self, match_id: str) -> None:
        if match_id in self._pending:
            return
        failed_at = self._failed_at.get(match_id)
        if failed_at is not None and self._clock() - failed_at < self.retry_after:
            return
        task = asyncio.ensure_future(self._lookup(match_id))
        self._pending[match_id] = task
        task.add_done_callback(lambda _: self._pending.pop(match_id, None))

    async def _lookup(self, match_id: str) -> None:
        self.stats["lookups"] += 1
        try:
            details = await asyncio.wait_for(self.fetch_match_details(match_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._record_failure(match_id, "timeout")
            return
        except Exception as e:
            self._record_failure(match_id, str(e))
            return

        if not details:
            self._record_failure(match_id, "no details")
            return

        self.stats["hits"] += 1
        self._failed_at.pop(match_id, None)
        self._details[match_id] = {
            "home_team": details.get("home_team"),
            "away_team": details.get("away_team"),
            "tournament": details.get("tournament"),
        }
        self.logger.debug("Match details cached", match_id=match_id, **self._details[match_id])

    def _record_failure(self, match_id: str, reason: str) -> None:
        self.stats["failures"] += 1
        self._failed_at[match_id] = self._clock()
        self.logger.warning("Match details lookup failed", match_id=match_id, reason=reason)


class SofaScoreDetailsClient(LoggerMixin):
    """
    Fetch match details from the SofaScore REST API.

    Args:
        base_url: API root, e.g. ``https://api.sofascore.com/api/v1``
        timeout: Total request timeout in seconds
        headers: Extra request headers
    """

    def __init__(self, base_url: str, timeout: float = 5.0, headers: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._session: Optional[aiohttp.ClientSession] = None

    async def __call__(self, match_id: str) -> Optional[MatchDetails]:
        return await self.fetch_match_details(match_id)

    async def fetch_match_details(self, match_id: str) -> Optional[MatchDetails]:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

        url = f"{self.base_url}/event/{match_id}"
        async with self._session.get(url) as response:
            if response.status != 200:
                self.logger.warning("Match details request failed", match_id=match_id, status=response.status)
                return None
            payload: Any = await response.json()

        event = payload.get("event") if isinstance(payload, dict) else None
        if not isinstance(event, dict):
            return None
        return {
            "home_team": name_of(event.get("homeTeam")),
            "away_team": name_of(event.get("awayTeam")),
            "tournament": name_of(event.get("tournament")),
        }

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
