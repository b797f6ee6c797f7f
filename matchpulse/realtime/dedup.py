"""
Time-bounded deduplication of normalized events.
"""

import asyncio
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional
from matchpulse.core.logging import get_logger
from matchpulse.models.events import Event

logger = get_logger(__name__)


class DedupGate:
    """
    Suppress events whose fingerprint was admitted within the last ``ttl`` seconds.

    Check-and-insert happens under one lock, so two identical events racing
    through the gate admit exactly one. Entries expire lazily: each admitted
    fingerprint schedules its own removal on the running loop, and lookups
    also compare against the stored expiry time so an entry is never honoured
    past its TTL even if the timer has not fired yet.

    Args:
        ttl: Seconds a fingerprint suppresses repeats
        clock: Monotonic clock used for expiry
    """

    def __init__(self, ttl: float = 5.0, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._expiry: Dict[Hashable, float] = {}
        self._timers: Dict[Hashable, asyncio.TimerHandle] = {}
        self.admitted = 0
        self.suppressed = 0

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._expiry)

    def admit(self, event: Event) -> bool:
        """Return ``True`` if the event is new, ``False`` if it is a duplicate."""
        key = event.fingerprint
        now = self._clock()

        with self._lock:
            expires_at = self._expiry.get(key)
            if expires_at is not None and expires_at > now:
                self.suppressed += 1
                logger.debug("Duplicate event suppressed", match_id=event.match_id, source=event.source)
                return False

            self._expiry[key] = now + self.ttl
            self.admitted += 1
            self._schedule_removal(key)
            return True

    def clear(self) -> None:
        """Forget every fingerprint."""
        with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            self._expiry.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self),
            "ttl": self.ttl,
            "admitted": self.admitted,
            "suppressed": self.suppressed,
        }

    def _schedule_removal(self, key: Hashable) -> None:
        loop = _running_loop()
        if loop is None:
            return
        previous = self._timers.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._timers[key] = loop.call_later(self.ttl, self._expire, key)

    def _expire(self, key: Hashable) -> None:
        with self._lock:
            self._timers.pop(key, None)
            expires_at = self._expiry.get(key)
            if expires_at is None:
                return
            remaining = expires_at - self._clock()
            if remaining <= 0:
                del self._expiry[key]
            elif self._clock is time.monotonic:
                # Timer fired a little early
                self._timers[key] = asyncio.get_running_loop().call_later(remaining, self._expire, key)

    def _purge_expired(self, now: float) -> None:
        stale = [key for key, expires_at in self._expiry.items() if expires_at <= now]
        for key in stale:
            del self._expiry[key]
            handle = self._timers.pop(key, None)
            if handle is not None:
                handle.cancel()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
