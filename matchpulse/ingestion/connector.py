"""
Connector supervision.

A connector owns one long-lived stream session to one upstream source. It
turns transport failures into a bounded reconnect loop, watches for silently
stalled sessions, and forwards normalized events to the pipeline.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type
from matchpulse.core.exceptions import ConnectorFailedError, SessionStalledError, TransportError
from matchpulse.core.logging import LoggerMixin, bind_log_context
from matchpulse.ingestion.normalizer import Normalizer
from matchpulse.ingestion.session import Frame, StreamSession, WebSocketSession
from matchpulse.models.events import Event

EventSink = Callable[[Event], Awaitable[Any]]
SessionFactory = Callable[[], StreamSession]


class ConnectorState(str, Enum):
    """Connector lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    FAILED = "failed"


@dataclass
class ConnectorOptions:
    """Reconnect and heartbeat policy for one connector."""
    reconnect_delay: float = 3.0
    max_reconnect_attempts: int = 10
    backoff_cap: int = 5
    heartbeat_interval: float = 30.0
    liveness_factor: float = 2.0

    @property
    def liveness_threshold(self) -> float:
        """Seconds of silence after which a session is considered dead."""
        return self.heartbeat_interval * self.liveness_factor

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (1-based)."""
        return self.reconnect_delay * min(max(attempt, 1), self.backoff_cap)


class Connector(LoggerMixin):
    """
    Supervised stream connector.

    Args:
        name: Connector name, unique within a pipeline
        session_factory: Builds a fresh session for every connection attempt
        normalizer: Translates this source's frames into events
        options: Reconnect and heartbeat policy
        clock: Monotonic clock used for liveness checks
        sleep: Coroutine used to wait between reconnect attempts
        on_failed: Called once when the connector gives up
    """

    source = "generic"
    normalizer_class: Optional[Type[Normalizer]] = None
    default_headers: Dict[str, str] = {}
    protocols: Tuple[str, ...] = ()
    compress = False

    def __init__(
        self,
        name: str,
        session_factory: SessionFactory,
        normalizer: Optional[Normalizer] = None,
        options: Optional[ConnectorOptions] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_failed: Optional[Callable[["Connector"], None]] = None,
    ):
        self.name = name
        self.session_factory = session_factory
        if normalizer is None:
            if self.normalizer_class is None:
                raise ValueError(f"{type(self).__name__} needs a normalizer")
            normalizer = self.normalizer_class()
        self.normalizer = normalizer
        self.options = options or ConnectorOptions()
        self.on_failed = on_failed
        self._clock = clock
        self._sleep = sleep

        self.state = ConnectorState.DISCONNECTED
        self.attempts = 0
        self.last_message_at: Optional[float] = None
        self._in_handoff = False
        self.last_error: Optional[str] = None
        self.counters = {
            "messages": 0,
            "events": 0,
            "reconnects": 0,
            "stalls": 0,
            "transport_errors": 0,
        }

        self._session: Optional[StreamSession] = None
        self._sink: Optional[EventSink] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_requested = False

    @classmethod
    def from_url(
        cls,
        url: str,
        name: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        handshake_timeout: float = 10.0,
        **kwargs: Any,
    ) -> "Connector":
        """Build a connector that opens a fresh websocket for every attempt."""
        merged_headers = {**cls.default_headers, **(headers or {})}

        def session_factory() -> StreamSession:
            return WebSocketSession(
                url,
                headers=merged_headers,
                protocols=cls.protocols,
                compress=cls.compress,
                handshake_timeout=handshake_timeout,
            )

        return cls(name or cls.source, session_factory, **kwargs)

    @property
    def connected(self) -> bool:
        return self.state is ConnectorState.CONNECTED

    @property
    def failed(self) -> bool:
        return self.state is ConnectorState.FAILED

    def attach(self, sink: EventSink) -> None:
        """Register the coroutine that receives every normalized event."""
        self._sink = sink

    async def run(self) -> None:
        """
        Supervise the session until stopped or failed.

        Each failure (connect error, read error, stall or peer close) bumps
        the attempt counter; a successful connection resets it. Reaching
        ``max_reconnect_attempts`` moves the connector to ``FAILED``.
        """
        if self.failed:
            raise ConnectorFailedError(f"Connector {self.name} has failed; reset it first")

        self._task = asyncio.current_task()
        bind_log_context(connector=self.name, source=self.source)
        try:
            while not self._stop_requested:
                try:
                    await self.connect()
                    await self._stream()
                    self.last_error = "session closed by peer"
                    self.logger.warning("Stream session ended", connector=self.name)
                except TransportError as e:
                    self.counters["transport_errors"] += 1
                    self.last_error = str(e)
                    self.logger.error(
                        "Transport error",
                        connector=self.name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                except Exception as e:
                    self.last_error = str(e)
                    self.logger.error(
                        "Unexpected connector error",
                        connector=self.name,
                        error=str(e),
                        exc_info=True,
                    )
                finally:
                    await self.disconnect()

                if self._stop_requested:
                    break
                if not self._register_failure():
                    break

                delay = self.options.backoff_delay(self.attempts)
                self.logger.info(
                    "Reconnecting",
                    connector=self.name,
                    attempt=self.attempts,
                    delay_seconds=delay,
                )
                await self._sleep(delay)
                self.counters["reconnects"] += 1
        except asyncio.CancelledError:
            if not self._stop_requested:
                raise
        finally:
            await self.disconnect()
            self._task = None

    async def connect(self) -> None:
        """Open a session, reset the attempt counter and subscribe."""
        self.state = ConnectorState.CONNECTING
        self.logger.info("Connecting", connector=self.name, source=self.source)

        session = self.session_factory()
        self._session = session
        await session.open()

        self.state = ConnectorState.CONNECTED
        self.attempts = 0
        self.last_message_at = self._clock()
        self.logger.info("Connector connected", connector=self.name)
        await self.subscribe()

    async def subscribe(self) -> None:
        """Provider-specific subscription handshake."""
        self.logger.debug("No subscription handshake", connector=self.name)

    async def on_message(self, raw: Frame) -> Optional[Event]:
        """Handle one raw frame; malformed frames are dropped."""
        self.last_message_at = self._clock()
        self.counters["messages"] += 1

        event = self.normalizer.normalize(raw)
        if event is None:
            return None

        self.counters["events"] += 1
        if self._sink is not None:
            # Time spent blocked on a full pipeline is not feed silence
            self._in_handoff = True
            try:
                await self._sink(event)
            except Exception as e:
                self.logger.error(
                    "Event sink rejected event",
                    connector=self.name,
                    match_id=event.match_id,
                    error=str(e),
                )
            finally:
                self._in_handoff = False
                self.last_message_at = self._clock()
        return event

    async def send(self, payload: Any) -> bool:
        """Write to the live session; returns whether the frame was sent."""
        if self._session is None or not self.connected:
            self.logger.warning("Cannot send message: session not open", connector=self.name)
            return False
        await self._session.send(payload)
        return True

    async def disconnect(self) -> None:
        """Release the session. Idempotent."""
        session, self._session = self._session, None
        if session is not None:
            if not self.failed:
                self.state = ConnectorState.CLOSING
            try:
                await session.close()
            except Exception as e:
                self.logger.warning("Error closing session", connector=self.name, error=str(e))
        if not self.failed:
            self.state = ConnectorState.DISCONNECTED

    def stop(self) -> None:
        """Ask the supervision loop to exit; the session is released on the way out."""
        self._stop_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def reset(self) -> None:
        """Clear a ``FAILED`` or stopped state so the connector can be run again."""
        if self.failed:
            self.logger.info("Resetting failed connector", connector=self.name)
        self.state = ConnectorState.DISCONNECTED
        self.attempts = 0
        self.last_error = None
        self._stop_requested = False

    def status(self) -> Dict[str, Any]:
        last_message_age = None
        if self.last_message_at is not None:
            last_message_age = round(self._clock() - self.last_message_at, 3)
        return {
            "source": self.source,
            "state": self.state.value,
            "attempts": self.attempts,
            "last_message_age_seconds": last_message_age,
            "last_error": self.last_error,
            **self.counters,
            "malformed": self.normalizer.stats["malformed"],
            "ignored": self.normalizer.stats["ignored"],
        }

    async def _stream(self) -> None:
        reader = asyncio.ensure_future(self._read_loop())
        watchdog = asyncio.ensure_future(self._watch_heartbeat())
        try:
            done, _ = await asyncio.wait(
                {reader, watchdog}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (reader, watchdog):
                if not task.done():
                    task.cancel()
            await asyncio.gather(reader, watchdog, return_exceptions=True)

        if reader in done:
            reader.result()
        if watchdog in done:
            watchdog.result()

    async def _read_loop(self) -> None:
        while True:
            raw = await self._session.receive()
            if raw is None:
                return
            await self.on_message(raw)

    async def _watch_heartbeat(self) -> None:
        interval = self.options.heartbeat_interval
        threshold = self.options.liveness_threshold
        while True:
            await asyncio.sleep(interval)
            if self._in_handoff:
                continue
            silence = self._clock() - self.last_message_at
            if silence > threshold:
                self.counters["stalls"] += 1
                self.logger.warning(
                    "No messages received, connection may be dead",
                    connector=self.name,
                    silence_seconds=round(silence, 3),
                )
                raise SessionStalledError(
                    f"No messages for {silence:.1f}s on {self.name}", source=self.source
                )

    def _register_failure(self) -> bool:
        self.attempts += 1
        if self.attempts >= self.options.max_reconnect_attempts:
            self.state = ConnectorState.FAILED
            self.logger.error(
                "Max reconnection attempts reached",
                connector=self.name,
                attempts=self.attempts,
            )
            if self.on_failed is not None:
                try:
                    self.on_failed(self)
                except Exception as e:
                    self.logger.error("Failure callback raised", connector=self.name, error=str(e))
            return False
        return True
