"""
Stream session boundary.

A session is the transport a connector reads raw frames from. The core only
relies on ``open``/``receive``/``send``/``close``; how the bytes are obtained
(plain websocket, a browser-owned socket, a recording) stays behind it.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union
import aiohttp
from matchpulse.core.exceptions import TransportError
from matchpulse.core.logging import get_logger

logger = get_logger(__name__)

Frame = Union[str, bytes]


class StreamSession(ABC):
    """Abstract network session yielding raw provider frames."""

    @abstractmethod
    async def open(self) -> None:
        """Establish the session. Raises ``TransportError`` on failure."""

    @abstractmethod
    async def receive(self) -> Optional[Frame]:
        """Return the next frame, or ``None`` once the session has closed."""

    @abstractmethod
    async def send(self, payload: Any) -> None:
        """Write a frame; dicts and lists are sent as JSON."""

    @abstractmethod
    async def close(self) -> None:
        """Release the transport. Safe to call more than once."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the session can no longer deliver frames."""


def _encode(payload: Any) -> Frame:
    if isinstance(payload, (str, bytes)):
        return payload
    return json.dumps(payload)


class WebSocketSession(StreamSession):
    """
    WebSocket session over ``aiohttp``.

    Args:
        url: Stream URL (ws:// or wss://)
        headers: Extra handshake headers
        protocols: Websocket subprotocols to offer
        compress: Whether to negotiate permessage-deflate
        handshake_timeout: Seconds allowed for the opening handshake
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        protocols: Iterable[str] = (),
        compress: bool = False,
        handshake_timeout: float = 10.0,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.protocols = tuple(protocols)
        self.compress = compress
        self.handshake_timeout = handshake_timeout
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    async def open(self) -> None:
        self._http = aiohttp.ClientSession(headers=self.headers)
        try:
            self._ws = await asyncio.wait_for(
                self._http.ws_connect(
                    self.url,
                    protocols=self.protocols,
                    compress=15 if self.compress else 0,
                    autoping=True,
                ),
                timeout=self.handshake_timeout,
            )
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            await self.close()
            raise TransportError(f"Failed to connect to {self.url}: {e!r}") from e

    async def receive(self) -> Optional[Frame]:
        if self._ws is None:
            return None

        while True:
            try:
                msg = await self._ws.receive()
            except (aiohttp.ClientError, OSError) as e:
                raise TransportError(f"Read failed on {self.url}: {e!r}") from e

            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                return msg.data
            if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                logger.warning("WebSocket closed by peer", url=self.url, code=self._ws.close_code)
                return None
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"WebSocket error on {self.url}: {self._ws.exception()!r}")

    async def send(self, payload: Any) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError(f"Cannot send on closed session {self.url}")
        frame = _encode(payload)
        try:
            if isinstance(frame, bytes):
                await self._ws.send_bytes(frame)
            else:
                await self._ws.send_str(frame)
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"Write failed on {self.url}: {e!r}") from e

    async def close(self) -> None:
        ws, http = self._ws, self._http
        self._ws = None
        self._http = None
        if ws is not None and not ws.closed:
            await ws.close()
        if http is not None and not http.closed:
            await http.close()

    @property
    def closed(self) -> bool:
        return self._ws is None or self._ws.closed


class PreAuthenticatedSession(StreamSession):
    """
    Session handed in by an external collaborator that already owns the
    transport (for example a browser page with an established socket).

    The collaborator pushes raw frames into ``feed`` and pushes ``None`` when
    its socket goes away. Opening this session never re-establishes the
    transport; it only asks the owner to resubscribe.
    """

    def __init__(
        self,
        feed: "asyncio.Queue[Optional[Frame]]",
        sender: Optional[Callable[[Frame], Awaitable[None]]] = None,
        resubscribe: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.feed = feed
        self.sender = sender
        self.resubscribe = resubscribe
        self._closed = True

    async def open(self) -> None:
        if self.resubscribe is not None:
            try:
                await self.resubscribe()
            except Exception as e:
                raise TransportError(f"Session owner failed to resubscribe: {e!r}") from e
        self._closed = False

    async def receive(self) -> Optional[Frame]:
        if self._closed:
            return None
        frame = await self.feed.get()
        if frame is None:
            self._closed = True
        return frame

    async def send(self, payload: Any) -> None:
        if self._closed:
            raise TransportError("Cannot send on closed session")
        if self.sender is None:
            logger.debug("Session owner does not accept outbound frames")
            return
        await self.sender(_encode(payload))

    async def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


class ReplaySession(StreamSession):
    """Plays back recorded frames, then reports the session as closed."""

    def __init__(self, frames: Iterable[Frame], interval: float = 0.0):
        self.frames: List[Frame] = list(frames)
        self.interval = interval
        self.sent: List[Frame] = []
        self.open_count = 0
        self._position = 0
        self._closed = True

    @classmethod
    def from_file(cls, path: Union[str, Path], interval: float = 0.0) -> "ReplaySession":
        """Load one frame per non-empty line."""
        with open(path, encoding="utf-8") as f:
            frames = [line.rstrip("\n") for line in f if line.strip()]
        return cls(frames, interval=interval)

    async def open(self) -> None:
        self.open_count += 1
        self._closed = False

    async def receive(self) -> Optional[Frame]:
        if self._closed or self._position >= len(self.frames):
            self._closed = True
            return None
        if self.interval:
            await asyncio.sleep(self.interval)
        frame = self.frames[self._position]
        self._position += 1
        return frame

    async def send(self, payload: Any) -> None:
        self.sent.append(_encode(payload))

    async def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed
