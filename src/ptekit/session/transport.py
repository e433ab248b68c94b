"""Bidirectional message transport for live sessions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import websockets
from websockets import ClientConnection
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException

from ptekit.session.bootstrap import SessionCredential

logger = logging.getLogger("ptekit.session.transport")

GEMINI_LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BiDiGenerateContent"
)


class TransportError(Exception):
    """The stream could not be opened, or closed abnormally."""


class SessionTransport(ABC):
    """A persistent, ordered, bidirectional stream of text frames.

    Frames sent with :meth:`send` are delivered in call order.  Iterating
    :meth:`messages` yields inbound frames in arrival order and stops when
    the peer closes the stream cleanly; an abnormal close raises
    :class:`TransportError`.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def open(self, credential: SessionCredential) -> None:
        """Establish the stream.

        Raises:
            TransportError: If the peer refused the connection.
        """
        ...

    @abstractmethod
    async def send(self, message: str) -> None:
        """Send one frame.

        Raises:
            TransportError: If the stream is closed or the send failed.
        """
        ...

    @abstractmethod
    def messages(self) -> AsyncIterator[str | bytes]:
        """Iterate inbound frames until the stream closes."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the stream.  Safe to call more than once."""
        ...


class WebSocketSessionTransport(SessionTransport):
    """:class:`SessionTransport` over a ``websockets`` client connection.

    The credential's API key is passed as the ``key`` query parameter.

    Args:
        url: WebSocket endpoint (defaults to the Gemini Live endpoint).
        ping_interval: Interval between keepalive pings in seconds.
        ping_timeout: Timeout for pong response in seconds.
        close_timeout: Timeout for close handshake in seconds.
        max_size: Maximum inbound message size in bytes.
    """

    def __init__(
        self,
        url: str = GEMINI_LIVE_URL,
        *,
        ping_interval: float | None = 20.0,
        ping_timeout: float | None = 20.0,
        close_timeout: float = 5.0,
        max_size: int | None = 16 * 1024 * 1024,
    ) -> None:
        self._url = url
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout
        self._max_size = max_size
        self._ws: ClientConnection | None = None

    @property
    def name(self) -> str:
        return f"websocket:{self._url}"

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    def _build_url(self, credential: SessionCredential) -> str:
        key = quote(credential.api_key.get_secret_value(), safe="")
        separator = "&" if "?" in self._url else "?"
        return f"{self._url}{separator}key={key}"

    async def open(self, credential: SessionCredential) -> None:
        connect_kwargs: dict[str, Any] = {
            "uri": self._build_url(credential),
            "ping_interval": self._ping_interval,
            "ping_timeout": self._ping_timeout,
            "close_timeout": self._close_timeout,
            "max_size": self._max_size,
        }
        try:
            self._ws = await websockets.connect(**connect_kwargs)
        except (OSError, WebSocketException, TimeoutError) as exc:
            raise TransportError(f"Could not connect to {self._url}: {exc}") from exc
        logger.info("Connected to %s", self._url)

    async def send(self, message: str) -> None:
        if self._ws is None:
            raise TransportError("WebSocket not connected")
        try:
            await self._ws.send(message)
        except WebSocketException as exc:
            raise TransportError(f"WebSocket send failed: {exc}") from exc

    async def messages(self) -> AsyncIterator[str | bytes]:
        ws = self._ws
        if ws is None:
            raise TransportError("WebSocket not connected")
        try:
            async for raw in ws:
                yield raw
        except ConnectionClosedOK:
            return
        except ConnectionClosedError as exc:
            raise TransportError(f"WebSocket closed abnormally: {exc}") from exc
        logger.debug("WebSocket closed by peer")

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            await ws.close()
        except Exception:
            logger.exception("Error closing WebSocket")
        logger.info("WebSocket session transport closed")
