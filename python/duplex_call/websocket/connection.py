"""
Transport Connection.

One WebSocket connection attempt to the call endpoint. Instances are single
use: once closed they stay closed, and reconnecting creates a new one.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import ProtocolError, TransportError
from .protocol import InboundMessage, Payload, classify_inbound

logger = logging.getLogger("duplex.websocket")


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


MessageHandler = Callable[[InboundMessage], Awaitable[None]]
ClosedHandler = Callable[["TransportConnection", Optional[TransportError]], None]


class TransportConnection:
    """
    Single bidirectional message channel to the remote endpoint.

    Received frames are classified and handed to `on_message`. When the
    remote side closes or the link fails, `on_closed` fires once; an
    explicit close() does not fire it.
    """

    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        on_closed: ClosedHandler,
        ping_interval: float = 20.0,
        ping_timeout: float = 10.0,
        open_timeout: float = 10.0,
    ):
        self.url = url
        self.on_message = on_message
        self.on_closed = on_closed
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.open_timeout = open_timeout

        self.state = ConnectionState.CLOSED
        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._used = False
        self.received_count = 0
        self.sent_count = 0

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    async def open(self) -> None:
        """
        Perform the WebSocket handshake and start reading.

        Raises:
            TransportError: if the handshake fails or the instance was used
        """
        if self._used:
            raise TransportError("Connection instances cannot be reopened")
        self._used = True
        self.state = ConnectionState.CONNECTING
        logger.info(f"Connecting to: {self.url}")

        try:
            self._ws = await websockets.connect(
                self.url,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
                open_timeout=self.open_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.state = ConnectionState.CLOSED
            raise TransportError(f"Connection failed: {self.url} - {e}") from e

        if self.state != ConnectionState.CONNECTING:
            # close() was called during the handshake
            await self._ws.close()
            raise TransportError("Connection closed during handshake")

        self.state = ConnectionState.OPEN
        self._reader = asyncio.create_task(self._receive_loop())
        logger.info(f"Connected: {self.url}")

    async def send(self, payload: Payload) -> None:
        """
        Send one message.

        Raises:
            TransportError: if not open or the send fails
        """
        if self.state != ConnectionState.OPEN:
            raise TransportError(f"Cannot send while {self.state.value}")
        try:
            await self._ws.send(payload)
        except (ConnectionClosed, OSError) as e:
            error = TransportError(f"Send failed: {e}")
            self._mark_closed(error)
            raise error from e
        self.sent_count += 1

    async def _receive_loop(self) -> None:
        error: Optional[TransportError] = None
        try:
            async for raw in self._ws:
                self.received_count += 1
                await self._dispatch(raw)
        except ConnectionClosed as e:
            error = TransportError(f"Connection lost: {e}")
        except (OSError, WebSocketException) as e:
            error = TransportError(f"Receive error: {e}")
        self._mark_closed(error)

    async def _dispatch(self, raw: Payload) -> None:
        try:
            message = classify_inbound(raw)
        except ProtocolError as e:
            logger.warning(f"Dropped malformed message: {e}")
            return
        try:
            await self.on_message(message)
        except Exception as e:
            logger.error(f"Message handler error: {e}", exc_info=True)

    def _mark_closed(self, error: Optional[TransportError]) -> None:
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSED
        if error:
            logger.warning(f"Disconnected: {self.url} - {error}")
        else:
            logger.info(f"Disconnected by remote: {self.url}")
        self.on_closed(self, error)

    async def close(self) -> None:
        """Close the connection without notifying on_closed."""
        if self.state == ConnectionState.CLOSING:
            return
        if self.state == ConnectionState.CLOSED and self._ws is None:
            return
        self.state = ConnectionState.CLOSING

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, OSError) as e:
                logger.debug(f"Error while closing {self.url}: {e}")

        self.state = ConnectionState.CLOSED
        logger.info(f"Closed: {self.url}")
