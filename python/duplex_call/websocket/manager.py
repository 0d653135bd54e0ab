"""
WebSocket Manager.

Owns the call's link to its endpoint:
- The current TransportConnection (a fresh instance per attempt)
- Outbound buffering while the link is down, drained FIFO on open
- Reconnection through a single-flight ReconnectPolicy
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import BufferOverflow, CallError, TransportError
from .buffer import OutboundBuffer
from .connection import ConnectionState, TransportConnection
from .protocol import InboundMessage, Payload
from .reconnect import ReconnectPolicy

logger = logging.getLogger("duplex.websocket")

ConnectionFactory = Callable[..., TransportConnection]


class WebSocketManager:
    """
    Manage the call's WebSocket connection.

    Features:
    - Buffer-instead-of-block sends while the connection is not open
    - Bounded buffer with oldest-payload-drop policy by default
    - Automatic reconnection while the call is live
    """

    def __init__(
        self,
        url: str,
        on_message: Callable[[InboundMessage], Awaitable[None]],
        should_reconnect: Callable[[], bool],
        buffer: Optional[OutboundBuffer] = None,
        policy: Optional[ReconnectPolicy] = None,
        ping_interval: float = 20.0,
        ping_timeout: float = 10.0,
        open_timeout: float = 10.0,
        connection_factory: Optional[ConnectionFactory] = None,
        spawn: Optional[Callable[[str, Awaitable[Any]], asyncio.Task]] = None,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        on_sent: Optional[Callable[[Payload], None]] = None,
        on_error: Optional[Callable[[CallError], None]] = None,
        on_fatal: Optional[Callable[[CallError], None]] = None,
        metrics: Any = None,
        detailed_logging: bool = False,
    ):
        """
        Initialize WebSocket manager.

        Args:
            url: WebSocket endpoint URL
            on_message: Async handler for classified inbound messages
            should_reconnect: Returns True while the owning call is live
            buffer: Outbound buffer (default: 300 payloads, drop oldest)
            policy: Reconnect policy (default: 5s fixed interval)
            ping_interval: WebSocket ping interval
            ping_timeout: WebSocket ping timeout
            open_timeout: Handshake timeout
            connection_factory: Builds TransportConnection instances
            spawn: Named task factory (e.g. TaskRegistry.register)
            on_state_change: Called with every connection state change
            on_sent: Called after each successful send
            on_error: Called with non-fatal, user-visible errors
            on_fatal: Called when the link cannot be recovered
            metrics: MetricsCollector, or None
            detailed_logging: Log every payload at INFO
        """
        if not url or not url.strip():
            raise TransportError("No WebSocket URL configured")
        if not url.startswith(("ws://", "wss://")):
            raise TransportError(f"Not a WebSocket URL: {url}")

        self.url = url
        self.on_message = on_message
        self.should_reconnect = should_reconnect
        self.buffer = buffer if buffer is not None else OutboundBuffer()
        self.policy = policy if policy is not None else ReconnectPolicy()
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.open_timeout = open_timeout
        self.connection_factory = connection_factory or TransportConnection
        self._spawn = spawn
        self._on_state_change = on_state_change
        self._on_sent = on_sent
        self._on_error = on_error
        self._on_fatal = on_fatal
        self.metrics = metrics
        self.detailed_logging = detailed_logging

        self._connection: Optional[TransportConnection] = None
        self._state = ConnectionState.CLOSED
        self._running = False
        self._draining = False
        self._sent_count = 0
        self._connect_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._connection is not None and self._connection.is_open

    @property
    def connection(self) -> Optional[TransportConnection]:
        return self._connection

    @property
    def sent_count(self) -> int:
        """Number of successfully sent payloads."""
        return self._sent_count

    @property
    def dropped_count(self) -> int:
        """Number of payloads dropped due to buffer overflow."""
        return self.buffer.dropped_count

    @property
    def connect_count(self) -> int:
        """Number of connection attempts made."""
        return self._connect_count

    def _task(self, name: str, coro: Awaitable[Any]) -> asyncio.Task:
        if self._spawn is not None:
            return self._spawn(name, coro)
        return asyncio.create_task(coro)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug(f"Connection state: {state.value}")
        if self.metrics:
            self.metrics.ws_state(state.value)
        if self._on_state_change:
            self._on_state_change(state)

    async def start(self) -> None:
        """Start managing the link; the first connect runs in the background."""
        self._running = True
        self._task("connect", self._connect())

    async def _connect(self) -> bool:
        """One connection attempt: a new TransportConnection every time."""
        if not self._running:
            return False

        previous = self._connection
        if previous is not None:
            # A link that failed on send is CLOSED but may still hold its socket and reader
            await previous.close()
            if not self._running:
                return False

        connection = self.connection_factory(
            self.url,
            on_message=self.on_message,
            on_closed=self._handle_closed,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            open_timeout=self.open_timeout,
        )
        self._connection = connection
        self._connect_count += 1
        self._set_state(ConnectionState.CONNECTING)

        try:
            await connection.open()
        except TransportError as e:
            self._handle_closed(connection, e)
            return False

        if connection is not self._connection or not self._running:
            await connection.close()
            return False

        self.policy.reset()
        self._set_state(ConnectionState.OPEN)
        await self._drain()
        return True

    def _handle_closed(
        self, connection: TransportConnection, error: Optional[TransportError]
    ) -> None:
        """React to a lost or refused connection."""
        if connection is not self._connection:
            return  # stale instance

        self._set_state(ConnectionState.CLOSED)
        if error is not None:
            if self.metrics:
                self.metrics.transport_error()
            if self._on_error:
                self._on_error(error)

        if not self._running or not self.should_reconnect():
            logger.info("Call not active, not reconnecting")
            return

        if self.policy.exhausted:
            reason = "disabled" if not self.policy.enabled else "exhausted"
            fatal = TransportError(f"Connection lost and reconnect {reason}: {self.url}")
            logger.error(str(fatal))
            if self._on_fatal:
                self._on_fatal(fatal)
            return

        scheduled = self.policy.schedule(
            self._connect, spawn=lambda coro: self._task("reconnect", coro)
        )
        if scheduled and self.metrics:
            self.metrics.reconnect_scheduled()

    async def send(self, payload: Payload) -> None:
        """
        Send a payload, or buffer it if the link is not ready.

        Payloads already buffered go first, so sends stay in FIFO order.
        Never raises for transport failures.
        """
        if self.is_open and not self._draining and not self.buffer:
            try:
                await self._send_now(payload)
                self._notify_sent(payload)
                return
            except TransportError as e:
                logger.warning(f"Send failed, buffering payload: {e}")
        self._buffer(payload)

    async def _send_now(self, payload: Payload) -> None:
        connection = self._connection
        if connection is None:
            raise TransportError("No connection")
        start = time.monotonic()
        await connection.send(payload)
        self._sent_count += 1
        if self.detailed_logging:
            logger.info(f"Sent payload, length: {len(payload)}")
        if self.metrics:
            self.metrics.payload_sent(time.monotonic() - start)

    def _notify_sent(self, payload: Payload) -> None:
        if self._on_sent:
            self._on_sent(payload)

    def _buffer(self, payload: Payload) -> None:
        dropped = self.buffer.append(payload)
        if self.metrics:
            self.metrics.payload_buffered(len(self.buffer))
        if self.detailed_logging:
            logger.info(f"Connection not ready, buffered payload ({len(self.buffer)} queued)")
        if dropped is not None:
            self._report_drop()

    def _report_drop(self) -> None:
        count = self.buffer.dropped_count
        if self.metrics:
            self.metrics.payload_dropped()
        if count % 100 == 1:
            logger.warning(f"Outbound buffer full, dropped {count} payloads")
            if self._on_error:
                self._on_error(BufferOverflow(
                    f"Outbound buffer full ({self.buffer.maxsize}), dropped {count} payloads"
                ))

    async def _drain(self) -> None:
        """Send buffered payloads oldest first until empty or a send fails."""
        if self._draining or not self.buffer:
            return
        self._draining = True
        drained = 0
        try:
            while self.buffer and self.is_open:
                # Out of the buffer while in flight, so overflow cannot evict it
                payload = self.buffer.popleft()
                try:
                    await self._send_now(payload)
                except TransportError as e:
                    if self.buffer.requeue(payload) is not None:
                        self._report_drop()
                    logger.warning(f"Drain interrupted, {len(self.buffer)} payloads kept: {e}")
                    break
                self._notify_sent(payload)
                drained += 1
        finally:
            self._draining = False
        if drained:
            logger.info(f"Drained {drained} buffered payloads")
        if self.metrics:
            self.metrics.payload_buffered(len(self.buffer))

    async def stop(self) -> None:
        """Cancel reconnects, close the connection and discard the buffer."""
        self._running = False
        self.policy.cancel()

        connection, self._connection = self._connection, None
        if connection is not None:
            self._set_state(ConnectionState.CLOSING)
            await connection.close()

        discarded = self.buffer.clear()
        if self.metrics:
            self.metrics.payload_buffered(0)
        self._set_state(ConnectionState.CLOSED)

        logger.info(
            f"WebSocket manager stopped. Sent: {self._sent_count}, "
            f"Dropped: {self.buffer.dropped_count}, Discarded: {discarded}"
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get manager statistics."""
        return {
            "state": self._state.value,
            "url": self.url,
            "buffered": len(self.buffer),
            "buffer_maxsize": self.buffer.maxsize,
            "sent_count": self._sent_count,
            "dropped_count": self.buffer.dropped_count,
            "connect_attempts": self._connect_count,
            "reconnects_scheduled": self.policy.scheduled_count,
        }
