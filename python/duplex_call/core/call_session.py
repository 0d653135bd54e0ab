"""
Call Session.

Owns one call: the microphone and speaker, the WebSocket link, the
recording loop and the playback router. start()/stop() are serialized by a
lock; `state` is the only record of whether a call is running.
"""

import asyncio
import dataclasses
import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional

from ..audio import AudioCaptureDevice, AudioFormat, AudioPlaybackDevice
from ..config import AudioSettings, CallConfig, get_config
from ..errors import AlreadyActive, CallError, PermissionDenied
from ..metrics import get_metrics
from ..websocket import (
    AudioPayload,
    ConnectionState,
    ControlMessage,
    OutboundBuffer,
    ReconnectPolicy,
    WebSocketManager,
    create_encoder,
)
from ..websocket.manager import ConnectionFactory
from ..websocket.protocol import Payload
from .playback import PlaybackRouter
from .recording import RecordingLoop
from .state import CallStatus, SessionState
from .task_registry import TaskRegistry

logger = logging.getLogger("duplex.session")

StatusListener = Callable[[CallStatus], None]


class CallSession:
    """Duplex audio call against one WebSocket endpoint."""

    def __init__(
        self,
        capture_device: AudioCaptureDevice,
        playback_device: AudioPlaybackDevice,
        config: Optional[CallConfig] = None,
        settings: Optional[AudioSettings] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        metrics: Any = None,
    ):
        self.capture_device = capture_device
        self.playback_device = playback_device
        self.config = config or get_config()
        self.settings = settings or AudioSettings()
        self.connection_factory = connection_factory
        self.metrics = metrics if metrics is not None else get_metrics()

        self._lock = asyncio.Lock()
        self._state = SessionState.IDLE
        self._status = CallStatus()
        self._listeners: List[StatusListener] = []

        self._tasks: Optional[TaskRegistry] = None
        self._manager: Optional[WebSocketManager] = None
        self._router: Optional[PlaybackRouter] = None
        self._recording: Optional[RecordingLoop] = None
        self._failure_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None

    # -- observation ---------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == SessionState.ACTIVE

    @property
    def status(self) -> CallStatus:
        return self._status

    @property
    def manager(self) -> Optional[WebSocketManager]:
        return self._manager

    @property
    def router(self) -> Optional[PlaybackRouter]:
        return self._router

    @property
    def recording(self) -> Optional[RecordingLoop]:
        return self._recording

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback receiving a CallStatus snapshot on every change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, **changes: Any) -> None:
        status = dataclasses.replace(self._status, **changes)
        if status == self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}", exc_info=True)

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        logger.debug(f"Session state: {state.value}")
        self._publish(session_state=state)

    def _is_live(self) -> bool:
        return self._state in (SessionState.STARTING, SessionState.ACTIVE)

    # -- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        """
        Start a call.

        Raises:
            AlreadyActive: if a call is running, or a device is held by another session
            PermissionDenied: if microphone access is refused
            DeviceError: if the audio hardware cannot be configured
            TransportError: if the endpoint URL is unusable
        """
        async with self._lock:
            if self._state != SessionState.IDLE:
                raise AlreadyActive(f"Call is {self._state.value}")

            logger.info("=" * 60)
            logger.info(f"Starting call: {self.config.ws_url}")
            logger.info("=" * 60)

            self._set_state(SessionState.STARTING)
            self._publish(
                connection_state=ConnectionState.CLOSED,
                buffered=0,
                dropped=0,
            )
            self._tasks = TaskRegistry()

            try:
                await self._acquire_audio()
                self._build_components()
                if self.config.metrics_port > 0:
                    self.metrics.port = self.config.metrics_port
                    self.metrics.start()
                await self._manager.start()
                self._router.start()
                self._set_state(SessionState.ACTIVE)
                self._tasks.register("recording", self._recording.run())
            except Exception as e:
                logger.error(f"Failed to start call: {e}")
                await self._teardown()
                self._publish(last_error=str(e))
                self._set_state(SessionState.IDLE)
                raise

            self._started_at = time.monotonic()
            self.metrics.call_started()
            logger.info("Call started")

    async def _acquire_audio(self) -> None:
        self.capture_device.acquire(self)
        self.playback_device.acquire(self)

        if not await self.capture_device.request_permission():
            raise PermissionDenied("Audio recording permission not granted")

        fmt = AudioFormat(
            sample_rate=self.config.sample_rate,
            channels=self.config.channels,
            encoding="pcm16",
            sample_width=self.config.sample_width,
        )
        await self.capture_device.configure(fmt)
        await self.playback_device.configure(fmt)

    def _build_components(self) -> None:
        config = self.config
        tasks = self._tasks

        self._manager = WebSocketManager(
            url=config.ws_url,
            on_message=self._on_message,
            should_reconnect=self._is_live,
            buffer=OutboundBuffer(config.buffer_maxsize, config.buffer_overflow_policy),
            policy=ReconnectPolicy(
                interval=config.reconnect_interval,
                enabled=config.reconnect_enabled,
                max_attempts=config.reconnect_limit,
            ),
            ping_interval=config.ping_interval,
            ping_timeout=config.ping_timeout,
            open_timeout=config.open_timeout,
            connection_factory=self.connection_factory,
            spawn=tasks.register,
            on_state_change=self._on_connection_state,
            on_sent=self._on_sent,
            on_error=self._on_link_error,
            on_fatal=self._on_fatal,
            metrics=self.metrics,
            detailed_logging=config.debug,
        )
        self._router = PlaybackRouter(
            device=self.playback_device,
            settings=self.settings,
            pcm_format=AudioFormat(sample_rate=config.sample_rate, channels=config.channels),
            output_sample_rate=config.playback_sample_rate,
            on_audio=self._on_audio,
            on_control=self._on_control,
            spawn=tasks.register,
            metrics=self.metrics,
        )
        self._recording = RecordingLoop(
            device=self.capture_device,
            encoder=create_encoder(config.payload_encoding),
            send=self._send,
            is_active=self._is_live,
            settings=self.settings,
            segment_duration=config.segment_duration,
            max_attempts=config.segment_max_attempts,
            retry_delay=config.segment_retry_delay,
            on_fatal=self._on_fatal,
            metrics=self.metrics,
        )

    async def stop(self) -> None:
        """End the call. A no-op when no call is running."""
        async with self._lock:
            if self._state in (SessionState.IDLE, SessionState.STOPPING):
                return
            await self._shutdown("completed")

    async def _shutdown(self, outcome: str) -> None:
        logger.info("Ending call...")
        self._set_state(SessionState.STOPPING)
        await self._teardown()
        self._set_state(SessionState.IDLE)

        if self._started_at is not None:
            self.metrics.call_ended(time.monotonic() - self._started_at, status=outcome)
            self._started_at = None
        logger.info("Call ended")

    async def _teardown(self) -> None:
        """Release everything the call holds; safe on partially started calls."""
        tasks = self._tasks

        if tasks is not None:
            await tasks.cancel_task("recording")
        if self._manager is not None:
            await self._manager.stop()
        if self._router is not None:
            await self._router.stop()
        if tasks is not None:
            await tasks.shutdown()

        self.capture_device.release(self)
        self.playback_device.release(self)

        self._manager = None
        self._router = None
        self._recording = None
        self._tasks = None
        self._publish(connection_state=ConnectionState.CLOSED, buffered=0)

    # -- component callbacks -------------------------------------------

    async def _send(self, payload: Payload) -> None:
        manager = self._manager
        if manager is None:
            return
        await manager.send(payload)
        self._publish(buffered=len(manager.buffer), dropped=manager.dropped_count)

    async def _on_message(self, message: Any) -> None:
        router = self._router
        if router is not None:
            await router.handle(message)

    def _on_connection_state(self, state: ConnectionState) -> None:
        changes: dict = {"connection_state": state}
        if self._manager is not None:
            changes["buffered"] = len(self._manager.buffer)
        self._publish(**changes)

    def _on_sent(self, payload: Payload) -> None:
        changes: dict = {"last_sent_at": datetime.utcnow()}
        if self._manager is not None:
            changes["buffered"] = len(self._manager.buffer)
        self._publish(**changes)

    def _on_audio(self, payload: AudioPayload) -> None:
        changes: dict = {"last_received_at": datetime.utcnow()}
        if payload.transcript:
            changes["last_transcript"] = payload.transcript
        self._publish(**changes)

    def _on_control(self, message: ControlMessage) -> None:
        transcript = message.data.get("transcription")
        if isinstance(transcript, dict):
            transcript = transcript.get("text")
        changes: dict = {"last_received_at": datetime.utcnow()}
        if transcript:
            changes["last_transcript"] = str(transcript)
        self._publish(**changes)

    def _on_link_error(self, error: CallError) -> None:
        """Recoverable link problems: logged by the manager, counted here."""
        manager = self._manager
        if manager is not None:
            self._publish(buffered=len(manager.buffer), dropped=manager.dropped_count)

    def _on_fatal(self, error: CallError) -> None:
        """An unrecoverable failure: surface it and end the call."""
        logger.error(f"Call failed: {error}")
        self._publish(last_error=str(error))
        if self._failure_task is None or self._failure_task.done():
            self._failure_task = asyncio.create_task(self._stop_after_failure())

    async def _stop_after_failure(self) -> None:
        async with self._lock:
            if self._state in (SessionState.IDLE, SessionState.STOPPING):
                return
            await self._shutdown("failed")
