"""
Playback Router.

Routes classified inbound messages. Audio is played most-recent-wins: a new
clip stops and releases the current one before it starts.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from ..audio import AudioConverter, AudioFormat, AudioPlaybackDevice
from ..config import AudioSettings
from ..errors import DeviceError, ProtocolError
from ..websocket.protocol import AudioPayload, ControlMessage, InboundMessage, Unrecognized

logger = logging.getLogger("duplex.playback")


class PlaybackRouter:
    """Decode inbound audio and drive the playback device."""

    def __init__(
        self,
        device: AudioPlaybackDevice,
        settings: Optional[AudioSettings] = None,
        pcm_format: Optional[AudioFormat] = None,
        output_sample_rate: int = 0,
        on_audio: Optional[Callable[[AudioPayload], None]] = None,
        on_control: Optional[Callable[[ControlMessage], None]] = None,
        spawn: Optional[Callable[[str, Any], asyncio.Task]] = None,
        metrics: Any = None,
    ):
        """
        Args:
            device: Speaker
            settings: Amplification read per clip
            pcm_format: Format assumed for headerless PCM payloads
            output_sample_rate: Resample clips to this rate (0 = keep)
            on_audio: Called for every accepted audio payload
            on_control: Called for control messages
            spawn: Named task factory (e.g. TaskRegistry.register)
            metrics: MetricsCollector, or None
        """
        self.device = device
        self.settings = settings or AudioSettings()
        self.pcm_format = pcm_format or AudioFormat()
        self.output_sample_rate = output_sample_rate
        self.on_audio = on_audio
        self.on_control = on_control
        self._spawn = spawn
        self.metrics = metrics

        self._lock = asyncio.Lock()
        self._current: Optional[asyncio.Task] = None
        self._running = False

        self.played_count = 0
        self.superseded_count = 0

    @property
    def is_playing(self) -> bool:
        return self._current is not None and not self._current.done()

    def start(self) -> None:
        self._running = True

    async def handle(self, message: InboundMessage) -> None:
        """Route one classified inbound message."""
        if isinstance(message, AudioPayload):
            if self.metrics:
                self.metrics.inbound_message("audio")
            await self._submit(message)
        elif isinstance(message, ControlMessage):
            if self.metrics:
                self.metrics.inbound_message("control")
            logger.debug(f"Control message: {message.kind}")
            if self.on_control:
                self.on_control(message)
        elif isinstance(message, Unrecognized):
            if self.metrics:
                self.metrics.inbound_message("unrecognized")
            preview = message.raw[:80] if message.raw else message.raw
            logger.info(f"Ignored inbound message ({message.reason}): {preview!r}")
        else:
            raise TypeError(f"Unhandled inbound message type: {type(message).__name__}")

    async def _submit(self, payload: AudioPayload) -> None:
        async with self._lock:
            if not self._running:
                return
            if self.on_audio:
                self.on_audio(payload)
            if self.is_playing:
                self.superseded_count += 1
                if self.metrics:
                    self.metrics.playback("superseded")
                logger.debug("New audio arrived, superseding current clip")
            await self._cancel_current()
            coro = self._play(payload)
            if self._spawn is not None:
                self._current = self._spawn("playback", coro)
            else:
                self._current = asyncio.create_task(coro)

    async def _play(self, payload: AudioPayload) -> None:
        try:
            clip = AudioConverter.decode(payload.data, payload.encoding, self.pcm_format)
            clip = AudioConverter.resample(clip, self.output_sample_rate)
            clip.samples = AudioConverter.amplify(clip.samples, self.settings.amplification)
        except ProtocolError as e:
            logger.warning(f"Dropped undecodable audio: {e}")
            if self.metrics:
                self.metrics.playback("decode_error")
            return

        try:
            handle = await self.device.play(clip)
        except DeviceError as e:
            logger.error(f"Playback failed: {e}")
            if self.metrics:
                self.metrics.playback("device_error")
            return

        try:
            await self.device.wait_finished(handle)
            if not handle.stopped:
                self.played_count += 1
                if self.metrics:
                    self.metrics.playback("completed")
        finally:
            if not handle.finished.is_set():
                await self.device.stop(handle)
            handle.release()

    async def _cancel_current(self) -> None:
        task, self._current = self._current, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Stop the current clip and refuse further audio."""
        self._running = False
        async with self._lock:
            await self._cancel_current()
