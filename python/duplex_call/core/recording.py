"""
Recording Loop.

Captures fixed-length segments back to back and hands each encoded segment
to the transport. The loop checks the session state before every segment;
cancellation mid-capture discards the partial segment.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..audio import AudioCaptureDevice, AudioConverter, AudioSegment
from ..config import AudioSettings
from ..errors import CallError, DeviceError, ProtocolError
from ..websocket.protocol import Payload, PayloadEncoder

logger = logging.getLogger("duplex.recording")


class RecordingLoop:
    """Segmented record-and-transmit loop for one call."""

    def __init__(
        self,
        device: AudioCaptureDevice,
        encoder: PayloadEncoder,
        send: Callable[[Payload], Awaitable[None]],
        is_active: Callable[[], bool],
        settings: Optional[AudioSettings] = None,
        segment_duration: float = 1.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        on_fatal: Optional[Callable[[CallError], None]] = None,
        metrics: Any = None,
    ):
        """
        Args:
            device: Microphone to capture from
            encoder: Wire payload strategy
            send: Transport send (buffers when the link is down)
            is_active: Returns True while the call is live
            settings: Gain settings read per segment
            segment_duration: Seconds per segment
            max_attempts: Capture/encode attempts per segment before giving up
            retry_delay: Seconds between attempts
            on_fatal: Called once when attempts are exhausted
            metrics: MetricsCollector, or None
        """
        self.device = device
        self.encoder = encoder
        self.send = send
        self.is_active = is_active
        self.settings = settings or AudioSettings()
        self.segment_duration = segment_duration
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.on_fatal = on_fatal
        self.metrics = metrics

        self.segment_count = 0
        self.failure_count = 0

    async def run(self) -> None:
        """Loop until the call is no longer active or a segment fails for good."""
        logger.info(f"Recording loop started ({self.segment_duration:.1f}s segments)")
        try:
            while self.is_active():
                payload = await self._next_payload()
                if payload is None:
                    return
                if not self.is_active():
                    logger.debug("Call ended during capture, discarding segment")
                    break
                await self.send(payload)
        finally:
            logger.info(f"Recording loop stopped after {self.segment_count} segments")

    async def _next_payload(self) -> Optional[Payload]:
        """Capture and encode one segment, retrying on device/encode errors."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                segment = await self.device.capture_segment(self.segment_duration)
                payload = self._encode(segment)
            except (DeviceError, ProtocolError) as e:
                self.failure_count += 1
                if self.metrics:
                    self.metrics.capture_failed()
                logger.warning(
                    f"Segment attempt {attempt}/{self.max_attempts} failed: {e}"
                )
                if attempt == self.max_attempts or not self.is_active():
                    break
                await asyncio.sleep(self.retry_delay)
                if not self.is_active():
                    return None
                continue

            self.segment_count += 1
            if self.metrics:
                self.metrics.segment_captured(segment.duration)
            return payload

        if not self.is_active():
            return None
        error = DeviceError(
            f"Recording failed after {self.max_attempts} attempts; restart the call"
        )
        logger.error(str(error))
        if self.on_fatal:
            self.on_fatal(error)
        return None

    def _encode(self, segment: AudioSegment) -> Payload:
        data = AudioConverter.apply_gain(segment.data, self.settings.input_gain)
        if data is not segment.data:
            segment = AudioSegment(data=data, format=segment.format, captured_at=segment.captured_at)
        return self.encoder.encode(AudioConverter.segment_to_wav(segment))
