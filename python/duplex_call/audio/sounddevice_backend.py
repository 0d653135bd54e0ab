"""
PortAudio capture/playback devices via sounddevice.

Stream callbacks run on PortAudio's audio thread and hand results back to
the event loop with call_soon_threadsafe.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, List, Optional

import numpy as np
import sounddevice as sd

from ..errors import DeviceError
from .devices import AudioCaptureDevice, AudioPlaybackDevice, PlaybackHandle
from .segment import AudioClip, AudioFormat, AudioSegment

logger = logging.getLogger("duplex.audio")


def _set_result(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _set_exception(future: asyncio.Future, exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)


class SoundDeviceCapture(AudioCaptureDevice):
    """Microphone backed by a sounddevice InputStream per segment."""

    def __init__(self, device: Optional[Any] = None, timeout_margin: float = 2.0):
        """
        Args:
            device: PortAudio device index or name (None for the default)
            timeout_margin: Seconds allowed beyond the segment duration
                before a silent stream is treated as a device failure
        """
        self.device = device
        self.timeout_margin = timeout_margin
        self._format = AudioFormat()

    async def request_permission(self) -> bool:
        """
        Desktop platforms have no permission dialog; access is granted if
        an input device can be opened with default settings.
        """
        try:
            sd.check_input_settings(device=self.device, channels=1, dtype="int16")
            return True
        except (sd.PortAudioError, ValueError) as e:
            logger.warning(f"Microphone not accessible: {e}")
            return False

    async def configure(self, fmt: AudioFormat) -> None:
        if fmt.encoding != "pcm16":
            raise DeviceError(f"Unsupported capture encoding: {fmt.encoding}")
        try:
            sd.check_input_settings(
                device=self.device,
                channels=fmt.channels,
                dtype="int16",
                samplerate=fmt.sample_rate,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"Input format rejected: {e}") from e
        self._format = fmt
        logger.info(
            f"Capture configured: {fmt.sample_rate}Hz, {fmt.channels}ch, {fmt.encoding}"
        )

    async def capture_segment(self, duration: float) -> AudioSegment:
        fmt = self._format
        target = max(1, int(fmt.sample_rate * duration))
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()
        chunks: List[np.ndarray] = []
        collected = 0

        def callback(indata, frames, time_info, status):
            nonlocal collected
            if status.input_overflow:
                logger.debug("Input overflow while capturing segment")
            chunks.append(indata.copy())
            collected += frames
            if collected >= target:
                loop.call_soon_threadsafe(_set_result, done, None)
                raise sd.CallbackStop

        def finished():
            # No-op when the segment already completed
            loop.call_soon_threadsafe(
                _set_exception, done, DeviceError("Input stream ended before the segment was full")
            )

        captured_at = datetime.utcnow()
        try:
            stream = sd.InputStream(
                device=self.device,
                samplerate=fmt.sample_rate,
                channels=fmt.channels,
                dtype="int16",
                callback=callback,
                finished_callback=finished,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"Failed to open input stream: {e}") from e

        timeout = duration + self.timeout_margin
        try:
            with stream:
                await asyncio.wait_for(done, timeout)
        except asyncio.TimeoutError as e:
            raise DeviceError(f"No audio from input device within {timeout:.1f}s") from e
        except sd.PortAudioError as e:
            raise DeviceError(f"Capture failed: {e}") from e

        data = np.concatenate(chunks)[:target] if chunks else np.zeros((0, fmt.channels), np.int16)
        return AudioSegment(data=data.tobytes(), format=fmt, captured_at=captured_at)


class SoundDevicePlayback(AudioPlaybackDevice):
    """Speaker backed by one OutputStream per clip."""

    def __init__(self, device: Optional[Any] = None):
        self.device = device
        self._streams: dict = {}

    async def configure(self, fmt: AudioFormat) -> None:
        try:
            sd.check_output_settings(
                device=self.device,
                channels=fmt.channels,
                dtype="int16",
                samplerate=fmt.sample_rate,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"Output format rejected: {e}") from e

    async def play(self, clip: AudioClip) -> PlaybackHandle:
        loop = asyncio.get_running_loop()
        handle = PlaybackHandle(clip=clip)
        samples = clip.samples
        position = 0
        lock = threading.Lock()

        def callback(outdata, frames, time_info, status):
            nonlocal position
            with lock:
                chunk = samples[position:position + frames]
                position += len(chunk)
            outdata[:len(chunk)] = chunk
            if len(chunk) < frames:
                outdata[len(chunk):] = 0
                raise sd.CallbackStop

        def finished():
            loop.call_soon_threadsafe(handle.finished.set)

        try:
            stream = sd.OutputStream(
                device=self.device,
                samplerate=clip.sample_rate,
                channels=clip.channels,
                dtype="int16",
                callback=callback,
                finished_callback=finished,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"Failed to open output stream: {e}") from e

        self._streams[handle.id] = stream
        return handle

    async def stop(self, handle: PlaybackHandle) -> None:
        stream = self._streams.pop(handle.id, None)
        if stream is None:
            return
        handle.stopped = not handle.finished.is_set()
        try:
            stream.abort()
            stream.close()
        except sd.PortAudioError as e:
            logger.warning(f"Error closing output stream: {e}")
        handle.finished.set()

    async def wait_finished(self, handle: PlaybackHandle) -> None:
        await handle.finished.wait()
        stream = self._streams.pop(handle.id, None)
        if stream is not None:
            stream.close()
