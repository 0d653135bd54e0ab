"""Pytest configuration and fixtures."""

import asyncio
import os
import sys
from typing import Callable, List, Optional

import numpy as np
import pytest

# Add python directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../python'))

from duplex_call.audio import (  # noqa: E402
    AudioCaptureDevice,
    AudioFormat,
    AudioPlaybackDevice,
    AudioSegment,
    PlaybackHandle,
)
from duplex_call.config import CallConfig  # noqa: E402
from duplex_call.errors import DeviceError, TransportError  # noqa: E402
from duplex_call.websocket.connection import ConnectionState, TransportConnection  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    os.environ['DUPLEX_LOG_LEVEL'] = 'WARNING'
    # Register asyncio marker
    config.addinivalue_line("markers", "asyncio: mark test as async")


class FakeCaptureDevice(AudioCaptureDevice):
    """Microphone producing numbered segments: segment n holds samples equal to n."""

    def __init__(
        self,
        granted: bool = True,
        segment_delay: float = 0.0,
        limit: Optional[int] = None,
        fail_times: int = 0,
        configure_error: Optional[Exception] = None,
    ):
        self.granted = granted
        self.segment_delay = segment_delay
        self.limit = limit
        self.fail_times = fail_times
        self.configure_error = configure_error
        self.format = AudioFormat(sample_rate=8000)
        self.attempts = 0
        self.captured: List[AudioSegment] = []
        self.in_capture = False
        self.permission_requests = 0

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def configure(self, fmt: AudioFormat) -> None:
        if self.configure_error:
            raise self.configure_error
        self.format = fmt

    async def capture_segment(self, duration: float) -> AudioSegment:
        self.attempts += 1
        if self.fail_times:
            self.fail_times -= 1
            raise DeviceError("microphone glitch")
        if self.limit is not None and len(self.captured) >= self.limit:
            await asyncio.Event().wait()  # blocks until cancelled
        self.in_capture = True
        try:
            await asyncio.sleep(self.segment_delay)
        finally:
            self.in_capture = False
        number = len(self.captured) + 1
        data = np.full(16, number, dtype=np.int16).tobytes()
        segment = AudioSegment(data=data, format=self.format)
        self.captured.append(segment)
        return segment


class FakePlaybackDevice(AudioPlaybackDevice):
    """Speaker that records play/stop calls; clips finish on demand or after a delay."""

    def __init__(self, clip_seconds: Optional[float] = None):
        self.clip_seconds = clip_seconds
        self.events: List[tuple] = []
        self.handles: List[PlaybackHandle] = []

    async def configure(self, fmt: AudioFormat) -> None:
        pass

    async def play(self, clip) -> PlaybackHandle:
        handle = PlaybackHandle(clip=clip)
        self.handles.append(handle)
        self.events.append(("play", handle.id))
        if self.clip_seconds is not None:
            asyncio.get_running_loop().call_later(self.clip_seconds, handle.finished.set)
        return handle

    async def stop(self, handle: PlaybackHandle) -> None:
        self.events.append(("stop", handle.id))
        handle.stopped = True
        handle.finished.set()

    def finish(self, handle: PlaybackHandle) -> None:
        handle.finished.set()


class FakeConnection(TransportConnection):
    """TransportConnection without a socket; inbound frames are injected."""

    def __init__(self, factory: "FakeConnectionFactory", url: str, **kwargs):
        super().__init__(url, **kwargs)
        self.factory = factory
        self.sent: List = []
        self.close_calls = 0

    async def open(self) -> None:
        self.state = ConnectionState.CONNECTING
        if self.factory.gate is not None:
            await self.factory.gate.wait()
        if self.factory.fail_opens:
            self.factory.fail_opens -= 1
            self.state = ConnectionState.CLOSED
            raise TransportError("connection refused")
        self.state = ConnectionState.OPEN

    async def send(self, payload) -> None:
        if self.state != ConnectionState.OPEN:
            raise TransportError(f"Cannot send while {self.state.value}")
        if self.factory.send_gate is not None:
            await self.factory.send_gate.wait()
        self.sent.append(payload)
        self.factory.sent.append(payload)

    async def close(self) -> None:
        self.close_calls += 1
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSED

    def drop(self, reason: str = "connection reset") -> None:
        """Simulate the remote end going away."""
        self._mark_closed(TransportError(reason))

    async def receive(self, raw) -> None:
        """Simulate an inbound frame."""
        await self._dispatch(raw)


class FakeConnectionFactory:
    """Drop-in connection_factory recording every instance it builds."""

    def __init__(self):
        self.instances: List[FakeConnection] = []
        self.sent: List = []
        self.fail_opens = 0
        self.gate: Optional[asyncio.Event] = None
        self.send_gate: Optional[asyncio.Event] = None

    def __call__(self, url: str, **kwargs) -> FakeConnection:
        connection = FakeConnection(self, url, **kwargs)
        self.instances.append(connection)
        return connection

    @property
    def latest(self) -> Optional[FakeConnection]:
        return self.instances[-1] if self.instances else None


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds (fails the test on timeout)."""
    return _wait_until


@pytest.fixture
def capture_device():
    return FakeCaptureDevice()


@pytest.fixture
def playback_device():
    return FakePlaybackDevice()


@pytest.fixture
def connection_factory():
    return FakeConnectionFactory()


@pytest.fixture
def call_config():
    """Fast timings so reconnects and retries happen within a test."""
    return CallConfig(
        ws_url="ws://test.local:8765",
        payload_encoding="binary",
        sample_rate=8000,
        channels=1,
        segment_duration=0.01,
        segment_max_attempts=3,
        segment_retry_delay=0.01,
        reconnect_interval=0.05,
        reconnect_enabled=True,
        reconnect_max_attempts=0,
        buffer_maxsize=50,
        buffer_overflow_policy="drop_oldest",
        metrics_port=0,
    )


@pytest.fixture
def wav_bytes():
    """A short 16-bit mono WAV clip."""
    import io
    import wave

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(8000)
        wav.writeframes(np.arange(80, dtype=np.int16).tobytes())
    return buffer.getvalue()
