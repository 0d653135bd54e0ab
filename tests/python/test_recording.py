"""Tests for the segmented recording loop."""

import asyncio
import base64
import io
import json
import os
import sys
import wave
from unittest.mock import MagicMock

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../python'))

from duplex_call.config import AudioSettings
from duplex_call.core.recording import RecordingLoop
from duplex_call.errors import DeviceError
from duplex_call.websocket.protocol import Base64JsonPayloadEncoder, PayloadEncoder

from conftest import FakeCaptureDevice


def _samples(wav_bytes):
    with wave.open(io.BytesIO(wav_bytes), "rb") as wav:
        return np.frombuffer(wav.readframes(wav.getnframes()), dtype=np.int16)


class _Switch:
    """is_active callable the test can flip."""

    def __init__(self, on=True):
        self.on = on

    def __call__(self):
        return self.on


def _loop(device, sent, active, **kwargs):
    async def send(payload):
        sent.append(payload)

    kwargs.setdefault("encoder", PayloadEncoder())
    kwargs.setdefault("settings", AudioSettings(input_gain=1.0, amplification=1.0))
    return RecordingLoop(
        device=device,
        send=send,
        is_active=active,
        segment_duration=0.01,
        retry_delay=0.01,
        **kwargs,
    )


class TestRecordingLoop:
    """Test RecordingLoop."""

    @pytest.mark.asyncio
    async def test_segments_sent_in_capture_order(self, wait_until):
        device = FakeCaptureDevice(limit=3)
        sent = []
        active = _Switch()
        loop = _loop(device, sent, active)

        task = asyncio.create_task(loop.run())
        await wait_until(lambda: len(sent) == 3)
        active.on = False
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [_samples(p)[0] for p in sent] == [1, 2, 3]
        assert all(p[:4] == b"RIFF" for p in sent)
        assert loop.segment_count == 3

    @pytest.mark.asyncio
    async def test_stops_when_inactive(self):
        device = FakeCaptureDevice()
        sent = []
        active = _Switch(on=False)

        await _loop(device, sent, active).run()

        assert device.attempts == 0
        assert sent == []

    @pytest.mark.asyncio
    async def test_segment_discarded_if_call_ended_during_capture(self):
        """Test a segment finishing after the call ended is not sent."""
        device = FakeCaptureDevice(segment_delay=0.05)
        sent = []
        active = _Switch()
        loop = _loop(device, sent, active)

        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.02)
        active.on = False
        await task

        assert len(device.captured) == 1
        assert sent == []

    @pytest.mark.asyncio
    async def test_input_gain_applied(self, wait_until):
        device = FakeCaptureDevice(limit=1)
        sent = []
        active = _Switch()
        loop = _loop(device, sent, active, settings=AudioSettings(input_gain=3.0))

        task = asyncio.create_task(loop.run())
        await wait_until(lambda: sent)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert _samples(sent[0])[0] == 3

    @pytest.mark.asyncio
    async def test_base64_json_encoder(self, wait_until):
        device = FakeCaptureDevice(limit=1)
        sent = []
        active = _Switch()
        loop = _loop(device, sent, active, encoder=Base64JsonPayloadEncoder())

        task = asyncio.create_task(loop.run())
        await wait_until(lambda: sent)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        wav_bytes = base64.b64decode(json.loads(sent[0])["audio"])
        assert wav_bytes[:4] == b"RIFF"

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, wait_until):
        device = FakeCaptureDevice(limit=1, fail_times=2)
        sent = []
        on_fatal = MagicMock()
        metrics = MagicMock()
        loop = _loop(device, sent, _Switch(), max_attempts=3, on_fatal=on_fatal, metrics=metrics)

        task = asyncio.create_task(loop.run())
        await wait_until(lambda: sent)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert loop.failure_count == 2
        assert metrics.capture_failed.call_count == 2
        on_fatal.assert_not_called()

    @pytest.mark.asyncio
    async def test_exhausted_attempts_are_fatal(self):
        """Test the loop ends and reports once a segment fails every attempt."""
        device = FakeCaptureDevice(fail_times=10)
        sent = []
        on_fatal = MagicMock()
        loop = _loop(device, sent, _Switch(), max_attempts=3, on_fatal=on_fatal)

        await asyncio.wait_for(loop.run(), timeout=1.0)

        assert device.attempts == 3
        on_fatal.assert_called_once()
        assert isinstance(on_fatal.call_args.args[0], DeviceError)
        assert sent == []

    @pytest.mark.asyncio
    async def test_no_fatal_when_call_ends_during_retry(self):
        device = FakeCaptureDevice(fail_times=10)
        active = _Switch()
        on_fatal = MagicMock()
        loop = _loop(device, [], active, max_attempts=5, on_fatal=on_fatal)

        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.005)
        active.on = False
        await asyncio.wait_for(task, timeout=1.0)

        on_fatal.assert_not_called()
