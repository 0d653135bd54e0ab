"""
Audio device interfaces.

A capture device produces one finite segment per call; a playback device
plays one clip at a time until it finishes or is stopped. Both are owned by
at most one call session at a time.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import AlreadyActive
from .segment import AudioClip, AudioFormat, AudioSegment

_handle_ids = itertools.count(1)


class _OwnedDevice:
    """Single-owner bookkeeping shared by capture and playback devices."""

    _owner: Optional[Any] = None

    @property
    def owner(self) -> Optional[Any]:
        return self._owner

    def acquire(self, owner: Any) -> None:
        """
        Claim the device for a session.

        Raises:
            AlreadyActive: if another session holds the device
        """
        if self._owner is not None and self._owner is not owner:
            raise AlreadyActive(f"{type(self).__name__} is in use by another call")
        self._owner = owner

    def release(self, owner: Any) -> None:
        """Give the device back; ignored if the caller is not the owner."""
        if self._owner is owner:
            self._owner = None


class AudioCaptureDevice(_OwnedDevice, ABC):
    """Abstract microphone."""

    @abstractmethod
    async def request_permission(self) -> bool:
        """
        Ask the platform for microphone access.

        Returns:
            True if granted
        """
        pass

    @abstractmethod
    async def configure(self, fmt: AudioFormat) -> None:
        """
        Prepare the hardware for the given format.

        Raises:
            DeviceError: if the format is not supported
        """
        pass

    @abstractmethod
    async def capture_segment(self, duration: float) -> AudioSegment:
        """
        Record one segment of `duration` seconds.

        Cancelling the awaiting task aborts the recording and discards it.

        Raises:
            DeviceError: on hardware failure
        """
        pass


@dataclass
class PlaybackHandle:
    """A clip handed to a playback device."""
    clip: Optional[AudioClip]
    id: int = field(default_factory=lambda: next(_handle_ids))
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    stopped: bool = False

    def release(self) -> None:
        """Drop the decoded samples."""
        self.clip = None


class AudioPlaybackDevice(_OwnedDevice, ABC):
    """Abstract speaker."""

    @abstractmethod
    async def configure(self, fmt: AudioFormat) -> None:
        """Prepare the output for simultaneous record/playback."""
        pass

    @abstractmethod
    async def play(self, clip: AudioClip) -> PlaybackHandle:
        """
        Start playing a clip and return immediately.

        Raises:
            DeviceError: if the output cannot be opened
        """
        pass

    @abstractmethod
    async def stop(self, handle: PlaybackHandle) -> None:
        """Stop a clip early; a no-op for finished handles."""
        pass

    async def wait_finished(self, handle: PlaybackHandle) -> None:
        """Wait until the clip has played out or been stopped."""
        await handle.finished.wait()
