"""Audio value types passed between devices, the recording loop and playback."""

from dataclasses import dataclass, field
from datetime import datetime

import numpy as np


@dataclass(frozen=True)
class AudioFormat:
    """Format descriptor for raw captured audio."""
    sample_rate: int = 44100
    channels: int = 1
    encoding: str = "pcm16"
    sample_width: int = 2

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.channels * self.sample_width


@dataclass(frozen=True)
class AudioSegment:
    """One fixed-duration chunk of captured audio (interleaved little-endian PCM)."""
    data: bytes
    format: AudioFormat
    captured_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def duration(self) -> float:
        """Segment length in seconds."""
        bps = self.format.bytes_per_second
        return len(self.data) / bps if bps else 0.0


@dataclass
class AudioClip:
    """Decoded inbound audio ready for a playback device."""
    samples: np.ndarray  # int16, shape (frames, channels)
    sample_rate: int
    channels: int = 1

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate if self.sample_rate else 0.0
