"""Audio types, devices and conversion."""
from .segment import AudioClip, AudioFormat, AudioSegment
from .converter import AudioConverter
from .devices import AudioCaptureDevice, AudioPlaybackDevice, PlaybackHandle

__all__ = [
    "AudioClip",
    "AudioFormat",
    "AudioSegment",
    "AudioConverter",
    "AudioCaptureDevice",
    "AudioPlaybackDevice",
    "PlaybackHandle",
]
