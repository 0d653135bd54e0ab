"""
Audio Converter.

Converts between captured PCM segments, WAV wire payloads and playable
clips. Gain is applied in int16 space with clipping; resampling uses scipy.
"""

import io
import wave

import numpy as np
from scipy import signal

from ..errors import ProtocolError
from .segment import AudioClip, AudioFormat, AudioSegment

INT16_MIN = -32768
INT16_MAX = 32767


class AudioConverter:
    """Convert captured segments to WAV payloads and inbound bytes to clips."""

    @staticmethod
    def apply_gain(pcm_data: bytes, gain: float) -> bytes:
        """
        Scale 16-bit PCM audio by a gain factor.

        Args:
            pcm_data: 16-bit PCM audio data (little-endian)
            gain: Linear gain; 1.0 leaves the data untouched

        Returns:
            Scaled PCM audio, clipped to the int16 range
        """
        if gain == 1.0 or not pcm_data:
            return pcm_data
        samples = np.frombuffer(pcm_data, dtype=np.int16).astype(np.float32)
        scaled = np.clip(samples * gain, INT16_MIN, INT16_MAX)
        return scaled.astype(np.int16).tobytes()

    @staticmethod
    def amplify(samples: np.ndarray, gain: float) -> np.ndarray:
        """Scale an int16 sample array, clipping to the int16 range."""
        if gain == 1.0:
            return samples
        scaled = np.clip(samples.astype(np.float32) * gain, INT16_MIN, INT16_MAX)
        return scaled.astype(np.int16)

    @staticmethod
    def segment_to_wav(segment: AudioSegment) -> bytes:
        """
        Wrap a captured PCM segment in a WAV container.

        Raises:
            ProtocolError: if the segment is not 16-bit PCM
        """
        fmt = segment.format
        if fmt.encoding != "pcm16" or fmt.sample_width != 2:
            raise ProtocolError(f"Cannot encode {fmt.encoding} segment as WAV")

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(fmt.channels)
            wav.setsampwidth(fmt.sample_width)
            wav.setframerate(fmt.sample_rate)
            wav.writeframes(segment.data)
        return buffer.getvalue()

    @staticmethod
    def wav_to_clip(data: bytes) -> AudioClip:
        """
        Decode a WAV payload into a playable clip.

        Raises:
            ProtocolError: if the bytes are not a 16-bit PCM WAV file
        """
        try:
            with wave.open(io.BytesIO(data), "rb") as wav:
                channels = wav.getnchannels()
                width = wav.getsampwidth()
                rate = wav.getframerate()
                frames = wav.readframes(wav.getnframes())
        except (wave.Error, EOFError) as e:
            raise ProtocolError(f"Invalid WAV payload: {e}") from e

        if width != 2:
            raise ProtocolError(f"Unsupported WAV sample width: {width * 8} bits")

        samples = np.frombuffer(frames, dtype=np.int16)
        usable = len(samples) - (len(samples) % channels)
        samples = samples[:usable].reshape(-1, channels)
        return AudioClip(samples=samples, sample_rate=rate, channels=channels)

    @staticmethod
    def pcm_to_clip(data: bytes, fmt: AudioFormat) -> AudioClip:
        """Interpret raw 16-bit PCM bytes using a known format."""
        if len(data) % (fmt.sample_width * fmt.channels):
            raise ProtocolError("PCM payload length is not a whole number of frames")
        samples = np.frombuffer(data, dtype=np.int16).reshape(-1, fmt.channels)
        return AudioClip(samples=samples, sample_rate=fmt.sample_rate, channels=fmt.channels)

    @classmethod
    def decode(cls, data: bytes, encoding: str, fallback: AudioFormat) -> AudioClip:
        """
        Decode an inbound audio payload.

        Args:
            data: Payload bytes
            encoding: Declared encoding ("wav" or "pcm16")
            fallback: Format used for headerless PCM

        Raises:
            ProtocolError: for empty, unknown or malformed payloads
        """
        if not data:
            raise ProtocolError("Empty audio payload")
        if data[:4] == b"RIFF":
            return cls.wav_to_clip(data)
        if encoding == "pcm16":
            return cls.pcm_to_clip(data, fallback)
        raise ProtocolError(f"Unsupported audio encoding: {encoding}")

    @staticmethod
    def resample(clip: AudioClip, dst_rate: int) -> AudioClip:
        """
        Resample a clip to a different sample rate.

        Returns the clip unchanged when the rates already match.
        """
        if dst_rate <= 0 or clip.sample_rate == dst_rate or clip.frames == 0:
            return clip

        num_samples = int(clip.frames * dst_rate / clip.sample_rate)
        resampled = signal.resample(clip.samples.astype(np.float32), num_samples, axis=0)
        resampled = np.clip(resampled, INT16_MIN, INT16_MAX).astype(np.int16)
        return AudioClip(samples=resampled, sample_rate=dst_rate, channels=clip.channels)
