"""
Call configuration with environment variable support.

Environment Variables:
    DUPLEX_WS_URL - WebSocket endpoint (default: ws://localhost:8765)
    DUPLEX_PAYLOAD_ENCODING - Outbound payload strategy: binary | base64_json
    DUPLEX_SAMPLE_RATE - Capture sample rate (default: 44100)
    DUPLEX_CHANNELS - Capture channel count (default: 1)
    DUPLEX_SEGMENT_SEC - Length of one recorded segment (default: 1.0)
    DUPLEX_RECONNECT_INTERVAL - Seconds before a reconnect attempt (default: 5.0)
    DUPLEX_BUFFER_MAXSIZE - Outbound buffer capacity in segments (default: 300)
    DUPLEX_INPUT_GAIN / DUPLEX_AMPLIFICATION - Initial audio settings
    DUPLEX_DEBUG - Enable detailed per-payload logging (true/false)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

PAYLOAD_ENCODINGS = ("binary", "base64_json")
OVERFLOW_POLICIES = ("drop_oldest", "drop_newest")

MAX_INPUT_GAIN = 5.0
MAX_AMPLIFICATION = 20.0


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class CallConfig:
    """Call configuration."""

    # Endpoint
    ws_url: str = field(
        default_factory=lambda: os.getenv("DUPLEX_WS_URL", "ws://localhost:8765")
    )
    payload_encoding: str = field(
        default_factory=lambda: os.getenv("DUPLEX_PAYLOAD_ENCODING", "binary").lower()
    )

    # Capture format
    sample_rate: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_SAMPLE_RATE", "44100"))
    )
    channels: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_CHANNELS", "1"))
    )
    sample_width: int = 2  # 16-bit PCM

    # Recording loop
    segment_duration: float = field(
        default_factory=lambda: float(os.getenv("DUPLEX_SEGMENT_SEC", "1.0"))
    )
    segment_max_attempts: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_SEGMENT_MAX_ATTEMPTS", "3"))
    )
    segment_retry_delay: float = field(
        default_factory=lambda: float(os.getenv("DUPLEX_SEGMENT_RETRY_DELAY", "1.0"))
    )

    # WebSocket settings
    reconnect_interval: float = field(
        default_factory=lambda: float(os.getenv("DUPLEX_RECONNECT_INTERVAL", "5.0"))
    )
    reconnect_enabled: bool = field(
        default_factory=lambda: _env_bool("DUPLEX_RECONNECT_ENABLED", "true")
    )
    reconnect_max_attempts: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_RECONNECT_MAX_ATTEMPTS", "0"))
    )
    buffer_maxsize: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_BUFFER_MAXSIZE", "300"))
    )
    buffer_overflow_policy: str = field(
        default_factory=lambda: os.getenv("DUPLEX_BUFFER_OVERFLOW", "drop_oldest").lower()
    )
    ping_interval: float = field(
        default_factory=lambda: float(os.getenv("DUPLEX_WS_PING_INTERVAL", "20.0"))
    )
    ping_timeout: float = field(
        default_factory=lambda: float(os.getenv("DUPLEX_WS_PING_TIMEOUT", "10.0"))
    )
    open_timeout: float = field(
        default_factory=lambda: float(os.getenv("DUPLEX_WS_OPEN_TIMEOUT", "10.0"))
    )

    # Playback
    playback_sample_rate: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_PLAYBACK_SAMPLE_RATE", "0"))
    )

    # Metrics exporter (0 = disabled)
    metrics_port: int = field(
        default_factory=lambda: int(os.getenv("DUPLEX_METRICS_PORT", "0"))
    )

    # Debug
    debug: bool = field(default_factory=lambda: _env_bool("DUPLEX_DEBUG", "false"))

    def __post_init__(self):
        """Validate and normalize values after initialization."""
        logger = logging.getLogger("duplex.config")

        if self.payload_encoding not in PAYLOAD_ENCODINGS:
            logger.warning(
                f"Unknown payload encoding '{self.payload_encoding}', using 'binary'"
            )
            self.payload_encoding = "binary"

        if self.buffer_overflow_policy not in OVERFLOW_POLICIES:
            logger.warning(
                f"Unknown overflow policy '{self.buffer_overflow_policy}', using 'drop_oldest'"
            )
            self.buffer_overflow_policy = "drop_oldest"

        if self.segment_max_attempts < 1:
            self.segment_max_attempts = 1

        if not self.ws_url:
            logger.warning("No WebSocket URL configured. Set DUPLEX_WS_URL.")

    @property
    def reconnect_limit(self) -> Optional[int]:
        """Maximum reconnect attempts, or None when unlimited."""
        return self.reconnect_max_attempts if self.reconnect_max_attempts > 0 else None


class AudioSettings:
    """
    Gain settings read at call time.

    Input gain scales captured segments, amplification scales inbound
    clips before playback. Setters clamp to the slider ranges.
    """

    def __init__(self, input_gain: Optional[float] = None, amplification: Optional[float] = None):
        if input_gain is None:
            input_gain = float(os.getenv("DUPLEX_INPUT_GAIN", "1.0"))
        if amplification is None:
            amplification = float(os.getenv("DUPLEX_AMPLIFICATION", "1.0"))
        self._input_gain = _clamp(input_gain, 1.0, MAX_INPUT_GAIN)
        self._amplification = _clamp(amplification, 1.0, MAX_AMPLIFICATION)

    @property
    def input_gain(self) -> float:
        return self._input_gain

    @input_gain.setter
    def input_gain(self, value: float) -> None:
        self._input_gain = _clamp(value, 1.0, MAX_INPUT_GAIN)

    @property
    def amplification(self) -> float:
        return self._amplification

    @amplification.setter
    def amplification(self, value: float) -> None:
        self._amplification = _clamp(value, 1.0, MAX_AMPLIFICATION)


# Singleton config instance
_config: Optional[CallConfig] = None


def get_config() -> CallConfig:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = CallConfig()
    return _config


def reset_config():
    """Reset the global config (useful for testing)."""
    global _config
    _config = None
