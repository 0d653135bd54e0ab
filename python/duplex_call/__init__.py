"""
Duplex Call - microphone to WebSocket audio calls with streamed replies.

Runs one call against a WebSocket endpoint:
- Segmented microphone capture (WAV segments, binary or base64-JSON frames)
- Outbound buffering while disconnected, drained in capture order
- Automatic reconnection at a fixed interval while the call is active
- Playback of audio replies, newest reply wins

Usage:
    python -m duplex_call

Environment Variables:
    DUPLEX_WS_URL - WebSocket endpoint URL
    DUPLEX_PAYLOAD_ENCODING - binary (default) or base64_json
    DUPLEX_SEGMENT_SEC - Segment length in seconds (default: 1.0)
    DUPLEX_RECONNECT_INTERVAL - Seconds between reconnects (default: 5.0)
"""

__version__ = "1.0.0"

from .config import AudioSettings, CallConfig, get_config
from .core import CallSession, CallStatus, SessionState
from .errors import (
    AlreadyActive,
    BufferOverflow,
    CallError,
    DeviceError,
    PermissionDenied,
    ProtocolError,
    TransportError,
)

__all__ = [
    "AudioSettings",
    "CallConfig",
    "get_config",
    "CallSession",
    "CallStatus",
    "SessionState",
    "AlreadyActive",
    "BufferOverflow",
    "CallError",
    "DeviceError",
    "PermissionDenied",
    "ProtocolError",
    "TransportError",
]
