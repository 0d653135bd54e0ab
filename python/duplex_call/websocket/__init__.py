"""WebSocket transport module."""
from .buffer import OutboundBuffer
from .connection import ConnectionState, TransportConnection
from .manager import WebSocketManager
from .protocol import (
    AudioPayload,
    Base64JsonPayloadEncoder,
    ControlMessage,
    InboundMessage,
    PayloadEncoder,
    Unrecognized,
    classify_inbound,
    create_encoder,
)
from .reconnect import ReconnectPolicy

__all__ = [
    "OutboundBuffer",
    "ConnectionState",
    "TransportConnection",
    "WebSocketManager",
    "AudioPayload",
    "Base64JsonPayloadEncoder",
    "ControlMessage",
    "InboundMessage",
    "PayloadEncoder",
    "Unrecognized",
    "classify_inbound",
    "create_encoder",
    "ReconnectPolicy",
]
