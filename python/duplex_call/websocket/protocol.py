"""
Wire protocol.

Outbound: one WAV-wrapped segment per message, either as a raw binary frame
or as a JSON text frame {"audio": "<base64>"}.

Inbound: every frame goes through classify_inbound() exactly once and comes
out as AudioPayload, ControlMessage or Unrecognized.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from ..errors import ProtocolError

Payload = Union[bytes, str]


@dataclass(frozen=True)
class AudioPayload:
    """Audio response from the remote endpoint."""
    data: bytes
    encoding: str = "wav"
    transcript: Optional[str] = None


@dataclass(frozen=True)
class ControlMessage:
    """Non-audio structured message."""
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Unrecognized:
    """Frame that matched no known shape."""
    raw: Payload
    reason: str = ""


InboundMessage = Union[AudioPayload, ControlMessage, Unrecognized]


def _b64decode(value: Any, where: str) -> bytes:
    if not isinstance(value, str):
        raise ProtocolError(f"{where} is not a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"{where} is not valid base64: {e}") from e


def _transcript_of(message: Dict[str, Any]) -> Optional[str]:
    value = message.get("transcription")
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("text")
    return str(value) if value is not None else None


def classify_inbound(raw: Payload) -> InboundMessage:
    """
    Classify a received frame.

    Args:
        raw: Binary frame (bytes) or text frame (str)

    Returns:
        AudioPayload, ControlMessage or Unrecognized

    Raises:
        ProtocolError: if a recognized audio message carries undecodable audio
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        data = bytes(raw)
        if not data:
            return Unrecognized(raw=data, reason="empty binary frame")
        return AudioPayload(data=data, encoding="wav")

    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return Unrecognized(raw=raw, reason="not JSON")

    if not isinstance(message, dict):
        return Unrecognized(raw=raw, reason="JSON is not an object")

    transcript = _transcript_of(message)

    ai_response = message.get("ai_response")
    if isinstance(ai_response, dict) and "ai_audio" in ai_response:
        audio = _b64decode(ai_response["ai_audio"], "ai_response.ai_audio")
        return AudioPayload(data=audio, encoding="wav", transcript=transcript)

    if message.get("type") == "audio_output" and "data" in message:
        audio = _b64decode(message["data"], "audio_output.data")
        return AudioPayload(data=audio, encoding=str(message.get("encoding", "wav")))

    if "audio" in message:
        audio = _b64decode(message["audio"], "audio")
        return AudioPayload(data=audio, encoding="wav", transcript=transcript)

    kind = message.get("type")
    if isinstance(kind, str) and kind:
        return ControlMessage(kind=kind, data=message)

    if transcript is not None:
        return ControlMessage(kind="transcription", data=message)

    return Unrecognized(raw=raw, reason="no recognized field")


class PayloadEncoder:
    """Turns a WAV segment into an outbound WebSocket message."""

    name = "binary"

    def encode(self, wav_bytes: bytes) -> Payload:
        return wav_bytes


class Base64JsonPayloadEncoder(PayloadEncoder):
    """{"audio": "<base64>"} text frames."""

    name = "base64_json"

    def encode(self, wav_bytes: bytes) -> Payload:
        return json.dumps({"audio": base64.b64encode(wav_bytes).decode("ascii")})


def create_encoder(name: str) -> PayloadEncoder:
    """
    Build a payload encoder by name.

    Raises:
        ProtocolError: for unknown names
    """
    if name == "binary":
        return PayloadEncoder()
    if name == "base64_json":
        return Base64JsonPayloadEncoder()
    raise ProtocolError(f"Unknown payload encoding: {name}")
