"""Session state and the observable call status."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from ..websocket.connection import ConnectionState


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


@dataclass(frozen=True)
class CallStatus:
    """Snapshot pushed to status listeners on every change."""
    session_state: SessionState = SessionState.IDLE
    connection_state: ConnectionState = ConnectionState.CLOSED
    last_sent_at: Optional[datetime] = None
    last_received_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_transcript: Optional[str] = None
    buffered: int = 0
    dropped: int = 0

    @property
    def call_active(self) -> bool:
        return self.session_state == SessionState.ACTIVE

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary for display or JSON serialization."""
        return {
            "call_active": self.call_active,
            "session_state": self.session_state.value,
            "connection_state": self.connection_state.value,
            "last_sent_at": self.last_sent_at.isoformat() + "Z" if self.last_sent_at else None,
            "last_received_at": (
                self.last_received_at.isoformat() + "Z" if self.last_received_at else None
            ),
            "last_error": self.last_error,
            "last_transcript": self.last_transcript,
            "buffered": self.buffered,
            "dropped": self.dropped,
        }
