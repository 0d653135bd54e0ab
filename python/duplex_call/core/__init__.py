"""Core call components."""
from .call_session import CallSession
from .playback import PlaybackRouter
from .recording import RecordingLoop
from .state import CallStatus, SessionState
from .task_registry import TaskRegistry

__all__ = [
    "CallSession",
    "PlaybackRouter",
    "RecordingLoop",
    "CallStatus",
    "SessionState",
    "TaskRegistry",
]
