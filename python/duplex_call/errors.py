"""Exception hierarchy for duplex call sessions."""


class CallError(Exception):
    """Base class for call session errors."""


class AlreadyActive(CallError):
    """A call is already running, or the device is owned by another session."""


class PermissionDenied(CallError):
    """Microphone permission was refused."""


class DeviceError(CallError):
    """Capture or playback hardware failure."""


class TransportError(CallError):
    """WebSocket connection dropped, refused or errored."""


class ProtocolError(CallError):
    """Malformed inbound or outbound payload."""


class BufferOverflow(CallError):
    """Outbound buffer exceeded its capacity and dropped payloads."""
