"""
Duplex call entry point.

Usage:
    python -m duplex_call

Environment Variables:
    DUPLEX_WS_URL - WebSocket endpoint URL (default: ws://localhost:8765)
    DUPLEX_PAYLOAD_ENCODING - binary or base64_json
    DUPLEX_METRICS_PORT - Prometheus exporter port (0 = disabled)
    DUPLEX_LOG_LEVEL - Log level (DEBUG, INFO, WARNING, ERROR)
"""

import asyncio
import signal
import sys

from .audio.sounddevice_backend import SoundDeviceCapture, SoundDevicePlayback
from .config import get_config, setup_logging
from .core import CallSession, CallStatus
from .errors import CallError

logger = setup_logging()


def _log_status(status: CallStatus) -> None:
    logger.info(
        f"Call: {'Active' if status.call_active else 'Inactive'} | "
        f"WebSocket: {status.connection_state.value} | "
        f"Buffered: {status.buffered} | Dropped: {status.dropped}"
        + (f" | Error: {status.last_error}" if status.last_error else "")
    )


async def main():
    """Main entry point."""
    config = get_config()

    if not config.ws_url:
        logger.error("No WebSocket URL configured.")
        logger.error("Example: export DUPLEX_WS_URL='ws://192.168.1.6:8765'")
        sys.exit(1)

    session = CallSession(
        capture_device=SoundDeviceCapture(),
        playback_device=SoundDevicePlayback(),
        config=config,
    )
    session.add_listener(_log_status)

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown requested...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(signal_handler))

    try:
        await session.start()
    except CallError as e:
        logger.error(f"Could not start call: {e}")
        sys.exit(1)

    # The session stops itself on unrecoverable errors
    session.add_listener(lambda status: None if status.call_active else shutdown_event.set())

    try:
        await shutdown_event.wait()
    finally:
        await session.stop()


def cli():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
