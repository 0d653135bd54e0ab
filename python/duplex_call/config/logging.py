"""
Logging setup for the duplex call client.

All client loggers live under the "duplex" namespace (duplex.session,
duplex.websocket, duplex.playback, ...), so one handler on "duplex" covers
them. The websockets library logs every frame at DEBUG; it is held at
WARNING unless DUPLEX_DEBUG is on.

Environment Variables:
    DUPLEX_LOG_LEVEL - Log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
    DUPLEX_DEBUG - true to force DEBUG and let library loggers through
"""

import logging
import os
import sys
from typing import Optional

NAMESPACE = "duplex"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LIBRARY_LOGGERS = ("websockets", "websockets.client", "sounddevice")


def _debug_enabled() -> bool:
    return os.getenv("DUPLEX_DEBUG", "false").strip().lower() in ("1", "true", "yes", "on")


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    name: str = NAMESPACE
) -> logging.Logger:
    """
    Attach a stdout handler to the client's logger namespace.

    Calling it again replaces the handler instead of adding a second one.

    Args:
        level: Log level name. Default from DUPLEX_LOG_LEVEL, or DEBUG when
            DUPLEX_DEBUG is set, else INFO.
        format_string: Record format. Default: timestamp, level, logger, message.
        name: Logger to configure.

    Returns:
        The configured logger.
    """
    debug = _debug_enabled()
    if level is None:
        level = "DEBUG" if debug else os.getenv("DUPLEX_LOG_LEVEL", "INFO")
    numeric = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(numeric)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric)
    handler.setFormatter(
        logging.Formatter(format_string or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)

    for library in LIBRARY_LOGGERS:
        logging.getLogger(library).setLevel(logging.DEBUG if debug else logging.WARNING)

    return logger


def get_logger(name: str = NAMESPACE) -> logging.Logger:
    """Logger under the duplex namespace; configures logging on first use."""
    if name != NAMESPACE and not name.startswith(NAMESPACE + "."):
        name = f"{NAMESPACE}.{name}"

    if not logging.getLogger(NAMESPACE).handlers:
        setup_logging()

    return logging.getLogger(name)
