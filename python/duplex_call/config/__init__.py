"""Configuration module."""
from .settings import (
    MAX_AMPLIFICATION,
    MAX_INPUT_GAIN,
    AudioSettings,
    CallConfig,
    get_config,
    reset_config,
)
from .logging import setup_logging, get_logger

__all__ = [
    "MAX_AMPLIFICATION",
    "MAX_INPUT_GAIN",
    "AudioSettings",
    "CallConfig",
    "get_config",
    "reset_config",
    "setup_logging",
    "get_logger",
]
