"""
Utility modules for constants.
"""

from .constants import (
    DEFAULT_CAMERA_ID,
    DEFAULT_DB_PATH,
    DEFAULT_QUEUE_SIZE,
    ENV_DB_PATH,
    ENV_MODEL_FILE,
    SYSTEM_USER_ID,
    TICK_INTERVAL_SECONDS,
)

__all__ = [
    "DEFAULT_CAMERA_ID",
    "DEFAULT_DB_PATH",
    "DEFAULT_QUEUE_SIZE",
    "ENV_DB_PATH",
    "ENV_MODEL_FILE",
    "SYSTEM_USER_ID",
    "TICK_INTERVAL_SECONDS",
]
