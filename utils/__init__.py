"""
Utils Module
Logging setup and the pipeline error taxonomy.
"""
from .logger import setup_logger
from .exceptions import (
    AssemblyError,
    AuthenticationError,
    ConfigurationError,
    InferenceError,
    InvariantViolation,
    NotificationError,
    PermanentContentError,
    ShotAutoError,
    StorageError,
    TransientError,
    TrendSourceError,
)

__all__ = [
    "setup_logger",
    "AssemblyError",
    "AuthenticationError",
    "ConfigurationError",
    "InferenceError",
    "InvariantViolation",
    "NotificationError",
    "PermanentContentError",
    "ShotAutoError",
    "StorageError",
    "TransientError",
    "TrendSourceError",
]
