"""knight-watch: watch-and-notify scheduling engine for chat-bot alerts."""

__version__ = "1.0.0"

from .exceptions import (
    AccessDenied,
    ConfigError,
    DeliveryFailed,
    FetchError,
    InvalidIntervalError,
    KnightWatchError,
    NotFound,
    ValidationError,
)

__all__ = [
    "__version__",
    "KnightWatchError",
    "ValidationError",
    "InvalidIntervalError",
    "FetchError",
    "DeliveryFailed",
    "AccessDenied",
    "NotFound",
    "ConfigError",
]
