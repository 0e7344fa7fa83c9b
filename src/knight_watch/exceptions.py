"""Custom exception hierarchy for knight-watch.

All knight-watch exceptions inherit from KnightWatchError, allowing callers
to catch broad or specific errors:

    try:
        watch_id = engine.create_watch(owner, "crypto", "BTC", {"above_value": 5e4})
    except ValidationError as e:
        print(f"Rejected: {e}")
    except KnightWatchError as e:
        print(f"knight-watch error: {e}")
"""

from __future__ import annotations


class KnightWatchError(Exception):
    """Base exception for all knight-watch errors."""


class ValidationError(KnightWatchError):
    """Raised when a watch is rejected at creation time (never persisted)."""


class InvalidIntervalError(ValidationError):
    """Raised when a recurrence string is not a valid interval spec."""


class FetchError(KnightWatchError):
    """Raised by a data fetcher when its upstream is unavailable or malformed."""


class DeliveryFailed(KnightWatchError):
    """Raised when a notification could not be delivered."""


class AccessDenied(KnightWatchError):
    """Raised when a watch exists but belongs to another owner."""


class NotFound(KnightWatchError):
    """Raised when no watch exists with the given id."""


class ConfigError(KnightWatchError):
    """Raised when configuration is invalid or missing."""
