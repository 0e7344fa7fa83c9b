"""User-facing messages for knight-watch errors.

Maps exceptions raised by the management API to short messages a chat
user can act on.  ``NotFound`` and ``AccessDenied`` deliberately produce
the same text so one user cannot probe for another user's watch ids.
"""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import (
    AccessDenied,
    ConfigError,
    DeliveryFailed,
    FetchError,
    InvalidIntervalError,
    NotFound,
    ValidationError,
)


@dataclass
class FriendlyError:
    """A user-facing error with a fix suggestion."""

    title: str
    message: str
    fix: str = ""


def friendly_error(error: Exception) -> FriendlyError:
    """Convert an exception to a user-facing error."""
    if isinstance(error, (NotFound, AccessDenied)):
        return FriendlyError(
            title="Watch not found",
            message="No watch with that id exists in your list.",
            fix="Use the list command to see your watch ids.",
        )

    if isinstance(error, InvalidIntervalError):
        return FriendlyError(
            title="Invalid repeat interval",
            message=str(error),
            fix=(
                "Use a number followed by one unit: m (minutes), h (hours), "
                "d (days), w (weeks), mo (months) or y (years).\n"
                "Examples: 30m, 2h, 1d, 1w, 3mo"
            ),
        )

    if isinstance(error, ValidationError):
        return FriendlyError(
            title="Watch not created",
            message=str(error),
            fix="Check the subject and condition, then try again.",
        )

    if isinstance(error, FetchError):
        return FriendlyError(
            title="Data source unavailable",
            message="The upstream data source did not answer.",
            fix="This is usually temporary. The next check will retry automatically.",
        )

    if isinstance(error, DeliveryFailed):
        return FriendlyError(
            title="Notification not delivered",
            message=str(error),
            fix="Check your notification settings in the configuration file.",
        )

    if isinstance(error, ConfigError):
        return FriendlyError(
            title="Configuration error",
            message=f"There's a problem with your setup: {error}",
            fix="Check ~/.knight-watch/config.yaml",
        )

    return FriendlyError(
        title="Something went wrong",
        message="The request could not be completed.",
    )


def friendly_message(error: Exception) -> str:
    """One-line form of ``friendly_error``, for chat replies."""
    err = friendly_error(error)
    return f"{err.title}: {err.message}"


def format_friendly_error(err: FriendlyError) -> str:
    """Multi-line form for the terminal."""
    lines = [f"Error: {err.title}", f"   {err.message}"]
    if err.fix:
        lines.append("")
        lines.append("How to fix:")
        for line in err.fix.split("\n"):
            lines.append(f"   {line}")
    return "\n".join(lines)
