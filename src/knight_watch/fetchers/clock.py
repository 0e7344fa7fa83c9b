"""Clock fetcher for due-date domains (reminders, scheduled notifications)."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from ..watches.models import utcnow


class ClockFetcher:
    """Returns the current time; the subject is irrelevant."""

    name = "clock"

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    async def fetch(self, subject: str) -> datetime:
        return self._clock()

    async def close(self) -> None:
        pass
