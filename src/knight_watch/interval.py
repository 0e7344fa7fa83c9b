"""Recurrence interval specs: ``30m``, ``2h``, ``1d``, ``1w``, ``3mo``, ``1y``.

Fixed-duration units (m, h, d, w) add a ``timedelta``.  Calendar units
(mo, y) go through ``relativedelta`` so the day of month clamps to the last
valid day (Jan 31 + 1mo -> Feb 29 in a leap year).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from .exceptions import InvalidIntervalError

_PATTERN = re.compile(r"^([0-9]+)(mo|m|h|d|w|y)$")

_FIXED_UNITS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

# Mean unit lengths in days, for the ceiling check only.
_NOMINAL_DAYS = {
    "m": 1 / 1440,
    "h": 1 / 24,
    "d": 1.0,
    "w": 7.0,
    "mo": 30.4375,
    "y": 365.25,
}

MAX_SPAN_DAYS = 3653  # ten years
# Ten years in minutes is seven digits; anything longer is over the ceiling.
_MAX_DIGITS = 8


@dataclass(frozen=True)
class IntervalSpec:
    """A parsed interval: a positive amount of exactly one unit."""

    amount: int
    unit: str

    @property
    def is_calendar(self) -> bool:
        return self.unit in ("mo", "y")

    def nominal_days(self) -> float:
        return self.amount * _NOMINAL_DAYS[self.unit]

    def next_occurrence(self, start: datetime) -> datetime:
        return next_occurrence(start, self)

    def __str__(self) -> str:
        return f"{self.amount}{self.unit}"


def parse(text: str) -> IntervalSpec:
    """Parse an interval string.

    Raises:
        InvalidIntervalError: empty input, unknown unit, compound spec,
            zero amount, or a span above the ten-year ceiling.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidIntervalError("Interval must be a non-empty string")
    match = _PATTERN.match(text.strip().lower())
    if not match:
        raise InvalidIntervalError(
            f"Invalid interval {text!r}: expected <amount><unit> with unit "
            "one of m, h, d, w, mo, y"
        )
    digits = match.group(1).lstrip("0") or "0"
    if len(digits) > _MAX_DIGITS:
        raise InvalidIntervalError(f"Interval {text!r} exceeds the 10 year ceiling")
    amount = int(digits)
    if amount <= 0:
        raise InvalidIntervalError(f"Interval amount must be positive: {text!r}")
    spec = IntervalSpec(amount=amount, unit=match.group(2))
    if spec.nominal_days() > MAX_SPAN_DAYS:
        raise InvalidIntervalError(f"Interval {text!r} exceeds the 10 year ceiling")
    return spec


def next_occurrence(start: datetime, spec: IntervalSpec | str) -> datetime:
    """Return ``start`` advanced by one interval."""
    if isinstance(spec, str):
        spec = parse(spec)
    if spec.unit == "mo":
        return start + relativedelta(months=spec.amount)
    if spec.unit == "y":
        return start + relativedelta(years=spec.amount)
    return start + _FIXED_UNITS[spec.unit] * spec.amount
