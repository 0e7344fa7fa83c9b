"""Tests for recurrence interval parsing and arithmetic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from knight_watch.exceptions import InvalidIntervalError, ValidationError
from knight_watch.interval import IntervalSpec, next_occurrence, parse

T0 = datetime(2024, 3, 10, 8, 30, tzinfo=timezone.utc)


class TestParse:
    @pytest.mark.parametrize(
        "text,amount,unit",
        [
            ("30m", 30, "m"),
            ("2h", 2, "h"),
            ("1d", 1, "d"),
            ("1w", 1, "w"),
            ("3mo", 3, "mo"),
            ("1y", 1, "y"),
        ],
    )
    def test_valid_specs(self, text, amount, unit):
        assert parse(text) == IntervalSpec(amount, unit)

    def test_whitespace_and_case_ignored(self):
        assert parse("  12H ") == IntervalSpec(12, "h")

    def test_str_roundtrips(self):
        assert str(parse("3mo")) == "3mo"

    @pytest.mark.parametrize("text", ["", "   ", "d", "5", "5x", "1d2h", "-1d", "1.5h", "h1"])
    def test_malformed_rejected(self, text):
        with pytest.raises(InvalidIntervalError):
            parse(text)

    def test_zero_rejected(self):
        with pytest.raises(InvalidIntervalError, match="positive"):
            parse("0d")

    def test_ceiling(self):
        assert parse("10y").unit == "y"
        assert parse("120mo").amount == 120
        with pytest.raises(InvalidIntervalError, match="ceiling"):
            parse("11y")
        with pytest.raises(InvalidIntervalError):
            parse("600w")

    @pytest.mark.parametrize("text", ["1" * 5000 + "m", "9" * 5000 + "d", "123456789h"])
    def test_huge_amount_hits_ceiling(self, text):
        with pytest.raises(InvalidIntervalError, match="ceiling"):
            parse(text)

    def test_leading_zeros_allowed(self):
        assert parse("000000000030m") == IntervalSpec(30, "m")

    def test_non_ascii_digits_rejected(self):
        with pytest.raises(InvalidIntervalError):
            parse("٣d")  # Arabic-Indic three

    def test_non_string_rejected(self):
        with pytest.raises(InvalidIntervalError):
            parse(None)  # type: ignore[arg-type]

    def test_is_a_validation_error(self):
        """Callers catching ValidationError also reject bad intervals."""
        with pytest.raises(ValidationError):
            parse("weekly")

    def test_is_calendar(self):
        assert parse("1mo").is_calendar
        assert parse("1y").is_calendar
        assert not parse("1w").is_calendar


class TestNextOccurrence:
    @pytest.mark.parametrize("unit", ["m", "h", "d", "w"])
    def test_fixed_units_compose(self, unit):
        once_twice = next_occurrence(next_occurrence(T0, f"1{unit}"), f"1{unit}")
        assert once_twice == next_occurrence(T0, f"2{unit}")

    def test_fixed_durations(self):
        assert next_occurrence(T0, "30m") == T0 + timedelta(minutes=30)
        assert next_occurrence(T0, "2h") == T0 + timedelta(hours=2)
        assert next_occurrence(T0, "1w") == T0 + timedelta(days=7)

    def test_month_clamps_to_leap_day(self):
        jan31 = datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc)
        assert next_occurrence(jan31, "1mo") == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)

    def test_month_clamps_non_leap(self):
        jan31 = datetime(2023, 1, 31, tzinfo=timezone.utc)
        assert next_occurrence(jan31, "1mo") == datetime(2023, 2, 28, tzinfo=timezone.utc)

    def test_year_from_leap_day(self):
        feb29 = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert next_occurrence(feb29, "1y") == datetime(2025, 2, 28, tzinfo=timezone.utc)

    def test_months_cross_year(self):
        nov = datetime(2024, 11, 15, tzinfo=timezone.utc)
        assert next_occurrence(nov, "3mo") == datetime(2025, 2, 15, tzinfo=timezone.utc)

    def test_accepts_parsed_spec(self):
        spec = parse("1d")
        assert spec.next_occurrence(T0) == next_occurrence(T0, spec)

    def test_preserves_timezone(self):
        assert next_occurrence(T0, "1mo").tzinfo is not None

    def test_invalid_string_raises(self):
        with pytest.raises(InvalidIntervalError):
            next_occurrence(T0, "soon")
