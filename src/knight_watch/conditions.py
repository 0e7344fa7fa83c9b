"""Condition evaluators: one strategy per condition shape.

Each evaluator validates a condition at watch-creation time (raising
``ValidationError``) and evaluates it against an observation at tick time.
Evaluation never raises: a condition or observation it cannot read is
logged and reported as not satisfied.
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from .exceptions import ValidationError
from .watches.models import ensure_utc

logger = logging.getLogger("knight-watch")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Alternative spellings accepted at creation time.
_ALIASES = {
    "due_date": "due_at",
    "target_above": "above_value",
    "target_below": "below_value",
}


def normalize_keys(condition: Mapping[str, Any]) -> dict[str, Any]:
    """``aboveValue`` -> ``above_value``, plus known aliases."""
    normalized = {}
    for key, value in condition.items():
        snake = _CAMEL_BOUNDARY.sub("_", str(key)).lower()
        snake = _ALIASES.get(snake, snake)
        if snake in normalized:
            raise ValidationError(f"Condition {key!r} duplicates {snake!r}")
        normalized[snake] = value
    return normalized


@dataclass
class EvalContext:
    """What an evaluator may know besides the observation."""

    now: datetime
    created_at: datetime
    last_triggered_at: datetime | None = None


@dataclass
class Verdict:
    satisfied: bool
    reasons: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.satisfied


NOT_SATISFIED = Verdict(False)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _field(observation: Any, name: str, default: Any = None) -> Any:
    if isinstance(observation, Mapping):
        return observation.get(name, default)
    return getattr(observation, name, default)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise TypeError(f"not a timestamp: {value!r}")


class ConditionEvaluator(ABC):
    """Base strategy: validate at the boundary, evaluate in the scheduler."""

    name: str = ""
    numeric_keys: frozenset[str] = frozenset()
    flag_keys: frozenset[str] = frozenset()

    @property
    def allowed_keys(self) -> frozenset[str]:
        return self.numeric_keys | self.flag_keys

    def validate(self, condition: Mapping[str, Any]) -> dict[str, Any]:
        """Normalize and type-check a condition.  Returns the stored form."""
        if not isinstance(condition, Mapping) or not condition:
            raise ValidationError("Condition must be a non-empty mapping")
        normalized = normalize_keys(condition)
        unknown = set(normalized) - self.allowed_keys
        if unknown:
            raise ValidationError(
                f"Unknown {self.name} condition(s): {', '.join(sorted(unknown))}; "
                f"expected any of {', '.join(sorted(self.allowed_keys))}"
            )
        for key in self.numeric_keys & normalized.keys():
            if not _is_number(normalized[key]):
                raise ValidationError(f"{key} must be a number")
        for key in self.flag_keys & normalized.keys():
            if not isinstance(normalized[key], bool):
                raise ValidationError(f"{key} must be true or false")
        return normalized

    def evaluate(
        self, condition: Mapping[str, Any], observation: Any, context: EvalContext
    ) -> Verdict:
        try:
            return self._evaluate(condition, observation, context)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            logger.warning(f"{self.name} evaluation could not read input: {e}")
            return NOT_SATISFIED

    @abstractmethod
    def _evaluate(
        self, condition: Mapping[str, Any], observation: Any, context: EvalContext
    ) -> Verdict: ...


class ThresholdEvaluator(ConditionEvaluator):
    """``above_value`` / ``below_value`` against a single scalar.

    Bounds are inclusive, matching the price-alert behaviour users know
    ("BTC above 50000" fires at exactly 50000).
    """

    name = "threshold"
    numeric_keys = frozenset({"above_value", "below_value"})

    def _evaluate(self, condition, observation, context) -> Verdict:
        value = observation
        if isinstance(observation, (BaseModel, Mapping)):
            value = _field(observation, "value")
        if not _is_number(value):
            return NOT_SATISFIED
        reasons = []
        above = condition.get("above_value")
        below = condition.get("below_value")
        if above is not None and value >= above:
            reasons.append(f"{value:g} is at or above {above:g}")
        if below is not None and value <= below:
            reasons.append(f"{value:g} is at or below {below:g}")
        return Verdict(bool(reasons), reasons)


class WeatherEvaluator(ConditionEvaluator):
    """Compound weather condition; ANY listed sub-condition triggers."""

    name = "weather"
    numeric_keys = frozenset({"temp_above", "temp_below", "wind_above"})
    flag_keys = frozenset({"rain", "snow"})

    def validate(self, condition):
        normalized = super().validate(condition)
        if not any(
            normalized[k] for k in self.flag_keys & normalized.keys()
        ) and not (self.numeric_keys & normalized.keys()):
            raise ValidationError("Weather condition needs at least one predicate")
        return normalized

    def _evaluate(self, condition, observation, context) -> Verdict:
        temp = _field(observation, "temperature")
        wind = _field(observation, "wind_speed")
        description = str(_field(observation, "description", "") or "").lower()
        reasons = []
        if "temp_above" in condition and _is_number(temp) and temp > condition["temp_above"]:
            reasons.append(f"Temperature above {condition['temp_above']}°C")
        if "temp_below" in condition and _is_number(temp) and temp < condition["temp_below"]:
            reasons.append(f"Temperature below {condition['temp_below']}°C")
        if "wind_above" in condition and _is_number(wind) and wind > condition["wind_above"]:
            reasons.append(f"Wind speed above {condition['wind_above']} m/s")
        if condition.get("rain") and "rain" in description:
            reasons.append("Rain detected")
        if condition.get("snow") and "snow" in description:
            reasons.append("Snow detected")
        return Verdict(bool(reasons), reasons)


class FreshnessEvaluator(ConditionEvaluator):
    """New-item detection over a list of timestamped items.

    An item is new when published strictly after the watch was created,
    or after its last firing once it has fired.  An optional ``keyword``
    narrows the items to those whose title mentions it.
    """

    name = "freshness"
    numeric_keys = frozenset({"min_items"})
    flag_keys = frozenset({"new_items"})

    @property
    def allowed_keys(self) -> frozenset[str]:
        return self.numeric_keys | self.flag_keys | {"keyword"}

    def validate(self, condition):
        normalized = super().validate(condition)
        if "min_items" in normalized and (
            not isinstance(normalized["min_items"], int) or normalized["min_items"] < 1
        ):
            raise ValidationError("min_items must be a positive integer")
        if "keyword" in normalized and (
            not isinstance(normalized["keyword"], str) or not normalized["keyword"].strip()
        ):
            raise ValidationError("keyword must be a non-empty string")
        if not normalized.get("new_items") and not (
            {"min_items", "keyword"} & normalized.keys()
        ):
            raise ValidationError("Freshness condition needs new_items, min_items or keyword")
        return normalized

    @staticmethod
    def _published_after(item: Any, reference: datetime) -> bool:
        try:
            return parse_timestamp(_field(item, "published_at")) > reference
        except (TypeError, ValueError):
            logger.debug(f"Skipping item without a readable published_at: {item!r}")
            return False

    def _evaluate(self, condition, observation, context) -> Verdict:
        reference = context.created_at
        if context.last_triggered_at and context.last_triggered_at > reference:
            reference = context.last_triggered_at
        keyword = str(condition.get("keyword", "")).strip().lower()
        fresh = [
            item
            for item in observation or []
            if self._published_after(item, reference)
            and keyword in str(_field(item, "title", "")).lower()
        ]
        needed = condition.get("min_items", 1)
        if len(fresh) < needed:
            return NOT_SATISFIED
        return Verdict(True, [str(_field(item, "title", "")) for item in fresh])


class DueDateEvaluator(ConditionEvaluator):
    """Reminder semantics: satisfied once ``now >= due_at``."""

    name = "due_date"

    @property
    def allowed_keys(self) -> frozenset[str]:
        return frozenset({"due_at"})

    def validate(self, condition):
        normalized = super().validate(condition)
        if "due_at" not in normalized:
            raise ValidationError("Reminder condition needs due_at")
        try:
            normalized["due_at"] = parse_timestamp(normalized["due_at"])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"due_at must be a timestamp: {e}") from e
        return normalized

    def _evaluate(self, condition, observation, context) -> Verdict:
        due_at = parse_timestamp(condition["due_at"])
        if context.now >= due_at:
            return Verdict(True, [f"Due at {due_at.isoformat()}"])
        return NOT_SATISFIED


EVALUATORS: dict[str, type[ConditionEvaluator]] = {
    ThresholdEvaluator.name: ThresholdEvaluator,
    WeatherEvaluator.name: WeatherEvaluator,
    FreshnessEvaluator.name: FreshnessEvaluator,
    DueDateEvaluator.name: DueDateEvaluator,
}
