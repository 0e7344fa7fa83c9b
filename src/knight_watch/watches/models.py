"""Pydantic models for watches, observations, evaluations and deliveries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so all comparisons are aware."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Watch(BaseModel):
    id: str
    owner_id: str
    domain: str  # "crypto" | "stock" | "weather" | "news" | "reminder" | "notify"
    subject: str  # symbol, location, keyword, contact reference
    condition: dict[str, Any]
    recurring: bool = False
    interval: str | None = None  # IntervalSpec string, required iff recurring
    expires_at: datetime | None = None
    active: bool = True
    custom_message: str | None = None  # User-defined notification text
    created_at: datetime = Field(default_factory=utcnow)
    last_evaluated_at: datetime | None = None
    last_triggered_at: datetime | None = None
    next_run_at: datetime | None = None  # Next eligible evaluation (recurring)
    trigger_count: int = 0

    @field_validator(
        "expires_at",
        "created_at",
        "last_evaluated_at",
        "last_triggered_at",
        "next_run_at",
    )
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class PriceObservation(BaseModel):
    value: float
    currency: str = "USD"
    change_24h: float | None = None


class WeatherObservation(BaseModel):
    temperature: float
    wind_speed: float = 0.0
    description: str = ""
    humidity: float | None = None
    location: str = ""


class Article(BaseModel):
    title: str
    url: str = ""
    source: str = ""
    published_at: datetime

    @field_validator("published_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class DeliveryRecord(BaseModel):
    watch_id: str
    owner_id: str
    domain: str
    channel: str
    delivered: bool
    message: str
    error: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class TickReport(BaseModel):
    """Outcome of one evaluation pass over a domain."""

    domain: str
    started_at: datetime
    finished_at: datetime | None = None
    skipped: bool = False  # Another tick for this domain was still running
    evaluated: int = 0
    fetch_failures: int = 0
    fired: list[str] = Field(default_factory=list)  # Watch ids
    deliveries_failed: int = 0
