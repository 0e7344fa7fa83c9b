"""Watches: data models and persistence."""

from .models import (
    Article,
    DeliveryRecord,
    PriceObservation,
    TickReport,
    Watch,
    WeatherObservation,
)
from .store import MemoryWatchStore, SqliteWatchStore, WatchStore, YamlWatchStore

__all__ = [
    "Watch",
    "DeliveryRecord",
    "TickReport",
    "PriceObservation",
    "WeatherObservation",
    "Article",
    "WatchStore",
    "MemoryWatchStore",
    "YamlWatchStore",
    "SqliteWatchStore",
]
