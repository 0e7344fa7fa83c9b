"""Data fetchers: given a watch subject, return the current observation.

Fetchers are idempotent and side-effect-free.  Failures are raised as
``FetchError``; the scheduler logs them and moves on to the next watch.

- "crypto": CoinGecko simple price (PriceObservation)
- "stock": Finnhub quote (PriceObservation)
- "weather": OpenWeather current conditions (WeatherObservation)
- "news": NewsAPI keyword search (list[Article])
- "reminder" / "notify": the clock itself, no I/O
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .base import HttpFetcher
from .clock import ClockFetcher
from .crypto import CoinGeckoPriceFetcher
from .news import NewsApiFetcher
from .stock import FinnhubQuoteFetcher
from .weather import OpenWeatherFetcher


@runtime_checkable
class DataFetcher(Protocol):
    async def fetch(self, subject: str) -> Any: ...


__all__ = [
    "DataFetcher",
    "HttpFetcher",
    "ClockFetcher",
    "CoinGeckoPriceFetcher",
    "FinnhubQuoteFetcher",
    "OpenWeatherFetcher",
    "NewsApiFetcher",
]
