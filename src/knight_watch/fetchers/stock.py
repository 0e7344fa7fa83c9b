"""Finnhub stock quote fetcher."""

from __future__ import annotations

from ..exceptions import FetchError
from ..watches.models import PriceObservation
from .base import HttpFetcher


class FinnhubQuoteFetcher(HttpFetcher):
    name = "finnhub"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://finnhub.io/api/v1",
        timeout_seconds: float = 15.0,
    ):
        super().__init__(timeout_seconds)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def fetch(self, subject: str) -> PriceObservation:
        if not self._api_key:
            raise FetchError("Stock API key not configured (FINNHUB_API_KEY)")
        symbol = subject.strip().upper()
        data = await self._get_json(
            f"{self._base_url}/quote",
            params={"symbol": symbol, "token": self._api_key},
        )
        # Finnhub answers unknown symbols with an all-zero quote.
        price = data.get("c") if isinstance(data, dict) else None
        if not price:
            raise FetchError(f"Stock {symbol} not found")
        return PriceObservation(
            value=float(price),
            currency="USD",
            change_24h=data.get("dp"),
        )
