"""CoinGecko simple-price fetcher.

Works without an API key on the public tier; set COINGECKO_API_KEY to use
the demo/pro header.
"""

from __future__ import annotations

from ..exceptions import FetchError
from ..watches.models import PriceObservation
from .base import HttpFetcher

# Ticker -> CoinGecko coin id.  Unknown tickers are passed through as ids.
SYMBOL_MAP = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "bnb": "binancecoin",
    "ada": "cardano",
    "sol": "solana",
    "xrp": "ripple",
    "dot": "polkadot",
    "doge": "dogecoin",
    "avax": "avalanche-2",
    "matic": "matic-network",
    "ltc": "litecoin",
    "link": "chainlink",
    "atom": "cosmos",
    "xlm": "stellar",
    "algo": "algorand",
}


class CoinGeckoPriceFetcher(HttpFetcher):
    name = "coingecko"

    def __init__(
        self,
        api_key: str = "",
        currency: str = "usd",
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout_seconds: float = 15.0,
    ):
        super().__init__(timeout_seconds)
        self._api_key = api_key
        self._currency = currency.lower()
        self._base_url = base_url.rstrip("/")

    async def fetch(self, subject: str) -> PriceObservation:
        symbol = subject.strip().lower()
        coin_id = SYMBOL_MAP.get(symbol, symbol)
        headers = {"x-cg-demo-api-key": self._api_key} if self._api_key else None
        data = await self._get_json(
            f"{self._base_url}/simple/price",
            params={
                "ids": coin_id,
                "vs_currencies": self._currency,
                "include_24hr_change": "true",
            },
            headers=headers,
        )
        quote = data.get(coin_id) if isinstance(data, dict) else None
        if not quote or self._currency not in quote:
            raise FetchError(f"Cryptocurrency {subject} not found or unsupported")
        return PriceObservation(
            value=float(quote[self._currency]),
            currency=self._currency.upper(),
            change_24h=quote.get(f"{self._currency}_24h_change"),
        )
