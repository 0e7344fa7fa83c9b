"""NewsAPI keyword search fetcher."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import FetchError
from ..watches.models import Article
from .base import HttpFetcher

logger = logging.getLogger("knight-watch")


class NewsApiFetcher(HttpFetcher):
    name = "newsapi"

    def __init__(
        self,
        api_key: str = "",
        language: str = "en",
        page_size: int = 20,
        base_url: str = "https://newsapi.org/v2",
        timeout_seconds: float = 15.0,
    ):
        super().__init__(timeout_seconds)
        self._api_key = api_key
        self._language = language
        self._page_size = page_size
        self._base_url = base_url.rstrip("/")

    async def fetch(self, subject: str) -> list[Article]:
        if not self._api_key:
            raise FetchError("News API key not configured (NEWS_API_KEY)")
        data = await self._get_json(
            f"{self._base_url}/everything",
            params={
                "q": subject,
                "sortBy": "publishedAt",
                "pageSize": self._page_size,
                "language": self._language,
                "apiKey": self._api_key,
            },
        )
        if not isinstance(data, dict) or data.get("status") != "ok":
            message = data.get("message", "unknown") if isinstance(data, dict) else data
            raise FetchError(f"News search failed for {subject!r}: {message}")
        articles = []
        for raw in data.get("articles", []):
            try:
                articles.append(
                    Article(
                        title=raw.get("title") or "",
                        url=raw.get("url") or "",
                        source=(raw.get("source") or {}).get("name", ""),
                        published_at=raw["publishedAt"],
                    )
                )
            except (KeyError, PydanticValidationError) as e:
                logger.debug(f"Skipping malformed article for {subject!r}: {e}")
        return articles
