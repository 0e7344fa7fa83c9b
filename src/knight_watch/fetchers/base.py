"""Shared aiohttp plumbing for fetchers that call JSON APIs."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from ..exceptions import FetchError

logger = logging.getLogger("knight-watch")


class HttpFetcher:
    """Lazily-created aiohttp session plus a JSON GET that raises FetchError."""

    name = "http"

    def __init__(self, timeout_seconds: float = 15.0):
        self._timeout = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        session = self._get_session()
        try:
            async with session.get(url, params=params, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise FetchError(
                        f"{self.name}: HTTP {resp.status} from {url}: {body[:200]}"
                    )
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise FetchError(f"{self.name}: request failed: {e}") from e
        except ValueError as e:
            raise FetchError(f"{self.name}: malformed JSON: {e}") from e

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
