"""Telegram Bot API notification delivery.

Sends fired watches as text messages via the Bot API.  The recipient's
owner id is the Telegram chat id.

Setup:
1. Message @BotFather on Telegram → /newbot → copy the token
2. Set TELEGRAM_BOT_TOKEN env var (or notifications.telegram_bot_token)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import aiohttp

logger = logging.getLogger("knight-watch")


class TelegramNotifier:
    """Push messages to Telegram chats via Bot API sendMessage."""

    def __init__(self, bot_token: str = ""):
        self._bot_token = bot_token
        self._api_base = "https://api.telegram.org"
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=15)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def send(
        self, owner_id: str, message: str, context: dict[str, Any] | None = None
    ) -> bool:
        """Send message to chat ``owner_id``.  Returns True on success."""
        if not self._bot_token or not owner_id:
            return False

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": owner_id,
            "text": message,
            "parse_mode": "Markdown",
        }
        session = self._get_session()
        try:
            async with session.post(url, json=payload) as resp:
                ok = resp.status < 400
                if not ok:
                    body = await resp.text()
                    logger.warning(
                        f"Telegram sendMessage failed: HTTP {resp.status}: {body}"
                    )
            if ok:
                logger.info(f"Telegram message sent to {owner_id}")
            return ok

        except aiohttp.ClientError as e:
            logger.warning(f"Telegram error: {e}")
            return False

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
