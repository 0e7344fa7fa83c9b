"""Generic webhook notification delivery.

POSTs a structured JSON payload to any URL when a watch fires.
Use this as an escape hatch for chat transports that don't have a
dedicated notifier (e.g. a WhatsApp gateway, Home Assistant, IFTTT).

Setup:
1. Set NOTIFICATION_WEBHOOK_URL env var (or notifications.webhook_url)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import aiohttp

logger = logging.getLogger("knight-watch")


class WebhookNotifier:
    """POST structured JSON to a URL on every firing."""

    def __init__(self, default_url: str = ""):
        self._default_url = default_url
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=15)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _build_payload(
        self, owner_id: str, message: str, context: dict[str, Any] | None
    ) -> dict:
        payload: dict = {
            "event": "watch_triggered",
            "owner_id": owner_id,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if context:
            payload.update(context)
        return payload

    async def send(
        self, owner_id: str, message: str, context: dict[str, Any] | None = None
    ) -> bool:
        """POST message JSON to the webhook URL.  Returns True on success."""
        if not self._default_url:
            return False

        session = self._get_session()
        payload = self._build_payload(owner_id, message, context)

        try:
            async with session.post(self._default_url, json=payload) as resp:
                ok = resp.status < 400

            if ok:
                logger.info(f"Webhook sent for {owner_id} → {self._default_url}")
            else:
                logger.warning(
                    f"Webhook failed: HTTP {resp.status} → {self._default_url}"
                )
            return ok

        except aiohttp.ClientError as e:
            logger.warning(f"Webhook error: {e}")
            return False

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
