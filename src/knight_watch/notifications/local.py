"""Log-only notifier: the log line IS the notification."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("knight-watch")


class LocalNotifier:
    async def send(
        self, owner_id: str, message: str, context: dict[str, Any] | None = None
    ) -> bool:
        logger.info(f"NOTIFY {owner_id}: {message}")
        return True

    async def close(self) -> None:
        pass
