"""Notification dispatch for fired watches.

Routes messages to the appropriate channel:
- "local": log only (the log line IS the notification)
- "telegram": direct Telegram Bot API sendMessage
- "webhook": generic HTTP POST (JSON payload) for any other chat transport

An owner id may carry its channel as a prefix ("telegram:12345");
otherwise the configured default channel is used with the whole id.
Delivery is best-effort: every attempt lands in the DeliveryLog and
dispatch() never raises.
"""

from __future__ import annotations

__all__ = ["NotificationDispatcher", "Notifier", "DeliveryLog", "format_message"]

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from ..config import NotificationsConfig
from ..exceptions import DeliveryFailed
from ..watches.models import DeliveryRecord, Watch
from .delivery_log import DeliveryLog
from .formatting import format_message
from .local import LocalNotifier
from .telegram import TelegramNotifier
from .webhook import WebhookNotifier

logger = logging.getLogger("knight-watch")


class Notifier(Protocol):
    async def send(
        self, owner_id: str, message: str, context: dict[str, Any] | None = None
    ) -> bool: ...

    async def close(self) -> None: ...


class NotificationDispatcher:
    """Formats a firing and hands it to the owner's notification channel."""

    def __init__(
        self,
        config: NotificationsConfig,
        notifiers: dict[str, Notifier] | None = None,
        delivery_log: DeliveryLog | None = None,
    ):
        self._config = config
        self._notifiers: dict[str, Notifier] = notifiers or {
            "local": LocalNotifier(),
            "telegram": TelegramNotifier(bot_token=config.telegram_bot_token),
            "webhook": WebhookNotifier(default_url=config.webhook_url),
        }
        self.delivery_log = delivery_log or DeliveryLog(
            max_size=config.delivery_log_size,
            path=config.delivery_log_file,
        )

    def _route(self, owner_id: str) -> tuple[str, str]:
        """Return (channel, address) for an owner id."""
        prefix, sep, rest = owner_id.partition(":")
        if sep and prefix in self._notifiers:
            return prefix, rest
        return self._config.default_type, owner_id

    async def _send(
        self, channel: str, address: str, message: str, context: dict[str, Any]
    ) -> None:
        notifier = self._notifiers.get(channel)
        if notifier is None:
            raise DeliveryFailed(f"Unknown notification channel {channel!r}")
        if not await notifier.send(address, message, context):
            raise DeliveryFailed(f"{channel} notifier could not deliver to {address}")

    async def dispatch(
        self, watch: Watch, observation: Any, reasons: Sequence[str] = ()
    ) -> DeliveryRecord:
        """Deliver one firing.  The returned record says whether it got through."""
        message = format_message(watch, observation, reasons)
        channel, address = self._route(watch.owner_id)
        logger.info(
            f"Dispatching notification: channel={channel}, "
            f"watch={watch.id}, domain={watch.domain}"
        )
        context = {
            "watch_id": watch.id,
            "domain": watch.domain,
            "subject": watch.subject,
            "reasons": list(reasons),
        }
        error = ""
        try:
            await self._send(channel, address, message, context)
        except DeliveryFailed as e:
            error = str(e)
            logger.warning(f"Delivery failed for watch {watch.id}: {e}")
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.exception(f"Notifier crashed for watch {watch.id}")

        record = DeliveryRecord(
            watch_id=watch.id,
            owner_id=watch.owner_id,
            domain=watch.domain,
            channel=channel,
            delivered=not error,
            message=message,
            error=error,
        )
        self.delivery_log.record(record)
        return record

    async def close(self) -> None:
        """Clean up resources."""
        for notifier in self._notifiers.values():
            await notifier.close()
