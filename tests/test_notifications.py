"""Tests for notifiers, dispatch routing, formatting and the delivery log."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import aiohttp
import pytest

from knight_watch.config import NotificationsConfig
from knight_watch.notifications import DeliveryLog, NotificationDispatcher, format_message
from knight_watch.notifications.local import LocalNotifier
from knight_watch.notifications.telegram import TelegramNotifier
from knight_watch.notifications.webhook import WebhookNotifier
from knight_watch.watches import (
    Article,
    DeliveryRecord,
    PriceObservation,
    Watch,
    WeatherObservation,
)


def _make_watch(
    domain: str = "crypto",
    subject: str = "btc",
    owner_id: str = "alice",
    **kwargs,
) -> Watch:
    kwargs.setdefault("condition", {"above_value": 50000})
    return Watch(id="w_test", owner_id=owner_id, domain=domain, subject=subject, **kwargs)


def _mock_session(status: int = 200, captured: dict | None = None, error: Exception | None = None):
    @asynccontextmanager
    async def mock_post(url, json=None, data=None):
        if error is not None:
            raise error
        if captured is not None:
            captured["url"] = url
            captured["json"] = json
        resp = AsyncMock()
        resp.status = status
        resp.text = AsyncMock(return_value="error body")
        yield resp

    session = AsyncMock()
    session.post = mock_post
    return session


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_no_token_returns_false(self):
        notifier = TelegramNotifier()
        assert await notifier.send("12345", "hi") is False
        await notifier.close()

    @pytest.mark.asyncio
    async def test_no_chat_returns_false(self):
        notifier = TelegramNotifier(bot_token="fake-token")
        assert await notifier.send("", "hi") is False
        await notifier.close()

    @pytest.mark.asyncio
    async def test_send_message(self):
        notifier = TelegramNotifier(bot_token="fake-token")
        captured: dict = {}
        notifier._session = _mock_session(captured=captured)

        assert await notifier.send("12345", "*BTC* is up") is True
        assert captured["url"].endswith("/botfake-token/sendMessage")
        assert captured["json"] == {
            "chat_id": "12345",
            "text": "*BTC* is up",
            "parse_mode": "Markdown",
        }
        await notifier.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        notifier = TelegramNotifier(bot_token="fake-token")
        notifier._session = _mock_session(status=403)
        assert await notifier.send("12345", "hi") is False

    @pytest.mark.asyncio
    async def test_client_error(self):
        notifier = TelegramNotifier(bot_token="fake-token")
        notifier._session = _mock_session(error=aiohttp.ClientError("refused"))
        assert await notifier.send("12345", "hi") is False


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_no_url_returns_false(self):
        assert await WebhookNotifier().send("alice", "hi") is False

    @pytest.mark.asyncio
    async def test_payload(self):
        notifier = WebhookNotifier(default_url="https://hooks.example.com/kw")
        captured: dict = {}
        notifier._session = _mock_session(captured=captured)

        ok = await notifier.send("alice", "BTC fired", {"watch_id": "w_1", "domain": "crypto"})
        assert ok is True
        assert captured["url"] == "https://hooks.example.com/kw"
        payload = captured["json"]
        assert payload["event"] == "watch_triggered"
        assert payload["owner_id"] == "alice"
        assert payload["message"] == "BTC fired"
        assert payload["watch_id"] == "w_1"
        assert "timestamp" in payload

    @pytest.mark.asyncio
    async def test_server_error(self):
        notifier = WebhookNotifier(default_url="https://hooks.example.com/kw")
        notifier._session = _mock_session(status=500)
        assert await notifier.send("alice", "hi") is False


class TestLocalNotifier:
    @pytest.mark.asyncio
    async def test_logs_and_succeeds(self, caplog):
        with caplog.at_level("INFO", logger="knight-watch"):
            assert await LocalNotifier().send("alice", "Reminder: call mum") is True
        assert "Reminder: call mum" in caplog.text


class TestDispatcher:
    def _dispatcher(self, **notifier_results):
        notifiers = {}
        for name, result in notifier_results.items():
            n = AsyncMock()
            n.send = AsyncMock(return_value=result)
            notifiers[name] = n
        return NotificationDispatcher(NotificationsConfig(), notifiers=notifiers), notifiers

    @pytest.mark.asyncio
    async def test_default_channel(self):
        dispatcher, notifiers = self._dispatcher(local=True)
        record = await dispatcher.dispatch(_make_watch(), PriceObservation(value=51000), ["up"])
        assert record.delivered is True
        assert record.channel == "local"
        assert notifiers["local"].send.await_args.args[0] == "alice"

    @pytest.mark.asyncio
    async def test_prefixed_owner_routes_to_channel(self):
        dispatcher, notifiers = self._dispatcher(local=True, telegram=True)
        record = await dispatcher.dispatch(_make_watch(owner_id="telegram:987"), 51000)
        assert record.channel == "telegram"
        assert notifiers["telegram"].send.await_args.args[0] == "987"
        notifiers["local"].send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unregistered_prefix_is_part_of_address(self):
        dispatcher, notifiers = self._dispatcher(local=True)
        await dispatcher.dispatch(_make_watch(owner_id="whatsapp:555"), 51000)
        assert notifiers["local"].send.await_args.args[0] == "whatsapp:555"

    @pytest.mark.asyncio
    async def test_failed_delivery_recorded_not_raised(self):
        dispatcher, _ = self._dispatcher(local=False)
        record = await dispatcher.dispatch(_make_watch(), 51000)
        assert record.delivered is False
        assert "could not deliver" in record.error
        assert dispatcher.delivery_log.recent()[-1] is record

    @pytest.mark.asyncio
    async def test_crashing_notifier_recorded_not_raised(self):
        dispatcher, notifiers = self._dispatcher(local=True)
        notifiers["local"].send.side_effect = RuntimeError("boom")
        record = await dispatcher.dispatch(_make_watch(), 51000)
        assert record.delivered is False
        assert "RuntimeError" in record.error

    @pytest.mark.asyncio
    async def test_unknown_default_channel(self):
        dispatcher = NotificationDispatcher(
            NotificationsConfig(default_type="pigeon"), notifiers={"local": AsyncMock()}
        )
        record = await dispatcher.dispatch(_make_watch(), 51000)
        assert record.delivered is False
        assert "pigeon" in record.error

    @pytest.mark.asyncio
    async def test_close_closes_notifiers(self):
        dispatcher, notifiers = self._dispatcher(local=True)
        await dispatcher.close()
        notifiers["local"].close.assert_awaited_once()


class TestDeliveryLog:
    def _record(self, watch_id: str = "w_1", delivered: bool = True) -> DeliveryRecord:
        return DeliveryRecord(
            watch_id=watch_id,
            owner_id="alice",
            domain="crypto",
            channel="local",
            delivered=delivered,
            message="hi",
        )

    def test_bounded(self):
        log = DeliveryLog(max_size=3)
        for i in range(5):
            log.record(self._record(f"w_{i}"))
        assert len(log) == 3
        assert [r.watch_id for r in log.recent()] == ["w_2", "w_3", "w_4"]

    def test_recent_filters(self):
        log = DeliveryLog()
        log.record(self._record("w_1"))
        log.record(self._record("w_2"))
        log.record(self._record("w_1", delivered=False))
        assert len(log.recent(watch_id="w_1")) == 2
        assert len(log.recent(limit=1)) == 1

    def test_jsonl_file(self, tmp_path):
        path = tmp_path / "logs" / "deliveries.jsonl"
        log = DeliveryLog(path=str(path))
        log.record(self._record("w_1"))
        log.record(self._record("w_2", delivered=False))
        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["delivered"] is False

    def test_unwritable_file_does_not_raise(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        log = DeliveryLog(path=str(blocker / "deliveries.jsonl"))
        log.record(self._record())
        assert len(log) == 1


class TestFormatting:
    def test_custom_message_wins(self):
        watch = _make_watch(custom_message="To the moon")
        assert format_message(watch, 51000, ["x"]) == "To the moon"

    def test_price(self):
        msg = format_message(_make_watch(), PriceObservation(value=51000), ["51000 is at or above 50000"])
        assert "BTC" in msg
        assert "51000" in msg
        assert "at or above" in msg

    def test_weather(self):
        watch = _make_watch(domain="weather", subject="Paris", condition={"rain": True})
        obs = WeatherObservation(temperature=11.5, description="light rain")
        msg = format_message(watch, obs, ["Rain detected"])
        assert "Paris" in msg
        assert "Rain detected" in msg
        assert "11.5" in msg

    def test_news_lists_titles(self):
        watch = _make_watch(domain="news", subject="bitcoin", condition={"new_items": True})
        articles = [Article(title="A", published_at=datetime(2024, 1, 1, tzinfo=timezone.utc))]
        msg = format_message(watch, articles, ["A", "B"])
        assert "2 new article" in msg
        assert "1. A" in msg

    def test_reminder(self):
        watch = _make_watch(domain="reminder", subject="Call mum", condition={"due_at": "2024-06-01"})
        assert "Call mum" in format_message(watch, None, [])

    def test_unknown_domain_generic(self):
        watch = _make_watch(domain="flights", subject="LH123", condition={"delayed": True})
        msg = format_message(watch, None, ["Delayed 40 min"])
        assert "LH123" in msg
        assert "Delayed 40 min" in msg
