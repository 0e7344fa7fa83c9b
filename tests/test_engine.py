"""End-to-end tests for the WatchEngine facade."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from knight_watch.config import KnightWatchConfig, StoreConfig
from knight_watch.engine import WatchEngine, create_store
from knight_watch.exceptions import (
    AccessDenied,
    ConfigError,
    InvalidIntervalError,
    NotFound,
    ValidationError,
)
from knight_watch.notifications import NotificationDispatcher
from knight_watch.watches import (
    MemoryWatchStore,
    PriceObservation,
    SqliteWatchStore,
    YamlWatchStore,
)

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class PriceFeed:
    def __init__(self, value: float):
        self.value = value

    async def fetch(self, subject: str) -> PriceObservation:
        return PriceObservation(value=self.value)


def _make_engine(price: float = 50000.0):
    clock = FakeClock()
    config = KnightWatchConfig(store=StoreConfig(backend="memory"))
    notifier = AsyncMock()
    notifier.send = AsyncMock(return_value=True)
    dispatcher = NotificationDispatcher(config.notifications, notifiers={"local": notifier})
    feed = PriceFeed(price)
    engine = WatchEngine(
        config,
        dispatcher=dispatcher,
        clock=clock,
        fetchers={"crypto": feed, "stock": feed, "weather": feed, "news": feed},
    )
    return engine, clock, notifier, feed


class TestCreateWatch:
    def test_returns_id_and_persists(self):
        engine, _, _, _ = _make_engine()
        watch_id = engine.create_watch("alice", "crypto", "BTC", {"aboveValue": 60000})
        assert watch_id.startswith("w_")
        watch = engine.get_watch(watch_id, "alice")
        assert watch.condition == {"above_value": 60000}
        assert watch.recurring is False
        assert watch.created_at == T0

    def test_recurrence_normalized(self):
        engine, _, _, _ = _make_engine()
        watch_id = engine.create_watch("alice", "crypto", "ETH", {"below_value": 1}, recurrence=" 2H ")
        watch = engine.get_watch(watch_id, "alice")
        assert watch.recurring is True
        assert watch.interval == "2h"

    @pytest.mark.parametrize(
        "args",
        [
            ("alice", "crypto", "", {"above_value": 1}),
            ("alice", "crypto", "   ", {"above_value": 1}),
            ("", "crypto", "BTC", {"above_value": 1}),
            ("alice", "crypto", "BTC", {}),
            ("alice", "crypto", "BTC", {"temp_above": 1}),
            ("alice", "horoscope", "Leo", {"above_value": 1}),
            ("alice", "crypto", "BTC", {"above_value": float("nan")}),
            ("alice", "crypto", "BTC", {"aboveValue": 1, "above_value": 2}),
        ],
    )
    def test_rejections_persist_nothing(self, args):
        engine, _, _, _ = _make_engine()
        with pytest.raises(ValidationError):
            engine.create_watch(*args)
        assert engine.store.list_all() == []

    def test_invalid_recurrence_rejected(self):
        engine, _, _, _ = _make_engine()
        with pytest.raises(InvalidIntervalError):
            engine.create_watch("alice", "crypto", "BTC", {"above_value": 1}, recurrence="5x")
        assert engine.store.list_all() == []

    def test_oversized_recurrence_rejected(self):
        engine, _, _, _ = _make_engine()
        with pytest.raises(ValidationError):
            engine.create_watch(
                "alice", "crypto", "BTC", {"above_value": 1}, recurrence="9" * 5000 + "d"
            )
        assert engine.store.list_all() == []

    def test_expiry_in_past_rejected(self):
        engine, _, _, _ = _make_engine()
        with pytest.raises(ValidationError, match="future"):
            engine.create_watch(
                "alice", "crypto", "BTC", {"above_value": 1}, expires_at=T0 - timedelta(minutes=1)
            )

    def test_ids_unique(self):
        engine, _, _, _ = _make_engine()
        ids = {engine.create_watch("alice", "crypto", "BTC", {"above_value": 1}) for _ in range(20)}
        assert len(ids) == 20


class TestManagement:
    def test_list_watches_only_own(self):
        engine, clock, _, _ = _make_engine()
        first = engine.create_watch("alice", "crypto", "BTC", {"above_value": 1})
        clock.advance(seconds=1)
        second = engine.create_watch("alice", "stock", "AAPL", {"below_value": 100})
        engine.create_watch("bob", "crypto", "ETH", {"above_value": 1})
        assert [w.id for w in engine.list_watches("alice")] == [first, second]

    def test_list_active_only(self):
        engine, _, _, _ = _make_engine()
        watch_id = engine.create_watch("alice", "crypto", "BTC", {"above_value": 1})
        engine.cancel_watch(watch_id, "alice")
        assert engine.list_watches("alice", active_only=True) == []
        assert len(engine.list_watches("alice")) == 1

    def test_cancel_unknown(self):
        engine, _, _, _ = _make_engine()
        with pytest.raises(NotFound):
            engine.cancel_watch("w_nope", "alice")

    def test_cancel_someone_elses(self):
        engine, _, _, _ = _make_engine()
        watch_id = engine.create_watch("alice", "crypto", "BTC", {"above_value": 1})
        with pytest.raises(AccessDenied):
            engine.cancel_watch(watch_id, "bob")
        assert engine.get_watch(watch_id, "alice").active is True

    def test_delete(self):
        engine, _, _, _ = _make_engine()
        watch_id = engine.create_watch("alice", "crypto", "BTC", {"above_value": 1})
        engine.delete_watch(watch_id, "alice")
        with pytest.raises(NotFound):
            engine.get_watch(watch_id, "alice")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_btc_one_shot(self):
        """BTC above 60k: quiet at 50k, fires once at 61k, then stays quiet."""
        engine, clock, notifier, feed = _make_engine(price=50000)
        watch_id = engine.create_watch("alice", "crypto", "BTC", {"above_value": 60000})

        report = await engine.tick("crypto")
        assert report.evaluated == 1
        assert report.fired == []

        feed.value = 61000
        clock.advance(minutes=5)
        report = await engine.tick("crypto")
        assert report.fired == [watch_id]
        owner, message, _ = notifier.send.await_args.args
        assert owner == "alice"
        assert "61000" in message

        clock.advance(minutes=5)
        report = await engine.tick("crypto")
        assert report.evaluated == 0
        assert notifier.send.await_count == 1
        assert engine.list_watches("alice")[0].active is False
        await engine.close()

    @pytest.mark.asyncio
    async def test_weekly_reminder(self):
        engine, clock, notifier, _ = _make_engine()
        due = T0 + timedelta(minutes=30)
        watch_id = engine.create_watch(
            "alice",
            "reminder",
            "Water the plants",
            {"dueDate": due.isoformat()},
            recurrence="1w",
            custom_message="Water the plants!",
        )

        assert (await engine.tick("reminder")).fired == []
        clock.advance(minutes=30)
        assert (await engine.tick("reminder")).fired == [watch_id]
        assert notifier.send.await_args.args[1] == "Water the plants!"

        watch = engine.get_watch(watch_id, "alice")
        assert watch.active is True
        assert watch.condition["due_at"] == due + timedelta(weeks=1)

        clock.advance(days=1)
        assert (await engine.tick("reminder")).fired == []
        clock.advance(days=6)
        assert (await engine.tick("reminder")).fired == [watch_id]
        assert notifier.send.await_count == 2
        await engine.close()

    @pytest.mark.asyncio
    async def test_expired_watch_never_evaluated(self):
        engine, clock, notifier, _ = _make_engine(price=70000)
        watch_id = engine.create_watch(
            "alice", "crypto", "BTC", {"above_value": 60000}, expires_at=T0 + timedelta(minutes=1)
        )
        clock.advance(minutes=2)
        report = await engine.tick("crypto")
        assert report.evaluated == 0
        assert notifier.send.await_count == 0
        assert engine.get_watch(watch_id, "alice").active is False

    @pytest.mark.asyncio
    async def test_tick_unknown_domain(self):
        engine, _, _, _ = _make_engine()
        with pytest.raises(ValidationError):
            await engine.tick("horoscope")

    @pytest.mark.asyncio
    async def test_stats_accumulate(self):
        engine, _, _, _ = _make_engine(price=70000)
        engine.create_watch("alice", "crypto", "BTC", {"above_value": 60000})
        await engine.tick("crypto")
        counts = engine.stats.domain("crypto")
        assert counts["ticks"] == 1
        assert counts["fired"] == 1


class TestCreateStore:
    def test_backends(self, tmp_path):
        assert isinstance(create_store(StoreConfig(backend="memory")), MemoryWatchStore)
        yaml_store = create_store(StoreConfig(backend="yaml", path=str(tmp_path / "w.yaml")))
        assert isinstance(yaml_store, YamlWatchStore)
        sqlite_store = create_store(StoreConfig(backend="sqlite", path=str(tmp_path / "w.db")))
        assert isinstance(sqlite_store, SqliteWatchStore)
        sqlite_store.close()

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            create_store(StoreConfig(backend="redis"))

    def test_disabled_domain_not_registered(self):
        config = KnightWatchConfig(store=StoreConfig(backend="memory"))
        config.domains["news"].enabled = False
        engine = WatchEngine(config)
        assert "news" not in engine.registry
        with pytest.raises(ValidationError):
            engine.create_watch("alice", "news", "bitcoin", {"new_items": True})
