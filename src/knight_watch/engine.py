"""WatchEngine: the public face of knight-watch.

Composes the store, cache, domain registry, dispatcher and scheduler.
A command layer (chat bot, CLI) only ever talks to this class.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from .cache import TTLCache
from .config import KnightWatchConfig, StoreConfig
from .domains import DomainRegistry, build_default_registry
from .exceptions import ConfigError, ValidationError
from .interval import parse
from .notifications import NotificationDispatcher
from .scheduler import Scheduler
from .stats import StatsTracker
from .watches.models import TickReport, Watch, ensure_utc, utcnow
from .watches.store import (
    MemoryWatchStore,
    SqliteWatchStore,
    WatchStore,
    YamlWatchStore,
)

logger = logging.getLogger("knight-watch")


def create_store(config: StoreConfig) -> WatchStore:
    """Build the configured store backend."""
    if config.backend == "memory":
        return MemoryWatchStore()
    if config.backend == "yaml":
        return YamlWatchStore(config.path)
    if config.backend == "sqlite":
        return SqliteWatchStore(config.path)
    raise ConfigError(
        f"Unknown store backend {config.backend!r}; expected memory, yaml or sqlite"
    )


def _new_id() -> str:
    return f"w_{uuid.uuid4().hex[:8]}"


class WatchEngine:
    """Create, list and cancel watches; run the per-domain tickers.

    Every collaborator can be injected, which is how tests swap in fake
    fetchers and notifiers and a controllable clock.
    """

    def __init__(
        self,
        config: KnightWatchConfig | None = None,
        *,
        store: WatchStore | None = None,
        registry: DomainRegistry | None = None,
        cache: TTLCache | None = None,
        dispatcher: NotificationDispatcher | None = None,
        stats: StatsTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
        fetchers: dict[str, Any] | None = None,
    ) -> None:
        self.config = config or KnightWatchConfig()
        self._clock = clock
        self.store = store or create_store(self.config.store)
        self.registry = registry or build_default_registry(
            self.config, clock=clock, fetchers=fetchers
        )
        self.cache = cache or TTLCache(self.config.cache.ttl_seconds, clock=clock)
        self.dispatcher = dispatcher or NotificationDispatcher(self.config.notifications)
        self.scheduler = Scheduler(
            self.registry,
            self.store,
            self.cache,
            self.dispatcher,
            self.config,
            stats=stats,
            clock=clock,
        )

    @property
    def stats(self) -> StatsTracker:
        return self.scheduler.stats

    # ── Management API ───────────────────────────────────

    def create_watch(
        self,
        owner_id: str,
        domain: str,
        subject: str,
        condition: Mapping[str, Any],
        recurrence: str | None = None,
        expires_at: datetime | None = None,
        custom_message: str | None = None,
    ) -> str:
        """Validate and persist a new watch.  Returns its id.

        Raises ValidationError (or its InvalidIntervalError subclass) and
        persists nothing when any part of the request is invalid.
        """
        if not owner_id or not str(owner_id).strip():
            raise ValidationError("owner_id must not be empty")
        subject = (subject or "").strip()
        if not subject:
            raise ValidationError("subject must not be empty")

        strategy = self.registry.get(domain)
        normalized = strategy.evaluator.validate(condition)

        interval = None
        if recurrence is not None:
            interval = str(parse(recurrence))

        now = self._clock()
        expires_at = ensure_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationError("expires_at must be in the future")

        watch = Watch(
            id=_new_id(),
            owner_id=str(owner_id),
            domain=domain,
            subject=subject,
            condition=normalized,
            recurring=interval is not None,
            interval=interval,
            expires_at=expires_at,
            custom_message=custom_message or None,
            created_at=now,
        )
        self.store.create(watch)
        logger.info(
            f"Created watch {watch.id}: {domain} {subject!r} "
            f"{'every ' + interval if interval else 'one-shot'} for {owner_id}"
        )
        return watch.id

    def list_watches(self, owner_id: str, active_only: bool = False) -> list[Watch]:
        watches = self.store.list_by_owner(owner_id)
        if active_only:
            watches = [w for w in watches if w.active]
        return sorted(watches, key=lambda w: w.created_at)

    def get_watch(self, watch_id: str, owner_id: str) -> Watch:
        return self.store.get(watch_id, owner_id)

    def cancel_watch(self, watch_id: str, owner_id: str) -> None:
        """Deactivate a watch.  Raises NotFound or AccessDenied."""
        self.store.deactivate(watch_id, owner_id)

    def delete_watch(self, watch_id: str, owner_id: str) -> None:
        self.store.delete(watch_id, owner_id)

    # ── Scheduling ───────────────────────────────────────

    async def tick(self, domain: str, now: datetime | None = None) -> TickReport:
        """Run one evaluation pass for ``domain`` right away."""
        self.registry.get(domain)
        return await self.scheduler.tick(domain, now)

    async def tick_all(self, now: datetime | None = None) -> list[TickReport]:
        return await self.scheduler.tick_all(now)

    def start(self) -> None:
        """Start the per-domain tickers.  Must be called from a running loop."""
        self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.dispatcher.close()
        await self.registry.close()
        self.store.close()
