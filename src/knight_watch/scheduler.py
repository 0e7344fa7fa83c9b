"""Per-domain tickers: the periodic evaluation loop.

One asyncio task per domain, each Idle -> Ticking -> Idle on its own
cadence.  A tick selects the due watches, fetches (through the TTL cache),
evaluates, dispatches and writes bookkeeping back.  Ticks of the same
domain never overlap; ticks of different domains run independently.

Recovery policy inside a tick:
  - fetch failure / timeout: logged, ``last_evaluated_at`` still advances,
    next watch continues.  The next tick retries naturally.
  - delivery failure: logged in the delivery log; the watch still
    deactivates (one-shot) or reschedules (recurring).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from .cache import MISS, TTLCache
from .conditions import EvalContext, parse_timestamp
from .config import KnightWatchConfig
from .domains import Domain, DomainRegistry
from .exceptions import ConfigError, FetchError, InvalidIntervalError, NotFound
from .interval import next_occurrence, parse
from .notifications import NotificationDispatcher
from .stats import StatsTracker
from .watches.models import TickReport, Watch, utcnow
from .watches.store import WatchStore

logger = logging.getLogger("knight-watch")

RESCHEDULE_MODES = ("trigger", "now")


class DomainTicker:
    """Runs evaluation passes for one domain, never two at once."""

    def __init__(
        self,
        domain: Domain,
        store: WatchStore,
        cache: TTLCache,
        dispatcher: NotificationDispatcher,
        stats: StatsTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
        reschedule_from: str = "trigger",
    ) -> None:
        if reschedule_from not in RESCHEDULE_MODES:
            raise ConfigError(
                f"reschedule_from must be one of {RESCHEDULE_MODES}, "
                f"got {reschedule_from!r}"
            )
        self.domain = domain
        self._store = store
        self._cache = cache
        self._dispatcher = dispatcher
        self._stats = stats
        self._clock = clock
        self._reschedule_from = reschedule_from
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def tick(self, now: datetime | None = None) -> TickReport:
        """One evaluation pass.  Skipped if a pass is already running."""
        name = self.domain.name
        if self._lock.locked():
            logger.warning(f"[{name}] Previous tick still running, skipping")
            report = TickReport(
                domain=name, started_at=now or self._clock(), skipped=True
            )
            if self._stats:
                self._stats.record_tick(report)
            return report

        async with self._lock:
            now = now or self._clock()
            report = TickReport(domain=name, started_at=now)
            due = self._store.list_due(name, now, self.domain.cadence)
            if due:
                logger.info(f"[{name}] Tick: {len(due)} watch(es) due")

            workers = asyncio.Semaphore(max(1, self.domain.settings.max_workers))

            async def _run(watch: Watch) -> None:
                async with workers:
                    try:
                        await self._process(watch, now, report)
                    except Exception:
                        logger.exception(
                            f"[{name}] Unexpected error on watch {watch.id}"
                        )

            await asyncio.gather(*(_run(w) for w in due))
            report.finished_at = self._clock()

        if self._stats:
            self._stats.record_tick(report)
        return report

    async def _observe(self, subject: str) -> Any:
        """Current observation for ``subject``, via the cache when allowed."""
        timeout = self.domain.settings.fetch_timeout_seconds
        if not self.domain.cacheable:
            return await asyncio.wait_for(self.domain.fetcher.fetch(subject), timeout)

        key = self.domain.cache_key(subject)
        cached = self._cache.get(key)
        if cached is not MISS:
            return cached
        value = await asyncio.wait_for(self.domain.fetcher.fetch(subject), timeout)
        self._cache.put(key, value)
        return value

    async def _process(self, watch: Watch, now: datetime, report: TickReport) -> None:
        name = self.domain.name
        report.evaluated += 1
        try:
            observation = await self._observe(watch.subject)
        except asyncio.TimeoutError:
            report.fetch_failures += 1
            logger.warning(
                f"[{name}] Fetch for {watch.subject!r} timed out after "
                f"{self.domain.settings.fetch_timeout_seconds:.0f}s (watch {watch.id})"
            )
            self._finish(watch, now)
            return
        except FetchError as e:
            report.fetch_failures += 1
            logger.warning(f"[{name}] Fetch failed for watch {watch.id}: {e}")
            self._finish(watch, now)
            return
        except Exception as e:
            report.fetch_failures += 1
            logger.error(
                f"[{name}] Fetcher raised {type(e).__name__} for watch {watch.id}: {e}"
            )
            self._finish(watch, now)
            return

        context = EvalContext(
            now=now,
            created_at=watch.created_at,
            last_triggered_at=watch.last_triggered_at,
        )
        verdict = self.domain.evaluator.evaluate(watch.condition, observation, context)
        if not verdict:
            self._finish(watch, now)
            return

        logger.info(f"[{name}] Watch {watch.id} fired: {'; '.join(verdict.reasons)}")
        record = await self._dispatcher.dispatch(watch, observation, verdict.reasons)
        report.fired.append(watch.id)
        if not record.delivered:
            report.deliveries_failed += 1

        watch.last_triggered_at = now
        watch.trigger_count += 1
        if watch.recurring:
            self._reschedule(watch, now)
        else:
            watch.active = False
        self._finish(watch, now)

    def _reschedule(self, watch: Watch, now: datetime) -> None:
        try:
            spec = parse(watch.interval or "")
        except InvalidIntervalError as e:
            logger.error(f"Watch {watch.id} has a bad interval, deactivating: {e}")
            watch.active = False
            return

        anchor = now
        if self._reschedule_from == "trigger" and self.domain.uses_due_date:
            anchor = parse_timestamp(watch.condition["due_at"])
        next_at = next_occurrence(anchor, spec)

        if watch.expires_at is not None and next_at > watch.expires_at:
            logger.info(
                f"Watch {watch.id} next run {next_at.isoformat()} is past its "
                "expiry, deactivating"
            )
            watch.active = False
            return

        if self.domain.uses_due_date:
            watch.condition["due_at"] = next_at
        watch.next_run_at = next_at
        logger.info(f"Rescheduled watch {watch.id} to {next_at.isoformat()}")

    def _finish(self, watch: Watch, now: datetime) -> None:
        """Write bookkeeping back; a watch deleted mid-tick is dropped."""
        watch.last_evaluated_at = now
        try:
            self._store.update(watch)
        except NotFound:
            logger.info(f"Watch {watch.id} was deleted during the tick")


class Scheduler:
    """Owns the per-domain tickers plus the cache sweeper and retention purge."""

    def __init__(
        self,
        registry: DomainRegistry,
        store: WatchStore,
        cache: TTLCache,
        dispatcher: NotificationDispatcher,
        config: KnightWatchConfig,
        stats: StatsTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._config = config
        self._clock = clock
        self.stats = stats or StatsTracker()
        self.tickers: dict[str, DomainTicker] = {
            domain.name: DomainTicker(
                domain,
                store,
                cache,
                dispatcher,
                stats=self.stats,
                clock=clock,
                reschedule_from=config.scheduler.reschedule_from,
            )
            for domain in registry
        }
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def tick(self, domain: str, now: datetime | None = None) -> TickReport:
        ticker = self.tickers.get(domain)
        if ticker is None:
            raise ConfigError(f"No ticker for domain {domain!r}")
        return await ticker.tick(now)

    async def tick_all(self, now: datetime | None = None) -> list[TickReport]:
        return list(await asyncio.gather(*(t.tick(now) for t in self.tickers.values())))

    def start(self) -> None:
        """Spawn one task per domain plus the housekeeping loops."""
        if self.running:
            return
        for ticker in self.tickers.values():
            self._tasks.append(
                asyncio.create_task(
                    self._ticker_loop(ticker), name=f"tick:{ticker.domain.name}"
                )
            )
        self._tasks.append(asyncio.create_task(self._sweep_loop(), name="cache-sweep"))
        if self._config.scheduler.retention_days > 0:
            self._tasks.append(asyncio.create_task(self._purge_loop(), name="purge"))
        logger.info(f"Scheduler started: {', '.join(sorted(self.tickers))}")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def _ticker_loop(self, ticker: DomainTicker) -> None:
        cadence = ticker.domain.settings.cadence_seconds
        while True:
            try:
                await ticker.tick()
            except Exception:
                logger.exception(f"[{ticker.domain.name}] Tick crashed")
            await asyncio.sleep(cadence)

    async def _sweep_loop(self) -> None:
        interval = self._config.cache.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self._cache.sweep()

    async def _purge_loop(self) -> None:
        settings = self._config.scheduler
        while True:
            await asyncio.sleep(settings.purge_interval_seconds)
            cutoff = self._clock() - timedelta(days=settings.retention_days)
            try:
                self._store.purge_inactive(cutoff)
            except Exception:
                logger.exception("Retention purge failed")
