"""Per-domain tick statistics."""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime, timezone

from .watches.models import TickReport


class StatsTracker:
    """Track ticks, evaluations, fetch failures, firings and deliveries."""

    def __init__(self) -> None:
        self._start_time = datetime.now(timezone.utc)
        self._domains: defaultdict[str, Counter] = defaultdict(Counter)
        self._last_tick: dict[str, datetime] = {}

    def record_tick(self, report: TickReport) -> None:
        counts = self._domains[report.domain]
        if report.skipped:
            counts["skipped_ticks"] += 1
            return
        counts["ticks"] += 1
        counts["evaluations"] += report.evaluated
        counts["fetch_failures"] += report.fetch_failures
        counts["fired"] += len(report.fired)
        counts["deliveries_failed"] += report.deliveries_failed
        self._last_tick[report.domain] = report.finished_at or report.started_at

    def domain(self, name: str) -> dict[str, int]:
        return dict(self._domains[name])

    def summary(self) -> dict:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        domains = {}
        for name, counts in sorted(self._domains.items()):
            last = self._last_tick.get(name)
            domains[name] = {
                **dict(counts),
                "last_tick_at": last.isoformat() if last else None,
            }
        return {
            "domains": domains,
            "total_fired": sum(c["fired"] for c in self._domains.values()),
            "uptime_seconds": round(uptime, 1),
        }
