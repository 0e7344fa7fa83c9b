"""Domain registry: each domain is a (fetcher, evaluator) strategy pair.

Adding a domain is a ``register()`` call; nothing in the scheduler or the
engine branches on domain names.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .cache import fingerprint
from .conditions import (
    ConditionEvaluator,
    DueDateEvaluator,
    FreshnessEvaluator,
    ThresholdEvaluator,
    WeatherEvaluator,
)
from .config import DomainConfig, KnightWatchConfig
from .exceptions import ValidationError
from .fetchers import (
    ClockFetcher,
    CoinGeckoPriceFetcher,
    DataFetcher,
    FinnhubQuoteFetcher,
    NewsApiFetcher,
    OpenWeatherFetcher,
)
from .watches.models import utcnow

logger = logging.getLogger("knight-watch")


@dataclass
class Domain:
    name: str
    fetcher: DataFetcher
    evaluator: ConditionEvaluator
    settings: DomainConfig = field(default_factory=DomainConfig)
    cacheable: bool = True  # False for clock-driven domains

    @property
    def cadence(self) -> timedelta:
        return timedelta(seconds=self.settings.cadence_seconds)

    @property
    def uses_due_date(self) -> bool:
        return isinstance(self.evaluator, DueDateEvaluator)

    def cache_key(self, subject: str) -> str:
        return fingerprint(self.name, subject)


class DomainRegistry:
    def __init__(self) -> None:
        self._domains: dict[str, Domain] = {}

    def register(self, domain: Domain) -> None:
        if domain.name in self._domains:
            logger.info(f"Replacing domain {domain.name!r}")
        self._domains[domain.name] = domain

    def get(self, name: str) -> Domain:
        domain = self._domains.get(name)
        if domain is None:
            raise ValidationError(
                f"Unknown domain {name!r}; expected one of {', '.join(self.names())}"
            )
        return domain

    def names(self) -> list[str]:
        return sorted(self._domains)

    def __contains__(self, name: object) -> bool:
        return name in self._domains

    def __iter__(self):
        return iter(self._domains.values())

    async def close(self) -> None:
        for domain in self._domains.values():
            close = getattr(domain.fetcher, "close", None)
            if close is not None:
                await close()


def build_default_registry(
    config: KnightWatchConfig,
    clock: Callable[[], datetime] = utcnow,
    fetchers: dict[str, Any] | None = None,
) -> DomainRegistry:
    """Registry for the six stock domains, honouring ``domains.*.enabled``.

    ``fetchers`` overrides the network fetcher of any domain by name.
    """
    providers = config.providers
    overrides = fetchers or {}
    candidates = {
        "crypto": (
            lambda: CoinGeckoPriceFetcher(
                api_key=providers.coingecko_api_key, currency=providers.currency
            ),
            ThresholdEvaluator,
            True,
        ),
        "stock": (
            lambda: FinnhubQuoteFetcher(api_key=providers.finnhub_api_key),
            ThresholdEvaluator,
            True,
        ),
        "weather": (
            lambda: OpenWeatherFetcher(api_key=providers.openweather_api_key),
            WeatherEvaluator,
            True,
        ),
        "news": (
            lambda: NewsApiFetcher(api_key=providers.news_api_key),
            FreshnessEvaluator,
            True,
        ),
        "reminder": (lambda: ClockFetcher(clock), DueDateEvaluator, False),
        "notify": (lambda: ClockFetcher(clock), DueDateEvaluator, False),
    }

    registry = DomainRegistry()
    for name, (make_fetcher, evaluator_cls, cacheable) in candidates.items():
        settings = config.domains.get(name, DomainConfig())
        if not settings.enabled:
            continue
        fetcher = overrides[name] if name in overrides else make_fetcher()
        registry.register(
            Domain(
                name=name,
                fetcher=fetcher,
                evaluator=evaluator_cls(),
                settings=settings,
                cacheable=cacheable,
            )
        )
    return registry
