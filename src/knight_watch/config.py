"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = "~/.knight-watch/config.yaml"


class StoreConfig(BaseModel):
    backend: str = "yaml"  # "memory" | "yaml" | "sqlite"
    path: str = "~/.knight-watch/watches.yaml"


class CacheConfig(BaseModel):
    ttl_seconds: float = 300.0
    sweep_interval_seconds: float = 600.0


class SchedulerConfig(BaseModel):
    # "trigger": next occurrence from the due date / last firing (catch-up).
    # "now": next occurrence from the tick time (drift-free).
    reschedule_from: str = "trigger"
    retention_days: int = 30  # 0 = keep inactive watches forever
    purge_interval_seconds: float = 3600.0


class DomainConfig(BaseModel):
    cadence_seconds: float = 300.0
    fetch_timeout_seconds: float = 20.0
    max_workers: int = 4
    enabled: bool = True


def _default_domains() -> dict[str, DomainConfig]:
    return {
        "crypto": DomainConfig(cadence_seconds=300),
        "stock": DomainConfig(cadence_seconds=600),
        "weather": DomainConfig(cadence_seconds=1800),
        "news": DomainConfig(cadence_seconds=1800),
        "reminder": DomainConfig(cadence_seconds=60, fetch_timeout_seconds=5),
        "notify": DomainConfig(cadence_seconds=60, fetch_timeout_seconds=5),
    }


class NotificationsConfig(BaseModel):
    default_type: str = "local"  # "local" | "telegram" | "webhook"
    telegram_bot_token: str = ""
    webhook_url: str = ""
    delivery_log_file: str = ""  # JSONL; empty = in-memory only
    delivery_log_size: int = 500


class ProvidersConfig(BaseModel):
    coingecko_api_key: str = ""
    finnhub_api_key: str = ""
    openweather_api_key: str = ""
    news_api_key: str = ""
    currency: str = "usd"


class KnightWatchConfig(BaseModel):
    store: StoreConfig = Field(default_factory=StoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    domains: dict[str, DomainConfig] = Field(default_factory=_default_domains)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    log_file: str = "~/.knight-watch/logs/knight-watch.log"


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _config_from_env() -> KnightWatchConfig:
    """Build config from environment variables (for Docker/cloud deployment).

    Falls back to sane defaults when env vars are not set.
    """
    return KnightWatchConfig(
        store=StoreConfig(
            backend=os.environ.get("KNIGHT_WATCH_STORE", "yaml"),
            path=os.environ.get(
                "KNIGHT_WATCH_STORE_PATH", "~/.knight-watch/watches.yaml"
            ),
        ),
        cache=CacheConfig(
            ttl_seconds=float(os.environ.get("KNIGHT_WATCH_CACHE_TTL", "300")),
        ),
        notifications=NotificationsConfig(
            default_type=os.environ.get("NOTIFICATION_TYPE", "local"),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
            webhook_url=os.environ.get("NOTIFICATION_WEBHOOK_URL", ""),
        ),
        providers=ProvidersConfig(
            coingecko_api_key=os.environ.get("COINGECKO_API_KEY", ""),
            finnhub_api_key=os.environ.get("FINNHUB_API_KEY", ""),
            openweather_api_key=os.environ.get("OPENWEATHER_API_KEY", ""),
            news_api_key=os.environ.get("NEWS_API_KEY", ""),
        ),
    )


def load_config(path: str | Path | None = None) -> KnightWatchConfig:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        return _config_from_env()

    raw_text = path.read_text()
    interpolated = _interpolate_env_vars(raw_text)
    data = yaml.safe_load(interpolated)
    if data is None:
        return KnightWatchConfig()
    config = KnightWatchConfig(**data)
    # Domains listed in the file extend the defaults rather than replace them.
    merged = _default_domains()
    merged.update(config.domains)
    config.domains = merged
    return config


def save_config(config: KnightWatchConfig, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump()
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
