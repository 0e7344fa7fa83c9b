"""CLI entry point for knight-watch."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import click

from . import __version__
from .exceptions import KnightWatchError

# ── Helpers ──────────────────────────────────────────────


def _parse_value(raw: str) -> Any:
    """``true``/``false`` -> bool, numerals -> int/float, else the string."""
    lowered = raw.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw.strip()


def _parse_condition(pairs: tuple[str, ...]) -> dict[str, Any]:
    condition = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--when")
        condition[key.strip()] = _parse_value(value)
    return condition


def _fail(error: Exception) -> None:
    from .friendly_errors import format_friendly_error, friendly_error

    click.echo(format_friendly_error(friendly_error(error)), err=True)
    raise SystemExit(1)


def _build_engine(config_path: str | None, backend: str | None = None):
    from .config import load_config
    from .engine import WatchEngine

    config = load_config(config_path)
    if backend:
        config.store.backend = backend
    return WatchEngine(config)


def _format_watch(watch) -> str:
    state = "active" if watch.active else "inactive"
    schedule = f"every {watch.interval}" if watch.recurring else "one-shot"
    condition = ", ".join(f"{k}={v}" for k, v in watch.condition.items())
    line = f"{watch.id}  [{state}]  {watch.domain} {watch.subject}  ({condition})  {schedule}"
    if watch.trigger_count:
        line += f"  fired {watch.trigger_count}x"
    return line


# ── CLI Commands ─────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="knight-watch")
def main() -> None:
    """knight-watch: watch prices, weather, news and reminders, get notified."""


@main.command()
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def run(config_path: str | None, verbose: bool) -> None:
    """Run the per-domain tickers until interrupted."""
    from .log_setup import configure_logging

    engine = _build_engine(config_path)
    configure_logging(engine.config.log_file, verbose=verbose)

    async def _run() -> None:
        engine.start()
        click.echo(f"knight-watch running: {', '.join(engine.registry.names())}")
        try:
            await asyncio.Event().wait()
        finally:
            await engine.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("\nStopped.")
    summary = engine.stats.summary()
    click.echo(f"Fired {summary['total_fired']} watch(es) in {summary['uptime_seconds']}s")


@main.command()
@click.argument("domain")
@click.argument("subject")
@click.option("--owner", required=True, help="Owner id, e.g. telegram:12345")
@click.option(
    "--when",
    "conditions",
    multiple=True,
    required=True,
    help="Condition as key=value (repeatable), e.g. above_value=50000",
)
@click.option("--every", default=None, help="Repeat interval, e.g. 1d or 3mo")
@click.option(
    "--expires",
    default=None,
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S"]),
    help="Stop watching after this UTC time",
)
@click.option("--message", default=None, help="Custom notification text")
@click.option("--config", "config_path", default=None, help="Config file path")
def add(
    domain: str,
    subject: str,
    owner: str,
    conditions: tuple[str, ...],
    every: str | None,
    expires: datetime | None,
    message: str | None,
    config_path: str | None,
) -> None:
    """Create a watch."""
    condition = _parse_condition(conditions)
    engine = _build_engine(config_path)
    try:
        watch_id = engine.create_watch(
            owner,
            domain,
            subject,
            condition,
            recurrence=every,
            expires_at=expires,
            custom_message=message,
        )
    except KnightWatchError as e:
        _fail(e)
    finally:
        engine.store.close()
    click.echo(f"Created {watch_id}")


@main.command(name="list")
@click.option("--owner", required=True, help="Owner id")
@click.option("--active", "active_only", is_flag=True, help="Only active watches")
@click.option("--config", "config_path", default=None, help="Config file path")
def list_cmd(owner: str, active_only: bool, config_path: str | None) -> None:
    """List an owner's watches."""
    engine = _build_engine(config_path)
    try:
        watches = engine.list_watches(owner, active_only=active_only)
    finally:
        engine.store.close()
    if not watches:
        click.echo("No watches.")
        return
    for watch in watches:
        click.echo(_format_watch(watch))


@main.command()
@click.argument("watch_id")
@click.option("--owner", required=True, help="Owner id")
@click.option("--config", "config_path", default=None, help="Config file path")
def cancel(watch_id: str, owner: str, config_path: str | None) -> None:
    """Cancel (deactivate) a watch."""
    engine = _build_engine(config_path)
    try:
        engine.cancel_watch(watch_id, owner)
    except KnightWatchError as e:
        _fail(e)
    finally:
        engine.store.close()
    click.echo(f"Cancelled {watch_id}")


@main.command()
@click.argument("domain")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def tick(domain: str, config_path: str | None, verbose: bool) -> None:
    """Run one evaluation pass for DOMAIN and print the report."""
    from .log_setup import configure_logging

    engine = _build_engine(config_path)
    configure_logging("", verbose=verbose)

    async def _tick():
        try:
            return await engine.tick(domain)
        finally:
            await engine.close()

    try:
        report = asyncio.run(_tick())
    except KnightWatchError as e:
        _fail(e)
    click.echo(json.dumps(report.model_dump(mode="json"), indent=2))


@main.command()
@click.argument("spec")
@click.option(
    "--from",
    "start",
    default=None,
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S"]),
    help="Start time (UTC); defaults to now",
)
def interval(spec: str, start: datetime | None) -> None:
    """Parse an interval SPEC and show the next occurrence."""
    from .interval import next_occurrence, parse
    from .watches.models import ensure_utc, utcnow

    try:
        parsed = parse(spec)
    except KnightWatchError as e:
        _fail(e)
    origin = ensure_utc(start) if start else utcnow()
    click.echo(f"{parsed}: {origin.isoformat()} -> {next_occurrence(origin, parsed).isoformat()}")


@main.command(name="config-path")
@click.option("--config", "config_path", default=None, help="Config file path")
def config_path_cmd(config_path: str | None) -> None:
    """Show where the config file is read from."""
    from .config import DEFAULT_CONFIG_PATH

    path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
    suffix = "" if path.exists() else "  (not found, using environment)"
    click.echo(f"{path}{suffix}")


if __name__ == "__main__":
    main()
