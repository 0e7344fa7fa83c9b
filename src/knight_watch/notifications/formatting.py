"""Per-domain message templates for fired watches."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from ..watches.models import Watch

Formatter = Callable[[Watch, Any, Sequence[str]], str]


def _price(watch: Watch, observation: Any, reasons: Sequence[str]) -> str:
    emoji = "\U0001f4b0" if watch.domain == "crypto" else "\U0001f4c8"
    value = getattr(observation, "value", observation)
    currency = getattr(observation, "currency", "")
    lines = [
        f"{emoji} *{watch.domain.title()} Alert: {watch.subject.upper()}*",
        "",
        f"Current price: {value} {currency}".rstrip(),
    ]
    lines.extend(f"• {r}" for r in reasons)
    return "\n".join(lines)


def _weather(watch: Watch, observation: Any, reasons: Sequence[str]) -> str:
    lines = [f"\U0001f326️ *Weather Alert: {watch.subject}*", ""]
    lines.extend(f"• {r}" for r in reasons)
    description = getattr(observation, "description", "")
    temperature = getattr(observation, "temperature", None)
    if temperature is not None:
        lines.append("")
        lines.append(f"Now: {temperature}°C, {description}".rstrip(", "))
    return "\n".join(lines)


def _news(watch: Watch, observation: Any, reasons: Sequence[str]) -> str:
    lines = [
        "\U0001f4f0 *News Alert*",
        "",
        f'Found {len(reasons)} new article(s) for "{watch.subject}":',
    ]
    lines.extend(f"{i}. {title}" for i, title in enumerate(reasons[:5], 1))
    return "\n".join(lines)


def _reminder(watch: Watch, observation: Any, reasons: Sequence[str]) -> str:
    emoji = "\U0001f501" if watch.recurring else "⏰"
    due = watch.condition.get("due_at")
    lines = [f"{emoji} *Reminder: {watch.subject}*"]
    if due is not None:
        lines.append(f"\U0001f4c5 Due: {due}")
    return "\n".join(lines)


def _generic(watch: Watch, observation: Any, reasons: Sequence[str]) -> str:
    lines = [f"\U0001f514 *{watch.domain.title()}: {watch.subject}*"]
    lines.extend(f"• {r}" for r in reasons)
    return "\n".join(lines)


FORMATTERS: dict[str, Formatter] = {
    "crypto": _price,
    "stock": _price,
    "weather": _weather,
    "news": _news,
    "reminder": _reminder,
    "notify": _reminder,
}


def format_message(watch: Watch, observation: Any, reasons: Sequence[str]) -> str:
    """custom_message wins; otherwise the domain template, else a generic one."""
    if watch.custom_message:
        return watch.custom_message
    return FORMATTERS.get(watch.domain, _generic)(watch, observation, reasons)
