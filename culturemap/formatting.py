"""Display formatting for currency, dates and countdowns."""
from __future__ import annotations

from datetime import UTC, date, datetime

EMPTY = "—"


def format_currency(amount: float | None) -> str:
    """Whole-dollar USD, e.g. ``$12,500``."""
    if amount is None:
        return EMPTY
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.0f}"


def format_currency_short(amount: float | None) -> str:
    """``$1.5M`` for millions, ``$250k`` for thousands, otherwise full currency."""
    if amount is None:
        return EMPTY
    if amount >= 1_000_000:
        m = amount / 1_000_000
        return f"${m:.0f}M" if m % 1 == 0 else f"${m:.1f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.0f}k"
    return format_currency(amount)


def format_date(value: date | datetime | None) -> str:
    if value is None:
        return EMPTY
    return f"{value:%b} {value.day}, {value.year}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_relative_date(value: date | datetime | None, now: datetime | None = None) -> str:
    """Coarse "time ago" label: Today, Yesterday, 3d ago, 2w ago, 5mo ago, 1y ago."""
    if value is None:
        return "Never"
    now = _as_utc(now) if now is not None else datetime.now(UTC)
    if isinstance(value, datetime):
        diff_days = (now - _as_utc(value)).days
    else:
        diff_days = (now.date() - value).days

    if diff_days <= 0:
        return "Today"
    if diff_days == 1:
        return "Yesterday"
    if diff_days < 7:
        return f"{diff_days}d ago"
    if diff_days < 30:
        return f"{diff_days // 7}w ago"
    if diff_days < 365:
        return f"{diff_days // 30}mo ago"
    return f"{diff_days // 365}y ago"


def countdown_label(days: int | None) -> str:
    if days is None:
        return "No lock date"
    if days > 0:
        return f"{days}d remaining"
    if days == 0:
        return "Locks today"
    return f"{abs(days)}d overdue"
