from decimal import Decimal
from typing import Optional

from whale_tracker.core.config import MIN_BUY_VALUE_USD


def should_notify_buy(value_usd: Decimal, minimum: Decimal = MIN_BUY_VALUE_USD) -> bool:
    """Small and test trades are noise."""
    return Decimal(str(value_usd)) >= Decimal(str(minimum))


def should_notify_sell() -> bool:
    """Every exit of a tracked wallet is reported, whatever its size."""
    return True


def format_hold_duration(seconds: int) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"

    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"

    hours = minutes // 60
    remaining_minutes = minutes % 60
    if hours < 24:
        return f"{hours}h {remaining_minutes}m" if remaining_minutes else f"{hours}h"

    days = hours // 24
    remaining_hours = hours % 24
    return f"{days}d {remaining_hours}h" if remaining_hours else f"{days}d"


def format_usd(amount: Decimal) -> str:
    amount = Decimal(str(amount))
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    if amount >= 1_000_000:
        return f"{sign}${amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"{sign}${amount / 1_000:.2f}K"
    return f"{sign}${amount:.2f}"


def format_percent(percent: Optional[Decimal]) -> str:
    if percent is None:
        return "n/a"
    percent = Decimal(str(percent))
    sign = "+" if percent >= 0 else ""
    return f"{sign}{percent:.2f}%"
