from __future__ import annotations

from datetime import timedelta


def format_duration(delta: timedelta) -> str:
    """Render a duration as '[d.]hh:mm:ss' without commas, e.g. '2.03:04:05'."""
    total = int(delta.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if days:
        return f"{sign}{days}.{clock}"
    return f"{sign}{clock}"
