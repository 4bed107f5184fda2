import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger("utils.formatting")

DEFAULT_WINDOW = timedelta(hours=24)
_DEFAULT = object()


def parse_window(value: Optional[str], default=_DEFAULT) -> Optional[timedelta]:
    """Parse durations written as "24h" or "1440m".

    Blank or malformed values fall back to ``default`` (24 hours unless given).
    """
    fallback = DEFAULT_WINDOW if default is _DEFAULT else default
    raw = (value or "").strip().lower()
    if not raw:
        return fallback

    number, unit = raw[:-1], raw[-1:]
    if unit not in ("h", "m") or not number.isdigit():
        logger.warning("Invalid duration %r, expected a number followed by 'h' or 'm'", value)
        return fallback

    amount = int(number)
    if amount <= 0:
        logger.warning("Duration %r must be positive", value)
        return fallback
    return timedelta(hours=amount) if unit == "h" else timedelta(minutes=amount)


def format_duration(duration: Optional[timedelta]) -> str:
    """Render a duration as "1d 2h 3m 4s", dropping zero components."""
    if duration is None:
        return "0s"

    total = max(0, int(duration.total_seconds()))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or not parts:
        parts.append(f"{seconds}s")
    return " ".join(parts)


def format_time_ago(past: Optional[datetime], now: Optional[datetime] = None) -> str:
    if past is None:
        return "none"
    now = now or datetime.now(timezone.utc)
    past = as_utc(past)
    seconds = int((now - past).total_seconds())

    for label, size in (("year", 365 * 86400), ("month", 30 * 86400), ("day", 86400),
                        ("hour", 3600), ("minute", 60)):
        count = seconds // size
        if count >= 1:
            return f"{count} {label}{'s' if count != 1 else ''} ago"
    if seconds > 1:
        return f"{seconds} seconds ago"
    return "Moments ago"


def format_display_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).strftime("%Y-%m-%d %H:%M UTC")


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
