"""
Timestamp conversion between the domain, the database and query filters.

The database stores UTC ISO-8601 text with second precision so that
lexical comparison in SQL matches chronological order.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from wamirror.core.errors import QueryError

DB_FORMAT = "%Y-%m-%dT%H:%M:%S+00:00"

TIMEFRAME_PRESETS = (
    "last_hour",
    "today",
    "yesterday",
    "last_3_days",
    "this_week",
    "last_week",
    "this_month",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def to_db(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime for storage; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DB_FORMAT)


def from_db(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; raises ValueError on garbage."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_bound(value: str) -> str:
    """
    Parse a user-supplied time bound into storage format.

    Raises
    ---
    QueryError
        If the value is not an ISO-8601 / RFC 3339 timestamp
    """
    try:
        parsed = from_db(value.strip())
    except (ValueError, AttributeError):
        raise QueryError(f"invalid time bound: {value!r}")
    if parsed is None:
        raise QueryError("empty time bound")
    return to_db(parsed)


def parse_timeframe(timeframe: str, now: Optional[datetime] = None) -> Tuple[str, str]:
    """
    Convert a named preset into ``(after, before)`` ISO strings.

    Day boundaries are computed in the timezone of ``now`` (local time by
    default).

    Raises
    ---
    QueryError
        If the preset is unknown
    """
    if not timeframe:
        return "", ""

    if now is None:
        now = datetime.now().astimezone()

    def midnight(day: datetime) -> datetime:
        return day.replace(hour=0, minute=0, second=0, microsecond=0)

    if timeframe == "last_hour":
        after, before = now - timedelta(hours=1), now
    elif timeframe == "today":
        after, before = midnight(now), now
    elif timeframe == "yesterday":
        after, before = midnight(now - timedelta(days=1)), midnight(now)
    elif timeframe == "last_3_days":
        after, before = now - timedelta(days=3), now
    elif timeframe == "this_week":
        after, before = midnight(now - timedelta(days=now.weekday())), now
    elif timeframe == "last_week":
        last_monday = midnight(now - timedelta(days=now.weekday() + 7))
        after = last_monday
        before = (last_monday + timedelta(days=6)).replace(hour=23, minute=59, second=59)
    elif timeframe == "this_month":
        after, before = midnight(now.replace(day=1)), now
    else:
        raise QueryError(
            f"invalid timeframe: {timeframe} (valid: {', '.join(TIMEFRAME_PRESETS)})"
        )

    return after.isoformat(), before.isoformat()


def format_time_since(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human-readable age of a timestamp ("3 hours ago", "never")."""
    if value is None:
        return "never"
    if now is None:
        now = utcnow()

    seconds = (now - value).total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        mins = int(seconds // 60)
        return "1 minute ago" if mins == 1 else f"{mins} minutes ago"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    days = int(seconds // 86400)
    return "1 day ago" if days == 1 else f"{days} days ago"
