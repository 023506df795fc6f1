from datetime import datetime, timezone
from typing import Optional


def utcnow_ms() -> datetime:
    """Naive UTC now, truncated to milliseconds so it survives ISO round trips."""
    now = datetime.utcnow()
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    """
    Renders a naive UTC datetime the way credential documents carry it.
    Example: '2025-10-17T08:30:00.125Z'
    """
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parses an ISO-8601 timestamp into a naive UTC datetime.
    Returns None when the value is not a parseable timestamp.
    """
    if not isinstance(value, str) or not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def add_one_year(value: datetime) -> datetime:
    # Feb 29 has no counterpart next year
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        return value.replace(year=value.year + 1, day=28)
