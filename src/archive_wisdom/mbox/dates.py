"""Header date normalization.

Dates that cannot be parsed, or that fall outside the plausible window, are
mapped to a fixed sentinel so they stay recognizable as bad data instead of
looking freshly ingested.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

SENTINEL_DATE = datetime(1990, 1, 1, tzinfo=timezone.utc)
MIN_YEAR_EXCLUSIVE = 1990

_FALLBACK_FORMATS = (
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%a %b %d %H:%M:%S %Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


def _parse(value: str) -> datetime | None:
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        pass

    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def is_sentinel(value: datetime) -> bool:
    return value == SENTINEL_DATE


def normalize_date(value: str | None, now: datetime | None = None) -> datetime:
    """Parse a header date into an aware UTC datetime or the sentinel.

    Args:
        value: Raw Date header value.
        now: Reference time for the future-date guard (defaults to now).

    Returns:
        The parsed timestamp when its year is after 1990 and no more than one
        year past ``now``; otherwise SENTINEL_DATE.
    """

    if not value or not value.strip():
        return SENTINEL_DATE

    parsed = _parse(" ".join(value.split()))
    if parsed is None:
        return SENTINEL_DATE

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        parsed = parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return SENTINEL_DATE

    current = now or datetime.now(timezone.utc)
    if parsed.year <= MIN_YEAR_EXCLUSIVE or parsed.year > current.year + 1:
        return SENTINEL_DATE
    return parsed
