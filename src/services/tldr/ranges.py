"""Resolution of range specifiers into message counts or cutoff timestamps."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.services.tldr.models import CountRange, ResolvedRange, TimeRange

MAX_MESSAGE_COUNT = 10000
DEFAULT_MESSAGE_COUNT = 100
MAX_HOURS = 168
MAX_DAYS = 7
MAX_WEEKS = 1
DEFAULT_HOURS = 1

COUNT_PATTERN = re.compile(r"^\d+$")
DAYS_PATTERN = re.compile(r"^(\d+) ?(days?|d)$")
HOURS_PATTERN = re.compile(r"^(\d+) ?(hours?|h)$")
WEEKS_PATTERN = re.compile(r"^(\d+) ?(weeks?)$")


def _normalize(spec: str) -> str:
    return " ".join(spec.lower().split())


def _timeframe_hours(spec: str) -> int:
    if spec == "day":
        return 24
    if spec == "week":
        return MAX_WEEKS * 168

    match = DAYS_PATTERN.match(spec)
    if match:
        days = int(match.group(1))
        return min(days, MAX_DAYS) * 24 if days > 0 else 24

    match = HOURS_PATTERN.match(spec)
    if match:
        hours = int(match.group(1))
        return min(hours, MAX_HOURS) if hours > 0 else DEFAULT_HOURS

    match = WEEKS_PATTERN.match(spec)
    if match:
        weeks = int(match.group(1))
        return min(weeks, MAX_WEEKS) * 168 if weeks > 0 else DEFAULT_HOURS

    return DEFAULT_HOURS


def resolve_range(spec: str, now: Optional[datetime] = None) -> ResolvedRange:
    """
    Turn a range specifier into a CountRange or TimeRange.

    Digits-only specs are message counts (clamped to 10000, invalid or zero
    falls back to 100). Everything else is a timeframe clamped to 7 days;
    unrecognized shapes default to the last hour.
    """
    normalized = _normalize(spec or "")

    if COUNT_PATTERN.match(normalized):
        count = int(normalized)
        if count <= 0:
            count = DEFAULT_MESSAGE_COUNT
        return CountRange(n=min(count, MAX_MESSAGE_COUNT))

    hours = _timeframe_hours(normalized)
    now = now or datetime.now(timezone.utc)
    return TimeRange(since=now - timedelta(hours=hours), hours=hours)
