"""Per-period admission counters derived from persisted collections."""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from ketogo.core.time import day_key, parse_timestamp, week_label

DAY = "day"
WEEK = "week"


def period_key(dt: datetime, period: str) -> str:
    """Period tag of a timestamp: ``YYYY-MM-DD`` for days, ``YYYY-Www`` for weeks."""
    if period == DAY:
        return day_key(dt)
    if period == WEEK:
        return week_label(dt)
    raise ValueError(f"Unknown period: {period}")


def entry_period(record: Dict[str, Any], period: str) -> Optional[str]:
    """
    Period tag of a persisted record.

    An explicit ``week`` field wins for weekly periods. Otherwise the tag is
    derived from ``admitted_at``, then ``published_at`` for records written
    before admission timestamps existed.
    """
    if period == WEEK and record.get("week"):
        return record["week"]

    for field in ("admitted_at", "published_at"):
        dt = parse_timestamp(record.get(field))
        if dt is not None:
            return period_key(dt, period)
    return None


def count_period(collection: Iterable[Dict[str, Any]], key: str, period: str = DAY) -> int:
    """Number of records whose period tag equals ``key``."""
    return sum(1 for record in collection if entry_period(record, period) == key)


def remaining_quota(
    collection: Iterable[Dict[str, Any]],
    key: str,
    period: str,
    ceiling: int,
) -> int:
    """How many more admissions the period allows."""
    return max(0, ceiling - count_period(collection, key, period))
