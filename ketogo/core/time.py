"""Time and period helpers for feed processing and quota accounting."""

from datetime import datetime, timezone, date
from typing import Optional, Union

from dateutil import parser as date_parser

from ketogo.core.logging import get_logger

logger = get_logger(__name__)


def get_current_utc_time() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC timezone.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a feed or stored timestamp into a UTC datetime.

    Handles RFC 2822 (RSS), ISO 8601 (Atom, persisted JSON) and the
    usual non-standard variants through dateutil.

    Returns:
        UTC datetime, or None when the value is empty or unparseable
    """
    if not value:
        return None

    if isinstance(value, datetime):
        return to_utc(value)

    try:
        return to_utc(date_parser.parse(str(value).strip()))
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Could not parse date '{value}': {e}")
        return None


def isoformat_utc(dt: datetime) -> str:
    """Serialize a datetime as ISO 8601 UTC with a ``Z`` suffix."""
    return to_utc(dt).isoformat().replace("+00:00", "Z")


def _as_date(value: Union[datetime, date]) -> date:
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def day_key(value: Union[datetime, date]) -> str:
    """Day period tag, e.g. ``2024-03-07``."""
    return _as_date(value).isoformat()


def week_label(value: Union[datetime, date]) -> str:
    """ISO year-week period tag of the UTC date, e.g. ``2024-W10``."""
    year, week, _ = _as_date(value).isocalendar()
    return f"{year}-W{week:02d}"
