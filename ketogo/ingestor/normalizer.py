"""RSS feed entry normalization helpers.

Turns raw feedparser entries into RawItem models. Payloads are duck-typed
(dicts, FeedParserDict or plain objects), so every field is optional here
and gets an explicit fallback; entries with nothing to judge are dropped.
"""

import re
from datetime import datetime
from typing import Any, Optional

from bs4 import BeautifulSoup

from ketogo.core.logging import get_logger
from ketogo.core.time import get_current_utc_time, parse_timestamp
from ketogo.curation.models import RawItem

logger = get_logger(__name__)

MAX_SUMMARY_LENGTH = 300

DATE_FIELDS = ("published", "updated", "created", "pubDate", "isoDate")


def clean_text(html_or_text: Any) -> str:
    """
    Strip HTML tags, script/style blocks and entities; collapse whitespace.

    Args:
        html_or_text: Raw HTML or text content

    Returns:
        Cleaned single-line text
    """
    if not html_or_text:
        return ""

    text = str(html_or_text)
    if "<" in text or "&" in text:
        soup = BeautifulSoup(text, "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()
        text = soup.get_text(" ")

    return re.sub(r"\s+", " ", text).strip()


def get_field(obj: Any, field: str, default: Any = None) -> Any:
    """Read a field from a dict-like or attribute-style entry."""
    if hasattr(obj, "get"):
        return obj.get(field, default)
    return getattr(obj, field, default)


def extract_link(entry: Any) -> str:
    """Entry link, falling back to its guid/id when that is a URL."""
    link = get_field(entry, "link") or ""
    if not link:
        guid = get_field(entry, "id") or get_field(entry, "guid") or ""
        if str(guid).startswith(("http://", "https://")):
            link = guid
    return str(link).strip()


def extract_summary(entry: Any) -> Optional[str]:
    for field in ("summary", "description", "subtitle"):
        value = get_field(entry, field)
        if value:
            summary = clean_text(value)
            if summary:
                if len(summary) > MAX_SUMMARY_LENGTH:
                    summary = summary[:MAX_SUMMARY_LENGTH].rsplit(" ", 1)[0] + "..."
                return summary
    return None


def extract_published(entry: Any, fetched_at: datetime) -> datetime:
    """Publication time in UTC, or the fetch time when the entry has none."""
    for field in DATE_FIELDS:
        parsed = parse_timestamp(get_field(entry, field))
        if parsed is not None:
            return parsed
    return fetched_at


def normalize_entry(entry: Any, source: str, fetched_at: Optional[datetime] = None) -> Optional[RawItem]:
    """
    Normalize one RSS/Atom entry.

    Args:
        entry: Raw entry from feedparser (or any dict/namespace with the same fields)
        source: Display label of the feed
        fetched_at: Fetch time, used when the entry carries no date

    Returns:
        RawItem, or None for entries without title and link. An entry with a
        title but no link is kept so that admission can reject it explicitly.
    """
    if entry is None:
        return None

    fetched_at = fetched_at or get_current_utc_time()

    try:
        title = clean_text(get_field(entry, "title"))
        link = extract_link(entry)
    except Exception as e:
        logger.warning(f"Skipping malformed entry from {source}: {e}")
        return None

    if not title and not link:
        return None

    return RawItem(
        source=source,
        title=title,
        link=link,
        published_at=extract_published(entry, fetched_at),
        summary=extract_summary(entry),
    )
