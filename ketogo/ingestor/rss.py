"""RSS/Atom feed fetching with timeouts and retry on transient failures."""

from datetime import datetime
from typing import Any, List, NamedTuple, Optional

import feedparser
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ketogo.core.errors import FeedFetchError
from ketogo.core.logging import get_logger
from ketogo.core.time import get_current_utc_time
from ketogo.curation.models import RawItem
from ketogo.ingestor.normalizer import normalize_entry

logger = get_logger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class FetchResult(NamedTuple):
    """Result of RSS feed fetch operation."""
    status_code: int
    feed: Optional[Any] = None  # feedparser.FeedParserDict
    error: Optional[str] = None


class RSSFetcher:
    """
    Sequential RSS/Atom fetcher.

    ``fetch`` never raises: network errors, HTTP errors and unparseable
    payloads come back as a FetchResult with ``error`` set.
    """

    def __init__(self, timeout: float = 20.0, user_agent: str = "KETOGO/1.0 (+quiet editor)",
                 client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4.0),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TimeoutException, httpx.NetworkError)),
        reraise=True
    )
    async def _fetch_with_retry(self, url: str) -> httpx.Response:
        """GET with exponential backoff on timeouts, network errors, 429 and 5xx."""
        response = await self.client.get(url)
        if response.status_code in RETRYABLE_STATUS:
            logger.warning(f"Retryable HTTP {response.status_code} for {url}")
            response.raise_for_status()
        return response

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch and parse one feed.

        Args:
            url: RSS/Atom feed URL

        Returns:
            FetchResult with the parsed feed or an error description
        """
        try:
            logger.info(f"Fetching RSS feed: {url}")
            response = await self._fetch_with_retry(url)
        except httpx.HTTPStatusError as e:
            return FetchResult(status_code=e.response.status_code, error=f"HTTP {e.response.status_code}")
        except httpx.TimeoutException:
            return FetchResult(status_code=0, error=f"Timeout after {self.timeout}s")
        except httpx.RequestError as e:
            return FetchResult(status_code=0, error=f"Request error: {e}")

        if response.status_code != 200:
            return FetchResult(status_code=response.status_code, error=f"HTTP {response.status_code}")

        if not response.text.strip():
            return FetchResult(status_code=200, error="Empty feed content")

        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            return FetchResult(status_code=200, error=f"Feed parsing error: {feed.bozo_exception}")
        if feed.bozo:
            logger.warning(f"Feed parsing warning for {url}: {feed.bozo_exception}")

        logger.info(f"Parsed {len(feed.entries)} entries from {url}")
        return FetchResult(status_code=200, feed=feed)

    async def fetch_items(
        self,
        name: str,
        url: str,
        max_items: Optional[int] = None,
        fetched_at: Optional[datetime] = None,
    ) -> List[RawItem]:
        """
        Fetch a feed and normalize its entries.

        Raises:
            FeedFetchError: when the feed could not be fetched or parsed
        """
        result = await self.fetch(url)
        if result.error:
            raise FeedFetchError(f"{name}: {result.error}")

        fetched_at = fetched_at or get_current_utc_time()
        entries = list(result.feed.entries)
        if max_items is not None:
            entries = entries[:max_items]

        items = []
        for entry in entries:
            item = normalize_entry(entry, name, fetched_at)
            if item is not None:
                items.append(item)

        logger.debug(f"Normalized {len(items)}/{len(entries)} entries from {name}")
        return items
