"""Daily curation run.

Coordinates one pass over the configured feeds:
- Sequential RSS fetching (one feed fully drained before the next)
- Fingerprinting and admission per destination bucket
- Deduplication against the full collection history
- Per-period quotas
- Commentary and merge/persist, skipping the write on a quiet day
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

import yaml

from ketogo.core.fingerprint import OBJECTS_NS, OBSERVATIONS_NS, fingerprint
from ketogo.core.logging import get_logger
from ketogo.core.repositories import CollectionStore, build_store
from ketogo.core.settings import Settings, get_settings
from ketogo.core.time import get_current_utc_time, week_label
from ketogo.curation.commentary import CommentaryFactory, CommentaryProvider
from ketogo.curation.filters import AdmissionPolicy, ObjectPolicy, ObservationPolicy, PreviewObjectPolicy
from ketogo.curation.merge import merge_and_persist
from ketogo.curation.models import AMAZON_SOURCE, ApprovedEntry, Bucket, CandidateItem, ObjectEntry, RawItem
from ketogo.curation.quota import DAY, WEEK, period_key, remaining_quota
from ketogo.ingestor.rss import RSSFetcher

logger = get_logger(__name__)


class FeedConfig(NamedTuple):
    """One configured feed."""
    name: str
    url: str
    active: bool = True


DEFAULT_FEEDS = [
    FeedConfig("Reddit · mildlyinteresting", "https://www.reddit.com/r/mildlyinteresting/.rss"),
    FeedConfig("Reddit · oddlysatisfying", "https://www.reddit.com/r/oddlysatisfying/.rss"),
    FeedConfig("Reddit · ofcoursethatsathing", "https://www.reddit.com/r/ofcoursethatsathing/.rss"),
    FeedConfig("Product Hunt", "https://www.producthunt.com/feed"),
    FeedConfig("Hacker News · frontpage", "https://hnrss.org/frontpage"),
    FeedConfig("ANSA", "https://www.ansa.it/sito/ansait_rss.xml"),
    FeedConfig("Designboom", "https://www.designboom.com/feed/"),
    FeedConfig("Yanko Design", "https://www.yankodesign.com/feed/"),
]


class BucketPlan(NamedTuple):
    """How one destination bucket is curated during a run."""
    bucket: Bucket
    namespace: str
    policy: AdmissionPolicy
    store: CollectionStore
    period: str
    ceiling: int
    tag_week: bool = False


def load_feeds(config_path: str) -> List[FeedConfig]:
    """Active feeds from the YAML config, or the built-in list when it is absent or invalid."""
    path = Path(config_path)
    if not path.exists():
        logger.info(f"Feeds config not found at {path}, using built-in feeds")
        return list(DEFAULT_FEEDS)

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading feeds config {path}: {e}")
        return list(DEFAULT_FEEDS)

    feeds = []
    for record in config.get("feeds", []):
        if not isinstance(record, dict) or not record.get("url"):
            logger.warning(f"Ignoring feed entry without url: {record}")
            continue
        feed = FeedConfig(
            name=str(record.get("name") or record["url"]),
            url=str(record["url"]),
            active=bool(record.get("active", True)),
        )
        if feed.active:
            feeds.append(feed)

    if not feeds:
        logger.warning(f"No active feeds in {path}, using built-in feeds")
        return list(DEFAULT_FEEDS)
    return feeds


def build_plans(settings: Settings, stores: Dict[str, CollectionStore]) -> List[BucketPlan]:
    """Observation bucket plus the objects bucket in standard or preview mode."""
    plans = [
        BucketPlan(
            bucket=Bucket.OBSERVATIONS,
            namespace=OBSERVATIONS_NS,
            policy=ObservationPolicy(settings.quota_threshold),
            store=stores[Bucket.OBSERVATIONS.value],
            period=DAY,
            ceiling=settings.max_observations_per_day,
        )
    ]

    if settings.objects_mode == "preview":
        plans.append(BucketPlan(
            bucket=Bucket.OBJECTS,
            namespace=OBJECTS_NS,
            policy=PreviewObjectPolicy(settings.preview_sources, settings.objects_quota_threshold),
            store=stores[Bucket.OBJECTS.value],
            period=WEEK,
            ceiling=settings.preview_weekly_cap,
            tag_week=True,
        ))
    else:
        plans.append(BucketPlan(
            bucket=Bucket.OBJECTS,
            namespace=OBJECTS_NS,
            policy=ObjectPolicy(settings.objects_quota_threshold),
            store=stores[Bucket.OBJECTS.value],
            period=DAY,
            ceiling=settings.max_objects_per_day,
        ))
    return plans


def new_stats() -> Dict[str, Any]:
    return {
        'status': 'quiet_day',
        'feeds_ok': 0,
        'feeds_error': 0,
        'items_fetched': 0,
        'buckets': {},
        'written': [],
        'errors': [],
        'runtime_seconds': 0,
    }


async def fetch_all(
    feeds: List[FeedConfig],
    fetcher: RSSFetcher,
    stats: Dict[str, Any],
    max_items_per_feed: Optional[int] = None,
    fetched_at: Optional[datetime] = None,
) -> List[RawItem]:
    """Fetch every feed in order; a failing feed is logged and skipped."""
    items: List[RawItem] = []
    for feed in feeds:
        try:
            feed_items = await fetcher.fetch_items(feed.name, feed.url, max_items_per_feed, fetched_at)
        except Exception as e:
            stats['feeds_error'] += 1
            stats['errors'].append(f"Feed {feed.name}: {e}")
            logger.error(f"[feed-error] {feed.name}: {e}")
            continue

        stats['feeds_ok'] += 1
        items.extend(feed_items)

    stats['items_fetched'] = len(items)
    return items


async def curate_bucket(
    plan: BucketPlan,
    raw_items: List[RawItem],
    existing: List[Dict[str, Any]],
    commentary: CommentaryProvider,
    now: datetime,
) -> tuple:
    """
    Select the entries one bucket admits this run.

    Returns:
        (entries, bucket_stats)
    """
    bucket_stats = {
        'candidates': len(raw_items),
        'approved': 0,
        'duplicates': 0,
        'quota_skipped': 0,
        'rejected': {},
        'added': 0,
    }

    seen = {record.get("fingerprint") for record in existing if record.get("fingerprint")}
    # Amazon picks share the objects collection but have their own weekly cap
    feed_records = [record for record in existing if record.get("source") != AMAZON_SOURCE]
    remaining = remaining_quota(feed_records, period_key(now, plan.period), plan.period, plan.ceiling)
    week = week_label(now) if plan.tag_week else None

    admitted: List[CandidateItem] = []
    for item in raw_items:
        candidate = CandidateItem(
            **item.model_dump(),
            fingerprint=fingerprint(plan.namespace, item.source, item.link),
        )

        if candidate.fingerprint in seen:
            bucket_stats['duplicates'] += 1
            continue

        verdict = plan.policy.decide(candidate)
        if not verdict.admit:
            reason = verdict.reason.value
            bucket_stats['rejected'][reason] = bucket_stats['rejected'].get(reason, 0) + 1
            continue

        seen.add(candidate.fingerprint)
        bucket_stats['approved'] += 1

        if len(admitted) >= remaining:
            bucket_stats['quota_skipped'] += 1
            continue
        admitted.append(candidate)

    entry_class = ObjectEntry if plan.bucket == Bucket.OBJECTS else ApprovedEntry
    entries = []
    for candidate in admitted:
        micro_judgment = await commentary.generate(candidate.title, candidate.summary)
        extra = {"week": week} if week else {}
        entries.append(entry_class.from_candidate(candidate, micro_judgment, admitted_at=now, **extra))

    if bucket_stats['quota_skipped']:
        logger.info(
            f"{plan.bucket.value}: quota reached, skipped {bucket_stats['quota_skipped']} approved items",
            extra={"remaining": remaining, "ceiling": plan.ceiling, "period": plan.period},
        )
    return entries, bucket_stats


async def run_daily(
    settings: Optional[Settings] = None,
    fetcher: Optional[RSSFetcher] = None,
    stores: Optional[Dict[str, CollectionStore]] = None,
    commentary: Optional[CommentaryProvider] = None,
    feeds: Optional[List[FeedConfig]] = None,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Run the daily curation pipeline.

    Feed, parse and commentary failures are recovered and reported in the
    stats. A store write failure raises StoreWriteError.

    Returns:
        Dictionary with run statistics
    """
    start_time = time.time()
    settings = settings or get_settings()
    now = now or get_current_utc_time()
    stats = new_stats()

    stores = stores or {b.value: build_store(b.value, settings) for b in Bucket}
    commentary = commentary or CommentaryFactory.create(settings=settings)
    feeds = feeds if feeds is not None else load_feeds(settings.feeds_config)

    logger.info(f"Starting daily run over {len(feeds)} feeds (objects mode: {settings.objects_mode})")

    owns_fetcher = fetcher is None
    fetcher = fetcher or RSSFetcher(timeout=settings.fetch_timeout, user_agent=settings.user_agent)
    try:
        raw_items = await fetch_all(feeds, fetcher, stats, settings.max_items_per_feed, now)
    finally:
        if owns_fetcher:
            await fetcher.aclose()

    for plan in build_plans(settings, stores):
        existing = await plan.store.load()
        entries, bucket_stats = await curate_bucket(plan, raw_items, existing, commentary, now)

        result = await merge_and_persist(plan.store, entries, existing=existing, dry_run=dry_run)
        bucket_stats['added'] = len(result.added)
        bucket_stats['duplicates'] += result.duplicates
        stats['buckets'][plan.bucket.value] = bucket_stats

        if result.changed and not dry_run:
            stats['written'].append(plan.bucket.value)

    if any(b['added'] for b in stats['buckets'].values()):
        stats['status'] = 'published'

    stats['runtime_seconds'] = round(time.time() - start_time, 2)

    logger.info(
        f"Daily run completed in {stats['runtime_seconds']}s: "
        f"{stats['feeds_ok']} feeds OK, {stats['feeds_error']} errors, "
        f"{stats['items_fetched']} items fetched, "
        + ", ".join(
            f"{name} +{b['added']} ({b['duplicates']} duplicates)"
            for name, b in stats['buckets'].items()
        ),
        extra={"status": stats['status']},
    )
    return stats
