"""Weekly Amazon objects run.

Searches this week's rotated queries, keeps affordable and unblocked
products, deduplicates them by ASIN against the whole objects history and
appends at most a few per run and per week. Amazon entries carry no
``week`` tag: the weekly cap counts them by the ISO week of ``admitted_at``
and ignores the preview entries sharing the collection.
"""

import time
from datetime import datetime
from typing import Any, Dict, Optional

from ketogo.core.errors import PAAPIError
from ketogo.core.fingerprint import AMAZON_NS, fingerprint
from ketogo.core.logging import get_logger
from ketogo.core.repositories import CollectionStore, build_store
from ketogo.core.settings import Settings, get_settings
from ketogo.core.time import get_current_utc_time, week_label
from ketogo.curation.commentary import CommentaryProvider, NoCommentary
from ketogo.curation.merge import merge_and_persist
from ketogo.curation.models import AMAZON_SOURCE, Bucket, ObjectEntry
from ketogo.curation.quota import WEEK, remaining_quota
from ketogo.objects.paapi import PAAPIClient
from ketogo.objects.rotation import is_good_candidate, pick_queries

logger = get_logger(__name__)


async def run_weekly_objects(
    settings: Optional[Settings] = None,
    client: Optional[PAAPIClient] = None,
    store: Optional[CollectionStore] = None,
    commentary: Optional[CommentaryProvider] = None,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Run the weekly objects selection.

    Missing PA-API credentials skip the run without touching the store.
    A failing query is logged and the next one is tried.

    Returns:
        Dictionary with run statistics
    """
    start_time = time.time()
    settings = settings or get_settings()
    now = now or get_current_utc_time()
    stats = {
        'status': 'quiet_day',
        'week': week_label(now),
        'queries': [],
        'items_fetched': 0,
        'duplicates': 0,
        'filtered': 0,
        'added': 0,
        'errors': [],
        'runtime_seconds': 0,
    }

    if client is None and not settings.amazon_configured:
        logger.info("[amazon-objects] Missing PA-API secrets. Skipping.")
        stats['status'] = 'skipped'
        return stats

    store = store or build_store(Bucket.OBJECTS.value, settings)
    commentary = commentary or NoCommentary()

    existing = await store.load()
    seen_fingerprints = {r.get("fingerprint") for r in existing if r.get("fingerprint")}
    seen_asins = {r.get("asin") for r in existing if r.get("asin")}

    week = stats['week']
    amazon_records = [r for r in existing if r.get("source") == AMAZON_SOURCE]
    limit = min(
        settings.amazon_max_picks,
        remaining_quota(amazon_records, week, WEEK, settings.amazon_max_per_week),
    )
    if limit == 0:
        logger.info(f"[amazon-objects] Weekly cap reached for {week}. No changes.")
        return stats

    queries = pick_queries(now, settings.amazon_queries_per_week)
    stats['queries'] = queries

    owns_client = client is None
    client = client or PAAPIClient.from_settings(settings)
    picks = []
    try:
        for query in queries:
            if len(picks) >= limit:
                break

            try:
                products = await client.search_items(query)
            except PAAPIError as e:
                logger.error(f"[amazon-objects] query failed: {query}: {e}")
                stats['errors'].append(f"Query '{query}': {e}")
                continue

            stats['items_fetched'] += len(products)
            for product in products:
                fp = fingerprint(AMAZON_NS, AMAZON_SOURCE, product.asin)
                if fp in seen_fingerprints or product.asin in seen_asins:
                    stats['duplicates'] += 1
                    continue
                if not is_good_candidate(product, settings.price_min_eur, settings.price_max_eur):
                    stats['filtered'] += 1
                    continue

                picks.append(ObjectEntry(
                    fingerprint=fp,
                    source=AMAZON_SOURCE,
                    title=product.title,
                    link=product.detail_url,
                    published_at=now,
                    admitted_at=now,
                    micro_judgment=await commentary.generate(product.title),
                    price=product.price,
                    currency=product.currency,
                    image=product.image,
                    asin=product.asin,
                    note=settings.affiliate_note,
                ))
                seen_fingerprints.add(fp)
                seen_asins.add(product.asin)
                if len(picks) >= limit:
                    break
    finally:
        if owns_client:
            await client.aclose()

    result = await merge_and_persist(store, picks, existing=existing, cap=limit, dry_run=dry_run)
    stats['added'] = len(result.added)
    if result.changed:
        stats['status'] = 'published'

    stats['runtime_seconds'] = round(time.time() - start_time, 2)
    if result.changed:
        logger.info(f"[amazon-objects] Added {stats['added']} objects.")
    else:
        logger.info("[amazon-objects] No new objects selected. No changes.")
    return stats
