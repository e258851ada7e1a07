"""Merge approved candidates into an append-only collection and persist it."""

from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Union

from ketogo.core.logging import get_logger
from ketogo.core.repositories import CollectionStore
from ketogo.core.time import parse_timestamp
from ketogo.curation.models import ApprovedEntry

logger = get_logger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

Candidate = Union[ApprovedEntry, Dict[str, Any]]


class MergeResult(NamedTuple):
    """Outcome of a merge."""
    collection: List[Dict[str, Any]]
    added: List[Dict[str, Any]]
    duplicates: int
    capped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added)


def _as_record(candidate: Candidate) -> Dict[str, Any]:
    if isinstance(candidate, ApprovedEntry):
        return candidate.to_record()
    return dict(candidate)


def _published_key(record: Dict[str, Any]) -> datetime:
    return parse_timestamp(record.get("published_at")) or _OLDEST


def sort_collection(records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest first by ``published_at``; equal timestamps keep their order."""
    return sorted(records, key=_published_key, reverse=True)


def merge_entries(
    existing: Sequence[Dict[str, Any]],
    candidates: Sequence[Candidate],
    cap: Optional[int] = None,
) -> MergeResult:
    """
    Append candidates whose fingerprint is new to the collection.

    Existing records are never modified or dropped. A candidate repeating a
    fingerprint seen in history, or earlier in the same batch, is counted as
    a duplicate. ``cap`` limits how many new records this merge may add.
    """
    seen = {record.get("fingerprint") for record in existing if record.get("fingerprint")}
    added: List[Dict[str, Any]] = []
    duplicates = 0
    capped = 0

    for candidate in candidates:
        record = _as_record(candidate)
        fp = record.get("fingerprint")
        if not fp or fp in seen:
            duplicates += 1
            continue
        if cap is not None and len(added) >= cap:
            capped += 1
            continue
        seen.add(fp)
        added.append(record)

    if not added:
        return MergeResult(list(existing), [], duplicates, capped)

    merged = sort_collection(list(existing) + added)
    return MergeResult(merged, added, duplicates, capped)


async def merge_and_persist(
    store: CollectionStore,
    candidates: Sequence[Candidate],
    existing: Optional[Sequence[Dict[str, Any]]] = None,
    cap: Optional[int] = None,
    dry_run: bool = False,
) -> MergeResult:
    """
    Merge candidates into the stored collection and write it back whole.

    Nothing is written when no new record was added (quiet day), or on a
    dry run. Write failures propagate as ``StoreWriteError``.
    """
    if existing is None:
        existing = await store.load()

    result = merge_entries(existing, candidates, cap=cap)

    if not result.changed:
        logger.info(f"[quiet-day] {store.name}: no new entries, no changes")
        return result

    if dry_run:
        logger.info(f"DRY RUN: would add {len(result.added)} entries to {store.name}")
        return result

    await store.save(result.collection)
    logger.info(
        f"[publish] {store.name}: added {len(result.added)} entries",
        extra={"collection": store.name, "added": len(result.added), "total": len(result.collection)},
    )
    return result
