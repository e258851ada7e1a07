"""Tests for merging, quotas and persistence of collections."""

from datetime import datetime, timezone

import pytest

from ketogo.core.errors import StoreWriteError
from ketogo.core.repositories import InMemoryStore
from ketogo.curation.merge import merge_and_persist, merge_entries, sort_collection
from ketogo.curation.models import ApprovedEntry, ObjectEntry
from ketogo.curation.quota import DAY, WEEK, count_period, entry_period, period_key, remaining_quota


def record(fp, published_at, **extra):
    data = {
        "fingerprint": fp,
        "source": "Reddit",
        "title": f"Item {fp}",
        "link": f"https://example.com/{fp}",
        "published_at": published_at,
    }
    data.update(extra)
    return data


class FailingStore(InMemoryStore):
    async def save(self, records):
        raise StoreWriteError("disk full")


class TestSortCollection:
    """Newest-first ordering."""

    def test_descending_by_published_at(self):
        records = [
            record("a", "2024-03-01T10:00:00Z"),
            record("b", "2024-03-05T10:00:00Z"),
            record("c", "2024-03-03T10:00:00Z"),
        ]
        assert [r["fingerprint"] for r in sort_collection(records)] == ["b", "c", "a"]

    def test_ties_keep_relative_order(self):
        records = [record(fp, "2024-03-01T10:00:00Z") for fp in ("x", "y", "z")]
        assert [r["fingerprint"] for r in sort_collection(records)] == ["x", "y", "z"]

    def test_mixed_offsets_compare_in_utc(self):
        records = [
            record("local", "2024-03-01T12:00:00+02:00"),
            record("utc", "2024-03-01T11:00:00Z"),
        ]
        assert [r["fingerprint"] for r in sort_collection(records)] == ["utc", "local"]


class TestMergeEntries:
    """Pure merge semantics."""

    def test_appends_new_and_counts_duplicates(self):
        existing = [record("a", "2024-03-01T10:00:00Z")]
        candidates = [record("a", "2024-03-02T10:00:00Z"), record("b", "2024-03-02T10:00:00Z")]

        result = merge_entries(existing, candidates)

        assert [r["fingerprint"] for r in result.collection] == ["b", "a"]
        assert [r["fingerprint"] for r in result.added] == ["b"]
        assert result.duplicates == 1
        assert result.changed

    def test_existing_records_untouched(self):
        existing = [record("a", "2024-03-01T10:00:00Z", legacy_field="kept")]
        result = merge_entries(existing, [record("a", "2024-03-09T10:00:00Z", title="changed")])

        assert result.collection == existing
        assert not result.changed

    def test_duplicates_within_batch(self):
        candidates = [record("a", "2024-03-01T10:00:00Z"), record("a", "2024-03-01T11:00:00Z")]
        result = merge_entries([], candidates)
        assert len(result.added) == 1
        assert result.duplicates == 1

    def test_idempotent(self):
        candidates = [record(fp, f"2024-03-0{i + 1}T10:00:00Z") for i, fp in enumerate("abc")]
        first = merge_entries([], candidates)
        second = merge_entries(first.collection, candidates)

        assert second.collection == first.collection
        assert second.added == []
        assert second.duplicates == 3

    def test_cap(self):
        candidates = [record(fp, "2024-03-01T10:00:00Z") for fp in "abcde"]
        result = merge_entries([], candidates, cap=2)
        assert len(result.added) == 2
        assert result.capped == 3

    def test_accepts_models(self):
        entry = ApprovedEntry(
            fingerprint="f1",
            source="Reddit",
            title="Weird lamp",
            link="https://x/1",
            published_at=datetime(2024, 3, 1, 10, tzinfo=timezone.utc),
            micro_judgment="This exists.",
        )
        result = merge_entries([], [entry])
        assert result.added[0]["published_at"] == "2024-03-01T10:00:00Z"
        assert result.added[0]["micro_judgment"] == "This exists."


class TestMergeAndPersist:
    """Persisting merges through a store."""

    @pytest.mark.asyncio
    async def test_writes_when_changed(self):
        store = InMemoryStore("observations")
        result = await merge_and_persist(store, [record("a", "2024-03-01T10:00:00Z")])

        assert result.changed
        assert store.save_count == 1
        assert [r["fingerprint"] for r in store.records] == ["a"]

    @pytest.mark.asyncio
    async def test_quiet_day_does_not_write(self):
        store = InMemoryStore("observations", [record("a", "2024-03-01T10:00:00Z")])
        result = await merge_and_persist(store, [record("a", "2024-03-01T10:00:00Z")])

        assert not result.changed
        assert store.save_count == 0

    @pytest.mark.asyncio
    async def test_empty_candidates_do_not_write(self):
        store = InMemoryStore("objects")
        await merge_and_persist(store, [])
        assert store.save_count == 0

    @pytest.mark.asyncio
    async def test_dry_run_does_not_write(self):
        store = InMemoryStore("observations")
        result = await merge_and_persist(store, [record("a", "2024-03-01T10:00:00Z")], dry_run=True)

        assert result.changed
        assert store.save_count == 0
        assert store.records == []

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self):
        store = FailingStore("observations")
        with pytest.raises(StoreWriteError):
            await merge_and_persist(store, [record("a", "2024-03-01T10:00:00Z")])


class TestQuota:
    """Per-period counters."""

    def test_period_keys(self):
        dt = datetime(2024, 3, 6, 23, 30, tzinfo=timezone.utc)
        assert period_key(dt, DAY) == "2024-03-06"
        assert period_key(dt, WEEK) == "2024-W10"

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_key(datetime(2024, 3, 6, tzinfo=timezone.utc), "month")

    def test_week_field_wins(self):
        r = record("a", "2023-01-01T10:00:00Z", week="2024-W10")
        assert entry_period(r, WEEK) == "2024-W10"

    def test_admitted_at_wins_over_published_at(self):
        r = record("a", "2024-02-01T10:00:00Z", admitted_at="2024-03-06T08:00:00Z")
        assert entry_period(r, DAY) == "2024-03-06"

    def test_published_at_fallback(self):
        assert entry_period(record("a", "2024-02-01T10:00:00Z"), DAY) == "2024-02-01"

    def test_count_and_remaining(self):
        collection = [
            record("a", "2024-03-06T01:00:00Z"),
            record("b", "2024-03-06T05:00:00Z"),
            record("c", "2024-03-05T05:00:00Z"),
        ]
        assert count_period(collection, "2024-03-06", DAY) == 2
        assert remaining_quota(collection, "2024-03-06", DAY, 3) == 1
        assert remaining_quota(collection, "2024-03-06", DAY, 1) == 0

    def test_object_entry_week_tag(self):
        entry = ObjectEntry(
            fingerprint="f1",
            source="Designboom",
            title="Chair",
            link="https://d/1",
            published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            week="2024-W10",
        )
        assert count_period([entry.to_record()], "2024-W10", WEEK) == 1
