"""Tests for the record cache and the query/filter engine."""

import asyncio

import pytest
from datetime import date

from expense_tracker.models import ExpenseFilter, FetchStatus
from expense_tracker.models.audit import AuditEventType
from expense_tracker.queries import ExpenseQueryEngine, RecordCache, order_by_date_desc

from tests.conftest import make_record


class TestRecordCache:
    """Tests for whole-snapshot replacement."""

    def test_starts_empty(self):
        cache = RecordCache()
        assert cache.snapshot == ()
        assert len(cache) == 0
        assert cache.version == 0

    def test_replace_swaps_snapshot_and_notifies(self):
        cache = RecordCache()
        seen = []
        cache.add_listener(seen.append)
        records = [make_record(), make_record()]

        cache.replace(records)

        assert cache.snapshot == tuple(records)
        assert list(cache) == records
        assert cache.version == 1
        assert seen == [tuple(records)]

    def test_old_snapshot_unaffected_by_replace(self):
        """Test that a reader holding a snapshot never sees a partial update."""
        cache = RecordCache()
        cache.replace([make_record()])
        held = cache.snapshot
        cache.replace([make_record(), make_record()])
        assert len(held) == 1

    def test_clear_and_remove_listener(self):
        cache = RecordCache()
        seen = []
        remove = cache.add_listener(seen.append)
        cache.replace([make_record()])
        remove()
        cache.clear()
        assert cache.snapshot == ()
        assert len(seen) == 1


class TestOrdering:
    def test_newest_first_stable(self):
        a = make_record(day=date(2024, 1, 5))
        b = make_record(day=date(2024, 1, 10))
        c = make_record(day=date(2024, 1, 5))
        assert order_by_date_desc([a, b, c]) == [b, a, c]


class TestExpenseQueryEngine:
    """Tests for fetch, stale discard and failure handling."""

    @pytest.mark.asyncio
    async def test_fetch_orders_by_date_desc(self, store):
        """Test the fetch example: 2024-01-10 before 2024-01-05."""
        older = make_record(day=date(2024, 1, 5), amount="20", currency="EUR")
        newer = make_record(day=date(2024, 1, 10), amount="50")
        store.seed([older, newer])
        engine = ExpenseQueryEngine(store, RecordCache())

        result = await engine.fetch(ExpenseFilter(owner="user-1"))

        assert result.status == FetchStatus.APPLIED
        assert result.record_count == 2
        assert [r.date for r in engine.cache.snapshot] == [date(2024, 1, 10), date(2024, 1, 5)]

    @pytest.mark.asyncio
    async def test_fetch_is_owner_scoped(self, store):
        store.seed([make_record(owner="user-1"), make_record(owner="user-2")])
        engine = ExpenseQueryEngine(store, RecordCache())

        await engine.fetch(ExpenseFilter(owner="user-1"))

        assert all(r.owner == "user-1" for r in engine.cache.snapshot)
        assert len(engine.cache) == 1

    @pytest.mark.asyncio
    async def test_empty_result_replaces_cache(self, store):
        """Test that an empty result still replaces the previous snapshot."""
        store.seed([make_record(day=date(2024, 1, 10))])
        engine = ExpenseQueryEngine(store, RecordCache())
        await engine.fetch(ExpenseFilter(owner="user-1"))

        result = await engine.fetch(ExpenseFilter(owner="user-1", date_from=date(2024, 6, 1)))

        assert result.applied
        assert engine.cache.snapshot == ()

    @pytest.mark.asyncio
    async def test_late_result_of_earlier_fetch_is_discarded(self, store):
        """Test: A issued, B issued, B completes, A completes; B stays."""
        store.seed([
            make_record(day=date(2024, 1, 3)),
            make_record(day=date(2024, 2, 3)),
        ])
        releases = {
            date(2024, 1, 1): asyncio.Event(),
            date(2024, 2, 1): asyncio.Event(),
        }

        async def gate(expense_filter):
            await releases[expense_filter.date_from].wait()

        store.query_gate = gate
        engine = ExpenseQueryEngine(store, RecordCache())

        task_a = asyncio.create_task(engine.fetch(ExpenseFilter(owner="user-1", date_from=date(2024, 1, 1))))
        task_b = asyncio.create_task(engine.fetch(ExpenseFilter(owner="user-1", date_from=date(2024, 2, 1))))
        await asyncio.sleep(0)

        releases[date(2024, 2, 1)].set()
        result_b = await task_b
        releases[date(2024, 1, 1)].set()
        result_a = await task_a

        assert result_a.sequence < result_b.sequence
        assert result_b.status == FetchStatus.APPLIED
        assert result_a.status == FetchStatus.STALE
        assert [r.date for r in engine.cache.snapshot] == [date(2024, 2, 3)]
        assert engine.applied_sequence == result_b.sequence

    @pytest.mark.asyncio
    async def test_in_order_completion_applies_both(self, store):
        store.seed([make_record()])
        engine = ExpenseQueryEngine(store, RecordCache())

        first = await engine.fetch(ExpenseFilter(owner="user-1"))
        second = await engine.fetch(ExpenseFilter(owner="user-1"))

        assert first.applied and second.applied
        assert engine.cache.version == 2

    @pytest.mark.asyncio
    async def test_failure_keeps_cache_and_notifies(self, store, notifier, audit_logger, audit_storage):
        """Test that a failed fetch leaves the previous snapshot in place."""
        store.seed([make_record()])
        engine = ExpenseQueryEngine(
            store,
            RecordCache(),
            notifier=notifier,
            audit_logger=audit_logger,
            view_name="ledger",
        )
        await engine.fetch(ExpenseFilter(owner="user-1"))
        before = engine.cache.snapshot

        store.fail_next_queries = 1
        result = await engine.fetch(ExpenseFilter(owner="user-1"))

        assert result.status == FetchStatus.FAILED
        assert result.error_message
        assert engine.cache.snapshot == before
        assert notifier.messages == [("Error", "Failed to fetch expenses", "destructive")]
        assert [e.event_type for e in audit_storage.events] == [AuditEventType.FETCH_FAILED]

    @pytest.mark.asyncio
    async def test_custom_failure_message(self, store, notifier):
        store.fail_next_queries = 1
        engine = ExpenseQueryEngine(
            store,
            RecordCache(),
            notifier=notifier,
            failure_message="Failed to fetch paid expenses",
        )
        await engine.fetch(ExpenseFilter(owner="user-1"))
        assert notifier.descriptions == ["Failed to fetch paid expenses"]

    @pytest.mark.asyncio
    async def test_invalidate_discards_in_flight(self, store):
        """Test that results issued before invalidate() never apply."""
        store.seed([make_record()])
        release = asyncio.Event()

        async def gate(expense_filter):
            await release.wait()

        store.query_gate = gate
        engine = ExpenseQueryEngine(store, RecordCache())
        task = asyncio.create_task(engine.fetch(ExpenseFilter(owner="user-1")))
        await asyncio.sleep(0)

        engine.invalidate()
        release.set()
        result = await task

        assert result.status == FetchStatus.STALE
        assert engine.cache.snapshot == ()

    @pytest.mark.asyncio
    async def test_fetch_requires_owner(self, store):
        engine = ExpenseQueryEngine(store, RecordCache())
        with pytest.raises(ValueError):
            await engine.fetch(ExpenseFilter.model_construct(owner="", paid_only=False))
