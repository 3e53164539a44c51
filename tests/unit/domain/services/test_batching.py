"""Tests for paper_league/domain/services/batching.py."""

import pytest

from paper_league.domain.errors import DocumentNotFoundError
from paper_league.domain.repositories.store import Collections, DocumentRef
from paper_league.domain.services.batching import BatchedWriter
from paper_league.infrastructure.persistence.memory import InMemoryDocumentStore


def _ref(i):
    return DocumentRef(Collections.BALANCES, f"u{i}")


def test_op_limit_above_store_cap_rejected():
    with pytest.raises(ValueError):
        BatchedWriter(InMemoryDocumentStore(max_batch_ops=10), op_limit=11)


def test_non_positive_op_limit_rejected():
    with pytest.raises(ValueError):
        BatchedWriter(InMemoryDocumentStore(), op_limit=0)


async def test_flush_splits_operations_at_limit():
    store = InMemoryDocumentStore()
    writer = BatchedWriter(store, op_limit=3)
    for i in range(7):
        writer.set(_ref(i), {"latest_balance": float(i)})
    assert writer.pending_ops == 7
    assert await writer.flush() == 7
    assert (store.commit_count, store.largest_commit, store.committed_ops) == (3, 3, 7)
    assert len(await store.list(Collections.BALANCES)) == 7


async def test_flush_exact_multiple_leaves_no_empty_batch():
    store = InMemoryDocumentStore()
    writer = BatchedWriter(store, op_limit=2)
    for i in range(4):
        writer.set(_ref(i), {})
    await writer.flush()
    assert (store.commit_count, store.largest_commit) == (2, 2)


async def test_flush_with_nothing_queued():
    store = InMemoryDocumentStore()
    assert await BatchedWriter(store).flush() == 0
    assert store.commit_count == 0


async def test_writer_reusable_after_flush():
    store = InMemoryDocumentStore()
    writer = BatchedWriter(store, op_limit=5)
    writer.set(_ref(1), {})
    await writer.flush()
    writer.set(_ref(2), {})
    assert writer.pending_ops == 1
    await writer.flush()
    assert (store.commit_count, store.largest_commit) == (2, 1)


async def test_failed_batch_raises_after_others_commit():
    store = InMemoryDocumentStore()
    writer = BatchedWriter(store, op_limit=2)
    writer.set(_ref(1), {"latest_balance": 1.0})
    writer.set(_ref(2), {"latest_balance": 2.0})
    writer.update(DocumentRef(Collections.ALLOCATIONS, "missing"), {"end_balance": 1.0})
    with pytest.raises(DocumentNotFoundError):
        await writer.flush()
    assert len(await store.list(Collections.BALANCES)) == 2


async def test_update_merges_into_existing_document():
    store = InMemoryDocumentStore()
    await store.set(_ref(1), {"latest_balance": 1.0, "latest_week_id": "2025-W30"})
    writer = BatchedWriter(store)
    writer.update(_ref(1), {"latest_balance": 2.0})
    await writer.flush()
    assert await store.get(_ref(1)) == {"latest_balance": 2.0, "latest_week_id": "2025-W30"}
