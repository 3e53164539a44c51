"""Dict-backed DocumentStore.

Used by the test suite and for local dry runs.  Documents are deep-copied on
the way in and out, and each batch is staged completely before anything is
written, so a failing update leaves the store untouched.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

from paper_league.domain.repositories.store import (
    ChangeEvent,
    ChangeFeed,
    DocumentRef,
    DocumentStore,
    Subscription,
    WriteBatch,
    WriteOp,
    apply_write,
)


class InMemoryWriteBatch(WriteBatch):
    def __init__(self, store: InMemoryDocumentStore) -> None:
        super().__init__(store.max_batch_ops)
        self._store = store

    async def _apply(self, ops: list[WriteOp]) -> None:
        self._store.apply(ops)


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, max_batch_ops: int = 500) -> None:
        self.max_batch_ops = max_batch_ops
        self._docs: dict[DocumentRef, dict[str, Any]] = {}
        self._feed = ChangeFeed()
        # Applied writes (a lone set() counts as one commit of one op).
        self.commit_count = 0
        self.committed_ops = 0
        self.largest_commit = 0

    def _sorted(self, collection: str) -> list[tuple[DocumentRef, dict[str, Any]]]:
        items = [(ref, doc) for ref, doc in self._docs.items() if ref.collection == collection]
        return sorted(items, key=lambda item: item[0].key)

    async def get(self, ref: DocumentRef) -> dict[str, Any] | None:
        doc = self._docs.get(ref)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, ref: DocumentRef, data: dict[str, Any], merge: bool = False) -> None:
        self.apply([WriteOp("set", ref, dict(data), merge)])

    async def query(self, collection: str, field_name: str, value: Any) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(doc)
            for _, doc in self._sorted(collection)
            if field_name in doc and doc[field_name] == value
        ]

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        return [(ref.key, copy.deepcopy(doc)) for ref, doc in self._sorted(collection)]

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def watch(self, collections: Iterable[str]) -> Subscription:
        return self._feed.subscribe(collections)

    def apply(self, ops: list[WriteOp]) -> None:
        staged: dict[DocumentRef, dict[str, Any]] = {}
        events: list[ChangeEvent] = []
        for op in ops:
            existing = staged[op.ref] if op.ref in staged else self._docs.get(op.ref)
            staged[op.ref] = apply_write(existing, op)
            events.append(ChangeEvent(op.ref, copy.deepcopy(staged[op.ref])))
        self._docs.update(staged)
        self.commit_count += 1
        self.committed_ops += len(ops)
        self.largest_commit = max(self.largest_commit, len(ops))
        self._feed.publish(events)
