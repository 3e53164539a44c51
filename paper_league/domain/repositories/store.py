"""Document store contract consumed by the settlement engine.

The engine needs only a small surface from its store:

  - point reads by (collection, key);
  - writes with an optional field-level merge that never deletes fields
    absent from the written document;
  - equality queries on a single top-level field and full-collection scans;
  - atomic write batches with a hard cap on the number of operations;
  - a change-notification stream per collection.

Concrete implementations live in paper_league/infrastructure/persistence/ and
are wired at the application boundary.

Design notes:
  - All I/O methods are async; batches queue operations synchronously and
    only touch the backend on commit().
  - merge=True is a recursive union of mappings (nested dicts are merged,
    every other value is replaced).
  - Backends wrap driver errors in StoreError so callers can tell a failed
    lookup from a missing document.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

from paper_league.domain.errors import BatchLimitExceededError, DocumentNotFoundError


class Collections:
    WEEKS = "weeks"
    MARKET_DATA = "market_data"
    MARKET_CORRECTIONS = "market_corrections"
    ALLOCATIONS = "allocations"
    WEEKLY_BALANCES = "weekly_balances"
    BALANCES = "balances"


@dataclass(frozen=True)
class DocumentRef:
    collection: str
    key: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.key}"


@dataclass(frozen=True)
class WriteOp:
    kind: str  # "set" or "update"
    ref: DocumentRef
    data: dict[str, Any]
    merge: bool = False


@dataclass(frozen=True)
class ChangeEvent:
    """A committed write; data is the document as stored after the write."""

    ref: DocumentRef
    data: dict[str, Any] | None = field(default=None, compare=False)


def deep_merge(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Field-level union of two documents; incoming wins on conflicts.

    Nested mappings are merged recursively so that, e.g., one fetcher's
    instrument entries never erase another's.
    """
    merged = dict(existing)
    for key, value in incoming.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def apply_write(existing: dict[str, Any] | None, op: WriteOp) -> dict[str, Any]:
    """Document contents after applying op on top of existing (None if absent)."""
    if existing is None:
        if op.kind == "update":
            raise DocumentNotFoundError(op.ref.collection, op.ref.key)
        return copy.deepcopy(op.data)
    if op.merge:
        return copy.deepcopy(deep_merge(existing, op.data))
    return copy.deepcopy(op.data)


class WriteBatch(ABC):
    """Queue of set/update operations committed together.

    Subclasses implement _apply(), which must apply every queued operation
    atomically or none of them.
    """

    def __init__(self, max_ops: int) -> None:
        self._max_ops = max_ops
        self._ops: list[WriteOp] = []

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, ref: DocumentRef, data: dict[str, Any], merge: bool = False) -> None:
        self._ops.append(WriteOp("set", ref, dict(data), merge))

    def update(self, ref: DocumentRef, data: dict[str, Any]) -> None:
        """Merge data into an existing document; the commit fails if it is absent."""
        self._ops.append(WriteOp("update", ref, dict(data), True))

    async def commit(self) -> None:
        if len(self._ops) > self._max_ops:
            raise BatchLimitExceededError(len(self._ops), self._max_ops)
        if not self._ops:
            return
        await self._apply(list(self._ops))

    @abstractmethod
    async def _apply(self, ops: list[WriteOp]) -> None:
        """Apply ops atomically."""


class Subscription:
    """Async iterator over change events for a set of collections.

    Registration happens on construction, so no event committed after
    watch() returns is missed.  close() ends iteration once the events
    already queued have been consumed.
    """

    def __init__(self, feed: ChangeFeed, collections: Iterable[str]) -> None:
        self._feed = feed
        self.collections = frozenset(collections)
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False
        feed._subscribers.append(self)

    def offer(self, event: ChangeEvent) -> None:
        if not self._closed and event.ref.collection in self.collections:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._subscribers.remove(self)
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ChangeFeed:
    """In-process fan-out of committed writes to subscriptions."""

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []

    def subscribe(self, collections: Iterable[str]) -> Subscription:
        return Subscription(self, collections)

    def publish(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            for subscription in list(self._subscribers):
                subscription.offer(event)


class DocumentStore(ABC):
    """Abstract document store."""

    # Hard limit on operations per atomic batch.
    max_batch_ops: int = 500

    @abstractmethod
    async def get(self, ref: DocumentRef) -> dict[str, Any] | None:
        """Return the document, or None if it does not exist."""

    @abstractmethod
    async def set(self, ref: DocumentRef, data: dict[str, Any], merge: bool = False) -> None:
        """Write a document; merge=True unions fields into any existing document."""

    @abstractmethod
    async def query(self, collection: str, field_name: str, value: Any) -> list[dict[str, Any]]:
        """Return every document whose top-level field equals value."""

    @abstractmethod
    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """Return (key, document) pairs for the whole collection."""

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new atomic write batch."""

    @abstractmethod
    def watch(self, collections: Iterable[str]) -> Subscription:
        """Subscribe to committed writes in the given collections."""
