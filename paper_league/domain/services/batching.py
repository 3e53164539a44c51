"""Batched writer over the store's size-limited atomic batches.

Settling hundreds of users (allocation updates plus carry-forward entries)
can exceed the store's cap on operations per atomic batch.  BatchedWriter
fills one batch up to op_limit operations, then queues it and starts a new
one.  flush() commits every queued batch, including the partial last one,
concurrently and waits for all of them.

Guarantees:
  - every operation lands in exactly one batch, in the order issued;
  - nothing is retried: if a batch commit fails, flush() raises that error
    after the other commits have finished, and the caller decides whether to
    re-run (settlement and recompute are safe to repeat);
  - batches may commit in any order relative to each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from paper_league.domain.repositories.store import DocumentRef, DocumentStore, WriteBatch

logger = logging.getLogger(__name__)

DEFAULT_OP_LIMIT = 450


class BatchedWriter:
    def __init__(self, store: DocumentStore, op_limit: int = DEFAULT_OP_LIMIT) -> None:
        if op_limit <= 0 or op_limit > store.max_batch_ops:
            raise ValueError(
                f"op_limit must be in (0, {store.max_batch_ops}], got {op_limit}"
            )
        self._store = store
        self._op_limit = op_limit
        self._batch: WriteBatch = store.batch()
        self._queued: list[WriteBatch] = []

    @property
    def pending_ops(self) -> int:
        return sum(len(b) for b in self._queued) + len(self._batch)

    def set(self, ref: DocumentRef, data: dict[str, Any], merge: bool = False) -> None:
        self._batch.set(ref, data, merge=merge)
        self._rotate_if_needed()

    def update(self, ref: DocumentRef, data: dict[str, Any]) -> None:
        self._batch.update(ref, data)
        self._rotate_if_needed()

    def _rotate_if_needed(self) -> None:
        if len(self._batch) >= self._op_limit:
            self._queued.append(self._batch)
            self._batch = self._store.batch()

    async def flush(self) -> int:
        """Commit all queued operations; return how many were committed."""
        if len(self._batch):
            self._queued.append(self._batch)
            self._batch = self._store.batch()
        batches, self._queued = self._queued, []
        if not batches:
            return 0
        total = sum(len(b) for b in batches)
        results = await asyncio.gather(*(b.commit() for b in batches), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.error(
                "%d of %d batches failed to commit (%d operations queued)",
                len(errors), len(batches), total,
            )
            raise errors[0]
        logger.debug("Committed %d operations in %d batches", total, len(batches))
        return total
