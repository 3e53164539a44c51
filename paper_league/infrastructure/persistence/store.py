"""SQLAlchemy implementation of DocumentStore.

Every collection lives in the documents table.  Each batch runs in its own
transaction: rows touched by the batch are locked, merged in Python and
written back before commit.  Change events are published only after the
transaction commits.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paper_league.domain.errors import StoreError
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
from paper_league.infrastructure.database import AsyncSessionLocal
from paper_league.infrastructure.persistence.models.documents import Document

logger = logging.getLogger(__name__)

# Driver failures: SQLAlchemy wraps DBAPI errors, asyncpg connect errors are OSError.
_DRIVER_ERRORS = (SQLAlchemyError, OSError)


def field_equals(field_name: str, value: Any):
    """SQL expression comparing a top-level JSON field to a scalar."""
    element = Document.data[field_name]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    raise TypeError(f"Cannot query documents by {type(value).__name__} value")


class SqlWriteBatch(WriteBatch):
    def __init__(self, store: SqlDocumentStore) -> None:
        super().__init__(store.max_batch_ops)
        self._store = store

    async def _apply(self, ops: list[WriteOp]) -> None:
        await self._store.apply(ops)


class SqlDocumentStore(DocumentStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal) -> None:
        self._session_factory = session_factory
        self._feed = ChangeFeed()

    @staticmethod
    def _to_document(row: Document) -> dict[str, Any]:
        return copy.deepcopy(row.data)

    @staticmethod
    async def _fetch(session: AsyncSession, ref: DocumentRef, for_update: bool = False) -> Document | None:
        stmt = select(Document).where(
            Document.collection == ref.collection,
            Document.key == ref.key,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    # --- reads ---

    async def get(self, ref: DocumentRef) -> dict[str, Any] | None:
        try:
            async with self._session_factory() as session:
                row = await self._fetch(session, ref)
        except _DRIVER_ERRORS as exc:
            raise StoreError(f"Reading {ref} failed: {exc}") from exc
        return self._to_document(row) if row else None

    async def query(self, collection: str, field_name: str, value: Any) -> list[dict[str, Any]]:
        stmt = (
            select(Document)
            .where(Document.collection == collection, field_equals(field_name, value))
            .order_by(Document.key)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars())
        except _DRIVER_ERRORS as exc:
            raise StoreError(f"Querying {collection} by {field_name} failed: {exc}") from exc
        return [self._to_document(row) for row in rows]

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        stmt = select(Document).where(Document.collection == collection).order_by(Document.key)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars())
        except _DRIVER_ERRORS as exc:
            raise StoreError(f"Listing {collection} failed: {exc}") from exc
        return [(row.key, self._to_document(row)) for row in rows]

    # --- writes ---

    async def set(self, ref: DocumentRef, data: dict[str, Any], merge: bool = False) -> None:
        await self.apply([WriteOp("set", ref, dict(data), merge)])

    def batch(self) -> SqlWriteBatch:
        return SqlWriteBatch(self)

    async def apply(self, ops: list[WriteOp]) -> None:
        """Apply ops in a single transaction, then notify watchers."""
        events: list[ChangeEvent] = []
        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    rows: dict[DocumentRef, Document | None] = {}
                    for op in ops:
                        if op.ref not in rows:
                            rows[op.ref] = await self._fetch(session, op.ref, for_update=True)
                        row = rows[op.ref]
                        data = apply_write(row.data if row is not None else None, op)
                        if row is None:
                            row = Document(
                                collection=op.ref.collection,
                                key=op.ref.key,
                                data=data,
                                updated_at=now,
                            )
                            session.add(row)
                            rows[op.ref] = row
                        else:
                            row.data = data
                            row.updated_at = now
                        events.append(ChangeEvent(op.ref, copy.deepcopy(data)))
        except _DRIVER_ERRORS as exc:
            raise StoreError(f"Batch of {len(ops)} operations failed: {exc}") from exc

        logger.debug("Committed %d document writes", len(ops))
        self._feed.publish(events)

    # --- notifications ---

    def watch(self, collections: Iterable[str]) -> Subscription:
        return self._feed.subscribe(collections)
