"""Typed ledger access on top of a DocumentStore.

LedgerRepository maps raw documents to domain models and builds the document
references used by services when they queue writes.  It is backend-agnostic:
any DocumentStore implementation can be plugged in.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from paper_league.domain.errors import MalformedDocumentError
from paper_league.domain.models.ledger import Allocation, Balance, WeeklyBalance, ledger_key
from paper_league.domain.models.weeks import Week

from .store import Collections, DocumentRef, DocumentStore


def week_ref(week_id: str) -> DocumentRef:
    return DocumentRef(Collections.WEEKS, week_id)


def market_data_ref(week_id: str) -> DocumentRef:
    return DocumentRef(Collections.MARKET_DATA, week_id)


def market_correction_ref(week_id: str) -> DocumentRef:
    return DocumentRef(Collections.MARKET_CORRECTIONS, week_id)


def allocation_ref(week_id: str, uid: str) -> DocumentRef:
    return DocumentRef(Collections.ALLOCATIONS, ledger_key(week_id, uid))


def weekly_balance_ref(week_id: str, uid: str) -> DocumentRef:
    return DocumentRef(Collections.WEEKLY_BALANCES, ledger_key(week_id, uid))


def balance_ref(uid: str) -> DocumentRef:
    return DocumentRef(Collections.BALANCES, uid)


ModelT = TypeVar("ModelT", bound=BaseModel)


def _to_domain(model: type[ModelT], collection: str, key: str, doc: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(doc)
    except ValidationError as exc:
        raise MalformedDocumentError(collection, key, f"{exc.error_count()} invalid field(s)") from exc


def _week_to_domain(week_id: str, doc: dict[str, Any]) -> Week:
    return _to_domain(Week, Collections.WEEKS, week_id, {"id": week_id, **doc})


def _balance_to_domain(uid: str, doc: dict[str, Any]) -> Balance:
    return _to_domain(Balance, Collections.BALANCES, uid, {**doc, "uid": uid})


class LedgerRepository:
    """Read access to weeks, allocations and balances.

    Store errors propagate unchanged, and a document that fails model
    validation raises MalformedDocumentError (a StoreError), so callers that
    want fall-through semantics (the balance resolver) catch StoreError only.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    # --- weeks ---

    async def get_week(self, week_id: str) -> Week | None:
        doc = await self._store.get(week_ref(week_id))
        return _week_to_domain(week_id, doc) if doc is not None else None

    async def list_weeks(self) -> list[Week]:
        rows = await self._store.list(Collections.WEEKS)
        return [_week_to_domain(key, doc) for key, doc in rows]

    # --- allocations ---

    async def get_allocation(self, week_id: str, uid: str) -> Allocation | None:
        ref = allocation_ref(week_id, uid)
        doc = await self._store.get(ref)
        return _to_domain(Allocation, ref.collection, ref.key, doc) if doc is not None else None

    async def list_allocations(self, week_id: str) -> list[Allocation]:
        docs = await self._store.query(Collections.ALLOCATIONS, "week_id", week_id)
        return [
            _to_domain(Allocation, Collections.ALLOCATIONS, ledger_key(week_id, doc.get("uid", "?")), doc)
            for doc in docs
        ]

    # --- weekly balances ---

    async def get_weekly_balance(self, week_id: str, uid: str) -> WeeklyBalance | None:
        ref = weekly_balance_ref(week_id, uid)
        doc = await self._store.get(ref)
        return _to_domain(WeeklyBalance, ref.collection, ref.key, doc) if doc is not None else None

    async def list_weekly_balances(self, week_id: str) -> list[WeeklyBalance]:
        docs = await self._store.query(Collections.WEEKLY_BALANCES, "week_id", week_id)
        return [
            _to_domain(WeeklyBalance, Collections.WEEKLY_BALANCES, ledger_key(week_id, doc.get("uid", "?")), doc)
            for doc in docs
        ]

    # --- balance snapshots ---

    async def get_balance(self, uid: str) -> Balance | None:
        doc = await self._store.get(balance_ref(uid))
        return _balance_to_domain(uid, doc) if doc is not None else None

    async def list_balances(self) -> list[Balance]:
        rows = await self._store.list(Collections.BALANCES)
        return [_balance_to_domain(key, doc) for key, doc in rows]
