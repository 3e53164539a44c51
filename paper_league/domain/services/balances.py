"""Starting-balance resolution.

A user's starting balance for week W is the ending balance of the ISO week
before W, looked up in this order:

  1. weekly_balances[prev, uid].end_balance
  2. allocations[prev, uid].end_balance   (ledger entry never written)
  3. the caller's fallback: a stored base_balance, else the user's balance
     snapshot, else the league default (100,000).

A store error on any lookup falls through to the next level and is logged;
it is never fatal.

Settlement reads predecessors through a PredecessorSource.  StoreSource asks
the resolver every time; ReplaySource keeps the running balances of a
multi-week replay in memory and only consults the store the first time it
meets a user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from paper_league.domain.errors import StoreError
from paper_league.domain.models.enums import BalanceSource
from paper_league.domain.repositories.ledger import LedgerRepository

from .calendar import prev_week_id

logger = logging.getLogger(__name__)

DEFAULT_BALANCE = 100_000.0


@dataclass(frozen=True)
class ResolvedBalance:
    balance: float
    source: BalanceSource


class BalanceResolver:
    def __init__(self, ledger: LedgerRepository, default_balance: float = DEFAULT_BALANCE) -> None:
        self._ledger = ledger
        self._default_balance = default_balance

    @property
    def default_balance(self) -> float:
        return self._default_balance

    async def resolve(self, uid: str, week_id: str, fallback: float | None = None) -> ResolvedBalance:
        """Starting balance of uid for week_id.

        When fallback is None it is computed lazily from the balance snapshot.
        """
        prev = prev_week_id(week_id)

        try:
            entry = await self._ledger.get_weekly_balance(prev, uid)
        except StoreError as exc:
            logger.warning("Could not read weekly balance %s/%s, falling through: %s", prev, uid, exc)
            entry = None
        if entry is not None:
            return ResolvedBalance(entry.end_balance, BalanceSource.WEEKLY_BALANCE)

        try:
            allocation = await self._ledger.get_allocation(prev, uid)
        except StoreError as exc:
            logger.warning("Could not read allocation %s/%s, falling through: %s", prev, uid, exc)
            allocation = None
        if allocation is not None and allocation.end_balance is not None:
            return ResolvedBalance(allocation.end_balance, BalanceSource.ALLOCATION)

        if fallback is None:
            fallback = await self.snapshot_balance(uid)
        return ResolvedBalance(fallback, BalanceSource.FALLBACK)

    async def snapshot_balance(self, uid: str) -> float:
        """The user's latest snapshot balance, or the league default."""
        try:
            snapshot = await self._ledger.get_balance(uid)
        except StoreError as exc:
            logger.warning("Could not read balance snapshot for %s, using default: %s", uid, exc)
            snapshot = None
        if snapshot is not None and snapshot.latest_balance is not None:
            return snapshot.latest_balance
        return self._default_balance


class PredecessorSource(Protocol):
    async def starting_balance(self, uid: str, week_id: str, fallback: float | None) -> ResolvedBalance:
        ...

    def record(self, uid: str, end_balance: float) -> None:
        ...


class StoreSource:
    """Predecessor balances looked up in the store for every user."""

    def __init__(self, resolver: BalanceResolver) -> None:
        self._resolver = resolver

    async def starting_balance(self, uid: str, week_id: str, fallback: float | None) -> ResolvedBalance:
        return await self._resolver.resolve(uid, week_id, fallback)

    def record(self, uid: str, end_balance: float) -> None:
        pass


class ReplaySource:
    """Running in-memory balances for a multi-week replay.

    Within one replay pass a user's predecessor is always the value this
    source holds, i.e. the ending balance just computed for the previous
    replayed week, even before those writes have landed.  The store is read
    only to seed users the source has not seen yet.
    """

    def __init__(self, resolver: BalanceResolver, balances: dict[str, float] | None = None) -> None:
        self._resolver = resolver
        self.balances: dict[str, float] = dict(balances or {})
        self.touched: set[str] = set()

    async def starting_balance(self, uid: str, week_id: str, fallback: float | None) -> ResolvedBalance:
        if uid in self.balances:
            return ResolvedBalance(self.balances[uid], BalanceSource.REPLAY)
        seeded = await self._resolver.resolve(uid, week_id, fallback)
        self.balances[uid] = seeded.balance
        return seeded

    def record(self, uid: str, end_balance: float) -> None:
        self.balances[uid] = end_balance
        self.touched.add(uid)
