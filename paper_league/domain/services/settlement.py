"""Settlement engine: turns one week's allocations and market data into
ledger entries.

settle_week(week_id) runs, in order:

  1. preconditions: the week has ended (end_date <= now) and Market Merge
     returns effective data; otherwise nothing is written;
  2. allocation pass: each allocation's starting balance is resolved afresh
     (the stored base_balance is only a fallback), its weighted return and
     ending balance computed, and Allocation / WeeklyBalance / Balance
     written through a BatchedWriter, then flushed;
  3. carry-forward pass: every user with a balance snapshot but no
     allocation gets a 0% WeeklyBalance so the chain has no gaps;
  4. the week is marked settled.

Running it again with unchanged inputs rewrites identical ledger values.

The allocation and carry-forward passes are public so the recompute
pipeline can drive them with its in-memory predecessor source.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from paper_league.config import LedgerSettings, get_settings
from paper_league.domain.errors import SettlementPreconditionError, StoreError
from paper_league.domain.models.enums import BalanceSource, WeekStatus
from paper_league.domain.models.ledger import Allocation, Balance, WeeklyBalance
from paper_league.domain.models.market_data import EffectiveQuote
from paper_league.domain.models.results import SettlementResult
from paper_league.domain.models.weeks import Week
from paper_league.domain.repositories.ledger import (
    LedgerRepository,
    allocation_ref,
    balance_ref,
    week_ref,
    weekly_balance_ref,
)
from paper_league.domain.repositories.store import DocumentStore

from .balances import BalanceResolver, PredecessorSource, StoreSource
from .batching import BatchedWriter
from .calendar import week_bounds
from .concurrency import gather_in_chunks
from .market import MarketDataService
from .returns import weighted_return

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SettledEntry:
    """Computed outcome for one user in one week."""

    uid: str
    base_balance: float
    end_balance: float
    result_return_pct: float
    prev_week_end_balance: float
    week_over_week_pct: float
    balance_source: BalanceSource

    def to_weekly_balance(self, week_id: str) -> WeeklyBalance:
        return WeeklyBalance(
            uid=self.uid,
            week_id=week_id,
            base_balance=self.base_balance,
            end_balance=self.end_balance,
            result_return_pct=self.result_return_pct,
            prev_week_end_balance=self.prev_week_end_balance,
            week_over_week_pct=self.week_over_week_pct,
        )


def compute_entry(uid: str, base_balance: float, return_pct: float, source: BalanceSource) -> SettledEntry:
    end_balance = base_balance * (1 + return_pct / 100)
    if base_balance > 0:
        week_over_week = (end_balance - base_balance) / base_balance * 100
    else:
        week_over_week = return_pct
    return SettledEntry(
        uid=uid,
        base_balance=base_balance,
        end_balance=end_balance,
        result_return_pct=return_pct,
        prev_week_end_balance=base_balance,
        week_over_week_pct=week_over_week,
        balance_source=source,
    )


def log_fallback(week_id: str, entry: SettledEntry) -> None:
    """Record users whose starting balance did not come from the previous week's ledger."""
    if entry.balance_source == BalanceSource.FALLBACK:
        logger.info(
            "No previous-week ledger for %s in %s; starting from fallback balance %.2f",
            entry.uid, week_id, entry.base_balance,
        )


@dataclass(frozen=True)
class WeekOutcome:
    num_allocations: int
    num_carried_forward: int


class SettlementService:
    def __init__(
        self,
        store: DocumentStore,
        settings: LedgerSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._ledger = LedgerRepository(store)
        self._resolver = BalanceResolver(self._ledger, self._settings.default_balance)
        self._market = MarketDataService(store, clock)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def ledger(self) -> LedgerRepository:
        return self._ledger

    @property
    def resolver(self) -> BalanceResolver:
        return self._resolver

    @property
    def market(self) -> MarketDataService:
        return self._market

    # ─────────────────────────────────────────────────────────────────── #
    # Top-level entry point                                                #
    # ─────────────────────────────────────────────────────────────────── #

    async def settle_week(self, week_id: str) -> SettlementResult:
        """Settle one week; failures come back as ok=False with a reason."""
        try:
            week = await self._ledger.get_week(week_id)
            self.ensure_ended(week_id, week)
            market = await self._market.get_effective_market(week_id)
            if market is None:
                raise SettlementPreconditionError(f"No effective market data for {week_id}")

            allocations = await self._ledger.list_allocations(week_id)
            outcome = await self.apply_week(
                week_id, market, allocations, StoreSource(self._resolver), write_snapshots=True
            )
            await self.mark_settled(week_id, week)
        except SettlementPreconditionError as exc:
            logger.warning("Refusing to settle %s: %s", week_id, exc)
            return SettlementResult(ok=False, week_id=week_id, reason=str(exc))
        except StoreError as exc:
            logger.exception("Settlement of %s failed; the week may be partially settled", week_id)
            return SettlementResult(ok=False, week_id=week_id, reason=f"Store failure: {exc}")

        logger.info(
            "Settled %s: %d allocations, %d carried forward",
            week_id, outcome.num_allocations, outcome.num_carried_forward,
        )
        return SettlementResult(
            ok=True,
            week_id=week_id,
            num_allocations=outcome.num_allocations,
            num_carried_forward=outcome.num_carried_forward,
        )

    # ─────────────────────────────────────────────────────────────────── #
    # Preconditions                                                        #
    # ─────────────────────────────────────────────────────────────────── #

    def week_end(self, week_id: str, week: Week | None) -> datetime:
        """Stored end_date, or the calendar end of the ISO week when absent."""
        if week is not None and week.end_date is not None:
            return week.end_date
        return week_bounds(week_id, self._settings.week_end_weekday, self._settings.week_end_hour)[1]

    def has_ended(self, week_id: str, week: Week | None) -> bool:
        return self.week_end(week_id, week) <= self._clock()

    def ensure_ended(self, week_id: str, week: Week | None) -> None:
        if not self.has_ended(week_id, week):
            raise SettlementPreconditionError(
                f"Week {week_id} has not ended yet (ends {self.week_end(week_id, week).isoformat()})"
            )

    # ─────────────────────────────────────────────────────────────────── #
    # Passes                                                               #
    # ─────────────────────────────────────────────────────────────────── #

    async def apply_week(
        self,
        week_id: str,
        market: Mapping[str, EffectiveQuote],
        allocations: list[Allocation],
        source: PredecessorSource,
        write_snapshots: bool,
    ) -> WeekOutcome:
        """Allocation pass followed by the carry-forward pass for one week."""
        settled_at = self._clock().isoformat()

        async def settle_one(allocation: Allocation) -> SettledEntry:
            resolved = await source.starting_balance(allocation.uid, week_id, allocation.base_balance)
            return compute_entry(
                allocation.uid,
                resolved.balance,
                weighted_return(allocation.pairs, market),
                resolved.source,
            )

        entries = await gather_in_chunks(allocations, settle_one, self._settings.settlement_chunk_size)

        writer = BatchedWriter(self._store, self._settings.batch_op_limit)
        for entry in entries:
            log_fallback(week_id, entry)
            source.record(entry.uid, entry.end_balance)
            writer.update(
                allocation_ref(week_id, entry.uid),
                {
                    "base_balance": entry.base_balance,
                    "result_return_pct": entry.result_return_pct,
                    "end_balance": entry.end_balance,
                    "settled_at": settled_at,
                },
            )
            writer.set(
                weekly_balance_ref(week_id, entry.uid),
                entry.to_weekly_balance(week_id).model_dump(mode="json"),
                merge=True,
            )
            if write_snapshots:
                self.queue_snapshot(writer, entry.uid, week_id, entry.end_balance)
        # Carry-forward must not start until these batches have landed.
        await writer.flush()

        carried = await self.carry_forward(
            week_id, {a.uid for a in allocations}, source, write_snapshots
        )
        return WeekOutcome(num_allocations=len(entries), num_carried_forward=carried)

    async def carry_forward(
        self,
        week_id: str,
        participants: set[str],
        source: PredecessorSource,
        write_snapshots: bool,
    ) -> int:
        """Write 0% ledger entries for every snapshot user outside participants."""
        snapshots = [b for b in await self._ledger.list_balances() if b.uid not in participants]

        async def resolve(snapshot: Balance):
            fallback = (
                snapshot.latest_balance
                if snapshot.latest_balance is not None
                else self._resolver.default_balance
            )
            return await source.starting_balance(snapshot.uid, week_id, fallback)

        resolved = await gather_in_chunks(snapshots, resolve, self._settings.carry_forward_chunk_size)

        writer = BatchedWriter(self._store, self._settings.batch_op_limit)
        for snapshot, start in zip(snapshots, resolved):
            entry = compute_entry(snapshot.uid, start.balance, 0.0, start.source)
            log_fallback(week_id, entry)
            source.record(snapshot.uid, entry.end_balance)
            writer.set(
                weekly_balance_ref(week_id, snapshot.uid),
                entry.to_weekly_balance(week_id).model_dump(mode="json"),
                merge=True,
            )
            if write_snapshots:
                self.queue_snapshot(writer, snapshot.uid, week_id, entry.end_balance)
        await writer.flush()
        return len(snapshots)

    async def mark_settled(self, week_id: str, week: Week | None) -> None:
        payload = {
            "id": week_id,
            "status": WeekStatus.SETTLED.value,
            "settled_at": self._clock().isoformat(),
        }
        start, end = week_bounds(week_id, self._settings.week_end_weekday, self._settings.week_end_hour)
        if week is None or week.start_date is None:
            payload["start_date"] = start.isoformat()
        if week is None or week.end_date is None:
            payload["end_date"] = end.isoformat()
        await self._store.set(week_ref(week_id), payload, merge=True)

    def queue_snapshot(self, writer: BatchedWriter, uid: str, week_id: str, balance: float) -> None:
        writer.set(
            balance_ref(uid),
            {
                "latest_week_id": week_id,
                "latest_balance": balance,
                "updated_at": self._clock().isoformat(),
            },
            merge=True,
        )
