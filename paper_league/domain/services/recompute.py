"""Recompute pipeline: deterministic replay of settlement from a week forward.

Used to heal the ledger after market data or a correction changes for a
week that later weeks were already settled against.

  1. Weeks are ordered by start_date (or by (year, week) when any week lacks
     one) and replayed from the requested week to the end.
  2. A running balance map is seeded from the ledger entries of the ISO week
     before the first replayed week.
  3. Each week is settled against that map: a week's predecessor balance is
     the value the map holds, i.e. the ending balance just recomputed for
     the previous week, never a stale value re-read from the store.
     Weeks that have allocations but no effective market data are skipped
     and left untouched; weeks that have not ended yet are skipped as well.
  4. Every touched user's balance snapshot is written once at the end.

A failure partway leaves earlier weeks settled; there is no rollback.  The
ledger audit finds the first inconsistent week to restart from.
"""

from __future__ import annotations

import asyncio
import logging

from paper_league.domain.errors import StoreError
from paper_league.domain.models.results import RecomputeResult
from paper_league.domain.models.weeks import Week
from paper_league.domain.repositories.ledger import LedgerRepository

from .balances import ReplaySource
from .batching import BatchedWriter
from .calendar import parse_week_id, prev_week_id
from .settlement import SettlementService

logger = logging.getLogger(__name__)


def order_weeks(weeks: list[Week]) -> list[Week]:
    """Calendar order: by start_date when every week has one, else by week id."""
    if weeks and all(w.start_date is not None for w in weeks):
        return sorted(weeks, key=lambda w: w.start_date)
    return sorted(weeks, key=lambda w: parse_week_id(w.id))


async def load_prev_balances(ledger: LedgerRepository, week_id: str) -> dict[str, float]:
    """Ending balances of week_id; ledger entries win over allocation results."""
    entries, allocations = await asyncio.gather(
        ledger.list_weekly_balances(week_id),
        ledger.list_allocations(week_id),
    )
    balances = {a.uid: a.end_balance for a in allocations if a.end_balance is not None}
    balances.update({e.uid: e.end_balance for e in entries})
    return balances


class RecomputeService:
    def __init__(self, settlement: SettlementService) -> None:
        self._settlement = settlement
        self._ledger = settlement.ledger

    async def list_weeks_from(self, week_id: str) -> list[Week]:
        weeks = order_weeks(await self._ledger.list_weeks())
        for idx, week in enumerate(weeks):
            if week.id == week_id:
                return weeks[idx:]
        return []

    async def recompute_from_week(self, week_id: str) -> RecomputeResult:
        """Replay settlement from week_id; failures come back as ok=False."""
        try:
            return await self._replay(week_id)
        except StoreError as exc:
            logger.exception("Recompute from %s failed; later weeks may be stale", week_id)
            return RecomputeResult(ok=False, start_week_id=week_id, reason=f"Store failure: {exc}")

    async def _replay(self, week_id: str) -> RecomputeResult:
        weeks = await self.list_weeks_from(week_id)
        if not weeks:
            return RecomputeResult(ok=False, start_week_id=week_id, reason="No weeks from given id")

        seed_week = prev_week_id(weeks[0].id)
        source = ReplaySource(
            self._settlement.resolver,
            await load_prev_balances(self._ledger, seed_week),
        )
        logger.info(
            "Recomputing %d weeks from %s (seeded %d balances from %s)",
            len(weeks), weeks[0].id, len(source.balances), seed_week,
        )

        processed: list[str] = []
        skipped: list[str] = []
        for week in weeks:
            if not self._settlement.has_ended(week.id, week):
                logger.info("Skipping %s during recompute: week has not ended", week.id)
                skipped.append(week.id)
                continue

            market, allocations = await asyncio.gather(
                self._settlement.market.get_effective_market(week.id),
                self._ledger.list_allocations(week.id),
            )
            if allocations and market is None:
                logger.warning(
                    "Skipping %s during recompute: %d allocations but no effective market data",
                    week.id, len(allocations),
                )
                skipped.append(week.id)
                continue

            if allocations:
                await self._settlement.apply_week(
                    week.id, market, allocations, source, write_snapshots=False
                )
            else:
                await self._settlement.carry_forward(week.id, set(), source, write_snapshots=False)
            await self._settlement.mark_settled(week.id, week)
            processed.append(week.id)

        if processed:
            last_week = processed[-1]
            writer = BatchedWriter(self._ledger.store, self._settlement.settings.batch_op_limit)
            for uid in sorted(source.touched):
                self._settlement.queue_snapshot(writer, uid, last_week, source.balances[uid])
            await writer.flush()

        logger.info(
            "Recomputed from %s: %d weeks settled, %d skipped",
            week_id, len(processed), len(skipped),
        )
        return RecomputeResult(ok=True, start_week_id=week_id, processed=processed, skipped=skipped)
