"""Ledger consistency checks.

Settlement and recompute are not resumable: a failure partway can leave a
week marked settled with missing or stale entries.  The audit finds such
weeks so recompute can be restarted from the first one.

Issue kinds:
  missing_entry      settled week, user with an entry the week before (or an
                     allocation this week) but no WeeklyBalance
  result_mismatch    Allocation and WeeklyBalance disagree on return or end balance
  broken_chain       base_balance differs from the previous week's end_balance
  unsettled          week has ended but is not marked settled
"""

from __future__ import annotations

import asyncio
import math

from paper_league.domain.models.ledger import Allocation, WeeklyBalance
from paper_league.domain.models.results import LedgerIssue
from paper_league.domain.models.weeks import Week

from .calendar import prev_week_id
from .recompute import order_weeks
from .settlement import SettlementService

_REL_TOL = 1e-9
_ABS_TOL = 1e-6


def _close(a: float | None, b: float | None) -> bool:
    if a is None or b is None:
        return a is b
    return math.isclose(a, b, rel_tol=_REL_TOL, abs_tol=_ABS_TOL)


def compare_entries(
    week_id: str,
    allocations: list[Allocation],
    entries: list[WeeklyBalance],
    prev_entries: list[WeeklyBalance],
) -> list[LedgerIssue]:
    issues: list[LedgerIssue] = []
    by_uid = {e.uid: e for e in entries}
    prev_by_uid = {e.uid: e for e in prev_entries}

    for allocation in allocations:
        entry = by_uid.get(allocation.uid)
        if entry is None or not allocation.is_settled:
            continue
        if not (
            _close(allocation.result_return_pct, entry.result_return_pct)
            and _close(allocation.end_balance, entry.end_balance)
        ):
            issues.append(
                LedgerIssue(
                    week_id=week_id,
                    uid=allocation.uid,
                    kind="result_mismatch",
                    detail=(
                        f"allocation {allocation.result_return_pct}/{allocation.end_balance} vs "
                        f"ledger {entry.result_return_pct}/{entry.end_balance}"
                    ),
                )
            )

    for entry in entries:
        prev = prev_by_uid.get(entry.uid)
        if prev is not None and not _close(prev.end_balance, entry.base_balance):
            issues.append(
                LedgerIssue(
                    week_id=week_id,
                    uid=entry.uid,
                    kind="broken_chain",
                    detail=f"base {entry.base_balance} != previous end {prev.end_balance}",
                )
            )
    return issues


class LedgerAuditService:
    def __init__(self, settlement: SettlementService) -> None:
        self._settlement = settlement
        self._ledger = settlement.ledger

    async def check_week(self, week_id: str) -> list[LedgerIssue]:
        week = await self._ledger.get_week(week_id)
        if week is None:
            return []
        return await self._check(week)

    async def _check(self, week: Week) -> list[LedgerIssue]:
        if not week.is_settled:
            if self._settlement.has_ended(week.id, week):
                return [LedgerIssue(week_id=week.id, kind="unsettled", detail="week ended but is not settled")]
            return []

        allocations, entries, prev_entries = await asyncio.gather(
            self._ledger.list_allocations(week.id),
            self._ledger.list_weekly_balances(week.id),
            self._ledger.list_weekly_balances(prev_week_id(week.id)),
        )
        issues = compare_entries(week.id, allocations, entries, prev_entries)

        present = {e.uid for e in entries}
        expected = {e.uid for e in prev_entries} | {a.uid for a in allocations}
        for uid in sorted(expected - present):
            issues.append(
                LedgerIssue(week_id=week.id, uid=uid, kind="missing_entry", detail="no weekly balance")
            )
        return issues

    async def first_inconsistent_week(self) -> str | None:
        """Earliest week (calendar order) that recompute should restart from."""
        for week in order_weeks(await self._ledger.list_weeks()):
            if await self._check(week):
                return week.id
        return None
