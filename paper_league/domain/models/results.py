"""Result objects returned by the top-level settlement and recompute calls.

Failures are reported as ok=False with a human-readable reason rather than as
exceptions, so admin callers and the change listener can log and alert.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class SettlementResult(BaseModel):
    ok: bool
    week_id: str
    num_allocations: int = 0
    num_carried_forward: int = 0
    reason: str | None = None


class RecomputeResult(BaseModel):
    """Outcome of a multi-week replay.

    processed lists the weeks that were settled in replay order; skipped lists
    weeks left untouched (allocations without market data, or not yet ended).
    """

    ok: bool
    start_week_id: str
    processed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    reason: str | None = None

    @property
    def last_week_id(self) -> str | None:
        return self.processed[-1] if self.processed else None


class LedgerIssue(BaseModel):
    """One inconsistency found by the ledger audit."""

    week_id: str
    uid: str | None = None
    kind: str
    detail: str
