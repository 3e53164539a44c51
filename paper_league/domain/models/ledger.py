"""Ledger domain models: allocations, weekly balances and balance snapshots.

WeeklyBalance is the authoritative per-user, per-week record.  Entries form a
chain by value: a week's base_balance is the previous week's end_balance for
the same user, looked up by {prev_week_id, uid} each time it is needed.

Balance is a denormalized cache of the tail of a user's chain and is never
used as the source of truth for historical weeks.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .weeks import as_utc


def ledger_key(week_id: str, uid: str) -> str:
    """Document key shared by allocations and weekly_balances."""
    return f"{week_id}_{uid}"


class Allocation(BaseModel):
    """A user's weights for one week.

    pairs maps instrument code -> weight; weights sum to 1 at submission.
    base_balance is cached at submission and overwritten at settlement with
    the freshly resolved predecessor balance.  result_return_pct, end_balance
    and settled_at are written only by settlement.
    """

    model_config = ConfigDict(extra="ignore")

    uid: str
    week_id: str
    pairs: dict[str, float] = Field(default_factory=dict)
    base_balance: float | None = None
    result_return_pct: float | None = None
    end_balance: float | None = None
    submitted_at: datetime | None = None
    settled_at: datetime | None = None

    @field_validator("submitted_at", "settled_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @property
    def is_settled(self) -> bool:
        return self.end_balance is not None


class WeeklyBalance(BaseModel):
    """Ledger entry for one user in one week (also written for carry-forward users)."""

    model_config = ConfigDict(extra="ignore")

    uid: str
    week_id: str
    base_balance: float
    end_balance: float
    result_return_pct: float
    prev_week_end_balance: float
    week_over_week_pct: float


class Balance(BaseModel):
    """Current balance snapshot for a user."""

    model_config = ConfigDict(extra="ignore")

    uid: str
    latest_week_id: str | None = None
    latest_balance: float | None = None
    updated_at: datetime | None = None

    @field_validator("updated_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)
