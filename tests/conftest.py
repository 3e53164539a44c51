"""Shared fixtures: an in-memory store, a fixed clock, and a ledger builder.

The fixed clock sits on Monday of 2025-W32, so 2025-W29..W31 have ended and
2025-W32 is still running.
"""

from datetime import datetime, timezone

import pytest

from paper_league.config import LedgerSettings
from paper_league.domain.models.enums import WeekStatus
from paper_league.domain.repositories.ledger import (
    allocation_ref,
    balance_ref,
    market_correction_ref,
    market_data_ref,
    week_ref,
    weekly_balance_ref,
)
from paper_league.domain.services.calendar import week_bounds
from paper_league.domain.services.recompute import RecomputeService
from paper_league.domain.services.settlement import SettlementService
from paper_league.infrastructure.persistence.memory import InMemoryDocumentStore

NOW = datetime(2025, 8, 4, 12, 0, tzinfo=timezone.utc)
INSTRUMENT_SET = ["XU100", "BTC", "XAU"]


class LedgerBuilder:
    """Writes raw documents straight into a store."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self.store = store

    async def week(self, week_id, status=WeekStatus.CLOSED, **fields):
        start, end = week_bounds(week_id)
        doc = {
            "id": week_id,
            "status": WeekStatus(status).value,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "instrument_set": list(INSTRUMENT_SET),
        }
        doc.update(fields)
        await self.store.set(week_ref(week_id), doc)

    async def market(self, week_id, **returns):
        """returns maps code -> return_pct; None records a failed fetch."""
        doc = {}
        for code, ret in returns.items():
            if ret is None:
                doc[code] = {"open": None, "close": None, "return_pct": None, "error": "fetch failed"}
            else:
                doc[code] = {"open": 100.0, "close": 100.0 + ret, "return_pct": ret, "source": "yahoo"}
        doc["sources"] = ["yahoo"]
        await self.store.set(market_data_ref(week_id), doc)

    async def correction(self, week_id, **entries):
        await self.store.set(market_correction_ref(week_id), dict(entries), merge=True)

    async def allocation(self, week_id, uid, pairs, **fields):
        doc = {"uid": uid, "week_id": week_id, "pairs": dict(pairs)}
        doc.update(fields)
        await self.store.set(allocation_ref(week_id, uid), doc)

    async def weekly_balance(self, week_id, uid, end_balance, base_balance=None, return_pct=0.0):
        base = end_balance if base_balance is None else base_balance
        await self.store.set(
            weekly_balance_ref(week_id, uid),
            {
                "uid": uid,
                "week_id": week_id,
                "base_balance": base,
                "end_balance": end_balance,
                "result_return_pct": return_pct,
                "prev_week_end_balance": base,
                "week_over_week_pct": return_pct,
            },
        )

    async def balance(self, uid, latest_balance, latest_week_id=None):
        await self.store.set(
            balance_ref(uid),
            {"latest_balance": latest_balance, "latest_week_id": latest_week_id},
        )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def settings():
    return LedgerSettings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def builder(store):
    return LedgerBuilder(store)


@pytest.fixture
def settlement(store, settings, clock):
    return SettlementService(store, settings, clock)


@pytest.fixture
def recompute(settlement):
    return RecomputeService(settlement)
