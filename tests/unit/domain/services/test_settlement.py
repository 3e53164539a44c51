"""Tests for paper_league/domain/services/settlement.py."""

import logging

import pytest

from paper_league.config import LedgerSettings
from paper_league.domain.errors import StoreError
from paper_league.domain.models.enums import BalanceSource, WeekStatus
from paper_league.domain.repositories.ledger import allocation_ref, market_data_ref, week_ref, weekly_balance_ref
from paper_league.domain.repositories.store import Collections
from paper_league.domain.services.settlement import SettlementService, compute_entry
from paper_league.infrastructure.persistence.memory import InMemoryDocumentStore

W29, W30, W31, W32 = "2025-W29", "2025-W30", "2025-W31", "2025-W32"


class FailingLedgerWrites(InMemoryDocumentStore):
    """Any write touching weekly_balances fails."""

    def apply(self, ops):
        if any(op.ref.collection == Collections.WEEKLY_BALANCES for op in ops):
            raise StoreError("disk full")
        super().apply(ops)


# --- compute_entry ---

def test_compute_entry_applies_return():
    entry = compute_entry("u1", 100_000.0, 4.0, BalanceSource.FALLBACK)
    assert entry.end_balance == pytest.approx(104_000.0)
    assert entry.week_over_week_pct == pytest.approx(4.0)
    assert entry.prev_week_end_balance == 100_000.0


def test_compute_entry_zero_base_reports_raw_return():
    assert compute_entry("u1", 0.0, 4.0, BalanceSource.FALLBACK).week_over_week_pct == 4.0


def test_compute_entry_to_weekly_balance():
    weekly = compute_entry("u1", 100.0, 0.0, BalanceSource.REPLAY).to_weekly_balance(W30)
    assert (weekly.uid, weekly.week_id, weekly.end_balance) == ("u1", W30, 100.0)


# --- settle_week: happy path ---

async def test_settle_single_allocation(settlement, builder, now):
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})

    result = await settlement.settle_week(W31)

    assert result.ok
    assert result.num_allocations == 1
    assert result.num_carried_forward == 0
    entry = await settlement.ledger.get_weekly_balance(W31, "u1")
    assert entry.base_balance == pytest.approx(100_000.0)
    assert entry.end_balance == pytest.approx(104_000.0)
    assert entry.result_return_pct == pytest.approx(4.0)


async def test_settle_writes_allocation_results(settlement, builder, now):
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})
    await settlement.settle_week(W31)

    allocation = await settlement.ledger.get_allocation(W31, "u1")
    assert allocation.end_balance == pytest.approx(104_000.0)
    assert allocation.base_balance == pytest.approx(100_000.0)
    assert allocation.pairs == {"BTC": 1.0}
    assert allocation.settled_at == now


async def test_settle_updates_snapshot_and_week(settlement, builder, now):
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})
    await settlement.settle_week(W31)

    balance = await settlement.ledger.get_balance("u1")
    assert balance.latest_balance == pytest.approx(104_000.0)
    assert balance.latest_week_id == W31
    week = await settlement.ledger.get_week(W31)
    assert week.status == WeekStatus.SETTLED
    assert week.settled_at == now


async def test_settle_starts_from_previous_week_entry(settlement, builder):
    await builder.weekly_balance(W30, "u1", 120_000.0)
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0}, base_balance=1.0)
    await settlement.settle_week(W31)

    entry = await settlement.ledger.get_weekly_balance(W31, "u1")
    assert entry.base_balance == pytest.approx(120_000.0)
    assert entry.end_balance == pytest.approx(124_800.0)


async def test_stored_base_balance_is_fallback(settlement, builder):
    await builder.week(W31)
    await builder.market(W31, BTC=0.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0}, base_balance=90_000.0)
    await settlement.settle_week(W31)
    assert (await settlement.ledger.get_weekly_balance(W31, "u1")).base_balance == 90_000.0


async def test_failed_instrument_renormalises(settlement, builder):
    await builder.week(W31)
    await builder.market(W31, BTC=4.0, XU100=None)
    await builder.allocation(W31, "u1", {"BTC": 0.5, "XU100": 0.5})
    await settlement.settle_week(W31)
    assert (await settlement.ledger.get_weekly_balance(W31, "u1")).end_balance == pytest.approx(104_000.0)


async def test_correction_applies_at_settlement(settlement, builder):
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.correction(W31, BTC={"open": 100.0, "close": 90.0})
    await builder.allocation(W31, "u1", {"BTC": 1.0})
    await settlement.settle_week(W31)
    assert (await settlement.ledger.get_weekly_balance(W31, "u1")).end_balance == pytest.approx(90_000.0)


async def test_settle_week_without_week_document(settlement, builder):
    await builder.market(W31, BTC=1.0)
    result = await settlement.settle_week(W31)
    assert result.ok
    week = await settlement.ledger.get_week(W31)
    assert week.status == WeekStatus.SETTLED
    assert week.end_date is not None


# --- carry-forward ---

async def test_non_participant_carried_forward(settlement, builder):
    await builder.balance("u2", 50_000.0, W30)
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})

    result = await settlement.settle_week(W31)

    assert result.num_carried_forward == 1
    entry = await settlement.ledger.get_weekly_balance(W31, "u2")
    assert entry.base_balance == entry.end_balance == 50_000.0
    assert entry.result_return_pct == 0.0
    assert (await settlement.ledger.get_balance("u2")).latest_week_id == W31


async def test_carry_forward_prefers_chain_over_snapshot(settlement, builder):
    await builder.weekly_balance(W30, "u2", 70_000.0)
    await builder.balance("u2", 50_000.0, W30)
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await settlement.settle_week(W31)
    assert (await settlement.ledger.get_weekly_balance(W31, "u2")).end_balance == 70_000.0


async def test_snapshot_without_balance_carries_default(settlement, builder):
    await builder.balance("u3", None)
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await settlement.settle_week(W31)
    assert (await settlement.ledger.get_weekly_balance(W31, "u3")).end_balance == 100_000.0


# --- chain and idempotence ---

async def test_three_week_chain(settlement, builder):
    for week_id, ret in ((W29, 10.0), (W30, -5.0), (W31, 2.0)):
        await builder.week(week_id)
        await builder.market(week_id, BTC=ret)
        await builder.allocation(week_id, "u1", {"BTC": 1.0})
        assert (await settlement.settle_week(week_id)).ok

    entries = [await settlement.ledger.get_weekly_balance(w, "u1") for w in (W29, W30, W31)]
    assert entries[1].base_balance == entries[0].end_balance
    assert entries[2].base_balance == entries[1].end_balance
    assert entries[2].end_balance == pytest.approx(106_590.0)


async def test_settle_twice_is_idempotent(settlement, builder):
    await builder.week(W31)
    await builder.market(W31, BTC=4.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})
    await builder.balance("u2", 50_000.0)

    await settlement.settle_week(W31)
    first = await settlement.ledger.list_weekly_balances(W31)
    await settlement.settle_week(W31)
    second = await settlement.ledger.list_weekly_balances(W31)
    assert first == second


# --- preconditions and failures ---

async def test_running_week_is_refused(settlement, builder):
    await builder.week(W32, WeekStatus.OPEN)
    await builder.market(W32, BTC=4.0)
    await builder.allocation(W32, "u1", {"BTC": 1.0})

    result = await settlement.settle_week(W32)

    assert not result.ok
    assert "not ended" in result.reason
    assert (await settlement.ledger.get_week(W32)).status == WeekStatus.OPEN
    assert await settlement.ledger.get_weekly_balance(W32, "u1") is None


async def test_missing_market_is_refused(settlement, builder):
    await builder.week(W31)
    await builder.allocation(W31, "u1", {"BTC": 1.0})
    result = await settlement.settle_week(W31)
    assert not result.ok
    assert "No effective market data" in result.reason
    assert (await settlement.ledger.get_week(W31)).status == WeekStatus.CLOSED


async def test_all_failed_quotes_is_refused(settlement, builder):
    await builder.week(W31)
    await builder.market(W31, BTC=None, XAU=None)
    assert not (await settlement.settle_week(W31)).ok


async def test_store_failure_reported(settings, clock):
    store = FailingLedgerWrites()
    await store.set(market_data_ref(W31), {"BTC": {"return_pct": 1.0}})
    await store.set(allocation_ref(W31, "u1"), {"uid": "u1", "week_id": W31, "pairs": {"BTC": 1.0}})

    result = await SettlementService(store, settings, clock).settle_week(W31)

    assert not result.ok
    assert result.reason.startswith("Store failure")


async def test_malformed_week_document_reported(store, settlement):
    await store.set(week_ref(W31), {"status": "archived"})

    result = await settlement.settle_week(W31)

    assert not result.ok
    assert result.reason.startswith("Store failure")


# --- malformed stored documents ---

async def test_corrected_return_with_unparseable_base_prices(store, settlement, builder):
    await builder.week(W31)
    await store.set(market_data_ref(W31), {"BTC": {"open": "n/a", "close": None, "return_pct": None}})
    await builder.correction(W31, BTC={"return_pct": 5.0})
    await builder.allocation(W31, "u1", {"BTC": 1.0})

    result = await settlement.settle_week(W31)

    assert result.ok
    entry = await settlement.ledger.get_weekly_balance(W31, "u1")
    assert entry.end_balance == pytest.approx(105_000.0)


async def test_partial_previous_ledger_entry_falls_through(store, settlement, builder):
    await store.set(weekly_balance_ref(W30, "u1"), {"uid": "u1", "week_id": W30, "end_balance": 120_000.0})
    await builder.week(W31)
    await builder.market(W31, BTC=0.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0}, base_balance=90_000.0)

    result = await settlement.settle_week(W31)

    assert result.ok
    assert (await settlement.ledger.get_weekly_balance(W31, "u1")).base_balance == 90_000.0


# --- fallback logging ---

async def test_fallback_start_is_logged(settlement, builder, caplog):
    await builder.week(W31)
    await builder.market(W31, BTC=0.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})

    with caplog.at_level(logging.INFO, logger="paper_league.domain.services.settlement"):
        await settlement.settle_week(W31)

    assert any("fallback" in r.getMessage() and "u1" in r.getMessage() for r in caplog.records)


async def test_ledger_start_is_not_logged_as_fallback(settlement, builder, caplog):
    await builder.weekly_balance(W30, "u1", 120_000.0)
    await builder.week(W31)
    await builder.market(W31, BTC=0.0)
    await builder.allocation(W31, "u1", {"BTC": 1.0})

    with caplog.at_level(logging.INFO, logger="paper_league.domain.services.settlement"):
        await settlement.settle_week(W31)

    assert not any("fallback" in r.getMessage() for r in caplog.records)


async def test_batches_respect_op_limit(clock):
    store = InMemoryDocumentStore()
    service = SettlementService(store, LedgerSettings(_env_file=None, batch_op_limit=4), clock)
    await store.set(market_data_ref(W31), {"BTC": {"return_pct": 1.0}})
    for uid in ("u1", "u2", "u3"):
        await store.set(allocation_ref(W31, uid), {"uid": uid, "week_id": W31, "pairs": {"BTC": 1.0}})
    ops_before, largest_before = store.committed_ops, store.largest_commit

    result = await service.settle_week(W31)

    assert result.ok
    assert largest_before == 1
    assert store.largest_commit <= 4
    assert store.committed_ops - ops_before == 3 * 3 + 1


async def test_league_example_settles_to_104000(store, settlement, builder):
    await builder.week(W31)
    await store.set(
        market_data_ref(W31),
        {"A": {"return_pct": 10.0}, "B": {"return_pct": -5.0}},
    )
    await builder.allocation(W31, "u1", {"A": 0.6, "B": 0.4})
    await settlement.settle_week(W31)
    entry = await settlement.ledger.get_weekly_balance(W31, "u1")
    assert round(entry.end_balance, 2) == 104_000.00
