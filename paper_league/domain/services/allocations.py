"""Allocation submission during a week's open window."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone

from paper_league.config import LedgerSettings, get_settings
from paper_league.domain.errors import AllocationRejected
from paper_league.domain.models.enums import WeekStatus
from paper_league.domain.models.instruments import get_instrument
from paper_league.domain.models.ledger import Allocation
from paper_league.domain.repositories.ledger import LedgerRepository, allocation_ref, balance_ref
from paper_league.domain.repositories.store import DocumentStore

from .balances import BalanceResolver
from .market import is_number

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_pairs(pairs: Mapping[str, float], instrument_set: list[str]) -> dict[str, float]:
    """Check weights are numeric, non-negative, on tradable instruments and sum to 1."""
    if not pairs:
        raise AllocationRejected("An allocation needs at least one instrument")
    for code, weight in pairs.items():
        if not is_number(weight) or weight < 0:
            raise AllocationRejected(f"Weight for {code} must be a non-negative number, got {weight!r}")
        tradable = code in instrument_set if instrument_set else get_instrument(code) is not None
        if not tradable:
            raise AllocationRejected(f"Instrument {code} is not tradable this week")
    total = sum(pairs.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise AllocationRejected(f"Weights must sum to 1, got {total:.8f}")
    return {code: float(weight) for code, weight in pairs.items()}


class AllocationService:
    def __init__(
        self,
        store: DocumentStore,
        settings: LedgerSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ledger = LedgerRepository(store)
        self._settings = settings or get_settings()
        self._resolver = BalanceResolver(self._ledger, self._settings.default_balance)
        self._clock = clock

    async def ensure_balance(self, uid: str) -> float:
        """Return the user's snapshot balance, seeding the default when absent."""
        snapshot = await self._ledger.get_balance(uid)
        if snapshot is None:
            await self._store.set(
                balance_ref(uid),
                {
                    "latest_balance": self._settings.default_balance,
                    "latest_week_id": None,
                    "updated_at": self._clock().isoformat(),
                },
                merge=True,
            )
            logger.info("Seeded balance for %s", uid)
            return self._settings.default_balance
        if snapshot.latest_balance is None:
            return self._settings.default_balance
        return snapshot.latest_balance

    async def submit(self, uid: str, week_id: str, pairs: Mapping[str, float]) -> Allocation:
        week = await self._ledger.get_week(week_id)
        if week is None:
            raise AllocationRejected(f"Week {week_id} not found")
        if week.status != WeekStatus.OPEN:
            raise AllocationRejected(f"Allocation window for {week_id} is not open")
        weights = validate_pairs(pairs, week.instrument_set)

        fallback = await self.ensure_balance(uid)
        resolved = await self._resolver.resolve(uid, week_id, fallback)

        allocation = Allocation(
            uid=uid,
            week_id=week_id,
            pairs=weights,
            base_balance=resolved.balance,
            submitted_at=self._clock(),
        )
        await self._store.set(
            allocation_ref(week_id, uid),
            allocation.model_dump(mode="json", exclude_none=True),
        )
        logger.info("Allocation submitted by %s for %s (base %.2f)", uid, week_id, resolved.balance)
        return allocation
