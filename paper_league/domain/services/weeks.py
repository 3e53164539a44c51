"""Week lifecycle: opening and closing allocation windows, admin upserts.

Status only moves forward (upcoming -> open -> closed -> settled).  A
backward move is an administrative correction and requires both
correction_mode=True and a non-empty reason.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from paper_league.config import LedgerSettings, get_settings
from paper_league.domain.errors import InvalidStatusTransition
from paper_league.domain.models.enums import WeekStatus
from paper_league.domain.models.instruments import instrument_codes
from paper_league.domain.models.weeks import Week
from paper_league.domain.repositories.ledger import LedgerRepository, week_ref
from paper_league.domain.repositories.store import DocumentStore

from .calendar import iso_week_id, next_week_id, week_bounds

logger = logging.getLogger(__name__)

# Allocation window: opens Saturday 00:00 UTC, closes Sunday 21:00 UTC
# before the week starts.
_WINDOW_OPENS_BEFORE = timedelta(days=2)
_WINDOW_CLOSES_BEFORE = timedelta(hours=3)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_transition(
    current: WeekStatus | None,
    new: WeekStatus,
    correction_mode: bool = False,
    reason: str | None = None,
) -> None:
    """Raise InvalidStatusTransition for an unreasoned backward move."""
    if current is None or new.rank >= current.rank:
        return
    if not correction_mode:
        raise InvalidStatusTransition(
            f"Backward status change {current.value} -> {new.value} requires correction_mode with a reason"
        )
    if not reason or not reason.strip():
        raise InvalidStatusTransition(
            f"Provide a reason for backward status change {current.value} -> {new.value}"
        )


class WeekService:
    def __init__(
        self,
        store: DocumentStore,
        settings: LedgerSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ledger = LedgerRepository(store)
        self._settings = settings or get_settings()
        self._clock = clock

    async def upsert_week(
        self,
        week_id: str,
        status: WeekStatus,
        *,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        open_at: datetime | None = None,
        close_at: datetime | None = None,
        instrument_set: list[str] | None = None,
        correction_mode: bool = False,
        reason: str | None = None,
    ) -> Week:
        """Create or update a week, enforcing forward-only status changes.

        Dates default to the calendar bounds of the ISO week and
        instrument_set to the full instrument catalog, but only when the
        stored week does not already have them.
        """
        existing = await self._ledger.get_week(week_id)
        check_transition(existing.status if existing else None, status, correction_mode, reason)

        default_start, default_end = week_bounds(
            week_id, self._settings.week_end_weekday, self._settings.week_end_hour
        )
        current = existing or Week(id=week_id)
        week = Week(
            id=week_id,
            status=status,
            start_date=start_date or current.start_date or default_start,
            end_date=end_date or current.end_date or default_end,
            open_at=open_at or current.open_at,
            close_at=close_at or current.close_at,
            settled_at=current.settled_at,
            instrument_set=instrument_set or current.instrument_set or instrument_codes(),
        )
        payload: dict[str, Any] = week.model_dump(mode="json", exclude_none=True)
        await self._store.set(week_ref(week_id), payload, merge=True)

        if existing is not None and status.rank < existing.status.rank:
            logger.warning(
                "Week %s moved back %s -> %s (correction: %s)",
                week_id, existing.status.value, status.value, reason,
            )
        else:
            logger.info("Upserted week %s with status %s", week_id, status.value)
        return week

    async def open_next_week(self) -> Week:
        """Open the allocation window for the ISO week after today."""
        week_id = next_week_id(iso_week_id(self._clock()))
        start, _ = week_bounds(week_id, self._settings.week_end_weekday, self._settings.week_end_hour)
        return await self.upsert_week(
            week_id,
            WeekStatus.OPEN,
            open_at=start - _WINDOW_OPENS_BEFORE,
            close_at=start - _WINDOW_CLOSES_BEFORE,
        )

    async def close_allocation_window(self, week_id: str) -> Week:
        return await self.upsert_week(week_id, WeekStatus.CLOSED)

    async def get_active_week(self) -> Week | None:
        """The open week closing soonest, else the nearest upcoming, else the latest closed."""
        weeks = await self._ledger.list_weeks()
        far_future = datetime.max.replace(tzinfo=timezone.utc)
        far_past = datetime.min.replace(tzinfo=timezone.utc)

        open_weeks = [w for w in weeks if w.status == WeekStatus.OPEN]
        if open_weeks:
            return min(open_weeks, key=lambda w: w.end_date or far_future)

        upcoming = [w for w in weeks if w.status == WeekStatus.UPCOMING and w.open_at is not None]
        if upcoming:
            return min(upcoming, key=lambda w: w.open_at)

        closed = [w for w in weeks if w.status == WeekStatus.CLOSED]
        if closed:
            return max(closed, key=lambda w: w.end_date or far_past)
        return None
