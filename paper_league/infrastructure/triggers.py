"""Change-triggered recompute.

MarketChangeListener consumes the store's change stream for market_data and
market_corrections:

  - a market_data write recomputes from that week only when the week exists
    and is already settled (raw data for an unsettled week is picked up by
    the regular settlement run);
  - a market_corrections write always recomputes from that week.

Any error while handling an event is logged and the listener moves on to
the next event.
"""

from __future__ import annotations

import logging

from paper_league.domain.models.results import RecomputeResult
from paper_league.domain.repositories.ledger import LedgerRepository
from paper_league.domain.repositories.store import (
    ChangeEvent,
    Collections,
    DocumentStore,
    Subscription,
)
from paper_league.domain.services.recompute import RecomputeService

logger = logging.getLogger(__name__)

WATCHED_COLLECTIONS = (Collections.MARKET_DATA, Collections.MARKET_CORRECTIONS)


class MarketChangeListener:
    def __init__(self, store: DocumentStore, recompute: RecomputeService) -> None:
        self._store = store
        self._ledger = LedgerRepository(store)
        self._recompute = recompute

    def subscribe(self) -> Subscription:
        return self._store.watch(WATCHED_COLLECTIONS)

    async def handle(self, event: ChangeEvent) -> RecomputeResult | None:
        """Recompute for one change event; None when the event needs no recompute."""
        week_id = event.ref.key
        if event.ref.collection == Collections.MARKET_DATA:
            week = await self._ledger.get_week(week_id)
            if week is None or not week.is_settled:
                logger.debug("Market data for %s changed before settlement; not recomputing", week_id)
                return None
        elif event.ref.collection != Collections.MARKET_CORRECTIONS:
            return None

        logger.info("%s changed for %s; recomputing", event.ref.collection, week_id)
        result = await self._recompute.recompute_from_week(week_id)
        if not result.ok:
            logger.warning("Recompute from %s did not complete: %s", week_id, result.reason)
        return result

    async def run(self, subscription: Subscription) -> None:
        """Handle events until the subscription is closed."""
        async for event in subscription:
            try:
                await self.handle(event)
            except Exception:
                logger.exception("Handling change to %s failed", event.ref)
