"""Market data: ingestion of fetched quotes, manual corrections, and the
effective per-instrument return used by settlement.

Effective return resolution, per instrument appearing in either the base
market_data document or the market_corrections document:

  1. correction has a numeric return_pct  -> use it (open/close fall back to base);
  2. correction has numeric open (non-zero) and close -> derive the return,
     rounded to 4 decimal places;
  3. otherwise the base entry unchanged.

If no instrument ends up with a numeric return the week has no effective
data, which settlement treats as a hard precondition failure rather than a
zero-return week.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from paper_league.domain.models.market_data import (
    METADATA_KEYS,
    CorrectionEntry,
    EffectiveQuote,
    FetchWindow,
    InstrumentQuote,
    MarketCorrection,
    MarketData,
)
from paper_league.domain.repositories.ledger import market_correction_ref, market_data_ref
from paper_league.domain.repositories.store import DocumentStore, deep_merge

logger = logging.getLogger(__name__)

RETURN_DECIMALS = 4


def is_number(value: Any) -> bool:
    """True for finite ints and floats; bools and numeric strings do not count."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def pct_change(open_: float, close: float) -> float:
    return round((close - open_) / open_ * 100, RETURN_DECIMALS)


def _first_number(*values: Any) -> float | None:
    return next((v for v in values if is_number(v)), None)


def merge_quote(base: Mapping[str, Any] | None, correction: Mapping[str, Any] | None) -> EffectiveQuote:
    b = base if isinstance(base, Mapping) else {}
    c = correction if isinstance(correction, Mapping) else {}
    if is_number(c.get("return_pct")):
        return EffectiveQuote(
            open=_first_number(c.get("open"), b.get("open")),
            close=_first_number(c.get("close"), b.get("close")),
            return_pct=c["return_pct"],
        )
    c_open, c_close = c.get("open"), c.get("close")
    if is_number(c_open) and c_open != 0 and is_number(c_close):
        return EffectiveQuote(open=c_open, close=c_close, return_pct=pct_change(c_open, c_close))
    return EffectiveQuote(
        open=_first_number(b.get("open")),
        close=_first_number(b.get("close")),
        return_pct=_first_number(b.get("return_pct")),
    )


def merge_effective_market(
    base_doc: Mapping[str, Any] | None,
    correction_doc: Mapping[str, Any] | None,
) -> dict[str, EffectiveQuote] | None:
    """Merge a base market document with its correction document.

    Returns None when no instrument has a numeric effective return.
    """
    base = base_doc or {}
    corr = correction_doc or {}
    codes = [k for k in dict.fromkeys([*base.keys(), *corr.keys()]) if k not in METADATA_KEYS]
    result = {code: merge_quote(base.get(code), corr.get(code)) for code in codes}
    if not any(q.return_pct is not None for q in result.values()):
        return None
    return result


def quote_from_open_close(
    open_: float | None,
    close: float | None,
    source: str | None = None,
) -> InstrumentQuote:
    """Build a quote from a week's first open and last close.

    A zero open yields a 0% return; a missing price yields a failed quote.
    """
    if open_ is None or close is None:
        return InstrumentQuote(open=open_, close=close, source=source, error="incomplete price data")
    return_pct = pct_change(open_, close) if open_ else 0.0
    return InstrumentQuote(open=open_, close=close, return_pct=return_pct, source=source)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketDataService:
    """Reads and writes market_data and market_corrections documents.

    Each fetcher records its own quotes with a merge-upsert, so one source's
    write never erases another source's instruments.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    async def get_effective_market(self, week_id: str) -> dict[str, EffectiveQuote] | None:
        base_doc, correction_doc = await asyncio.gather(
            self._store.get(market_data_ref(week_id)),
            self._store.get(market_correction_ref(week_id)),
        )
        return merge_effective_market(base_doc, correction_doc)

    async def record_quotes(
        self,
        week_id: str,
        source: str,
        quotes: Mapping[str, InstrumentQuote],
        window: FetchWindow | None = None,
    ) -> MarketData:
        """Merge one source's quotes into the week's market data.

        A failed quote never replaces an entry that already has a numeric
        return.  Returns the merged document.
        """
        ref = market_data_ref(week_id)
        existing = await self._store.get(ref) or {}

        payload: dict[str, Any] = {}
        kept = 0
        for code, quote in quotes.items():
            if code in METADATA_KEYS:
                raise ValueError(f"Instrument code {code!r} collides with a metadata field")
            previous = existing.get(code)
            if quote.return_pct is None and isinstance(previous, dict) and is_number(previous.get("return_pct")):
                kept += 1
                continue
            payload[code] = quote.model_dump(mode="json")

        sources = list(existing.get("sources") or [])
        if source not in sources:
            sources.append(source)
        payload["sources"] = sources
        payload["fetched_at"] = self._clock().isoformat()
        if window is not None:
            payload["window"] = window.model_dump(mode="json")

        await self._store.set(ref, payload, merge=True)

        ok = sum(1 for q in quotes.values() if q.return_pct is not None)
        logger.info(
            "Stored %s market data for %s: %d/%d instruments (%d failed quotes kept previous values)",
            source, week_id, ok, len(quotes), kept,
        )
        return MarketData.from_document(week_id, deep_merge(existing, payload))

    async def set_correction(
        self,
        week_id: str,
        overrides: Mapping[str, CorrectionEntry],
        note: str | None = None,
        updated_by: str | None = None,
    ) -> MarketCorrection:
        """Merge overrides into the week's correction document; returns the merged document."""
        ref = market_correction_ref(week_id)
        existing = await self._store.get(ref) or {}
        payload: dict[str, Any] = {}
        for code, entry in overrides.items():
            if code in METADATA_KEYS:
                raise ValueError(f"Instrument code {code!r} collides with a metadata field")
            payload[code] = entry.model_dump(exclude_none=True)
        payload["note"] = note
        payload["updated_by"] = updated_by
        payload["updated_at"] = self._clock().isoformat()
        await self._store.set(ref, payload, merge=True)
        logger.info("Set market correction for %s: %s", week_id, sorted(overrides))
        return MarketCorrection.from_document(week_id, deep_merge(existing, payload))
