"""Market data domain models.

InstrumentQuote: one fetcher's open/close observation for an instrument in a week.
FetchWindow: the period a fetcher sampled.
CorrectionEntry: a manual override for one instrument.
MarketCorrection: typed view of a market_corrections document.
EffectiveQuote: the merged result used by settlement.

MarketData and MarketCorrection documents store instrument entries as
top-level keys next to a handful of metadata keys (METADATA_KEYS).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Keys of a market_data / market_corrections document that are not instruments.
METADATA_KEYS = frozenset(
    {
        "window",
        "fetched_at",
        "sources",
        "created_at",
        "updated_at",
        "note",
        "updated_by",
    }
)


class InstrumentQuote(BaseModel):
    """Weekly open/close for one instrument from one source.

    All price fields are None when the fetch failed; error then carries the
    fetcher's message.  return_pct is a percentage (4.0 means +4%).
    """

    model_config = ConfigDict(frozen=True)

    open: float | None = None
    close: float | None = None
    return_pct: float | None = None
    source: str | None = None
    error: str | None = None


class FetchWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    period1: datetime
    period2: datetime
    tz: str = "UTC"


class CorrectionEntry(BaseModel):
    """Manual override; any subset of fields may be given."""

    model_config = ConfigDict(frozen=True)

    open: float | None = None
    close: float | None = None
    return_pct: float | None = None


class EffectiveQuote(BaseModel):
    """Per-instrument return after applying any manual correction over fetched data."""

    model_config = ConfigDict(frozen=True)

    open: float | None = None
    close: float | None = None
    return_pct: float | None = None


class MarketData(BaseModel):
    """Typed view of a market_data document."""

    week_id: str
    quotes: dict[str, InstrumentQuote] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)
    fetched_at: datetime | None = None
    window: FetchWindow | None = None

    @classmethod
    def from_document(cls, week_id: str, doc: dict | None) -> MarketData:
        doc = doc or {}
        quotes = {
            code: InstrumentQuote.model_validate(entry)
            for code, entry in doc.items()
            if code not in METADATA_KEYS and isinstance(entry, dict)
        }
        return cls(
            week_id=week_id,
            quotes=quotes,
            sources=doc.get("sources") or [],
            fetched_at=doc.get("fetched_at"),
            window=doc.get("window"),
        )


class MarketCorrection(BaseModel):
    """Typed view of a market_corrections document."""

    week_id: str
    overrides: dict[str, CorrectionEntry] = Field(default_factory=dict)
    note: str | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, week_id: str, doc: dict | None) -> MarketCorrection:
        doc = doc or {}
        overrides = {
            code: CorrectionEntry.model_validate(entry)
            for code, entry in doc.items()
            if code not in METADATA_KEYS and isinstance(entry, dict)
        }
        return cls(
            week_id=week_id,
            overrides=overrides,
            note=doc.get("note"),
            updated_by=doc.get("updated_by"),
            updated_at=doc.get("updated_at"),
        )
