"""Instrument catalog.

Each tradable instrument has a league code (used as the key in allocations
and market data) and the ticker its fetcher queries.  The default weekly
instrument_set is every catalog entry, Yahoo instruments first.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .enums import InstrumentSource


class Instrument(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    ticker: str
    name: str
    currency: str
    category: str
    source: InstrumentSource


def _yahoo(code: str, ticker: str, name: str, currency: str, category: str) -> Instrument:
    return Instrument(
        code=code,
        ticker=ticker,
        name=name,
        currency=currency,
        category=category,
        source=InstrumentSource.YAHOO,
    )


def _fund(code: str, name: str, category: str) -> Instrument:
    return Instrument(
        code=code,
        ticker=code,
        name=name,
        currency="TRY",
        category=category,
        source=InstrumentSource.TEFAS,
    )


INSTRUMENTS: tuple[Instrument, ...] = (
    _yahoo("XU100", "XU100.IS", "BIST 100", "TRY", "equity_index"),
    _yahoo("XU030", "XU030.IS", "BIST 30", "TRY", "equity_index"),
    _yahoo("XU050", "XU050.IS", "BIST 50", "TRY", "equity_index"),
    _yahoo("XBANK", "XBANK.IS", "BIST Banks", "TRY", "equity_index"),
    _yahoo("XUSIN", "XUSIN.IS", "BIST Industrials", "TRY", "equity_index"),
    _yahoo("USDTRY", "TRY=X", "USD/TRY", "TRY", "fx"),
    _yahoo("EURTRY", "EURTRY=X", "EUR/TRY", "TRY", "fx"),
    _yahoo("XAU", "GC=F", "Gold (oz)", "USD", "metal"),
    _yahoo("XAG", "SI=F", "Silver (oz)", "USD", "commodity"),
    _yahoo("BTC", "BTC-USD", "Bitcoin", "USD", "crypto"),
    _yahoo("ETH", "ETH-USD", "Ethereum", "USD", "crypto"),
    _yahoo("XRP", "XRP-USD", "Ripple", "USD", "crypto"),
    _yahoo("SPX", "SPY", "S&P 500 (SPY proxy)", "USD", "foreign_equity"),
    _yahoo("STOXX", "EZU", "Euro Stoxx 50 (EZU proxy)", "USD", "foreign_equity"),
    _yahoo("TSLA", "TSLA", "Tesla", "USD", "equity"),
    _yahoo("AAPL", "AAPL", "Apple", "USD", "equity"),
    _fund("NVB", "Neo Portfoy Money Market Fund", "money_market"),
    _fund("DCB", "Deniz Portfoy Money Market Fund", "money_market"),
    _fund("HDA", "Hedef Portfoy Equity Fund", "equity_fund"),
    _fund("AHU", "Ak Portfoy Equity Fund", "equity_fund"),
    _fund("FPK", "Fiba Portfoy Fund", "mixed_fund"),
)


def instrument_codes(source: InstrumentSource | None = None) -> list[str]:
    """Catalog codes in catalog order, optionally restricted to one source."""
    return [i.code for i in INSTRUMENTS if source is None or i.source == source]


def get_instrument(code: str) -> Instrument | None:
    for instrument in INSTRUMENTS:
        if instrument.code == code:
            return instrument
    return None
