"""Domain model package.

All domain objects are pure Python / Pydantic models with no storage
dependencies.  Import from this package to avoid coupling application code
to individual module paths.
"""

from .enums import BalanceSource, InstrumentSource, WeekStatus
from .instruments import INSTRUMENTS, Instrument, get_instrument, instrument_codes
from .ledger import Allocation, Balance, WeeklyBalance, ledger_key
from .market_data import (
    METADATA_KEYS,
    CorrectionEntry,
    EffectiveQuote,
    FetchWindow,
    InstrumentQuote,
    MarketCorrection,
    MarketData,
)
from .results import LedgerIssue, RecomputeResult, SettlementResult
from .weeks import WEEK_ID_PATTERN, Week

__all__ = [
    # enums
    "BalanceSource",
    "InstrumentSource",
    "WeekStatus",
    # instruments
    "INSTRUMENTS",
    "Instrument",
    "get_instrument",
    "instrument_codes",
    # weeks
    "WEEK_ID_PATTERN",
    "Week",
    # market data
    "METADATA_KEYS",
    "CorrectionEntry",
    "EffectiveQuote",
    "FetchWindow",
    "InstrumentQuote",
    "MarketCorrection",
    "MarketData",
    # ledger
    "Allocation",
    "Balance",
    "WeeklyBalance",
    "ledger_key",
    # results
    "LedgerIssue",
    "RecomputeResult",
    "SettlementResult",
]
