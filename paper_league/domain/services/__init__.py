"""Domain services package."""

from .allocations import AllocationService
from .audit import LedgerAuditService
from .balances import BalanceResolver, ReplaySource, ResolvedBalance, StoreSource
from .batching import BatchedWriter
from .market import MarketDataService, merge_effective_market
from .recompute import RecomputeService
from .returns import weighted_return
from .settlement import SettlementService
from .weeks import WeekService

__all__ = [
    "AllocationService",
    "BalanceResolver",
    "BatchedWriter",
    "LedgerAuditService",
    "MarketDataService",
    "RecomputeService",
    "ReplaySource",
    "ResolvedBalance",
    "SettlementService",
    "StoreSource",
    "WeekService",
    "merge_effective_market",
    "weighted_return",
]
