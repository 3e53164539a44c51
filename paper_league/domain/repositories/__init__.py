"""Domain repository interfaces.

DocumentStore is the abstraction every backend implements; LedgerRepository
is the typed, backend-agnostic reader built on top of it.

Import from this package rather than individual modules to avoid coupling
services to specific module paths.
"""

from .ledger import (
    LedgerRepository,
    allocation_ref,
    balance_ref,
    market_correction_ref,
    market_data_ref,
    week_ref,
    weekly_balance_ref,
)
from .store import (
    ChangeEvent,
    ChangeFeed,
    Collections,
    DocumentRef,
    DocumentStore,
    Subscription,
    WriteBatch,
    WriteOp,
    apply_write,
    deep_merge,
)

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "Collections",
    "DocumentRef",
    "DocumentStore",
    "Subscription",
    "WriteBatch",
    "WriteOp",
    "apply_write",
    "deep_merge",
    "LedgerRepository",
    "allocation_ref",
    "balance_ref",
    "market_correction_ref",
    "market_data_ref",
    "week_ref",
    "weekly_balance_ref",
]
