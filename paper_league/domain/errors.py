"""Domain exception taxonomy.

StoreError and its subclasses come from the document store (any backend
wraps its driver errors in StoreError).  The remaining errors are raised by
domain services when a request violates a business rule.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by paper_league."""


class StoreError(LedgerError):
    """A read or write against the document store failed."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Document {collection}/{key} does not exist")
        self.collection = collection
        self.key = key


class MalformedDocumentError(StoreError):
    """A stored document does not match the shape its collection requires."""

    def __init__(self, collection: str, key: str, detail: str) -> None:
        super().__init__(f"Document {collection}/{key} is malformed: {detail}")
        self.collection = collection
        self.key = key


class BatchLimitExceededError(StoreError):
    """An atomic batch was committed with more operations than the store allows."""

    def __init__(self, op_count: int, limit: int) -> None:
        super().__init__(f"Atomic batch holds {op_count} operations; the store allows {limit}")
        self.op_count = op_count
        self.limit = limit


class SettlementPreconditionError(LedgerError):
    """A week cannot be settled yet (still running, or no effective market data)."""


class InvalidStatusTransition(LedgerError, ValueError):
    """A week status change would move backwards without a reasoned correction."""


class AllocationRejected(LedgerError, ValueError):
    """An allocation submission was refused."""
