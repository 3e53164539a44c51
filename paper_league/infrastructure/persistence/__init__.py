"""DocumentStore backends."""

from paper_league.infrastructure.persistence.memory import InMemoryDocumentStore
from paper_league.infrastructure.persistence.store import SqlDocumentStore

__all__ = ["InMemoryDocumentStore", "SqlDocumentStore"]
