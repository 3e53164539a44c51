"""Document store ORM model: documents.

Every collection (weeks, market_data, market_corrections, allocations,
weekly_balances, balances) shares one table keyed by (collection, key).
The document body is a JSON object; JSONB on PostgreSQL.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from paper_league.infrastructure.database import Base

DocumentJSON = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    """One stored document.

    Composite PK: (collection, key).  Allocation and weekly balance keys are
    "{week_id}_{uid}"; week documents are keyed by ISO week id.
    """

    __tablename__ = "documents"
    __table_args__ = (Index("ix_documents_collection", "collection"),)

    collection: Mapped[str] = mapped_column(Text, primary_key=True)
    key: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(DocumentJSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
