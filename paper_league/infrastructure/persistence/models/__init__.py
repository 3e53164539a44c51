"""ORM model registry: imports every mapper class so it is registered with
Base.metadata before Alembic or SQLAlchemy runs.
"""

from paper_league.infrastructure.persistence.models.documents import Document

__all__ = ["Document"]
