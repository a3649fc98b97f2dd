"""Database engine configuration."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from venue_search.core.config import settings


def create_db_engine(url: str | None = None) -> Engine:
    """Create SQLAlchemy engine."""
    return create_engine(
        url or settings.DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        echo=False,
    )


# Global engine instance
engine = create_db_engine()
