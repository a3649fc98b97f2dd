"""Database session management."""

from sqlalchemy.orm import sessionmaker

from venue_search.db.engine import engine
from venue_search.search.outbox_emit import register_search_sync_hooks

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Prevent lazy loading issues
)

# Facility/court writes made through this factory enqueue index maintenance after commit
register_search_sync_hooks(SessionLocal)

