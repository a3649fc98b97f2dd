"""Models for search indexing (outbox + sync runs)."""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from venue_search.db.base import Base


class SearchOutboxEventType(str, PyEnum):
    """Event types for search outbox."""

    FACILITY_UPSERTED = "FACILITY_UPSERTED"
    FACILITY_DELETED = "FACILITY_DELETED"


class SearchOutboxStatus(str, PyEnum):
    """Status for search outbox events."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class SearchSyncRunType(str, PyEnum):
    """Type of sync run."""

    SINGLE = "single"
    FULL = "full"


class SearchSyncRunStatus(str, PyEnum):
    """Status for sync runs."""

    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    DISABLED = "disabled"


class SearchOutbox(Base):
    """Outbox table for search indexing events (outbox pattern)."""

    __tablename__ = "search_outbox"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False)  # {facility_id}
    status = Column(String(16), nullable=False, default=SearchOutboxStatus.PENDING.value)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_search_outbox_status_next_attempt", "status", "next_attempt_at"),
        Index("ix_search_outbox_event_type", "event_type"),
    )


class SearchSyncRun(Base):
    """Run registry for full reindex jobs."""

    __tablename__ = "search_sync_run"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_type = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=SearchSyncRunStatus.RUNNING.value)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    indexed_count = Column(Integer, nullable=False, default=0)
    deleted_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    details = Column(JSON, nullable=True)  # Errors, options, index name
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_search_sync_run_status", "status"),
        Index("ix_search_sync_run_created_at", "created_at"),
    )
