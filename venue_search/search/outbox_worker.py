"""Outbox worker for processing search indexing events."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from venue_search.core.config import settings
from venue_search.core.errors import DocumentBuildError, SearchError
from venue_search.models.search_indexing import (
    SearchOutbox,
    SearchOutboxEventType,
    SearchOutboxStatus,
)
from venue_search.search.gateway import SearchIndexGateway

logger = logging.getLogger(__name__)


def calculate_next_attempt(retry_count: int) -> datetime:
    """
    Calculate next attempt time with exponential backoff.

    Args:
        retry_count: Current retry count

    Returns:
        Next attempt datetime
    """
    # Exponential backoff: 2^retry_count minutes, max 24 hours
    minutes = min(2**retry_count, 1440)  # 1440 minutes = 24 hours
    return datetime.now(UTC) + timedelta(minutes=minutes)


def fetch_pending_events(db: Session, limit: int = 100) -> list[SearchOutbox]:
    """
    Fetch pending events with FOR UPDATE SKIP LOCKED.

    Args:
        db: Database session
        limit: Maximum number of events to fetch

    Returns:
        List of pending events, oldest first
    """
    now = datetime.now(UTC)

    return (
        db.query(SearchOutbox)
        .filter(
            and_(
                SearchOutbox.status == SearchOutboxStatus.PENDING.value,
                (SearchOutbox.next_attempt_at.is_(None)) | (SearchOutbox.next_attempt_at <= now),
            )
        )
        .order_by(SearchOutbox.created_at.asc())
        .with_for_update(skip_locked=True)
        .limit(limit)
        .all()
    )


def mark_event_processing(db: Session, event: SearchOutbox) -> None:
    """Mark event as processing."""
    event.status = SearchOutboxStatus.PROCESSING.value
    event.updated_at = datetime.now(UTC)
    db.commit()


def mark_event_done(db: Session, event: SearchOutbox) -> None:
    """Mark event as done."""
    event.status = SearchOutboxStatus.DONE.value
    event.updated_at = datetime.now(UTC)
    db.commit()


def mark_event_failed(
    db: Session,
    event: SearchOutbox,
    error: str,
    retry: bool = True,
) -> None:
    """
    Mark event as failed and schedule retry if applicable.

    Args:
        db: Database session
        event: Event to mark
        error: Error message
        retry: Whether to schedule a retry
    """
    event.status = SearchOutboxStatus.FAILED.value
    event.last_error = error[:1000]  # Truncate to 1000 chars
    event.retry_count = (event.retry_count or 0) + 1
    event.updated_at = datetime.now(UTC)

    if retry and event.retry_count < settings.SEARCH_OUTBOX_MAX_RETRIES:
        event.status = SearchOutboxStatus.PENDING.value
        event.next_attempt_at = calculate_next_attempt(event.retry_count)
        logger.warning(f"Scheduling retry {event.retry_count} for event {event.id} at {event.next_attempt_at}")
    else:
        logger.error(f"Event {event.id} failed permanently after {event.retry_count} retries: {error}")

    db.commit()


def process_event(db: Session, event: SearchOutbox, gateway: SearchIndexGateway) -> None:
    """
    Process a single outbox event.

    Index failures are retried with backoff; rows that cannot be projected are
    failed without retry.
    """
    facility_id_str = (event.payload or {}).get("facility_id")
    if not facility_id_str:
        mark_event_failed(db, event, "Missing facility_id in payload", retry=False)
        return

    try:
        facility_id = UUID(facility_id_str)
    except ValueError:
        mark_event_failed(db, event, f"Invalid facility_id in payload: {facility_id_str}", retry=False)
        return

    try:
        if event.event_type == SearchOutboxEventType.FACILITY_UPSERTED.value:
            action = gateway.index_one(db, facility_id)
            logger.debug(f"Outbox event {event.id}: facility {facility_id} {action}")
        elif event.event_type == SearchOutboxEventType.FACILITY_DELETED.value:
            gateway.remove_one(facility_id)
        else:
            mark_event_failed(db, event, f"Unknown event type: {event.event_type}", retry=False)
            return
    except DocumentBuildError as e:
        mark_event_failed(db, event, f"Document build failed: {e.message}", retry=False)
        return
    except SearchError as e:
        # A failed read can leave the transaction unusable
        db.rollback()
        mark_event_failed(db, event, f"Index update failed: {e.message}", retry=e.retryable)
        return

    mark_event_done(db, event)


def process_outbox_batch(
    db: Session,
    gateway: SearchIndexGateway | None = None,
    limit: int = 100,
) -> dict[str, Any]:
    """
    Process a batch of outbox events.

    Args:
        db: Database session
        gateway: Index gateway (defaults to the process-wide client)
        limit: Maximum number of events to process

    Returns:
        Dictionary with processing stats
    """
    gateway = gateway or SearchIndexGateway()

    if not gateway.enabled:
        logger.debug("Elasticsearch disabled, skipping outbox processing")
        return {"processed": 0, "done": 0, "failed": 0, "enabled": False}

    events = fetch_pending_events(db, limit)

    processed = 0
    done = 0
    failed = 0

    for event in events:
        mark_event_processing(db, event)
        process_event(db, event, gateway)
        processed += 1

        if event.status == SearchOutboxStatus.DONE.value:
            done += 1
        else:
            failed += 1

    if processed:
        logger.info(f"Outbox batch: {processed} processed, {done} done, {failed} failed")

    return {"processed": processed, "done": done, "failed": failed, "enabled": True}
