"""Outbox event emission for search indexing (fail-open)."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from venue_search.models.facility import Court, Facility
from venue_search.models.search_indexing import SearchOutbox, SearchOutboxEventType

logger = logging.getLogger(__name__)

PENDING_KEY = "search_sync_pending"


def emit_search_outbox_event(
    db: Session,
    event_type: SearchOutboxEventType,
    facility_id: UUID,
) -> None:
    """
    Emit a search outbox event (fail-open).

    This function should be called AFTER the main transaction commits.
    If outbox insertion fails, it logs an error but does not raise.

    Args:
        db: Database session (should be a new session after commit)
        event_type: Type of event
        facility_id: Facility ID
    """
    try:
        payload: dict[str, Any] = {"facility_id": str(facility_id)}
        db.add(SearchOutbox(event_type=event_type.value, payload=payload))
        db.commit()
        logger.debug(f"Emitted search outbox event: {event_type.value} for facility {facility_id}")
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to emit search outbox event {event_type.value} for facility {facility_id}: {e}",
            exc_info=True,
        )
        db.rollback()


def collect_changed_facilities(session: Session) -> dict[UUID, SearchOutboxEventType]:
    """
    Facility ids touched by the pending flush and the event each one needs.

    Court changes map to their facility. A deleted facility wins over any
    upsert of the same id.
    """
    changes: dict[UUID, SearchOutboxEventType] = {}

    def mark(facility_id: UUID | None, event_type: SearchOutboxEventType) -> None:
        if facility_id is None:
            return
        if changes.get(facility_id) == SearchOutboxEventType.FACILITY_DELETED:
            return
        changes[facility_id] = event_type

    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Facility):
            mark(obj.id, SearchOutboxEventType.FACILITY_UPSERTED)
        elif isinstance(obj, Court):
            mark(obj.facility_id, SearchOutboxEventType.FACILITY_UPSERTED)

    for obj in session.deleted:
        if isinstance(obj, Facility):
            changes[obj.id] = SearchOutboxEventType.FACILITY_DELETED
        elif isinstance(obj, Court):
            mark(obj.facility_id, SearchOutboxEventType.FACILITY_UPSERTED)

    return changes


def _after_flush(session: Session, flush_context: Any) -> None:
    changes = collect_changed_facilities(session)
    if not changes:
        return
    pending = session.info.setdefault(PENDING_KEY, {})
    for facility_id, event_type in changes.items():
        if pending.get(facility_id) == SearchOutboxEventType.FACILITY_DELETED:
            continue
        pending[facility_id] = event_type


def _after_commit(session: Session) -> None:
    pending = session.info.pop(PENDING_KEY, None)
    if not pending:
        return
    # The committing session cannot run SQL here; write through a fresh one
    outbox_session = Session(bind=session.get_bind())
    try:
        for facility_id, event_type in pending.items():
            emit_search_outbox_event(outbox_session, event_type, facility_id)
    finally:
        outbox_session.close()


def _after_rollback(session: Session) -> None:
    session.info.pop(PENDING_KEY, None)


def register_search_sync_hooks(session_factory: sessionmaker) -> None:
    """
    Enqueue index maintenance for every committed facility/court write made
    through ``session_factory``.
    """
    if event.contains(session_factory, "after_commit", _after_commit):
        return
    event.listen(session_factory, "after_flush", _after_flush)
    event.listen(session_factory, "after_commit", _after_commit)
    event.listen(session_factory, "after_rollback", _after_rollback)
