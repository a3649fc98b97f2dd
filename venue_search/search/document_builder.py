"""Document builder for facility search indexing."""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from venue_search.core.errors import DocumentBuildError
from venue_search.db.store import SqlAlchemyStore
from venue_search.models.facility import Court, Facility
from venue_search.schemas.search import CourtSummary, GeoPoint, IndexedDocument

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        # Naive timestamps are stored in UTC
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _court_sort_key(court: Court) -> tuple[Any, str]:
    created = court.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return (created or datetime.min.replace(tzinfo=UTC), str(court.id))


def load_facility_for_indexing(db: Session, facility_id: uuid.UUID | str) -> Facility | None:
    """
    Load a facility with its courts eagerly loaded.

    Returns None when the id is malformed or the row does not exist.

    Raises:
        BackendUnavailable: the store is unreachable.
    """
    facility = SqlAlchemyStore(db, Facility).find_unique(facility_id, include=("courts",))
    if facility is None:
        logger.debug(f"No facility row for {facility_id!r}")
    return facility


def is_indexable(facility: Facility) -> bool:
    """Only published, non-deleted facilities live in the index."""
    return bool(facility.is_published) and facility.deleted_at is None


def active_courts(facility: Facility) -> list[Court]:
    """Active, non-deleted courts ordered by creation time then id."""
    courts = [court for court in facility.courts if court.is_active and court.deleted_at is None]
    return sorted(courts, key=_court_sort_key)


def build_facility_document(facility: Facility) -> IndexedDocument:
    """
    Build the Elasticsearch document for a facility.

    The output depends only on the row, so rebuilding an unchanged row yields
    an identical document.

    Raises:
        DocumentBuildError: if the facility has no name or no coordinates.
    """
    if not facility.name or not facility.name.strip():
        raise DocumentBuildError("Facility has no name", details={"facility_id": str(facility.id)})
    if facility.latitude is None or facility.longitude is None:
        raise DocumentBuildError("Facility has no coordinates", details={"facility_id": str(facility.id)})

    courts = active_courts(facility)
    prices = [court.price_per_hour for court in courts if court.price_per_hour is not None]

    return IndexedDocument(
        id=str(facility.id),
        name=facility.name,
        slug=facility.slug,
        address=facility.address or "",
        ward=facility.ward,
        city=facility.city,
        description=facility.description,
        location=GeoPoint(lat=facility.latitude, lon=facility.longitude),
        is_published=bool(facility.is_published),
        owner_id=str(facility.owner_id),
        price_from=min(prices) if prices else None,
        rating=facility.rating,
        courts=[
            CourtSummary(
                id=str(court.id),
                name=court.name,
                sport=court.sport,
                surface=court.surface,
                indoor=bool(court.indoor),
                is_active=bool(court.is_active),
            )
            for court in courts
        ],
        created_at=_iso(facility.created_at),
        updated_at=_iso(facility.updated_at or facility.created_at),
    )
