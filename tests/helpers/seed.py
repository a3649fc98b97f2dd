"""Test data seeding helpers."""

import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from venue_search.models.facility import Court, Facility

# District 1, Ho Chi Minh City
HCMC_LAT = 10.7769
HCMC_LON = 106.7009
BASE_TIME = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)


def offset_north(lat: float, meters: float) -> float:
    """Latitude ``meters`` north of ``lat`` (1 degree of latitude is ~111.2 km)."""
    return lat + meters / 111_194.93


def create_facility(
    db: Session,
    name: str = "Facility",
    *,
    slug: str | None = None,
    latitude: float | None = HCMC_LAT,
    longitude: float | None = HCMC_LON,
    is_published: bool = True,
    city: str | None = "Ho Chi Minh City",
    ward: str | None = None,
    description: str | None = None,
    address: str = "1 Le Loi",
    rating: float | None = None,
    created_at: datetime | None = None,
    owner_id: uuid.UUID | None = None,
    courts: list[dict] | None = None,
    deleted_at: datetime | None = None,
) -> Facility:
    """Create a facility (and courts) and flush it."""
    created = created_at or BASE_TIME
    facility = Facility(
        id=uuid.uuid4(),
        owner_id=owner_id or uuid.uuid4(),
        name=name,
        slug=slug or f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
        description=description,
        address=address,
        ward=ward,
        city=city,
        latitude=latitude,
        longitude=longitude,
        is_published=is_published,
        rating=rating,
        created_at=created,
        updated_at=created,
        deleted_at=deleted_at,
    )
    for index, court in enumerate(courts or []):
        court_created = court.pop("created_at", created + timedelta(minutes=index))
        facility.courts.append(
            Court(
                id=uuid.uuid4(),
                created_at=court_created,
                updated_at=court_created,
                **{"name": f"Court {index + 1}", "sport": "TENNIS", **court},
            )
        )
    db.add(facility)
    db.flush()
    return facility


def create_facilities(db: Session, count: int, **kwargs) -> list[Facility]:
    """Create ``count`` facilities one minute apart."""
    return [
        create_facility(db, name=f"Facility {i:03d}", created_at=BASE_TIME + timedelta(minutes=i), **kwargs)
        for i in range(count)
    ]
