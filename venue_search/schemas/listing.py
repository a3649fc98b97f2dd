"""Row schemas returned by relational listing."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from venue_search.models.facility import Facility


class CourtOut(BaseModel):
    """Court row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    facility_id: UUID
    name: str
    sport: str
    surface: str | None = None
    indoor: bool
    is_active: bool
    price_per_hour: int | None = None
    created_at: datetime
    updated_at: datetime


class FacilityOut(BaseModel):
    """Facility row; ``courts`` is only set when relations were requested."""

    id: UUID
    owner_id: UUID
    name: str
    slug: str
    description: str | None = None
    phone: str | None = None
    address: str
    ward: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    is_published: bool
    rating: float | None = None
    created_at: datetime
    updated_at: datetime
    courts: list[CourtOut] | None = None

    @classmethod
    def from_model(cls, facility: Facility, include_courts: bool = False) -> "FacilityOut":
        """Build from a row without touching unloaded relationships."""
        courts = None
        if include_courts:
            courts = [CourtOut.model_validate(court) for court in facility.courts if court.deleted_at is None]
        return cls(
            id=facility.id,
            owner_id=facility.owner_id,
            name=facility.name,
            slug=facility.slug,
            description=facility.description,
            phone=facility.phone,
            address=facility.address,
            ward=facility.ward,
            city=facility.city,
            latitude=facility.latitude,
            longitude=facility.longitude,
            is_published=facility.is_published,
            rating=facility.rating,
            created_at=facility.created_at,
            updated_at=facility.updated_at,
            courts=courts,
        )
