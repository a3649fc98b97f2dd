"""Facility and court models (system of record for listings and the search index)."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from venue_search.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Facility(Base):
    """A bookable venue owned by a facility owner."""

    __tablename__ = "facilities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    phone = Column(String(32), nullable=True)
    address = Column(String(500), nullable=False, default="")
    ward = Column(String(120), nullable=True)
    city = Column(String(120), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    rating = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    courts = relationship(
        "Court",
        back_populates="facility",
        order_by=lambda: [Court.created_at, Court.id],
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_facilities_owner_id", "owner_id"),
        Index("ix_facilities_created_at_id", "created_at", "id"),
        Index("ix_facilities_city", "city"),
    )


class Court(Base):
    """A single playable court inside a facility."""

    __tablename__ = "courts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    facility_id = Column(Uuid(as_uuid=True), ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    sport = Column(String(32), nullable=False)  # TENNIS, BADMINTON, PICKLEBALL, ...
    surface = Column(String(32), nullable=True)
    indoor = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    price_per_hour = Column(Integer, nullable=True)  # Minor currency units
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    facility = relationship("Facility", back_populates="courts")

    __table_args__ = (
        Index("ix_courts_facility_id", "facility_id"),
        Index("ix_courts_sport", "sport"),
    )
