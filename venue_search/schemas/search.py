"""Pydantic schemas for the facility search index."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoPoint(BaseModel):
    """Elasticsearch geo_point in object form."""

    lat: float
    lon: float


class CourtSummary(_CamelModel):
    """Court projected into the facility document."""

    id: str
    name: str
    sport: str
    surface: str | None = None
    indoor: bool = False
    is_active: bool = True


class IndexedDocument(_CamelModel):
    """Denormalized facility document (camelCase on the wire and in the index)."""

    id: str
    name: str
    slug: str
    address: str = ""
    ward: str | None = None
    city: str | None = None
    description: str | None = None
    location: GeoPoint
    is_published: bool
    owner_id: str
    price_from: int | None = None  # Minimum hourly price across active courts
    rating: float | None = None
    courts: list[CourtSummary] = Field(default_factory=list)
    created_at: str  # ISO-8601
    updated_at: str  # ISO-8601

    def to_source(self) -> dict[str, Any]:
        """The ``_source`` body written to the index."""
        return self.model_dump(by_alias=True, mode="json")


class SearchHit(BaseModel):
    """One ranked search result."""

    document: IndexedDocument
    score: float = 0.0
    distance_meters: float | None = None


class BulkIndexResult(BaseModel):
    """Outcome of one bulk load; failures are reported per document as "<id>: <reason>"."""

    indexed: int = 0
    errors: list[str] = Field(default_factory=list)


class ReindexResult(BaseModel):
    """Outcome of a full reindex. Never raised; inspect ``errors`` even on success."""

    indexed: int = 0
    errors: list[str] = Field(default_factory=list)
