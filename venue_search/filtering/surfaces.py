"""Listing surfaces: the closed filter/sort contract of each listing endpoint.

A surface maps the logical names clients use (``ownerId``, ``courts.sport``,
``createdAt``) onto backend field paths, declares the value type used to
coerce incoming filter values, and fixes the defaults applied during
normalization. Anything not registered here is rejected as an InputError.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from venue_search.core.config import settings

Backend = Literal["index", "relational"]


@dataclass(frozen=True)
class FieldDef:
    """A filterable field: backend path and value type.

    Dotted paths (``courts.sport``) address a field on a related child collection.
    """

    path: str
    type: Any = str


@dataclass(frozen=True)
class SearchSurface:
    name: str
    backend: Backend
    default_limit: int
    default_sort: tuple[str, str]
    sort_fields: dict[str, str]
    filter_fields: dict[str, FieldDef]
    search_fields: tuple[str, ...] = ()
    relations: tuple[str, ...] = ()
    id_field: str = "id"
    base_filters: dict[str, Any] = field(default_factory=dict)

    def sort_path(self, logical: str) -> str:
        return self.sort_fields[logical]


FACILITY_INDEX_SURFACE = SearchSurface(
    name="facility_search",
    backend="index",
    default_limit=settings.SEARCH_DEFAULT_LIMIT,
    default_sort=("relevance", "desc"),
    sort_fields={
        "relevance": "_score",
        "distance": "_geo_distance",
        "createdAt": "createdAt",
        "name": "name.keyword",
        "price": "priceFrom",
        "rating": "rating",
    },
    filter_fields={
        "city": FieldDef("city"),
        "ward": FieldDef("ward"),
        "ownerId": FieldDef("ownerId", UUID),
        "isPublished": FieldDef("isPublished", bool),
        "createdAt": FieldDef("createdAt", datetime),
        "priceFrom": FieldDef("priceFrom", int),
        "rating": FieldDef("rating", float),
        "courts.sport": FieldDef("courts.sport"),
        "courts.indoor": FieldDef("courts.indoor", bool),
        "courts.surface": FieldDef("courts.surface"),
    },
    search_fields=("name^3", "address^1", "description^0.5"),
)

FACILITY_RELATIONAL_SURFACE = SearchSurface(
    name="facility_listing",
    backend="relational",
    default_limit=settings.LISTING_DEFAULT_LIMIT,
    default_sort=("createdAt", "desc"),
    sort_fields={
        "createdAt": "created_at",
        "name": "name",
        "rating": "rating",
    },
    filter_fields={
        "name": FieldDef("name"),
        "slug": FieldDef("slug"),
        "city": FieldDef("city"),
        "ward": FieldDef("ward"),
        "ownerId": FieldDef("owner_id", UUID),
        "isPublished": FieldDef("is_published", bool),
        "createdAt": FieldDef("created_at", datetime),
        "rating": FieldDef("rating", float),
        "courts.sport": FieldDef("courts.sport"),
        "courts.indoor": FieldDef("courts.indoor", bool),
        "courts.isActive": FieldDef("courts.is_active", bool),
    },
    search_fields=("name", "description", "address"),
    relations=("courts",),
    base_filters={"deleted_at": None},
)

COURT_RELATIONAL_SURFACE = SearchSurface(
    name="court_listing",
    backend="relational",
    default_limit=settings.LISTING_DEFAULT_LIMIT,
    default_sort=("createdAt", "desc"),
    sort_fields={
        "createdAt": "created_at",
        "name": "name",
        "price": "price_per_hour",
    },
    filter_fields={
        "facilityId": FieldDef("facility_id", UUID),
        "name": FieldDef("name"),
        "sport": FieldDef("sport"),
        "surface": FieldDef("surface"),
        "indoor": FieldDef("indoor", bool),
        "isActive": FieldDef("is_active", bool),
        "price": FieldDef("price_per_hour", int),
        "createdAt": FieldDef("created_at", datetime),
    },
    search_fields=("name",),
    base_filters={"deleted_at": None},
)
