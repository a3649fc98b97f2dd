"""Query builder for facility search (Elasticsearch DSL) and hit decoding."""

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any
from uuid import UUID

from venue_search.common.pagination import MAX_OFFSET, PaginationCodec, ResultPage
from venue_search.filtering.normalize import check_distance_sort, check_result_window
from venue_search.filtering.surfaces import FACILITY_INDEX_SURFACE, SearchSurface
from venue_search.schemas.filter_spec import (
    ContainsFilter,
    CursorPage,
    EqualsFilter,
    FieldFilter,
    FilterSpec,
    InFilter,
    RangeFilter,
)
from venue_search.schemas.search import IndexedDocument, SearchHit
from venue_search.search.geo import haversine_meters

NESTED_COURTS_PATH = "courts"
TIE_BREAK_SORT: list[dict[str, Any]] = [
    {"createdAt": {"order": "desc"}},
    {"id": {"order": "asc"}},
]


def _es_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def resolve_offset(spec: FilterSpec) -> int:
    """``from`` for the query: the page offset, or the decoded cursor offset in cursor mode."""
    if isinstance(spec.page, CursorPage):
        return PaginationCodec.decode_offset(spec.page.cursor, spec.limit)
    return spec.page.start


def field_filter_clause(path: str, field_filter: FieldFilter) -> dict[str, Any]:
    """One ``bool.filter`` clause for a typed filter on an index field."""
    if isinstance(field_filter, EqualsFilter):
        return {"term": {path: _es_value(field_filter.value)}}
    if isinstance(field_filter, InFilter):
        return {"terms": {path: [_es_value(v) for v in field_filter.values]}}
    if isinstance(field_filter, RangeFilter):
        bounds = {}
        if field_filter.gte is not None:
            bounds["gte"] = _es_value(field_filter.gte)
        if field_filter.lte is not None:
            bounds["lte"] = _es_value(field_filter.lte)
        return {"range": {path: bounds}}
    if isinstance(field_filter, ContainsFilter):
        return {"wildcard": {path: {"value": f"*{field_filter.value}*", "case_insensitive": True}}}
    raise TypeError(f"Unsupported filter type: {type(field_filter).__name__}")


class SearchQueryBuilder:
    """Translates a FilterSpec for the index surface into a search request body."""

    def __init__(self, surface: SearchSurface = FACILITY_INDEX_SURFACE):
        if surface.backend != "index":
            raise ValueError(f"Surface '{surface.name}' is not index-backed")
        self.surface = surface

    def must_clauses(self, spec: FilterSpec) -> list[dict[str, Any]]:
        if not spec.term:
            return [{"match_all": {}}]
        return [
            {
                "multi_match": {
                    "query": spec.term,
                    "fields": list(self.surface.search_fields),
                    "type": "best_fields",
                    "fuzziness": "AUTO",
                    "operator": "or",
                }
            }
        ]

    def filter_clauses(self, spec: FilterSpec) -> list[dict[str, Any]]:
        filters: list[dict[str, Any]] = []

        # Published only unless the caller filters on it explicitly
        if "isPublished" not in spec.field_filters:
            filters.append({"term": {"isPublished": True}})

        if spec.geo is not None:
            filters.append(
                {
                    "geo_distance": {
                        "distance": spec.geo.radius,
                        "location": {"lat": spec.geo.lat, "lon": spec.geo.lon},
                    }
                }
            )

        court_clauses: list[dict[str, Any]] = []
        for name, field_filter in spec.field_filters.items():
            path = self.surface.filter_fields[name].path
            clause = field_filter_clause(path, field_filter)
            if path.startswith(f"{NESTED_COURTS_PATH}."):
                court_clauses.append(clause)
            else:
                filters.append(clause)

        if court_clauses:
            filters.append(
                {
                    "nested": {
                        "path": NESTED_COURTS_PATH,
                        "query": {
                            "bool": {
                                "filter": [{"term": {"courts.isActive": True}}, *court_clauses],
                            }
                        },
                    }
                }
            )
        return filters

    def sort_clauses(self, spec: FilterSpec) -> list[Any]:
        """Primary sort from the spec, then createdAt desc, then id."""
        check_distance_sort(spec)
        direction = spec.sort.direction
        field = spec.sort.field

        if field == "distance":
            primary: list[dict[str, Any]] = [
                {
                    "_geo_distance": {
                        "location": {"lat": spec.geo.lat, "lon": spec.geo.lon},
                        "order": direction,
                        "unit": "m",
                        "distance_type": "arc",
                    }
                }
            ]
        elif field == "relevance":
            primary = [{"_score": {"order": direction}}]
        elif field == "createdAt":
            return [{"createdAt": {"order": direction}}, {"id": {"order": "asc"}}]
        else:
            primary = [{self.surface.sort_path(field): {"order": direction, "missing": "_last"}}]
        return primary + TIE_BREAK_SORT

    def build_query(self, spec: FilterSpec) -> dict[str, Any]:
        """
        Build Elasticsearch query DSL for facility search.

        Args:
            spec: Normalized request for the index surface

        Returns:
            Elasticsearch request body (query, sort, from, size, score/total tracking).

        Raises:
            InputError: if sort=distance without geo, or an offset page ends past
                the result window.
        """
        check_result_window(spec)
        sort = self.sort_clauses(spec)
        return {
            "query": {
                "bool": {
                    "must": self.must_clauses(spec),
                    "filter": self.filter_clauses(spec),
                }
            },
            "sort": sort,
            "from": resolve_offset(spec),
            "size": spec.limit,
            "track_scores": spec.sort.field != "relevance",
            "track_total_hits": True,
        }

    def decode_response(self, spec: FilterSpec, response: Mapping[str, Any]) -> ResultPage[SearchHit]:
        """
        Turn a raw search response into a typed page.

        ``distance_meters`` is attached whenever geo is present: the sort value
        when sorting by distance, the haversine distance otherwise.
        """
        hits_section = response.get("hits", {})
        total_section = hits_section.get("total", 0)
        total = total_section.get("value", 0) if isinstance(total_section, Mapping) else int(total_section or 0)

        hits: list[SearchHit] = []
        for hit in hits_section.get("hits", []):
            document = IndexedDocument.model_validate(hit["_source"])
            distance = None
            if spec.geo is not None:
                sort_values = hit.get("sort") or []
                if spec.sort.field == "distance" and sort_values:
                    distance = float(sort_values[0])
                else:
                    distance = haversine_meters(
                        spec.geo.lat, spec.geo.lon, document.location.lat, document.location.lon
                    )
            hits.append(SearchHit(document=document, score=float(hit.get("_score") or 0.0), distance_meters=distance))

        max_score = 0.0
        if spec.term:
            max_score = float(hits_section.get("max_score") or 0.0)

        offset = resolve_offset(spec)
        if spec.is_cursor_mode:
            meta = PaginationCodec.offset_meta(
                offset,
                spec.limit,
                len(hits),
                total,
                cursor=spec.page.cursor,
                cursor_mode=True,
                window=MAX_OFFSET,
            )
        else:
            meta = PaginationCodec.offset_meta(offset, spec.limit, len(hits), total, window=MAX_OFFSET)
        return ResultPage[SearchHit](data=hits, total=total, max_score=max_score, meta=meta)


def build_facilities_search_query(spec: FilterSpec) -> dict[str, Any]:
    """Elasticsearch DSL for a facility search on the default index surface."""
    return SearchQueryBuilder().build_query(spec)
