"""Tests for facility search DSL building and response decoding."""

import pytest

from venue_search.core.errors import InputError
from venue_search.filtering.normalize import normalize_filter_spec
from venue_search.filtering.surfaces import FACILITY_INDEX_SURFACE, FACILITY_RELATIONAL_SURFACE
from venue_search.schemas.filter_spec import FilterSpec, OffsetPage, SortSpec
from venue_search.search.facilities_query import (
    TIE_BREAK_SORT,
    SearchQueryBuilder,
    build_facilities_search_query,
    resolve_offset,
)
from tests.helpers.seed import HCMC_LAT, HCMC_LON


def spec_for(request: dict) -> FilterSpec:
    return normalize_filter_spec(request, FACILITY_INDEX_SURFACE)


def source(doc_id: str, lat: float = HCMC_LAT, lon: float = HCMC_LON) -> dict:
    return {
        "id": doc_id,
        "name": f"Facility {doc_id}",
        "slug": f"facility-{doc_id}",
        "address": "1 Le Loi",
        "location": {"lat": lat, "lon": lon},
        "isPublished": True,
        "ownerId": "8d4f2c5e-0b7a-4c39-9f55-0f0c8c4a8b11",
        "courts": [],
        "createdAt": "2026-01-01T08:00:00+00:00",
        "updatedAt": "2026-01-01T08:00:00+00:00",
    }


class TestQueryShape:
    """bool.must / bool.filter composition."""

    def test_no_term_is_match_all_published_only(self):
        """Test the default request matches every published facility."""
        query = build_facilities_search_query(spec_for({}))
        assert query["query"]["bool"]["must"] == [{"match_all": {}}]
        assert query["query"]["bool"]["filter"] == [{"term": {"isPublished": True}}]
        assert query["from"] == 0
        assert query["size"] == 20
        assert query["track_total_hits"] is True
        assert query["track_scores"] is False

    def test_term_is_fuzzy_multi_match(self):
        """Test the search term queries name, address and description with boosts."""
        query = build_facilities_search_query(spec_for({"term": "tenis"}))
        multi_match = query["query"]["bool"]["must"][0]["multi_match"]
        assert multi_match["query"] == "tenis"
        assert multi_match["fields"] == ["name^3", "address^1", "description^0.5"]
        assert multi_match["fuzziness"] == "AUTO"

    def test_explicit_published_filter_replaces_default(self):
        """Test filtering on isPublished drops the published-only default."""
        query = build_facilities_search_query(spec_for({"filters": {"isPublished": False}}))
        assert query["query"]["bool"]["filter"] == [{"term": {"isPublished": False}}]

    def test_geo_filter(self):
        """Test geo adds a geo_distance filter with the original radius text."""
        query = build_facilities_search_query(
            spec_for({"geo": {"lat": HCMC_LAT, "lon": HCMC_LON, "radius": "10km"}})
        )
        assert {
            "geo_distance": {"distance": "10km", "location": {"lat": HCMC_LAT, "lon": HCMC_LON}}
        } in query["query"]["bool"]["filter"]

    def test_field_filters(self):
        """Test each filter shape maps to term/terms/range/wildcard."""
        query = build_facilities_search_query(
            spec_for(
                {
                    "filters": {
                        "city": "Ho Chi Minh City",
                        "ward": ["Ben Nghe", "Da Kao"],
                        "priceFrom_from": 50000,
                        "priceFrom_to": 200000,
                    }
                }
            )
        )
        filters = query["query"]["bool"]["filter"]
        assert {"term": {"city": "Ho Chi Minh City"}} in filters
        assert {"terms": {"ward": ["Ben Nghe", "Da Kao"]}} in filters
        assert {"range": {"priceFrom": {"gte": 50000, "lte": 200000}}} in filters

    def test_contains_filter_is_case_insensitive_wildcard(self):
        """Test *text* filters become wildcard queries."""
        query = build_facilities_search_query(spec_for({"filters": {"city": "*minh*"}}))
        assert {"wildcard": {"city": {"value": "*minh*", "case_insensitive": True}}} in query["query"]["bool"][
            "filter"
        ]

    def test_uuid_filter_serialized_as_string(self):
        """Test uuid values are sent as strings."""
        owner = "8d4f2c5e-0b7a-4c39-9f55-0f0c8c4a8b11"
        query = build_facilities_search_query(spec_for({"filters": {"ownerId": owner}}))
        assert {"term": {"ownerId": owner}} in query["query"]["bool"]["filter"]

    def test_court_filters_share_one_nested_query(self):
        """Test court filters are evaluated against one active court."""
        query = build_facilities_search_query(
            spec_for({"filters": {"courts": {"sport": "TENNIS", "indoor": True}}})
        )
        nested = [f["nested"] for f in query["query"]["bool"]["filter"] if "nested" in f]
        assert len(nested) == 1
        assert nested[0]["path"] == "courts"
        assert nested[0]["query"]["bool"]["filter"] == [
            {"term": {"courts.isActive": True}},
            {"term": {"courts.sport": "TENNIS"}},
            {"term": {"courts.indoor": True}},
        ]


class TestSort:
    """Sort clauses and tie-breaks."""

    def test_relevance(self):
        """Test relevance sorts by score then the createdAt/id tie-break."""
        query = build_facilities_search_query(spec_for({"term": "x"}))
        assert query["sort"] == [{"_score": {"order": "desc"}}, *TIE_BREAK_SORT]

    def test_distance(self):
        """Test distance sorts by arc distance in meters and tracks scores."""
        query = build_facilities_search_query(
            spec_for({"geo": {"lat": 1.0, "lon": 2.0}, "sort": {"field": "distance"}})
        )
        assert query["sort"][0] == {
            "_geo_distance": {
                "location": {"lat": 1.0, "lon": 2.0},
                "order": "asc",
                "unit": "m",
                "distance_type": "arc",
            }
        }
        assert query["sort"][1:] == TIE_BREAK_SORT
        assert query["track_scores"] is True

    def test_field_sort_missing_last(self):
        """Test field sorts put documents without the field last."""
        query = build_facilities_search_query(spec_for({"sort": {"field": "price", "direction": "asc"}}))
        assert query["sort"][0] == {"priceFrom": {"order": "asc", "missing": "_last"}}
        name_query = build_facilities_search_query(spec_for({"sort": "name"}))
        assert name_query["sort"][0] == {"name.keyword": {"order": "desc", "missing": "_last"}}

    def test_created_at_sort(self):
        """Test createdAt sort only needs the id tie-break."""
        query = build_facilities_search_query(spec_for({"sort": {"field": "createdAt", "direction": "asc"}}))
        assert query["sort"] == [{"createdAt": {"order": "asc"}}, {"id": {"order": "asc"}}]

    def test_distance_without_geo_rejected_at_build(self):
        """Test a hand-built spec with distance sort and no geo is refused."""
        spec = FilterSpec(sort=SortSpec(field="distance", direction="asc"), page=OffsetPage(limit=10))
        with pytest.raises(InputError):
            build_facilities_search_query(spec)

    def test_relational_surface_rejected(self):
        """Test the index builder refuses relational surfaces."""
        with pytest.raises(ValueError):
            SearchQueryBuilder(FACILITY_RELATIONAL_SURFACE)


class TestPaging:
    """from/size."""

    def test_page_offset(self):
        """Test page 3 of 5 starts at 10."""
        query = build_facilities_search_query(spec_for({"page": 3, "limit": 5}))
        assert query["from"] == 10
        assert query["size"] == 5

    def test_cursor_offset(self):
        """Test the cursor is the offset."""
        assert build_facilities_search_query(spec_for({"cursor": "40", "limit": 20}))["from"] == 40

    def test_garbage_cursor_restarts(self):
        """Test a malformed cursor is offset 0."""
        assert resolve_offset(spec_for({"cursor": "not-a-number"})) == 0
        assert resolve_offset(spec_for({"cursor": None})) == 0

    def test_cursor_past_window_restarts(self):
        """Test a cursor whose page would end past the result window is offset 0."""
        assert resolve_offset(spec_for({"cursor": "9980", "limit": 20})) == 9980
        assert resolve_offset(spec_for({"cursor": "9990", "limit": 20})) == 0

    def test_page_past_window_rejected_at_build(self):
        """Test a hand-built offset page past the result window is refused."""
        spec = FilterSpec(sort=SortSpec(field="relevance", direction="desc"), page=OffsetPage(offset=9990, limit=20))
        with pytest.raises(InputError):
            build_facilities_search_query(spec)


class TestDecodeResponse:
    """Raw response -> ResultPage[SearchHit]."""

    def test_offset_page(self):
        """Test hits, total, max_score and has_more."""
        spec = spec_for({"term": "tennis", "limit": 2})
        response = {
            "hits": {
                "total": {"value": 3, "relation": "eq"},
                "max_score": 2.5,
                "hits": [
                    {"_id": "a", "_score": 2.5, "_source": source("a")},
                    {"_id": "b", "_score": 1.0, "_source": source("b")},
                ],
            }
        }
        page = SearchQueryBuilder().decode_response(spec, response)
        assert page.total == 3
        assert page.max_score == 2.5
        assert [hit.document.id for hit in page.data] == ["a", "b"]
        assert page.data[0].score == 2.5
        assert page.data[0].distance_meters is None
        assert page.meta.has_more is True
        assert page.meta.next_cursor == "2"
        assert page.meta.offset == 0

    def test_no_term_max_score_zero(self):
        """Test max_score is 0 without a search term."""
        spec = spec_for({})
        response = {"hits": {"total": {"value": 0}, "max_score": None, "hits": []}}
        page = SearchQueryBuilder().decode_response(spec, response)
        assert page.max_score == 0.0
        assert page.data == []
        assert page.meta.has_more is False
        assert page.meta.next_cursor is None

    def test_distance_from_sort_value(self):
        """Test distance sort exposes the sort value as the distance."""
        spec = spec_for({"geo": {"lat": HCMC_LAT, "lon": HCMC_LON}, "sort": {"field": "distance"}})
        response = {
            "hits": {
                "total": {"value": 1},
                "hits": [{"_id": "a", "_score": None, "_source": source("a"), "sort": [1234.5, "x", "a"]}],
            }
        }
        page = SearchQueryBuilder().decode_response(spec, response)
        assert page.data[0].distance_meters == 1234.5
        assert page.data[0].score == 0.0

    def test_distance_computed_when_not_sorting_by_it(self):
        """Test geo without distance sort still attaches a haversine distance."""
        spec = spec_for({"geo": {"lat": HCMC_LAT, "lon": HCMC_LON}, "sort": {"field": "name"}})
        response = {"hits": {"total": {"value": 1}, "hits": [{"_id": "a", "_score": 1.0, "_source": source("a")}]}}
        page = SearchQueryBuilder().decode_response(spec, response)
        assert page.data[0].distance_meters == pytest.approx(0.0)

    def test_cursor_mode_meta(self):
        """Test cursor mode echoes the cursor and advances by the page size."""
        spec = spec_for({"cursor": "2", "limit": 2})
        response = {
            "hits": {
                "total": {"value": 5},
                "hits": [
                    {"_id": "c", "_score": 1.0, "_source": source("c")},
                    {"_id": "d", "_score": 1.0, "_source": source("d")},
                ],
            }
        }
        page = SearchQueryBuilder().decode_response(spec, response)
        assert page.meta.cursor == "2"
        assert page.meta.offset is None
        assert page.meta.next_cursor == "4"

    def test_last_reachable_page(self):
        """Test the page at the edge of the result window has no next_cursor."""
        spec = spec_for({"cursor": "9980", "limit": 20})
        hits = [{"_id": str(i), "_score": 1.0, "_source": source(str(i))} for i in range(20)]
        response = {"hits": {"total": {"value": 15_000}, "hits": hits}}
        page = SearchQueryBuilder().decode_response(spec, response)
        assert page.total == 15_000
        assert page.meta.has_more is False
        assert page.meta.next_cursor is None
