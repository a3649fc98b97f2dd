"""End-to-end tests for VenueSearchService over the in-memory index."""

import uuid

import pytest

from venue_search.core.errors import InputError
from venue_search.search.reindex import ReindexOrchestrator
from venue_search.services.venue_search_service import VenueSearchService
from tests.helpers.seed import HCMC_LAT, HCMC_LON, create_facility, offset_north


@pytest.fixture
def service(gateway) -> VenueSearchService:
    return VenueSearchService(gateway=gateway, orchestrator=ReindexOrchestrator(gateway))


class TestSearch:
    """search()."""

    def test_term_geo_distance_sort(self, db, service):
        """Test a tennis search near District 1 returns only the matching facility, with its distance."""
        tennis = create_facility(
            db,
            "Saigon Tennis Club",
            latitude=offset_north(HCMC_LAT, 3000),
            longitude=HCMC_LON,
            courts=[{"sport": "TENNIS"}],
        )
        create_facility(
            db,
            "Riverside Badminton Hall",
            latitude=offset_north(HCMC_LAT, 1000),
            longitude=HCMC_LON,
            courts=[{"sport": "BADMINTON"}],
        )
        service.reindex_all(db)

        page = service.search(
            {
                "term": "tennis",
                "geo": {"lat": HCMC_LAT, "lon": HCMC_LON, "radius": "10km"},
                "sort": {"field": "distance", "direction": "asc"},
                "page": 1,
                "limit": 5,
            }
        )

        assert page.total == 1
        assert [hit.document.id for hit in page.data] == [str(tennis.id)]
        assert page.data[0].distance_meters == pytest.approx(3000, rel=0.01)
        assert page.meta.has_more is False
        assert page.meta.next_cursor is None

    def test_distance_sort_without_geo(self, db, service, fake_es):
        """Test sort=distance without geo is rejected before the index is queried."""
        with pytest.raises(InputError):
            service.search({"sort": {"field": "distance", "direction": "asc"}})
        assert fake_es.searches == []

    def test_nearest_first(self, db, service):
        """Test ascending distance order and the radius cut-off."""
        far = create_facility(db, "Far", latitude=offset_north(HCMC_LAT, 8000))
        near = create_facility(db, "Near", latitude=offset_north(HCMC_LAT, 500))
        mid = create_facility(db, "Mid", latitude=offset_north(HCMC_LAT, 4000))
        create_facility(db, "Outside", latitude=offset_north(HCMC_LAT, 20_000))
        service.reindex_all(db)

        page = service.search({"geo": {"lat": HCMC_LAT, "lon": HCMC_LON, "radius": "10km"}, "sort": "distance"})

        assert [hit.document.id for hit in page.data] == [str(near.id), str(mid.id), str(far.id)]
        distances = [hit.distance_meters for hit in page.data]
        assert distances == sorted(distances)

    def test_fuzzy_term(self, db, service):
        """Test a one-letter typo still matches."""
        club = create_facility(db, "Lan Anh Tennis Club")
        service.reindex_all(db)
        page = service.search({"term": "tenis"})
        assert [hit.document.id for hit in page.data] == [str(club.id)]
        assert page.max_score > 0

    def test_unpublished_hidden(self, db, service):
        """Test unpublished facilities never match a default search."""
        create_facility(db, "Draft Tennis", is_published=False)
        service.reindex_all(db, include_unpublished=True)
        assert service.search({"term": "tennis"}).total == 0
        assert service.search({"term": "tennis", "filters": {"isPublished": False}}).total == 1

    def test_cursor_pages_cover_results(self, db, service):
        """Test following next_cursor visits every hit exactly once."""
        facilities = [create_facility(db, f"Court House {i}", rating=float(i % 3)) for i in range(7)]
        service.reindex_all(db)

        seen = []
        page = service.search({"cursor": None, "limit": 3, "sort": "rating"})
        seen.extend(hit.document.id for hit in page.data)
        while page.meta.next_cursor:
            page = service.search({"cursor": page.meta.next_cursor, "limit": 3, "sort": "rating"})
            seen.extend(hit.document.id for hit in page.data)

        assert len(seen) == len(facilities)
        assert set(seen) == {str(f.id) for f in facilities}

    def test_court_filters(self, db, service):
        """Test nested court filters only consider active courts."""
        indoor = create_facility(db, "Indoor", courts=[{"sport": "BADMINTON", "indoor": True}])
        create_facility(db, "Closed Indoor", courts=[{"sport": "BADMINTON", "indoor": True, "is_active": False}])
        service.reindex_all(db)

        page = service.search({"filters": {"courts": {"sport": "BADMINTON", "indoor": True}}})
        assert [hit.document.id for hit in page.data] == [str(indoor.id)]


class TestMaintenance:
    """reindex_one / get_by_id / stats / health."""

    def test_reindex_one(self, db, service):
        """Test reindex_one reports what it did."""
        facility = create_facility(db, "Arena")
        assert service.reindex_one(db, facility.id) == {"message": f"Facility {facility.id} indexed"}
        assert service.get_by_id(facility.id).name == "Arena"

        facility.is_published = False
        db.flush()
        assert service.reindex_one(db, facility.id) == {"message": f"Facility {facility.id} removed from index"}
        assert service.get_by_id(facility.id) is None

    def test_reindex_one_missing(self, db, service):
        """Test an unknown id is removed rather than failing."""
        missing = uuid.uuid4()
        assert service.reindex_one(db, missing) == {"message": f"Facility {missing} removed from index"}

    def test_stats_and_health(self, db, service):
        """Test diagnostics go through the same client."""
        create_facility(db, "Arena")
        service.reindex_all(db)
        assert service.index_stats()["doc_count"] == 1
        health = service.health(db)
        assert health["reachable"] is True
        assert health["last_sync_run"]["indexed_count"] == 1
