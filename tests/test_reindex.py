"""Tests for the full reindex orchestrator."""

from unittest.mock import MagicMock

import pytest
from elasticsearch import ConnectionError as ESConnectionError

from venue_search.core.config import settings
from venue_search.core.errors import InputError
from venue_search.models.facility import Facility
from venue_search.models.search_indexing import SearchSyncRun
from venue_search.search.gateway import SearchIndexGateway
from venue_search.search.reindex import ReindexOrchestrator
from tests.conftest import TEST_INDEX
from tests.helpers.seed import BASE_TIME, create_facilities, create_facility


class TestReindexAll:
    """Streaming, mapping and loading."""

    def test_indexes_published_facilities(self, db, gateway, fake_es):
        """Test every published, live facility ends up in the index."""
        published = create_facilities(db, 3)
        create_facility(db, "Draft", is_published=False)
        create_facility(db, "Deleted", deleted_at=published[0].created_at)

        result = ReindexOrchestrator(gateway).reindex_all(db)

        assert result.indexed == 3
        assert result.errors == []
        assert set(fake_es.store[TEST_INDEX]) == {str(f.id) for f in published}

    def test_partial_failure_is_reported_per_entity(self, db, gateway, fake_es):
        """Test a row that cannot be projected is reported and the rest still load."""
        good = create_facilities(db, 2)
        bad = create_facility(db, "No Location", latitude=None, longitude=None)

        result = ReindexOrchestrator(gateway).reindex_all(db)

        assert result.indexed == 2
        assert result.errors == [f"{bad.id}: Facility has no coordinates"]
        assert set(fake_es.store[TEST_INDEX]) == {str(f.id) for f in good}

    def test_batches(self, db, gateway, fake_es):
        """Test rows are streamed in batches and each batch is one bulk request."""
        facilities = create_facilities(db, 5)
        original_bulk = fake_es.bulk
        fake_es.bulk = MagicMock(side_effect=original_bulk)

        result = ReindexOrchestrator(gateway, batch_size=2).reindex_all(db)

        assert result.indexed == 5
        assert fake_es.bulk.call_count == 3
        assert len(fake_es.store[TEST_INDEX]) == len(facilities)

    def test_offset_and_limit(self, db, gateway, fake_es):
        """Test offset/limit select a window of the creation-ordered stream."""
        facilities = create_facilities(db, 5)

        result = ReindexOrchestrator(gateway, batch_size=2).reindex_all(db, offset=1, limit=3)

        assert result.indexed == 3
        assert set(fake_es.store[TEST_INDEX]) == {str(f.id) for f in facilities[1:4]}

    def test_filters_and_unpublished(self, db, gateway, fake_es):
        """Test raw filters narrow the candidates and unpublished rows can be included."""
        hue_draft = create_facility(db, "Hue Draft", city="Hue", is_published=False)
        hue_live = create_facility(db, "Hue Live", city="Hue")
        create_facility(db, "Saigon", city="Ho Chi Minh City")

        result = ReindexOrchestrator(gateway).reindex_all(db, {"city": "Hue"}, include_unpublished=True)

        assert result.indexed == 2
        assert set(fake_es.store[TEST_INDEX]) == {str(hue_draft.id), str(hue_live.id)}

    def test_unknown_filter_rejected(self, db, gateway):
        """Test filters outside the facility listing fields raise InputError."""
        with pytest.raises(InputError):
            ReindexOrchestrator(gateway).reindex_all(db, {"password": "x"})
        assert db.query(SearchSyncRun).count() == 0

    def test_validate_coords(self, db, gateway, fake_es):
        """Test out-of-range coordinates are errors only when validation is on."""
        broken = create_facility(db, "Off The Map", latitude=95.0)

        strict = ReindexOrchestrator(gateway).reindex_all(db, validate_coords=True)
        assert strict.indexed == 0
        assert strict.errors == [f"{broken.id}: invalid coordinates (95.0, {broken.longitude})"]

        lenient = ReindexOrchestrator(gateway).reindex_all(db)
        assert lenient.indexed == 1

    def test_clear_index(self, db, gateway, fake_es):
        """Test clear_index drops documents that no longer have a row."""
        fake_es.store[TEST_INDEX]["stale"] = {"id": "stale"}
        create_facility(db, "Fresh")

        ReindexOrchestrator(gateway).reindex_all(db, clear_index=True)

        assert "stale" not in fake_es.store[TEST_INDEX]
        assert len(fake_es.store[TEST_INDEX]) == 1


class TestReindexFailures:
    """Runs that cannot load."""

    def test_disabled(self, db, monkeypatch):
        """Test a disabled index returns one error and records a disabled run."""
        monkeypatch.setattr(settings, "ELASTICSEARCH_ENABLED", False)
        create_facility(db, "Arena")

        result = ReindexOrchestrator(SearchIndexGateway(index_name=TEST_INDEX)).reindex_all(db)

        assert result.indexed == 0
        assert result.errors == ["index: Elasticsearch is disabled"]
        assert db.query(SearchSyncRun).one().status == "disabled"

    def test_bulk_request_failure(self, db):
        """Test a failed bulk request reports every document of the batch."""
        client = MagicMock()
        client.bulk.side_effect = ESConnectionError("connection refused")
        facilities = create_facilities(db, 2)

        result = ReindexOrchestrator(SearchIndexGateway(client=client, index_name=TEST_INDEX)).reindex_all(db)

        assert result.indexed == 0
        assert sorted(result.errors) == sorted(
            f"{f.id}: Search index unavailable during bulk index" for f in facilities
        )
        assert db.query(SearchSyncRun).one().status == "failed"


class TestSyncRun:
    """Run registry."""

    def test_run_recorded(self, db, gateway):
        """Test a finished run records counts, errors and options."""
        create_facilities(db, 2)
        bad = create_facility(db, "No Location", latitude=None)

        ReindexOrchestrator(gateway).reindex_all(db, limit=10)

        run = db.query(SearchSyncRun).one()
        assert run.run_type == "full"
        assert run.status == "done"
        assert run.indexed_count == 2
        assert run.failed_count == 1
        assert run.details["errors"] == [f"{bad.id}: Facility has no coordinates"]
        assert run.details["options"]["limit"] == 10
        assert run.started_at is not None
        assert run.finished_at is not None


def write_after_first_batch(gateway: SearchIndexGateway, write) -> None:
    """Run ``write`` right after the first batch has been loaded."""
    bulk_index = gateway.bulk_index
    loaded = []

    def bulk_index_then_write(documents):
        result = bulk_index(documents)
        if not loaded:
            write()
        loaded.append(documents)
        return result

    gateway.bulk_index = bulk_index_then_write


class TestConcurrentWrites:
    """Rows changing while the run pages through them."""

    def test_last_row_of_batch_unpublished(self, db, gateway, fake_es):
        """Test unpublishing the row that ended a batch does not skip the next one."""
        facilities = create_facilities(db, 4)
        write_after_first_batch(
            gateway,
            lambda: db.query(Facility)
            .filter(Facility.id == facilities[1].id)
            .update({"is_published": False}, synchronize_session=False),
        )

        result = ReindexOrchestrator(gateway, batch_size=2).reindex_all(db)

        assert result.errors == []
        assert result.indexed == 4
        assert set(fake_es.store[TEST_INDEX]) == {str(f.id) for f in facilities}

    def test_last_row_of_batch_deleted(self, db, gateway, fake_es):
        """Test deleting the row that ended a batch does not end the run early."""
        facilities = create_facilities(db, 4)
        write_after_first_batch(
            gateway,
            lambda: db.query(Facility)
            .filter(Facility.id == facilities[1].id)
            .delete(synchronize_session=False),
        )

        result = ReindexOrchestrator(gateway, batch_size=2).reindex_all(db)

        assert result.errors == []
        assert result.indexed == 4
        assert {str(f.id) for f in facilities[2:]} <= set(fake_es.store[TEST_INDEX])

    def test_row_inserted_behind_the_stream(self, db, gateway, fake_es):
        """Test a row created before the current position is left for the outbox, not duplicated."""
        facilities = create_facilities(db, 4)
        write_after_first_batch(gateway, lambda: create_facility(db, "Backdated", created_at=BASE_TIME))

        result = ReindexOrchestrator(gateway, batch_size=2).reindex_all(db)

        assert result.errors == []
        assert result.indexed == 4
        assert set(fake_es.store[TEST_INDEX]) == {str(f.id) for f in facilities}
