"""Full reindex of facilities from the relational store into the search index."""

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from venue_search.core.config import settings
from venue_search.core.errors import DocumentBuildError, SearchError
from venue_search.db.store import SqlAlchemyStore
from venue_search.filtering.normalize import normalize_field_filters
from venue_search.filtering.predicates import And, Equals, PredicateBuilder
from venue_search.filtering.surfaces import FACILITY_RELATIONAL_SURFACE
from venue_search.models.facility import Facility
from venue_search.models.search_indexing import SearchSyncRun, SearchSyncRunStatus, SearchSyncRunType
from venue_search.schemas.search import IndexedDocument, ReindexResult
from venue_search.search.document_builder import build_facility_document
from venue_search.search.gateway import SearchIndexGateway

logger = logging.getLogger(__name__)

# Stream in creation order; id makes the keyset total
STREAM_ORDER: tuple[tuple[str, str], ...] = (("created_at", "asc"), ("id", "asc"))
MAX_RECORDED_ERRORS = 100


def valid_coordinates(facility: Facility) -> bool:
    lat, lon = facility.latitude, facility.longitude
    if lat is None or lon is None:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


class ReindexOrchestrator:
    """
    Streams facilities page by page, maps each one, and bulk-loads every page.

    Failures are collected as "<id>: <reason>" and never abort the run.
    """

    def __init__(self, gateway: SearchIndexGateway | None = None, batch_size: int | None = None):
        self.gateway = gateway or SearchIndexGateway()
        self.batch_size = batch_size or settings.SEARCH_REINDEX_BATCH_SIZE
        self.predicates = PredicateBuilder(FACILITY_RELATIONAL_SURFACE)

    def candidate_predicate(self, filters: Mapping[str, Any] | None, include_unpublished: bool) -> And:
        """Not soft-deleted; published only unless asked otherwise or filtered explicitly."""
        field_filters = normalize_field_filters(filters, FACILITY_RELATIONAL_SURFACE)
        published = None
        if not include_unpublished and "isPublished" not in field_filters:
            published = Equals("is_published", True)
        return self.predicates.merge_where(
            self.predicates.base_predicate(),
            self.predicates.from_field_filters(field_filters),
            published,
        )

    def _start_run(self, db: Session, options: dict[str, Any]) -> SearchSyncRun:
        run = SearchSyncRun(
            run_type=SearchSyncRunType.FULL.value,
            status=SearchSyncRunStatus.RUNNING.value,
            started_at=datetime.now(UTC),
            details={"options": options},
        )
        db.add(run)
        db.commit()
        return run

    def _finish_run(
        self,
        db: Session,
        run: SearchSyncRun,
        status: SearchSyncRunStatus,
        indexed: int,
        errors: list[str],
    ) -> None:
        run.status = status.value
        run.indexed_count = indexed
        run.failed_count = len(errors)
        run.finished_at = datetime.now(UTC)
        run.details = {**(run.details or {}), "errors": errors[:MAX_RECORDED_ERRORS]}
        db.commit()

    def _map_batch(self, rows: list[Facility], validate_coords: bool, errors: list[str]) -> list[IndexedDocument]:
        documents: list[IndexedDocument] = []
        for facility in rows:
            if validate_coords and not valid_coordinates(facility):
                errors.append(f"{facility.id}: invalid coordinates ({facility.latitude}, {facility.longitude})")
                continue
            try:
                documents.append(build_facility_document(facility))
            except DocumentBuildError as e:
                logger.warning(f"Skipping facility {facility.id}: {e.message}")
                errors.append(f"{facility.id}: {e.message}")
        return documents

    def _load_batch(self, documents: list[IndexedDocument], errors: list[str]) -> int:
        if not documents:
            return 0
        try:
            result = self.gateway.bulk_index(documents)
        except SearchError as e:
            logger.warning(f"Bulk load of {len(documents)} documents failed: {e.message}")
            errors.extend(f"{document.id}: {e.message}" for document in documents)
            return 0
        errors.extend(result.errors)
        return result.indexed

    def reindex_all(
        self,
        db: Session,
        filters: Mapping[str, Any] | None = None,
        *,
        clear_index: bool = False,
        validate_coords: bool = False,
        limit: int | None = None,
        offset: int = 0,
        include_unpublished: bool = False,
    ) -> ReindexResult:
        """
        Rebuild index documents for every candidate facility.

        Args:
            db: Database session
            filters: Optional raw filters over the facility listing fields
            clear_index: Drop and recreate the index first
            validate_coords: Record rows with out-of-range coordinates as errors instead of loading them
            limit: Maximum number of rows to process
            offset: Number of candidate rows to skip
            include_unpublished: Also load unpublished rows

        Returns:
            ReindexResult with the number indexed and one error string per failed entity.

        Raises:
            InputError: if ``filters`` names fields the facility listing does not support.
        """
        where = self.candidate_predicate(filters, include_unpublished)
        options = {
            "clear_index": clear_index,
            "validate_coords": validate_coords,
            "limit": limit,
            "offset": offset,
            "include_unpublished": include_unpublished,
            "filters": {key: str(value) for key, value in (filters or {}).items()},
        }
        run = self._start_run(db, options)
        indexed = 0
        errors: list[str] = []

        if not self.gateway.enabled:
            errors.append("index: Elasticsearch is disabled")
            self._finish_run(db, run, SearchSyncRunStatus.DISABLED, indexed, errors)
            logger.info("Reindex skipped: Elasticsearch disabled")
            return ReindexResult(indexed=indexed, errors=errors)

        try:
            if clear_index:
                self.gateway.recreate_index()
            else:
                self.gateway.ensure_index()
        except SearchError as e:
            errors.append(f"index: {e.message}")
            self._finish_run(db, run, SearchSyncRunStatus.FAILED, indexed, errors)
            logger.error(f"Reindex aborted before loading: {e.message}")
            return ReindexResult(indexed=indexed, errors=errors)

        store = SqlAlchemyStore(db, Facility)
        after: dict[str, Any] | None = None
        skip = max(0, offset)
        remaining = limit
        batches = 0

        while remaining is None or remaining > 0:
            take = self.batch_size if remaining is None else min(self.batch_size, remaining)
            try:
                rows = store.find_many(
                    where, STREAM_ORDER, skip=skip, take=take, include=("courts",), after=after
                )
            except SearchError as e:
                errors.append(f"store: {e.message}")
                logger.error(f"Reindex stopped reading from the store: {e.message}")
                break
            if not rows:
                break

            documents = self._map_batch(rows, validate_coords, errors)
            indexed += self._load_batch(documents, errors)
            batches += 1
            logger.info(f"Reindex batch {batches}: {len(rows)} rows, {indexed} indexed so far")

            # Strict keyset on the last row's sort values; the row itself may change
            after = {field: getattr(rows[-1], field) for field, _ in STREAM_ORDER}
            skip = 0
            if remaining is not None:
                remaining -= len(rows)
            for row in rows:
                db.expunge(row)
            if len(rows) < take:
                break

        status = SearchSyncRunStatus.FAILED if errors and indexed == 0 else SearchSyncRunStatus.DONE
        self._finish_run(db, run, status, indexed, errors)
        logger.info(f"Reindex finished: {indexed} indexed, {len(errors)} errors")
        return ReindexResult(indexed=indexed, errors=errors)
