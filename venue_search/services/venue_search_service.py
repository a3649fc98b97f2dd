"""Facility search facade exposed to listing use-cases."""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy.orm import Session

from venue_search.common.pagination import ResultPage
from venue_search.filtering.normalize import normalize_filter_spec
from venue_search.filtering.surfaces import FACILITY_INDEX_SURFACE, SearchSurface
from venue_search.schemas.filter_spec import FilterSpec
from venue_search.schemas.search import IndexedDocument, ReindexResult, SearchHit
from venue_search.search.gateway import SearchIndexGateway
from venue_search.search.health import get_health_info
from venue_search.search.reindex import ReindexOrchestrator

logger = logging.getLogger(__name__)


class VenueSearchService:
    """search / get_by_id / reindex_one / reindex_all / index_stats / health."""

    def __init__(
        self,
        gateway: SearchIndexGateway | None = None,
        orchestrator: ReindexOrchestrator | None = None,
        surface: SearchSurface = FACILITY_INDEX_SURFACE,
    ):
        self.gateway = gateway or SearchIndexGateway()
        self.orchestrator = orchestrator or ReindexOrchestrator(self.gateway)
        self.surface = surface

    def search(self, request: Mapping[str, Any] | FilterSpec | None) -> ResultPage[SearchHit]:
        spec = normalize_filter_spec(request, self.surface)
        return self.gateway.search(spec)

    def get_by_id(self, facility_id: uuid.UUID | str) -> IndexedDocument | None:
        return self.gateway.get_by_id(facility_id)

    def reindex_one(self, db: Session, facility_id: uuid.UUID | str) -> dict[str, str]:
        action = self.gateway.index_one(db, facility_id)
        if action == "indexed":
            message = f"Facility {facility_id} indexed"
        else:
            message = f"Facility {facility_id} removed from index"
        logger.info(message)
        return {"message": message}

    def reindex_all(self, db: Session, filters: Mapping[str, Any] | None = None, **options: Any) -> ReindexResult:
        return self.orchestrator.reindex_all(db, filters, **options)

    def index_stats(self) -> dict[str, Any]:
        return self.gateway.index_stats()

    def health(self, db: Session | None = None) -> dict[str, Any]:
        return get_health_info(db, client=self.gateway.resolve_client())
