"""Relational listing: FilterSpec -> predicate tree -> store -> typed page."""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from venue_search.common.pagination import PaginationCodec, ResultPage
from venue_search.db.store import SqlAlchemyStore
from venue_search.filtering.normalize import normalize_filter_spec
from venue_search.filtering.relational_query import RelationalQueryBuilder
from venue_search.filtering.surfaces import (
    COURT_RELATIONAL_SURFACE,
    FACILITY_RELATIONAL_SURFACE,
    SearchSurface,
)
from venue_search.models.facility import Court, Facility
from venue_search.schemas.filter_spec import FilterSpec
from venue_search.schemas.listing import CourtOut, FacilityOut

logger = logging.getLogger(__name__)


class ListingService:
    """Lists rows of one model through one relational surface."""

    def __init__(
        self,
        surface: SearchSurface,
        model: Any,
        serialize: Callable[[Any, bool], BaseModel],
    ):
        self.surface = surface
        self.model = model
        self.serialize = serialize
        self.builder = RelationalQueryBuilder(surface)

    def list(self, db: Session, request: Mapping[str, Any] | FilterSpec | None = None) -> ResultPage[Any]:
        """
        One page of rows.

        Offset mode returns the total and offset-derived metadata. Cursor mode
        fetches one extra row to decide ``has_more``; ``next_cursor`` is the id
        of the last returned row.

        Raises:
            InputError: malformed request (before any query runs).
            BackendUnavailable: store unreachable.
        """
        spec = normalize_filter_spec(request, self.surface)
        query = self.builder.build_query(spec)
        store = SqlAlchemyStore(db, self.model)

        total = store.count(query.where)

        if spec.is_cursor_mode:
            rows = store.find_many(
                query.where,
                query.order_by,
                skip=query.skip,
                take=query.take + 1,
                cursor=query.cursor,
                include=query.include,
            )
            has_more = len(rows) > query.take
            rows = rows[: query.take]
            meta = PaginationCodec.keyset_meta(spec.page.cursor, spec.limit, rows, has_more, self.surface.id_field)
        else:
            rows = store.find_many(
                query.where,
                query.order_by,
                skip=query.skip,
                take=query.take,
                include=query.include,
            )
            meta = PaginationCodec.offset_meta(query.skip, spec.limit, len(rows), total)

        logger.debug(f"{self.surface.name}: {len(rows)} of {total} rows")
        data = [self.serialize(row, spec.include_relations) for row in rows]
        return ResultPage[Any](data=data, total=total, meta=meta)


class FacilityListingService(ListingService):
    """Owner/admin facility listing."""

    def __init__(self):
        super().__init__(FACILITY_RELATIONAL_SURFACE, Facility, FacilityOut.from_model)


class CourtListingService(ListingService):
    """Court browsing."""

    def __init__(self):
        super().__init__(COURT_RELATIONAL_SURFACE, Court, lambda court, _include: CourtOut.model_validate(court))
