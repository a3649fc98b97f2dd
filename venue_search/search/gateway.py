"""Typed gateway to the facilities index: search, reads and index maintenance."""

import logging
import uuid
from collections.abc import Sequence
from typing import Any, Literal

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError
from sqlalchemy.orm import Session

from venue_search.common.pagination import ResultPage
from venue_search.core.config import settings
from venue_search.core.errors import BackendUnavailable, SearchError, SearchQueryRejected
from venue_search.schemas.filter_spec import FilterSpec
from venue_search.schemas.search import BulkIndexResult, IndexedDocument, SearchHit
from venue_search.search.document_builder import (
    build_facility_document,
    is_indexable,
    load_facility_for_indexing,
)
from venue_search.search.es_client import get_es_client, response_body
from venue_search.search.facilities_query import SearchQueryBuilder
from venue_search.search.index_bootstrap import (
    ensure_facilities_index,
    get_facilities_index_name,
    recreate_facilities_index,
)

logger = logging.getLogger(__name__)

IndexAction = Literal["indexed", "removed"]


def translate_es_error(exc: Exception, action: str) -> SearchError:
    """Map a client exception to the package error taxonomy."""
    if isinstance(exc, TransportError):
        # Connection refused, timeouts, TLS failures
        return BackendUnavailable(f"Search index unavailable during {action}", details={"reason": str(exc)})
    if isinstance(exc, ApiError):
        status = exc.meta.status if exc.meta is not None else 500
        if status >= 500 or status == 429:
            return BackendUnavailable(
                f"Search index unavailable during {action}",
                details={"status": status, "reason": str(exc)},
            )
        return SearchQueryRejected(
            f"Search index rejected {action}",
            details={"status": status, "reason": str(exc)},
        )
    return BackendUnavailable(f"Search index unavailable during {action}", details={"reason": str(exc)})


def _bulk_item_error(result: dict[str, Any]) -> str:
    error = result.get("error")
    if isinstance(error, dict):
        return error.get("reason") or error.get("type") or "unknown error"
    if error:
        return str(error)
    return f"status {result.get('status')}"


class SearchIndexGateway:
    """
    All index round-trips go through here.

    The client is resolved lazily from the process-wide singleton unless one is
    injected. A disabled or unreachable index raises BackendUnavailable.
    """

    def __init__(self, client: Elasticsearch | None = None, index_name: str | None = None):
        self._client = client
        self.index_name = index_name or get_facilities_index_name()
        self.query_builder = SearchQueryBuilder()

    @property
    def enabled(self) -> bool:
        return self._client is not None or settings.ELASTICSEARCH_ENABLED

    def resolve_client(self) -> Elasticsearch | None:
        """The injected client, or the process-wide one (None when disabled or unreachable)."""
        return self._client if self._client is not None else get_es_client()

    @property
    def client(self) -> Elasticsearch:
        client = self.resolve_client()
        if client is None:
            raise BackendUnavailable("Elasticsearch is disabled or unavailable")
        return client

    def ensure_index(self) -> dict[str, Any]:
        try:
            return ensure_facilities_index(self.client, self.index_name)
        except (TransportError, ApiError) as e:
            raise translate_es_error(e, "index bootstrap") from e

    def recreate_index(self) -> dict[str, Any]:
        try:
            return recreate_facilities_index(self.client, self.index_name)
        except (TransportError, ApiError) as e:
            raise translate_es_error(e, "index rebuild") from e

    def search(self, spec: FilterSpec) -> ResultPage[SearchHit]:
        """
        Run a facility search.

        Raises:
            InputError: sort=distance without geo (before any request is sent).
            BackendUnavailable: index unreachable or timed out.
            SearchQueryRejected: the index refused the query.
        """
        body = self.query_builder.build_query(spec)
        client = self.client
        try:
            response = client.search(index=self.index_name, body=body)
        except (TransportError, ApiError) as e:
            logger.error(f"Facility search failed: {e}")
            raise translate_es_error(e, "search") from e
        return self.query_builder.decode_response(spec, response_body(response))

    def get_by_id(self, facility_id: uuid.UUID | str) -> IndexedDocument | None:
        """Indexed document for ``facility_id``; None if it is not in the index."""
        client = self.client
        try:
            response = client.get(index=self.index_name, id=str(facility_id))
        except NotFoundError:
            return None
        except (TransportError, ApiError) as e:
            raise translate_es_error(e, "get") from e
        response = response_body(response)
        if not response.get("found", True):
            return None
        return IndexedDocument.model_validate(response["_source"])

    def upsert(self, document: IndexedDocument) -> None:
        client = self.client
        try:
            client.index(
                index=self.index_name,
                id=document.id,
                document=document.to_source(),
                refresh="wait_for",
            )
        except (TransportError, ApiError) as e:
            raise translate_es_error(e, "index") from e
        logger.debug(f"Indexed facility {document.id}")

    def remove_one(self, facility_id: uuid.UUID | str) -> None:
        """Tombstone delete. A document that is already absent counts as removed."""
        client = self.client
        try:
            client.delete(index=self.index_name, id=str(facility_id), refresh="wait_for")
            logger.debug(f"Removed facility {facility_id} from index")
        except NotFoundError:
            logger.debug(f"Facility {facility_id} was not in the index")
        except (TransportError, ApiError) as e:
            raise translate_es_error(e, "delete") from e

    def index_one(self, db: Session, facility_id: uuid.UUID | str) -> IndexAction:
        """
        Bring the index in line with the current row for ``facility_id``.

        Published, live rows are upserted; unpublished, soft-deleted or missing
        rows are removed. Re-running with an unchanged row is a no-op in effect.

        Raises:
            DocumentBuildError: the row cannot be projected (e.g. no coordinates).
            BackendUnavailable: the store or the index is unreachable.
            SearchQueryRejected: the index refused the request.
        """
        facility = load_facility_for_indexing(db, facility_id)
        if facility is None or not is_indexable(facility):
            self.remove_one(facility_id)
            return "removed"
        self.upsert(build_facility_document(facility))
        return "indexed"

    def bulk_index(self, documents: Sequence[IndexedDocument]) -> BulkIndexResult:
        """
        Load a batch of documents. Each document succeeds or fails on its own.

        Raises:
            BackendUnavailable / SearchQueryRejected: the whole request failed.
        """
        if not documents:
            return BulkIndexResult()

        operations: list[dict[str, Any]] = []
        for document in documents:
            operations.append({"index": {"_index": self.index_name, "_id": document.id}})
            operations.append(document.to_source())

        client = self.client
        try:
            response = client.bulk(operations=operations, refresh="wait_for")
        except (TransportError, ApiError) as e:
            logger.error(f"Bulk index request failed for {len(documents)} documents: {e}")
            raise translate_es_error(e, "bulk index") from e

        response = response_body(response)
        result = BulkIndexResult()
        for item in response.get("items", []):
            _, outcome = next(iter(item.items()))
            if "error" in outcome or outcome.get("status", 200) >= 300:
                result.errors.append(f"{outcome.get('_id')}: {_bulk_item_error(outcome)}")
            else:
                result.indexed += 1
        if result.errors:
            logger.warning(f"Bulk index: {result.indexed} indexed, {len(result.errors)} failed")
        return result

    def index_stats(self) -> dict[str, Any]:
        """Diagnostics: document count, store size and cluster health for the index."""
        client = self.client
        try:
            if not client.indices.exists(index=self.index_name):
                return {"index": self.index_name, "exists": False, "doc_count": 0, "store_size_bytes": 0}
            stats = client.indices.stats(index=self.index_name)
            health = client.cluster.health(index=self.index_name)
        except (TransportError, ApiError) as e:
            raise translate_es_error(e, "stats") from e

        primaries = response_body(stats)["_all"]["primaries"]
        return {
            "index": self.index_name,
            "exists": True,
            "doc_count": primaries["docs"]["count"],
            "store_size_bytes": primaries["store"]["size_in_bytes"],
            "health": response_body(health).get("status"),
        }
