"""Health check utilities for the search index and its sync bookkeeping."""

import logging
from typing import Any

from elasticsearch import ApiError, Elasticsearch, TransportError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from venue_search.core.config import settings
from venue_search.models.search_indexing import SearchOutbox, SearchOutboxStatus, SearchSyncRun
from venue_search.search.es_client import get_es_client, response_body
from venue_search.search.index_bootstrap import get_facilities_index_name

logger = logging.getLogger(__name__)


def _sync_info(db: Session | None) -> dict[str, Any]:
    if db is None:
        return {"last_sync_run": None, "pending_outbox": None}
    try:
        last_run = db.query(SearchSyncRun).order_by(SearchSyncRun.created_at.desc()).first()
        pending = db.query(SearchOutbox).filter(SearchOutbox.status == SearchOutboxStatus.PENDING.value).count()
    except SQLAlchemyError as e:
        logger.warning(f"Failed to read search sync bookkeeping: {e}")
        return {"last_sync_run": None, "pending_outbox": None}

    last_sync_run = None
    if last_run is not None:
        last_sync_run = {
            "id": str(last_run.id),
            "run_type": last_run.run_type,
            "status": last_run.status,
            "started_at": last_run.started_at.isoformat() if last_run.started_at else None,
            "finished_at": last_run.finished_at.isoformat() if last_run.finished_at else None,
            "indexed_count": last_run.indexed_count,
            "failed_count": last_run.failed_count,
        }
    return {"last_sync_run": last_sync_run, "pending_outbox": pending}


def get_health_info(db: Session | None = None, client: Elasticsearch | None = None) -> dict[str, Any]:
    """
    Get search health information.

    Returns a dictionary with reachability, cluster status, the facilities index
    document count, the last sync run and the pending outbox size.
    Never raises exceptions (fail-open).
    """
    index_name = get_facilities_index_name()
    info: dict[str, Any] = {
        "enabled": settings.ELASTICSEARCH_ENABLED or client is not None,
        "reachable": False,
        "url": settings.ELASTICSEARCH_URL,
        "index": index_name,
        "cluster_status": None,
        "doc_count": None,
        **_sync_info(db),
    }

    if not info["enabled"]:
        return info

    client = client if client is not None else get_es_client()
    if client is None:
        return info

    try:
        cluster_health = response_body(client.cluster.health())
        info["cluster_status"] = cluster_health.get("status")
        info["reachable"] = info["cluster_status"] in ("green", "yellow", "red")
        if client.indices.exists(index=index_name):
            stats = response_body(client.indices.stats(index=index_name))
            info["doc_count"] = stats["_all"]["primaries"]["docs"]["count"]
    except (TransportError, ApiError) as e:
        logger.debug(f"Elasticsearch health check failed: {e}")
        info["reachable"] = False

    return info
