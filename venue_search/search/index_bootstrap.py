"""Index bootstrap utilities for the facilities index."""

import logging
from typing import Any

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from venue_search.core.config import settings
from venue_search.search.es_client import get_es_client

logger = logging.getLogger(__name__)

FOLDING_ANALYZER = "folding"


def build_facilities_mapping() -> dict[str, Any]:
    """
    Build Elasticsearch mapping for the facilities index.

    Returns a mapping dictionary with:
    - keyword fields for filtering (ids, city, ward, sport)
    - accent-insensitive text fields for name/address/description
    - a geo_point location and nested courts
    """
    text_with_keyword = {
        "type": "text",
        "analyzer": FOLDING_ANALYZER,
        "fields": {"keyword": {"type": "keyword", "ignore_above": 256}},
    }
    return {
        "dynamic": "strict",
        "properties": {
            "id": {"type": "keyword"},
            "ownerId": {"type": "keyword"},
            "slug": {"type": "keyword"},
            "name": text_with_keyword,
            "address": {"type": "text", "analyzer": FOLDING_ANALYZER},
            "description": {"type": "text", "analyzer": FOLDING_ANALYZER},
            "ward": {"type": "keyword"},
            "city": {"type": "keyword"},
            "location": {"type": "geo_point"},
            "isPublished": {"type": "boolean"},
            "priceFrom": {"type": "integer"},
            "rating": {"type": "float"},
            "createdAt": {"type": "date"},
            "updatedAt": {"type": "date"},
            "courts": {
                "type": "nested",
                "properties": {
                    "id": {"type": "keyword"},
                    "name": {"type": "text", "analyzer": FOLDING_ANALYZER},
                    "sport": {"type": "keyword"},
                    "surface": {"type": "keyword"},
                    "indoor": {"type": "boolean"},
                    "isActive": {"type": "boolean"},
                },
            },
        },
    }


def build_facilities_settings() -> dict[str, Any]:
    """Index settings; shards/replicas come from env (dev defaults 1/0)."""
    return {
        "number_of_shards": settings.ELASTICSEARCH_NUMBER_OF_SHARDS,
        "number_of_replicas": settings.ELASTICSEARCH_NUMBER_OF_REPLICAS,
        "analysis": {
            "analyzer": {
                FOLDING_ANALYZER: {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "asciifolding", "trim"],
                }
            }
        },
    }


def get_facilities_index_name() -> str:
    """Get the facilities index name."""
    return f"{settings.ELASTICSEARCH_INDEX_PREFIX}_facilities"


def _require_client(client: Elasticsearch | None) -> Elasticsearch:
    client = client if client is not None else get_es_client()
    if client is None:
        raise ValueError("Elasticsearch is disabled or unavailable")
    return client


def create_facilities_index(client: Elasticsearch | None = None, index_name: str | None = None) -> str:
    """
    Create the facilities index with mapping and settings.

    Returns:
        The created index name.

    Raises:
        ValueError if Elasticsearch is disabled; transport/API errors if creation fails.
    """
    client = _require_client(client)
    index_name = index_name or get_facilities_index_name()

    try:
        client.indices.create(
            index=index_name,
            settings=build_facilities_settings(),
            mappings=build_facilities_mapping(),
        )
        logger.info(f"Created facilities index: {index_name}")
        return index_name
    except (TransportError, ApiError) as e:
        logger.error(f"Failed to create facilities index {index_name}: {e}")
        raise


def delete_facilities_index(client: Elasticsearch | None = None, index_name: str | None = None) -> bool:
    """
    Delete the facilities index.

    Returns:
        True if an index was deleted, False if it did not exist.
    """
    client = _require_client(client)
    index_name = index_name or get_facilities_index_name()

    try:
        client.indices.delete(index=index_name)
        logger.info(f"Deleted facilities index: {index_name}")
        return True
    except NotFoundError:
        logger.debug(f"Facilities index {index_name} did not exist")
        return False
    except (TransportError, ApiError) as e:
        logger.error(f"Failed to delete facilities index {index_name}: {e}")
        raise


def ensure_facilities_index(client: Elasticsearch | None = None, index_name: str | None = None) -> dict[str, Any]:
    """
    Ensure the facilities index exists, creating it if needed.

    Returns:
        Dictionary with:
        - created: bool (whether the index was created)
        - index_name: str
    """
    client = _require_client(client)
    index_name = index_name or get_facilities_index_name()

    if client.indices.exists(index=index_name):
        logger.debug(f"Facilities index already exists: {index_name}")
        return {"created": False, "index_name": index_name}

    logger.info("Creating facilities index")
    create_facilities_index(client, index_name)
    return {"created": True, "index_name": index_name}


def recreate_facilities_index(client: Elasticsearch | None = None, index_name: str | None = None) -> dict[str, Any]:
    """Drop (if present) and create the facilities index."""
    client = _require_client(client)
    index_name = index_name or get_facilities_index_name()

    deleted = delete_facilities_index(client, index_name)
    create_facilities_index(client, index_name)
    return {"created": True, "deleted": deleted, "index_name": index_name}
