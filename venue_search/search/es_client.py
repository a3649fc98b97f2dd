"""Elasticsearch client wrapper with fail-open behavior."""

import logging
from typing import Any

from elasticsearch import ApiError, Elasticsearch, TransportError

from venue_search.core.config import settings

logger = logging.getLogger(__name__)

# Singleton client instance
_es_client: Elasticsearch | None = None


def build_es_client() -> Elasticsearch:
    """Construct a client from settings (no connectivity check)."""
    basic_auth = None
    if settings.ELASTICSEARCH_USERNAME and settings.ELASTICSEARCH_PASSWORD:
        basic_auth = (settings.ELASTICSEARCH_USERNAME, settings.ELASTICSEARCH_PASSWORD)

    return Elasticsearch(
        hosts=[settings.ELASTICSEARCH_URL],
        basic_auth=basic_auth,
        request_timeout=settings.ELASTICSEARCH_REQUEST_TIMEOUT_MS / 1000.0,  # Convert ms to seconds
        max_retries=settings.ELASTICSEARCH_RETRY_MAX,
        retry_on_timeout=settings.ELASTICSEARCH_RETRY_MAX > 0,
    )


def get_es_client() -> Elasticsearch | None:
    """
    Get Elasticsearch client singleton.

    Returns None if Elasticsearch is disabled or unavailable.
    All callers must handle None gracefully (fail-open).
    """
    global _es_client

    if not settings.ELASTICSEARCH_ENABLED:
        return None

    if _es_client is not None:
        return _es_client

    try:
        client = build_es_client()
    except (ValueError, TypeError) as e:
        logger.warning(f"Failed to initialize Elasticsearch client: {e}", exc_info=True)
        return None

    try:
        if not client.ping():
            logger.warning("Elasticsearch ping failed, client will return None")
            return None
    except (TransportError, ApiError) as e:
        logger.warning(f"Elasticsearch ping failed during initialization: {e}")
        return None

    _es_client = client
    logger.debug("Elasticsearch client initialized successfully")
    return _es_client


def reset_client() -> None:
    """Reset the singleton client (useful for testing)."""
    global _es_client
    _es_client = None


def response_body(response: Any) -> Any:
    """Plain body of a client response (``ObjectApiResponse.body``), or the value itself."""
    return getattr(response, "body", response)
