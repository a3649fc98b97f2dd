"""Database models."""

from venue_search.models.facility import Court, Facility
from venue_search.models.search_indexing import (
    SearchOutbox,
    SearchOutboxEventType,
    SearchOutboxStatus,
    SearchSyncRun,
    SearchSyncRunStatus,
    SearchSyncRunType,
)

__all__ = [
    "Facility",
    "Court",
    "SearchOutbox",
    "SearchOutboxEventType",
    "SearchOutboxStatus",
    "SearchSyncRun",
    "SearchSyncRunStatus",
    "SearchSyncRunType",
]
