"""Pagination helpers shared by index-backed search and relational listing.

Supports both offset-based pagination (page/limit, or an offset carried as a
cursor string for infinite scroll) and keyset pagination (relational cursor
anchored on the last row's identity).

The offset cursor is deliberately NOT an opaque or tamper-resistant token: it
is the next numeric offset rendered as a decimal string. Clients may send it
back verbatim; anything malformed decodes to offset 0 so infinite scroll
restarts instead of failing.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

MIN_LIMIT = 1
MAX_LIMIT = 100
# Elasticsearch refuses from+size beyond index.max_result_window (10k by default)
MAX_OFFSET = 10_000


class PageMeta(BaseModel):
    """Pagination metadata.

    Exactly one of ``offset`` (offset mode) or ``cursor`` (cursor mode) is set.
    ``next_cursor`` is None when there is nothing more to fetch; callers must
    treat its absence, not an empty string, as the termination signal.
    """

    limit: int
    offset: int | None = None
    cursor: str | None = None
    has_more: bool = Field(description="True if more items available")
    next_cursor: str | None = Field(default=None, description="Cursor for next page, null if no more")


class ResultPage(BaseModel, Generic[T]):
    """One page of results plus the total match count."""

    data: list[T]
    total: int
    max_score: float | None = None
    meta: PageMeta

    def to_json(self) -> dict[str, Any]:
        """JSON-ready dict; unset optional fields (e.g. next_cursor) are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaginationCodec:
    """Encode/decode pagination cursors and derive has_more/next_cursor."""

    @staticmethod
    def encode_offset(offset: int) -> str:
        return str(max(0, int(offset)))

    @staticmethod
    def decode_offset(cursor: str | None, limit: int = 0) -> int:
        """
        Decode an offset cursor; garbage, negative or out-of-range input yields 0.

        Out of range means the page starting there would end past ``MAX_OFFSET``
        (``offset + limit > MAX_OFFSET``).
        """
        if cursor is None:
            return 0
        text = str(cursor).strip()
        if not text.isdigit():
            return 0
        try:
            offset = int(text)
        except ValueError:
            return 0
        if offset + max(0, limit) > MAX_OFFSET:
            return 0
        return offset

    @staticmethod
    def encode_cursor(last_item: Any, id_field: str = "id") -> str:
        """Encode the keyset cursor for the row that ended a page (its identity)."""
        if isinstance(last_item, Mapping):
            value = last_item.get(id_field)
        else:
            value = getattr(last_item, id_field, None)
        if value is None:
            raise ValueError(f"Cannot build a cursor from an item without '{id_field}'")
        return str(value)

    @staticmethod
    def decode_cursor(cursor: str, id_field: str = "id") -> dict[str, str]:
        """Decode a keyset cursor into the equality anchor on the identity field."""
        return {id_field: str(cursor).strip()}

    @staticmethod
    def offset_meta(
        offset: int,
        limit: int,
        count: int,
        total: int,
        cursor: str | None = None,
        cursor_mode: bool = False,
        window: int | None = None,
    ) -> PageMeta:
        """
        Meta for an offset-addressed page: has_more iff offset + count < total.

        With a ``window``, a next page that would end past it is unreachable, so
        has_more is False and no next_cursor is produced.
        """
        has_more = offset + count < total
        if window is not None and offset + count + limit > window:
            has_more = False
        next_cursor = PaginationCodec.encode_offset(offset + count) if has_more else None
        if cursor_mode:
            return PageMeta(limit=limit, cursor=cursor, has_more=has_more, next_cursor=next_cursor)
        return PageMeta(limit=limit, offset=offset, has_more=has_more, next_cursor=next_cursor)

    @staticmethod
    def keyset_meta(
        cursor: str | None,
        limit: int,
        items: Sequence[Any],
        has_more: bool,
        id_field: str = "id",
    ) -> PageMeta:
        """Meta for a keyset page: next_cursor is the last item's identity, only if more rows exist."""
        next_cursor = None
        if has_more and items:
            next_cursor = PaginationCodec.encode_cursor(items[-1], id_field)
        return PageMeta(limit=limit, cursor=cursor, has_more=next_cursor is not None, next_cursor=next_cursor)
