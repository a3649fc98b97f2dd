"""Shared capability of the relational and search-index query builders."""

from typing import Any, Protocol, runtime_checkable

from venue_search.schemas.filter_spec import FilterSpec


@runtime_checkable
class Queryable(Protocol):
    """Translates a normalized FilterSpec into one backend's query value."""

    def build_query(self, spec: FilterSpec) -> Any: ...
