"""Backend-neutral predicate tree and its builder.

Predicates are small frozen dataclasses. Each node can compile itself to a
SQLAlchemy boolean clause for a mapped model, and can evaluate itself against
an in-memory row (mapping or object) so the same tree can be checked without
a database.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, false, inspect, or_, true
from sqlalchemy.sql.elements import ColumnElement

from venue_search.common.pagination import PaginationCodec
from venue_search.core.errors import InputError
from venue_search.filtering.normalize import classify_filter_values
from venue_search.filtering.surfaces import SearchSurface
from venue_search.schemas.filter_spec import (
    ContainsFilter,
    CursorPage,
    EqualsFilter,
    FieldFilter,
    FilterSpec,
    InFilter,
    OffsetPage,
    RangeFilter,
)

DEFAULT_ORDER_BY: list[tuple[str, str]] = [("createdAt", "desc")]
_LIKE_ESCAPE = "\\"


def _value(row: Any, field: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(field)
    return getattr(row, field, None)


def resolve_column(model: Any, field: str) -> Any:
    """Return the mapped column attribute ``model.field`` or raise InputError."""
    mapper = inspect(model)
    if field not in mapper.columns:
        raise InputError(
            f"Unknown field '{field}' for {model.__name__}",
            details={"field": field},
        )
    return getattr(model, field)


def _escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", f"{_LIKE_ESCAPE}%")
        .replace("_", f"{_LIKE_ESCAPE}_")
    )


class Predicate(ABC):
    """Base class for predicate nodes."""

    @abstractmethod
    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        """Boolean clause over ``model``'s columns."""

    @abstractmethod
    def matches(self, row: Any) -> bool:
        """Evaluate against an in-memory mapping or object."""


@dataclass(frozen=True)
class Equals(Predicate):
    field: str
    value: Any

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        column = resolve_column(model, self.field)
        if self.value is None:
            return column.is_(None)
        return column == self.value

    def matches(self, row: Any) -> bool:
        return _value(row, self.field) == self.value


@dataclass(frozen=True)
class Range(Predicate):
    """Inclusive range; a missing bound is open."""

    field: str
    gte: Any = None
    lte: Any = None

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        column = resolve_column(model, self.field)
        clauses = []
        if self.gte is not None:
            clauses.append(column >= self.gte)
        if self.lte is not None:
            clauses.append(column <= self.lte)
        if not clauses:
            return column.is_not(None)
        return and_(*clauses)

    def matches(self, row: Any) -> bool:
        value = _value(row, self.field)
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lte is not None and value > self.lte:
            return False
        return True


@dataclass(frozen=True)
class In(Predicate):
    field: str
    values: tuple[Any, ...]

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        return resolve_column(model, self.field).in_(list(self.values))

    def matches(self, row: Any) -> bool:
        return _value(row, self.field) in self.values


@dataclass(frozen=True)
class Contains(Predicate):
    """Case-insensitive substring match."""

    field: str
    value: str

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        column = resolve_column(model, self.field)
        return column.ilike(f"%{_escape_like(self.value)}%", escape=_LIKE_ESCAPE)

    def matches(self, row: Any) -> bool:
        value = _value(row, self.field)
        if value is None:
            return False
        return self.value.lower() in str(value).lower()


@dataclass(frozen=True)
class Nested(Predicate):
    """Predicate on a related row (scalar relation) or on any row of a related collection."""

    relation: str
    predicate: Predicate

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        relationships = inspect(model).relationships
        if self.relation not in relationships:
            raise InputError(
                f"Unknown relation '{self.relation}' for {model.__name__}",
                details={"field": self.relation},
            )
        prop = relationships[self.relation]
        attribute = getattr(model, self.relation)
        inner = self.predicate.to_sqlalchemy(prop.mapper.class_)
        if prop.uselist:
            return attribute.any(inner)
        return attribute.has(inner)

    def matches(self, row: Any) -> bool:
        related = _value(row, self.relation)
        if related is None:
            return False
        if isinstance(related, Sequence) and not isinstance(related, (str, bytes)):
            return any(self.predicate.matches(item) for item in related)
        return self.predicate.matches(related)


@dataclass(frozen=True)
class And(Predicate):
    parts: tuple[Predicate, ...] = ()

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        if not self.parts:
            return true()
        return and_(*(part.to_sqlalchemy(model) for part in self.parts))

    def matches(self, row: Any) -> bool:
        return all(part.matches(row) for part in self.parts)


@dataclass(frozen=True)
class Or(Predicate):
    parts: tuple[Predicate, ...] = ()

    def to_sqlalchemy(self, model: Any) -> ColumnElement[bool]:
        if not self.parts:
            return false()
        return or_(*(part.to_sqlalchemy(model) for part in self.parts))

    def matches(self, row: Any) -> bool:
        return any(part.matches(row) for part in self.parts)


def field_predicate(field: str, field_filter: FieldFilter) -> Predicate:
    """Leaf predicate for one typed filter on a plain column."""
    if isinstance(field_filter, EqualsFilter):
        return Equals(field, field_filter.value)
    if isinstance(field_filter, RangeFilter):
        return Range(field, gte=field_filter.gte, lte=field_filter.lte)
    if isinstance(field_filter, InFilter):
        return In(field, tuple(field_filter.values))
    if isinstance(field_filter, ContainsFilter):
        return Contains(field, field_filter.value)
    raise TypeError(f"Unsupported filter type: {type(field_filter).__name__}")


class PredicateBuilder:
    """
    Builds predicate trees, order-by pairs and skip/take/cursor values.

    ``build`` works on raw mappings and passes field names through verbatim:
    an unknown name only fails when the tree is compiled against a model.
    ``from_spec`` works on a normalized FilterSpec and maps logical names
    through the surface registry.
    """

    def __init__(self, surface: SearchSurface | None = None, id_field: str = "id"):
        self.surface = surface
        self.id_field = surface.id_field if surface is not None else id_field

    def build(self, filters: Mapping[str, Any] | None) -> And:
        """Predicate tree for a raw filter mapping. Nested mappings address related collections."""
        filters = filters or {}
        parts: list[Predicate] = []
        scalars: dict[str, Any] = {}
        for key, value in filters.items():
            if isinstance(value, Mapping):
                parts.append(Nested(key, self.build(value)))
            else:
                scalars[key] = value
        for field, field_filter in classify_filter_values(scalars).items():
            parts.append(field_predicate(field, field_filter))
        return And(tuple(parts))

    def from_field_filters(self, field_filters: Mapping[str, FieldFilter]) -> And:
        """Predicate tree for typed filters keyed by logical name.

        Filters on the same related collection share one Nested node, so a
        single child row has to satisfy all of them.
        """
        if self.surface is None:
            raise ValueError("from_field_filters requires a surface")
        parts: list[Predicate] = []
        nested: dict[str, list[Predicate]] = {}
        for name, field_filter in field_filters.items():
            path = self.surface.filter_fields[name].path
            if "." in path:
                relation, child_field = path.split(".", 1)
                nested.setdefault(relation, []).append(field_predicate(child_field, field_filter))
            else:
                parts.append(field_predicate(path, field_filter))
        for relation, children in nested.items():
            parts.append(Nested(relation, And(tuple(children))))
        return And(tuple(parts))

    def base_predicate(self) -> And:
        """Always-on conditions of the surface (e.g. soft-delete exclusion)."""
        if self.surface is None:
            return And()
        return And(tuple(Equals(field, value) for field, value in self.surface.base_filters.items()))

    def from_spec(self, spec: FilterSpec) -> Predicate:
        search_clause = None
        if self.surface is not None:
            search_clause = self.build_search_clause(spec.term, self.surface.search_fields)
        return self.merge_where(
            self.base_predicate(),
            self.from_field_filters(spec.field_filters),
            search_clause,
        )

    def build_order_by(self, sort: Any = None) -> list[tuple[str, str]]:
        """
        Normalize one ``{field, direction}`` or a list of them into (field, direction) pairs.

        Falls back to ``createdAt desc`` when nothing usable is given. A pair
        without a direction sorts ascending.
        """
        if sort is None:
            return list(DEFAULT_ORDER_BY)
        items = sort if isinstance(sort, (list, tuple)) else [sort]
        pairs: list[tuple[str, str]] = []
        for item in items:
            if isinstance(item, Mapping):
                field = item.get("field")
                direction = item.get("direction") or "asc"
            else:
                field = getattr(item, "field", None)
                direction = getattr(item, "direction", None) or "asc"
            if not field:
                continue
            direction = str(direction).lower()
            if direction not in ("asc", "desc"):
                raise InputError(
                    f"Unsupported sort direction '{direction}'",
                    details={"field": "sort.direction", "allowed": ["asc", "desc"]},
                )
            pairs.append((field, direction))
        return pairs or list(DEFAULT_ORDER_BY)

    @staticmethod
    def build_search_clause(term: str | None, fields: Sequence[str]) -> Or | None:
        """OR of case-insensitive substring matches of ``term`` across ``fields``."""
        if not term or not term.strip() or not fields:
            return None
        needle = term.strip()
        return Or(tuple(Contains(field, needle) for field in fields))

    @staticmethod
    def merge_where(*predicates: Predicate | None) -> And:
        """AND together the non-empty predicates."""
        parts: list[Predicate] = []
        for predicate in predicates:
            if predicate is None:
                continue
            if isinstance(predicate, And):
                parts.extend(predicate.parts)
            else:
                parts.append(predicate)
        return And(tuple(parts))

    def paginate(self, page: OffsetPage | CursorPage) -> dict[str, Any]:
        """
        Skip/take/cursor for a page.

        Offset mode: skip=(page-1)*limit (or the explicit offset), take=limit.
        Cursor mode: skip=1 so the anchor row itself is excluded, plus an
        equality anchor on the identity field. No cursor means the first page.
        """
        if isinstance(page, CursorPage):
            if page.cursor is None:
                return {"skip": 0, "take": page.limit, "cursor": None}
            return {
                "skip": 1,
                "take": page.limit,
                "cursor": PaginationCodec.decode_cursor(page.cursor, self.id_field),
            }
        return {"skip": page.start, "take": page.limit, "cursor": None}
