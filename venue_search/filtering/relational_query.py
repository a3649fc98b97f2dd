"""Relational query value and the builder that produces it from a FilterSpec."""

from dataclasses import dataclass, field
from typing import Any

from venue_search.filtering.predicates import And, Predicate, PredicateBuilder
from venue_search.filtering.surfaces import SearchSurface
from venue_search.schemas.filter_spec import FilterSpec


@dataclass(frozen=True)
class RelationalQuery:
    """What the store executes: where, order_by (column, direction) pairs, skip/take, optional keyset cursor."""

    where: Predicate = field(default_factory=And)
    order_by: tuple[tuple[str, str], ...] = ()
    skip: int = 0
    take: int | None = None
    cursor: dict[str, Any] | None = None
    include: tuple[str, ...] = ()


class RelationalQueryBuilder:
    """Translates a FilterSpec for a relational surface into a RelationalQuery."""

    def __init__(self, surface: SearchSurface):
        if surface.backend != "relational":
            raise ValueError(f"Surface '{surface.name}' is not relational")
        self.surface = surface
        self.predicates = PredicateBuilder(surface)

    def order_by(self, spec: FilterSpec) -> tuple[tuple[str, str], ...]:
        """Sort column first, then the identity column so keyset pages have a total order."""
        pairs = self.predicates.build_order_by(
            {"field": self.surface.sort_path(spec.sort.field), "direction": spec.sort.direction}
        )
        if all(column != self.surface.id_field for column, _ in pairs):
            pairs.append((self.surface.id_field, spec.sort.direction))
        return tuple(pairs)

    def build_query(self, spec: FilterSpec) -> RelationalQuery:
        page = self.predicates.paginate(spec.page)
        return RelationalQuery(
            where=self.predicates.from_spec(spec),
            order_by=self.order_by(spec),
            skip=page["skip"],
            take=page["take"],
            cursor=page["cursor"],
            include=self.surface.relations if spec.include_relations else (),
        )
