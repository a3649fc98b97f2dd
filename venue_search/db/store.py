"""Read access to the system of record for predicate-driven listing."""

import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import and_, false, or_, true
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql.elements import ColumnElement

from venue_search.core.errors import BackendUnavailable
from venue_search.filtering.predicates import Predicate, resolve_column

logger = logging.getLogger(__name__)


class SqlAlchemyStore:
    """find_many / find_unique / count over one mapped model."""

    def __init__(self, db: Session, model: Any):
        self.db = db
        self.model = model

    def _coerce_id(self, value: Any) -> Any:
        column = resolve_column(self.model, "id")
        if column.type.python_type is uuid.UUID and not isinstance(value, uuid.UUID):
            try:
                return uuid.UUID(str(value))
            except ValueError:
                return None
        return value

    def _order_clauses(self, order_by: Sequence[tuple[str, str]]) -> list[Any]:
        clauses = []
        for field, direction in order_by:
            column = resolve_column(self.model, field)
            ordered = column.desc() if direction == "desc" else column.asc()
            clauses.append(ordered.nulls_last())
        return clauses

    def _keyset_clause(
        self,
        keys: Mapping[str, Any],
        order_by: Sequence[tuple[str, str]],
        inclusive: bool = True,
    ) -> ColumnElement[bool]:
        """
        Rows after the sort-key values ``keys`` in ``order_by`` order (NULLS LAST).

        Lexicographic: for each position i, all earlier keys equal and key i is
        strictly after; plus the all-equal case when ``inclusive``.
        """
        equalities: list[ColumnElement[bool]] = []
        branches: list[ColumnElement[bool]] = []
        for field, direction in order_by:
            column = resolve_column(self.model, field)
            anchor_value = keys[field]
            if anchor_value is None:
                after: ColumnElement[bool] = false()
                equal = column.is_(None)
            else:
                beyond = column < anchor_value if direction == "desc" else column > anchor_value
                after = or_(beyond, column.is_(None))
                equal = column == anchor_value
            branches.append(and_(*equalities, after) if equalities else after)
            equalities.append(equal)
        if inclusive:
            branches.append(and_(*equalities) if equalities else true())
        return or_(*branches) if branches else false()

    def _query(self, where: Predicate | None) -> Any:
        query = self.db.query(self.model)
        if where is not None:
            query = query.filter(where.to_sqlalchemy(self.model))
        return query

    def find_many(
        self,
        where: Predicate | None = None,
        order_by: Sequence[tuple[str, str]] = (),
        skip: int = 0,
        take: int | None = None,
        cursor: dict[str, Any] | None = None,
        include: Sequence[str] = (),
        after: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        """
        Rows matching ``where`` in ``order_by`` order.

        With a cursor, the anchor row (looked up by identity) starts an
        inclusive keyset and ``skip`` is applied after it, so ``skip=1`` drops
        the anchor itself. A cursor whose anchor does not exist yields [].

        ``after`` holds the sort-key values of the last row already seen and
        selects rows strictly after them, without reading that row again.
        """
        try:
            query = self._query(where)
            if cursor is not None:
                anchor_id = self._coerce_id(cursor.get("id"))
                anchor = self.db.get(self.model, anchor_id) if anchor_id is not None else None
                if anchor is None:
                    logger.debug(f"Cursor anchor {cursor!r} not found for {self.model.__name__}")
                    return []
                anchor_keys = {field: getattr(anchor, field) for field, _ in order_by}
                query = query.filter(self._keyset_clause(anchor_keys, order_by))
            if after is not None:
                query = query.filter(self._keyset_clause(after, order_by, inclusive=False))
            for relation in include:
                query = query.options(selectinload(getattr(self.model, relation)))
            query = query.order_by(*self._order_clauses(order_by))
            if skip:
                query = query.offset(skip)
            if take is not None:
                query = query.limit(take)
            return query.all()
        except OperationalError as e:
            logger.error(f"Store query failed for {self.model.__name__}: {e}")
            raise BackendUnavailable("Relational store unavailable", details={"reason": str(e.orig)}) from e

    def find_unique(self, id_value: Any, include: Sequence[str] = ()) -> Any | None:
        coerced = self._coerce_id(id_value)
        if coerced is None:
            return None
        try:
            query = self.db.query(self.model).filter(resolve_column(self.model, "id") == coerced)
            for relation in include:
                query = query.options(selectinload(getattr(self.model, relation)))
            return query.one_or_none()
        except OperationalError as e:
            raise BackendUnavailable("Relational store unavailable", details={"reason": str(e.orig)}) from e

    def count(self, where: Predicate | None = None) -> int:
        try:
            return self._query(where).count()
        except OperationalError as e:
            raise BackendUnavailable("Relational store unavailable", details={"reason": str(e.orig)}) from e
