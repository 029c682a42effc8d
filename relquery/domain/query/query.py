"""
Fluent Query Builder

    query = QueryFactory(adapter)
    member, team = Q(Member), Q(Team)

    members = (
        query.select_from(member)
        .join(member.team, team)
        .where(team.name.eq("teamA"), member.age.gt(10))
        .order_by(member.age.desc())
        .fetch()
    )

Every builder call returns a new Query; the receiver is never modified, so a
partially built query can be shared and extended from several threads.
"""

import logging
from dataclasses import replace
from typing import Any, List, Optional, Sequence

from relquery.adapters.base import BaseAdapter
from relquery.errors import QueryValidationError
from relquery.domain.query.engine import QueryEngine
from relquery.domain.query.expressions import (
    EntityPath,
    Expression,
    OrderSpecifier,
    Predicate,
    RelationshipPath,
    and_,
)
from relquery.domain.query.planner import Statement
from relquery.domain.query.results import QueryResults
from relquery.domain.query.state import Join, JoinType, QueryState, RawStatement

logger = logging.getLogger(__name__)


def _check_paging(name: str, value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryValidationError(
            message=f"{name} must be a non-negative integer, got {value!r}",
            details={name: value},
        )
    return value


def _check_expressions(clause: str, expressions: Sequence[Any]) -> tuple:
    for expression in expressions:
        if not isinstance(expression, Expression):
            raise QueryValidationError(
                message=f"{clause}() expects expressions, got {type(expression).__name__}",
                details={"clause": clause, "value": repr(expression)},
            )
    return tuple(expressions)


class _Fetchable:
    """Fetch modes shared by typed and raw queries."""

    def __init__(self, engine: QueryEngine):
        self._engine = engine

    def _source(self):
        raise NotImplementedError

    def fetch(self, timeout: Optional[float] = None) -> List[Any]:
        """All matching rows."""
        return self._engine.fetch(self._source(), timeout=timeout)

    def fetch_first(self, timeout: Optional[float] = None) -> Optional[Any]:
        """First row, or None."""
        return self._engine.fetch_first(self._source(), timeout=timeout)

    def fetch_one(self, timeout: Optional[float] = None) -> Optional[Any]:
        """Single row, or None; raises NonUniqueResult when more rows match."""
        return self._engine.fetch_one(self._source(), timeout=timeout)

    def fetch_results(self, timeout: Optional[float] = None) -> QueryResults:
        """Page of rows plus the total matching count."""
        return self._engine.fetch_results(self._source(), timeout=timeout)

    def fetch_count(self, timeout: Optional[float] = None) -> int:
        """Number of matching rows, ignoring offset and limit."""
        return self._engine.fetch_count(self._source(), timeout=timeout)

    def to_sql(self) -> Statement:
        """Statement that fetch() would run."""
        return self._engine.to_sql(self._source())

    def cancel(self) -> bool:
        """Interrupt the statement running on this query's engine."""
        return self._engine.cancel()


class Query(_Fetchable):
    """Immutable typed query."""

    def __init__(self, engine: QueryEngine, state: Optional[QueryState] = None):
        super().__init__(engine)
        self._state = state or QueryState()

    @property
    def state(self) -> QueryState:
        return self._state

    def _source(self) -> QueryState:
        return self._state

    def _with(self, **changes) -> "Query":
        return Query(self._engine, replace(self._state, **changes))

    # -------------------------------------------------------------------------
    # Clauses
    # -------------------------------------------------------------------------

    def select(self, *expressions: Expression) -> "Query":
        """Replace the projection."""
        if not expressions:
            raise QueryValidationError(message="select() needs at least one expression")
        return self._with(projection=_check_expressions("select", expressions))

    def from_(self, *sources: EntityPath) -> "Query":
        """Add FROM entities; several sources form a cross product."""
        for source in sources:
            if not isinstance(source, EntityPath):
                raise QueryValidationError(
                    message=f"from_() expects entity paths, got {type(source).__name__}",
                    details={"value": repr(source)},
                )
        return self._with(sources=self._state.sources + tuple(sources))

    def join(self, path: RelationshipPath, alias: EntityPath) -> "Query":
        """Inner join along a relationship, binding ``alias`` to its target."""
        return self._join(JoinType.INNER, path, alias)

    def inner_join(self, path: RelationshipPath, alias: EntityPath) -> "Query":
        return self._join(JoinType.INNER, path, alias)

    def left_join(self, path: RelationshipPath, alias: EntityPath) -> "Query":
        """Left outer join; unmatched rows project the alias as None."""
        return self._join(JoinType.LEFT, path, alias)

    def _join(self, kind: JoinType, path: RelationshipPath, alias: EntityPath) -> "Query":
        if not isinstance(path, RelationshipPath):
            raise QueryValidationError(
                message=f"join() expects a relationship path, got {type(path).__name__}",
                details={"value": repr(path)},
                suggestion="Join along a declared relationship, e.g. join(member.team, team)",
            )
        if not isinstance(alias, EntityPath):
            raise QueryValidationError(
                message=f"join() alias must be an entity path, got {type(alias).__name__}",
                details={"value": repr(alias)},
            )
        target = path.descriptor.target
        if alias.entity is not target:
            raise QueryValidationError(
                message=f"{path} targets {target.__name__}, alias '{alias}' is {alias.entity.__name__}",
                details={"relationship": str(path), "alias": alias.alias},
            )
        return self._with(joins=self._state.joins + (Join(kind, path, alias),))

    def where(self, *predicates: Optional[Predicate]) -> "Query":
        """Add filters, conjoined with any existing filter; None entries are ignored."""
        return self._with(where=and_(self._state.where, *predicates))

    def group_by(self, *expressions: Expression) -> "Query":
        return self._with(group_by=self._state.group_by + _check_expressions("group_by", expressions))

    def having(self, *predicates: Optional[Predicate]) -> "Query":
        """Add post-aggregation filters, conjoined like where()."""
        return self._with(having=and_(self._state.having, *predicates))

    def order_by(self, *orders: OrderSpecifier) -> "Query":
        """Append order keys; keys apply in the order given."""
        for order in orders:
            if not isinstance(order, OrderSpecifier):
                raise QueryValidationError(
                    message=f"order_by() expects order specifiers, got {type(order).__name__}",
                    details={"value": repr(order)},
                    suggestion="Use expression.asc() or expression.desc()",
                )
        return self._with(order_by=self._state.order_by + tuple(orders))

    def offset(self, offset: Optional[int]) -> "Query":
        return self._with(offset=_check_paging("offset", offset))

    def limit(self, limit: Optional[int]) -> "Query":
        return self._with(limit=_check_paging("limit", limit))

    def distinct(self) -> "Query":
        return self._with(distinct=True)

    def __repr__(self) -> str:
        return f"Query({self._state!r})"


class RawQuery(_Fetchable):
    """
    A hand-written statement with the same fetch modes as typed queries.

    Rows become entities when ``entity`` is given (columns matched by name),
    single values for one-column results, ResultTuples otherwise.
    """

    def __init__(self, engine: QueryEngine, statement: RawStatement):
        super().__init__(engine)
        self._statement = statement

    @property
    def statement(self) -> RawStatement:
        return self._statement

    def _source(self) -> RawStatement:
        return self._statement

    def offset(self, offset: Optional[int]) -> "RawQuery":
        return RawQuery(self._engine, replace(self._statement, offset=_check_paging("offset", offset)))

    def limit(self, limit: Optional[int]) -> "RawQuery":
        return RawQuery(self._engine, replace(self._statement, limit=_check_paging("limit", limit)))


class QueryFactory:
    """
    Entry point for building queries against one store.

    Usage:
        query = QueryFactory(get_adapter("duckdb"))
        query.select_from(member).where(member.age.gt(10)).fetch()
        query.raw("SELECT * FROM member WHERE age > ?", [10], entity=Member).fetch()
    """

    def __init__(self, adapter: BaseAdapter, dialect: Optional[str] = None):
        self.adapter = adapter
        self.engine = QueryEngine(adapter, dialect=dialect)

    def query(self) -> Query:
        """Empty query."""
        return Query(self.engine)

    def select(self, *expressions: Expression) -> Query:
        return self.query().select(*expressions)

    def select_from(self, source: EntityPath) -> Query:
        """``select(source).from_(source)``"""
        return self.query().select(source).from_(source)

    def from_(self, *sources: EntityPath) -> Query:
        return self.query().from_(*sources)

    def raw(self, sql: str, params: Optional[Sequence[Any]] = None, entity: Optional[type] = None) -> RawQuery:
        """Query from a SQL string with ? placeholders."""
        if not isinstance(sql, str) or not sql.strip():
            raise QueryValidationError(message="raw() needs a non-empty SQL string")
        return RawQuery(self.engine, RawStatement(sql=sql, params=tuple(params or ()), entity=entity))
