"""
Query builder state.

Immutable values handed from the fluent builder to the planner. A typed
query is described by QueryState; a raw SQL string by RawStatement. Both flow
through the same execution engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from relquery.domain.query.expressions import (
    EntityPath,
    Expression,
    OrderSpecifier,
    Predicate,
    RelationshipPath,
)


class JoinType(str, Enum):
    """SQL join type."""
    INNER = "inner"
    LEFT = "left"
    CROSS = "cross"


@dataclass(frozen=True)
class Join:
    """A join along a declared relationship: ``join(member.team, team)``."""
    kind: JoinType
    path: RelationshipPath
    alias: EntityPath


@dataclass(frozen=True)
class QueryState:
    """
    Accumulated clauses of a typed query.

    Attributes:
        projection: Selected expressions (entity paths, fields, aggregates)
        sources: Explicit FROM entities; several form a cross product
        joins: Relationship joins in declaration order
        where: Conjoined filter (None when unfiltered)
        group_by: Grouping keys
        having: Post-aggregation filter
        order_by: Order keys
        offset: Rows to skip
        limit: Max rows to return
        distinct: SELECT DISTINCT
    """
    projection: Tuple[Expression, ...] = ()
    sources: Tuple[EntityPath, ...] = ()
    joins: Tuple[Join, ...] = ()
    where: Optional[Predicate] = None
    group_by: Tuple[Expression, ...] = ()
    having: Optional[Predicate] = None
    order_by: Tuple[OrderSpecifier, ...] = ()
    offset: Optional[int] = None
    limit: Optional[int] = None
    distinct: bool = False


@dataclass(frozen=True)
class RawStatement:
    """
    A hand-written statement; bypasses the planner's translation but keeps
    the fetch-mode contract.

    Attributes:
        sql: SQL with ? placeholders
        params: Parameter values
        entity: Optional entity class to materialize rows into (matched by column name)
        offset: Rows to skip (applied around the statement)
        limit: Max rows to return (applied around the statement)
    """
    sql: str
    params: Tuple[Any, ...] = field(default_factory=tuple)
    entity: Optional[type] = None
    offset: Optional[int] = None
    limit: Optional[int] = None
