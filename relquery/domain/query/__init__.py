"""
relquery Query Module

Provides type-safe query building:
- Expression & predicate algebra (Q, FieldPath, Predicate, aggregates)
- Immutable fluent builder (QueryFactory, Query, RawQuery)
- SQL planning with SQLGlot (QueryPlanner)
- Execution and materialization (QueryEngine, ResultTuple, QueryResults)
"""

from .expressions import (
    Aggregate,
    AggregateFunction,
    EntityPath,
    Expression,
    FieldPath,
    NullHandling,
    Operator,
    Order,
    OrderSpecifier,
    Predicate,
    Q,
    RelationshipPath,
    and_,
    avg,
    count,
    count_distinct,
    max_,
    min_,
    not_,
    or_,
    sum_,
)
from .state import Join, JoinType, QueryState, RawStatement
from .planner import QueryPlanner, Statement
from .results import QueryResults, ResultTuple
from .engine import QueryEngine
from .query import Query, QueryFactory, RawQuery

__all__ = [
    "Aggregate",
    "AggregateFunction",
    "EntityPath",
    "Expression",
    "FieldPath",
    "NullHandling",
    "Operator",
    "Order",
    "OrderSpecifier",
    "Predicate",
    "Q",
    "RelationshipPath",
    "and_",
    "avg",
    "count",
    "count_distinct",
    "max_",
    "min_",
    "not_",
    "or_",
    "sum_",
    "Join",
    "JoinType",
    "QueryState",
    "RawStatement",
    "QueryPlanner",
    "Statement",
    "QueryResults",
    "ResultTuple",
    "QueryEngine",
    "Query",
    "QueryFactory",
    "RawQuery",
]
