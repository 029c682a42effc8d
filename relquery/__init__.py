"""
relquery - type-safe queries over a relational entity model.

    from relquery import Q, QueryFactory, get_adapter
    from relquery.models import Member, Team

    query = QueryFactory(get_adapter("duckdb"))
    member, team = Q(Member), Q(Team)
    query.select_from(member).join(member.team, team).where(team.name.eq("teamA")).fetch()
"""

from relquery.adapters import get_adapter
from relquery.core.config import Settings, get_settings, settings
from relquery.errors import (
    ErrorCode,
    MetamodelError,
    NonUniqueResult,
    PersistenceError,
    QueryTimeout,
    QueryValidationError,
    RelQueryError,
    StoreExecutionFailure,
    TypeMismatch,
    UnboundAlias,
)
from relquery.modeling import (
    Column,
    Entity,
    Id,
    ManyToOne,
    OneToMany,
    create_tables,
    fields_of,
    key_of,
    metamodel,
    relationships_of,
)
from relquery.domain.query import (
    Q,
    Query,
    QueryEngine,
    QueryFactory,
    QueryPlanner,
    QueryResults,
    RawQuery,
    ResultTuple,
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
from relquery.persistence import Session

__version__ = "1.0.0"

__all__ = [
    "get_adapter",
    "Settings",
    "get_settings",
    "settings",
    "ErrorCode",
    "MetamodelError",
    "NonUniqueResult",
    "PersistenceError",
    "QueryTimeout",
    "QueryValidationError",
    "RelQueryError",
    "StoreExecutionFailure",
    "TypeMismatch",
    "UnboundAlias",
    "Column",
    "Entity",
    "Id",
    "ManyToOne",
    "OneToMany",
    "create_tables",
    "fields_of",
    "key_of",
    "metamodel",
    "relationships_of",
    "Q",
    "Query",
    "QueryEngine",
    "QueryFactory",
    "QueryPlanner",
    "QueryResults",
    "RawQuery",
    "ResultTuple",
    "and_",
    "avg",
    "count",
    "count_distinct",
    "max_",
    "min_",
    "not_",
    "or_",
    "sum_",
    "Session",
]
