"""
Query Planner

Translates builder state into SQL using SQLGlot:
- Projection (entities expand to their columns, expressions are selected as-is)
- FROM sources (several sources form a cross join)
- Relationship joins (ON clause from the relationship's join column)
- WHERE / GROUP BY / HAVING
- ORDER BY with explicit null placement on every key
- OFFSET / LIMIT
- Companion COUNT statement for paged fetches

Bound values become ? placeholders; parameters are collected while the tree
is built, in the order they appear in the rendered SQL.

Usage:
    planner = QueryPlanner(dialect="duckdb")
    statement = planner.plan(query_state)
    print(statement.sql, statement.params)
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlglot import expressions as exp

from relquery.core.config import settings
from relquery.errors import QueryValidationError, unbound_alias
from relquery.modeling.metamodel import EntityType, metamodel
from relquery.domain.query.expressions import (
    Aggregate,
    AggregateFunction,
    Arithmetic,
    Between,
    BooleanOperation,
    Comparison,
    Constant,
    EntityPath,
    Expression,
    FieldPath,
    InList,
    Not,
    NullCheck,
    Operator,
    OrderSpecifier,
    RelationshipPath,
)
from relquery.domain.query.results import Slot
from relquery.domain.query.state import Join, JoinType, QueryState, RawStatement

logger = logging.getLogger(__name__)


COMPARISONS = {
    Operator.EQ: exp.EQ,
    Operator.NE: exp.NEQ,
    Operator.GT: exp.GT,
    Operator.GTE: exp.GTE,
    Operator.LT: exp.LT,
    Operator.LTE: exp.LTE,
    Operator.LIKE: exp.Like,
}

ARITHMETIC = {
    Operator.ADD: exp.Add,
    Operator.SUB: exp.Sub,
    Operator.MUL: exp.Mul,
    Operator.DIV: exp.Div,
}

AGGREGATES = {
    AggregateFunction.SUM: exp.Sum,
    AggregateFunction.AVG: exp.Avg,
    AggregateFunction.MAX: exp.Max,
    AggregateFunction.MIN: exp.Min,
}

RAW_ALIAS = "raw_query"
GROUPED_ALIAS = "grouped_query"


@dataclass
class Statement:
    """
    An executable statement.

    Attributes:
        sql: SQL with ? placeholders
        params: Parameter values in placeholder order
        layout: How projected expressions map onto result columns (typed queries)
        entity_type: Entity to materialize raw rows into
        raw: Whether the statement came from a raw SQL string
    """
    sql: str
    params: List[Any] = field(default_factory=list)
    layout: Optional[List[Slot]] = None
    entity_type: Optional[EntityType] = None
    raw: bool = False


def _identifier(name: str) -> exp.Identifier:
    return exp.to_identifier(name, quoted=True)


def _column(alias: str, column: str) -> exp.Column:
    return exp.Column(this=_identifier(column), table=_identifier(alias))


def _table(path: EntityPath) -> exp.Table:
    return exp.Table(
        this=_identifier(path.entity_type.table),
        alias=exp.TableAlias(this=_identifier(path.alias)),
    )


def _bind_value(value: Any) -> Any:
    """Parameter value of a literal; entity instances bind their identifier."""
    if not metamodel.is_entity(type(value)):
        return value
    identifier = metamodel.identifier_of(type(value))
    key = getattr(value, identifier.name)
    if key is None:
        raise QueryValidationError(
            message=f"Unsaved {type(value).__name__} cannot be used in a query",
            details={"entity": type(value).__name__},
            suggestion="Persist the entity first so it has an identifier",
        )
    return key


class _Compiler:
    """Compiles expressions of one statement against its bound aliases."""

    def __init__(self, bound: Dict[str, EntityPath]):
        self.bound = bound
        self.params: List[Any] = []

    def check_aliases(self, expression: Expression) -> None:
        for path in expression.aliases():
            declared = self.bound.get(path.alias)
            if declared is None or declared.entity is not path.entity:
                raise unbound_alias(path.alias, list(self.bound))

    def compile(self, node: Expression) -> exp.Expression:
        if isinstance(node, FieldPath):
            self.check_aliases(node)
            return _column(node.parent.alias, node.descriptor.column)

        if isinstance(node, Constant):
            self.params.append(_bind_value(node.value))
            return exp.Placeholder()

        if isinstance(node, Arithmetic):
            left = self.compile(node.left)
            right = self.compile(node.right)
            return exp.Paren(this=ARITHMETIC[node.op](this=left, expression=right))

        if isinstance(node, Aggregate):
            return self._aggregate(node)

        if isinstance(node, Comparison):
            left = self.compile(node.left)
            right = self.compile(node.right)
            return COMPARISONS[node.op](this=left, expression=right)

        if isinstance(node, Between):
            operand = self.compile(node.operand)
            low = self.compile(node.low)
            high = self.compile(node.high)
            return exp.Between(this=operand, low=low, high=high)

        if isinstance(node, InList):
            if not node.values:
                return exp.true() if node.negated else exp.false()
            operand = self.compile(node.operand)
            values = [self.compile(v) for v in node.values]
            membership = exp.In(this=operand, expressions=values)
            return exp.Not(this=membership) if node.negated else membership

        if isinstance(node, NullCheck):
            check = exp.Is(this=self.compile(node.operand), expression=exp.Null())
            return exp.Not(this=check) if node.negated else check

        if isinstance(node, BooleanOperation):
            parts = [self.compile(p) for p in node.operands]
            if node.op is Operator.AND:
                return exp.and_(*parts, copy=False)
            return exp.or_(*parts, copy=False)

        if isinstance(node, Not):
            return exp.not_(self.compile(node.operand), copy=False)

        if isinstance(node, EntityPath):
            # an entity in a value position stands for its identifier
            self.check_aliases(node)
            return _column(node.alias, node.entity_type.identifier.column)

        if isinstance(node, RelationshipPath):
            return self._foreign_key(node)

        raise QueryValidationError(
            message=f"Unsupported expression: {type(node).__name__}",
            details={"expression": str(node)},
        )

    def _foreign_key(self, node: RelationshipPath) -> exp.Column:
        """``member.team`` compiles to the owning side's foreign-key column."""
        self.check_aliases(node)
        relationship = node.descriptor
        if not relationship.owning:
            raise QueryValidationError(
                message=f"'{node}' is a collection and cannot be used as a value",
                details={"expression": str(node)},
                suggestion=f"join({node}, alias) and compare the alias",
            )
        _, foreign_key, _, _ = metamodel.join_columns(relationship)
        return _column(node.parent.alias, foreign_key)

    def _aggregate(self, node: Aggregate) -> exp.Expression:
        if node.argument is None:
            return exp.Count(this=exp.Star())
        argument = self.compile(node.argument)
        if node.function is AggregateFunction.COUNT:
            return exp.Count(this=argument)
        if node.function is AggregateFunction.COUNT_DISTINCT:
            return exp.Count(this=exp.Distinct(expressions=[argument]))
        return AGGREGATES[node.function](this=argument)


class QueryPlanner:
    """
    Plans and generates SQL for typed queries and raw statements.

    Usage:
        planner = QueryPlanner(dialect="sqlite")
        statement = planner.plan(state)
        count_statement = planner.plan_count(state)
    """

    def __init__(self, dialect: Optional[str] = None, default_null_ordering: Optional[str] = None):
        """
        Initialize query planner.

        Args:
            dialect: Target SQLGlot dialect (duckdb, sqlite, postgres, mysql, ...)
            default_null_ordering: "first" or "last" for order keys without an
                explicit null placement (defaults to settings)
        """
        self.dialect = dialect or settings.dialect_for()
        self.default_null_ordering = default_null_ordering or settings.default_null_ordering

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def plan(self, state: Union[QueryState, RawStatement]) -> Statement:
        """Generate the main statement."""
        if isinstance(state, RawStatement):
            return self._plan_raw(state)

        sources, bound = self._bind(state)
        compiler = _Compiler(bound)

        select, layout = self._select(state, sources, compiler)

        if state.order_by:
            select = select.order_by(*[self._ordered(o, compiler) for o in state.order_by], copy=False)

        select = self._paging(select, state.limit, state.offset)

        return self._render(select, compiler.params, layout=layout)

    def plan_count(self, state: Union[QueryState, RawStatement]) -> Statement:
        """
        Generate the statement counting matching rows.

        Projection, ordering, offset and limit are discarded; filters, joins
        and grouping are kept. Grouped or distinct queries count their rows
        through a sub-select.
        """
        if isinstance(state, RawStatement):
            sql = f"SELECT COUNT(*) FROM ({self._raw_sql(state)}) AS {RAW_ALIAS}"
            return Statement(sql=sql, params=list(state.params), raw=True)

        sources, bound = self._bind(state)
        compiler = _Compiler(bound)
        count_star = exp.Count(this=exp.Star())

        if state.group_by or state.distinct or state.having is not None:
            inner, _ = self._select(state, sources, compiler)
            select = exp.select(count_star).from_(inner.subquery(GROUPED_ALIAS, copy=False), copy=False)
        else:
            select = self._from(exp.select(count_star), state, sources, compiler)
            if state.where is not None:
                select = select.where(compiler.compile(state.where), copy=False)

        return self._render(select, compiler.params)

    def plan_limited(self, state: Union[QueryState, RawStatement], limit: int) -> Statement:
        """Main statement with its limit capped (fetch_first / fetch_one)."""
        capped = limit if state.limit is None else min(state.limit, limit)
        return self.plan(replace(state, limit=capped))

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    def _bind(self, state: QueryState) -> Tuple[List[EntityPath], Dict[str, EntityPath]]:
        """Resolve FROM sources and every alias the query may reference."""
        sources = list(state.sources)
        join_aliases = {j.alias.alias for j in state.joins}

        if not sources:
            # select(member.username) without from_(): infer from the projection
            seen = set()
            for expression in state.projection:
                for path in expression.aliases():
                    if path.alias not in join_aliases and path.alias not in seen:
                        seen.add(path.alias)
                        sources.append(path)

        if not sources:
            raise QueryValidationError(
                message="Query has no source entity",
                suggestion="Call from_() or select an entity path",
            )

        bound: Dict[str, EntityPath] = {}
        for source in sources:
            bound[source.alias] = source

        for join in state.joins:
            parent = join.path.parent
            declared = bound.get(parent.alias)
            if declared is None or declared.entity is not parent.entity:
                raise unbound_alias(parent.alias, list(bound))
            bound[join.alias.alias] = join.alias

        return sources, bound

    # -------------------------------------------------------------------------
    # Clauses
    # -------------------------------------------------------------------------

    def _select(
        self,
        state: QueryState,
        sources: List[EntityPath],
        compiler: _Compiler,
    ) -> Tuple[exp.Select, List[Slot]]:
        """SELECT ... FROM ... JOIN ... WHERE ... GROUP BY ... HAVING ..."""
        projection = state.projection or (sources[0],)
        nodes: List[exp.Expression] = []
        layout: List[Slot] = []

        for expression in projection:
            if isinstance(expression, EntityPath):
                compiler.check_aliases(expression)
                entity_type = expression.entity_type
                columns = entity_type.select_columns()
                nodes.extend(_column(expression.alias, column) for _, column in columns)
                layout.append(Slot(key=expression, width=len(columns), entity_type=entity_type))
            elif isinstance(expression, RelationshipPath):
                raise QueryValidationError(
                    message=f"Cannot select relationship '{expression}' directly",
                    details={"expression": str(expression)},
                    suggestion=f"join({expression}, alias) and select the alias",
                )
            else:
                nodes.append(compiler.compile(expression))
                layout.append(Slot(key=expression, python_type=expression.value_type))

        # unique output names keep sub-selects valid when columns repeat
        aliased = [exp.alias_(node, f"c{i}", copy=False) for i, node in enumerate(nodes)]
        select = exp.Select().select(*aliased, copy=False)
        if state.distinct:
            select = select.distinct(copy=False)

        select = self._from(select, state, sources, compiler)

        if state.where is not None:
            select = select.where(compiler.compile(state.where), copy=False)

        if state.group_by:
            select = select.group_by(*[compiler.compile(g) for g in state.group_by], copy=False)

        if state.having is not None:
            select = select.having(compiler.compile(state.having), copy=False)

        return select, layout

    def _from(
        self,
        select: exp.Select,
        state: QueryState,
        sources: List[EntityPath],
        compiler: _Compiler,
    ) -> exp.Select:
        select = select.from_(_table(sources[0]), copy=False)

        for source in sources[1:]:
            select = select.join(_table(source), join_type=JoinType.CROSS.value, copy=False)

        for join in state.joins:
            select = select.join(
                _table(join.alias),
                on=self._join_condition(join),
                join_type=join.kind.value,
                copy=False,
            )
        return select

    def _join_condition(self, join: Join) -> exp.Expression:
        """ON clause from the relationship's foreign key."""
        relationship = join.path.descriptor
        _, foreign_key, _, identifier = metamodel.join_columns(relationship)
        left = join.path.parent.alias
        right = join.alias.alias

        if relationship.owning:
            # member.team -> team: member.team_id = team.id
            return exp.EQ(this=_column(left, foreign_key), expression=_column(right, identifier))
        # team.members -> member: member.team_id = team.id
        return exp.EQ(this=_column(right, foreign_key), expression=_column(left, identifier))

    def _ordered(self, order: OrderSpecifier, compiler: _Compiler) -> exp.Ordered:
        if not isinstance(order, OrderSpecifier):
            raise QueryValidationError(
                message=f"Expected an order specifier, got {type(order).__name__}",
                suggestion="Use expression.asc() or expression.desc()",
            )
        target = order.target
        if isinstance(target, EntityPath):
            # ordering by an entity orders by its identifier
            target = FieldPath(target, target.entity_type.identifier.name)
        return exp.Ordered(
            this=compiler.compile(target),
            desc=not order.is_ascending,
            nulls_first=order.resolve_nulls_first(self.default_null_ordering),
        )

    def _paging(self, select: exp.Select, limit: Optional[int], offset: Optional[int]) -> exp.Select:
        if limit is not None:
            select = select.limit(limit, copy=False)
        elif offset and self.dialect == "sqlite":
            # SQLite only accepts OFFSET after a LIMIT
            select = select.limit(-1, copy=False)
        if offset:
            select = select.offset(offset, copy=False)
        return select

    # -------------------------------------------------------------------------
    # Raw statements
    # -------------------------------------------------------------------------

    def _raw_sql(self, raw: RawStatement) -> str:
        return raw.sql.strip().rstrip(";").strip()

    def _plan_raw(self, raw: RawStatement) -> Statement:
        sql = self._raw_sql(raw)
        if raw.limit is not None or raw.offset:
            sql = f"SELECT * FROM ({sql}) AS {RAW_ALIAS}"
            if raw.limit is not None:
                sql += f" LIMIT {int(raw.limit)}"
            elif self.dialect == "sqlite":
                sql += " LIMIT -1"
            if raw.offset:
                sql += f" OFFSET {int(raw.offset)}"

        entity_type = metamodel.entity(raw.entity) if raw.entity is not None else None
        return Statement(sql=sql, params=list(raw.params), entity_type=entity_type, raw=True)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _render(self, select: exp.Select, params: List[Any], layout: Optional[List[Slot]] = None) -> Statement:
        sql = select.sql(dialect=self.dialect)
        if settings.log_sql:
            logger.info(f"Planned SQL ({self.dialect}): {sql} | params={params}")
        else:
            logger.debug(f"Planned SQL ({self.dialect}): {sql}")
        return Statement(sql=sql, params=params, layout=layout)
