"""
Expression & Predicate Algebra

Typed, immutable expression nodes used to build projections, filters,
groupings and orderings without touching any store:

    member = Q(Member)
    member.age.gte(20) & member.username.starts_with("member")
    member.age.avg()
    member.age.desc().nulls_first()

Every node is a frozen dataclass, so expressions are hashable value objects
that can be shared between threads and used as keys of result tuples.
Operand types are checked when a node is built; incompatible operands raise
TypeMismatch before any statement is generated.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Tuple

from relquery.errors import MetamodelError, QueryValidationError, type_mismatch
from relquery.modeling.metamodel import EntityType, FieldDescriptor, RelationshipDescriptor, metamodel


# =============================================================================
# TYPE FAMILIES
# =============================================================================

NUMERIC = "numeric"
STRING = "string"
BOOLEAN = "boolean"
DATE = "date"
DATETIME = "datetime"


def type_family(python_type: type) -> str:
    """Comparison family of a Python type; bool is not numeric here."""
    if python_type is bool:
        return BOOLEAN
    if issubclass(python_type, (int, float, Decimal)):
        return NUMERIC
    if issubclass(python_type, str):
        return STRING
    if issubclass(python_type, datetime):
        return DATETIME
    if issubclass(python_type, date):
        return DATE
    return python_type.__name__


class Operator(str, Enum):
    """Operators of comparison and boolean nodes."""
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    AND = "and"
    OR = "or"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"


class AggregateFunction(str, Enum):
    """Supported aggregation functions."""
    COUNT = "COUNT"
    COUNT_DISTINCT = "COUNT_DISTINCT"
    SUM = "SUM"
    AVG = "AVG"
    MAX = "MAX"
    MIN = "MIN"


class Order(str, Enum):
    """Sort directions."""
    ASC = "ASC"
    DESC = "DESC"


class NullHandling(str, Enum):
    """Placement of NULLs in an ordering; DEFAULT resolves to the configured default."""
    DEFAULT = "default"
    NULLS_FIRST = "nulls_first"
    NULLS_LAST = "nulls_last"


# =============================================================================
# BASE CLASSES
# =============================================================================

class Expression:
    """Base class of every expression node."""

    @property
    def value_type(self) -> type:
        raise NotImplementedError

    def children(self) -> Tuple["Expression", ...]:
        return ()

    def walk(self) -> Iterator["Expression"]:
        """Depth-first iteration over this node and its descendants."""
        yield self
        for child in self.children():
            yield from child.walk()

    def aliases(self) -> Iterator["EntityPath"]:
        """Entity aliases referenced by this expression."""
        for node in self.walk():
            if isinstance(node, EntityPath):
                yield node


def _operand(expression: "Expression", value: Any) -> "Expression":
    """Wrap a literal and check it against the family of ``expression``."""
    if isinstance(value, Expression):
        operand = value
    elif value is None:
        raise type_mismatch(str(expression), expression.value_type.__name__, "None (use is_null())")
    else:
        operand = Constant(value)

    expected = type_family(expression.value_type)
    actual = type_family(operand.value_type)
    if expected != actual:
        raise type_mismatch(str(expression), expected, f"{operand} ({actual})")
    return operand


def _require_family(expression: "Expression", family: str, operation: str) -> None:
    actual = type_family(expression.value_type)
    if actual != family:
        raise type_mismatch(f"{operation}({expression})", family, f"{expression} ({actual})")


class ComparableExpression(Expression):
    """Expression with comparison, arithmetic, aggregate and ordering methods."""

    # -- comparisons ----------------------------------------------------------

    def eq(self, other: Any) -> "Comparison":
        return Comparison(Operator.EQ, self, _operand(self, other))

    def ne(self, other: Any) -> "Comparison":
        return Comparison(Operator.NE, self, _operand(self, other))

    def gt(self, other: Any) -> "Comparison":
        return Comparison(Operator.GT, self, _operand(self, other))

    def gte(self, other: Any) -> "Comparison":
        return Comparison(Operator.GTE, self, _operand(self, other))

    def lt(self, other: Any) -> "Comparison":
        return Comparison(Operator.LT, self, _operand(self, other))

    def lte(self, other: Any) -> "Comparison":
        return Comparison(Operator.LTE, self, _operand(self, other))

    def between(self, low: Any, high: Any) -> "Between":
        return Between(self, _operand(self, low), _operand(self, high))

    def in_(self, *values: Any) -> "InList":
        return InList(self, tuple(_operand(self, v) for v in _flatten(values)))

    def not_in(self, *values: Any) -> "InList":
        return InList(self, tuple(_operand(self, v) for v in _flatten(values)), negated=True)

    def is_null(self) -> "NullCheck":
        return NullCheck(self)

    def is_not_null(self) -> "NullCheck":
        return NullCheck(self, negated=True)

    def like(self, pattern: str) -> "Comparison":
        _require_family(self, STRING, "like")
        return Comparison(Operator.LIKE, self, _operand(self, pattern))

    def contains(self, value: str) -> "Comparison":
        _require_family(self, STRING, "contains")
        return Comparison(Operator.LIKE, self, _operand(self, f"%{_checked_str(self, value)}%"))

    def starts_with(self, value: str) -> "Comparison":
        _require_family(self, STRING, "starts_with")
        return Comparison(Operator.LIKE, self, _operand(self, f"{_checked_str(self, value)}%"))

    def ends_with(self, value: str) -> "Comparison":
        _require_family(self, STRING, "ends_with")
        return Comparison(Operator.LIKE, self, _operand(self, f"%{_checked_str(self, value)}"))

    # -- arithmetic -----------------------------------------------------------

    def _arithmetic(self, op: Operator, other: Any, reflected: bool = False) -> "Arithmetic":
        _require_family(self, NUMERIC, op.value)
        operand = _operand(self, other)
        if reflected:
            return Arithmetic(op, operand, self)
        return Arithmetic(op, self, operand)

    def __add__(self, other):
        return self._arithmetic(Operator.ADD, other)

    def __radd__(self, other):
        return self._arithmetic(Operator.ADD, other, reflected=True)

    def __sub__(self, other):
        return self._arithmetic(Operator.SUB, other)

    def __rsub__(self, other):
        return self._arithmetic(Operator.SUB, other, reflected=True)

    def __mul__(self, other):
        return self._arithmetic(Operator.MUL, other)

    def __rmul__(self, other):
        return self._arithmetic(Operator.MUL, other, reflected=True)

    def __truediv__(self, other):
        return self._arithmetic(Operator.DIV, other)

    def __rtruediv__(self, other):
        return self._arithmetic(Operator.DIV, other, reflected=True)

    # -- aggregates -----------------------------------------------------------

    def count(self) -> "Aggregate":
        return Aggregate(AggregateFunction.COUNT, self)

    def count_distinct(self) -> "Aggregate":
        return Aggregate(AggregateFunction.COUNT_DISTINCT, self)

    def sum(self) -> "Aggregate":
        _require_family(self, NUMERIC, "sum")
        return Aggregate(AggregateFunction.SUM, self)

    def avg(self) -> "Aggregate":
        _require_family(self, NUMERIC, "avg")
        return Aggregate(AggregateFunction.AVG, self)

    def max(self) -> "Aggregate":
        return Aggregate(AggregateFunction.MAX, self)

    def min(self) -> "Aggregate":
        return Aggregate(AggregateFunction.MIN, self)

    # -- ordering -------------------------------------------------------------

    def asc(self) -> "OrderSpecifier":
        return OrderSpecifier(self, Order.ASC)

    def desc(self) -> "OrderSpecifier":
        return OrderSpecifier(self, Order.DESC)


def _flatten(values: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """Allow both in_(1, 2) and in_([1, 2])."""
    if len(values) == 1 and isinstance(values[0], (list, tuple, set, frozenset)):
        return tuple(values[0])
    return values


def _checked_str(expression: Expression, value: Any) -> str:
    if not isinstance(value, str):
        raise type_mismatch(str(expression), STRING, f"{value!r} ({type_family(type(value))})")
    return value


# =============================================================================
# PATHS
# =============================================================================

@dataclass(frozen=True)
class EntityPath(ComparableExpression):
    """
    An entity under an alias, e.g. ``member`` in ``select member from Member member``.

    Attribute access resolves fields and relationships of the entity:
    ``member.age`` is a FieldPath, ``member.team`` a RelationshipPath.
    """
    entity: type
    alias: str

    def __post_init__(self):
        # fail fast on classes that are not registered entities
        metamodel.entity(self.entity)

    @property
    def entity_type(self) -> EntityType:
        return metamodel.entity(self.entity)

    @property
    def value_type(self) -> type:
        return self.entity

    def get(self, name: str) -> "ComparableExpression":
        """Resolve a field or relationship by name."""
        entity_type = self.entity_type
        if entity_type.has_field(name):
            return FieldPath(self, name)
        if entity_type.has_relationship(name):
            return RelationshipPath(self, name)
        return FieldPath(self, name)  # raises with the available fields

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.get(name)
        except MetamodelError as e:
            raise AttributeError(str(e)) from e

    def count(self) -> "Aggregate":
        """Row count, ``count(*)``."""
        return Aggregate(AggregateFunction.COUNT, None)

    def __str__(self) -> str:
        return self.alias


@dataclass(frozen=True)
class FieldPath(ComparableExpression):
    """A field of an entity alias, e.g. ``member.age``."""
    parent: EntityPath
    name: str

    def __post_init__(self):
        self.parent.entity_type.get_field(self.name)

    @property
    def descriptor(self) -> FieldDescriptor:
        return self.parent.entity_type.get_field(self.name)

    @property
    def value_type(self) -> type:
        return self.descriptor.python_type

    def children(self) -> Tuple[Expression, ...]:
        return (self.parent,)

    def __str__(self) -> str:
        return f"{self.parent.alias}.{self.name}"


@dataclass(frozen=True)
class RelationshipPath(ComparableExpression):
    """A relationship of an entity alias, e.g. ``member.team``; used by joins."""
    parent: EntityPath
    name: str

    def __post_init__(self):
        self.parent.entity_type.get_relationship(self.name)

    @property
    def descriptor(self) -> RelationshipDescriptor:
        return self.parent.entity_type.get_relationship(self.name)

    @property
    def value_type(self) -> type:
        return self.descriptor.target

    def children(self) -> Tuple[Expression, ...]:
        return (self.parent,)

    def __str__(self) -> str:
        return f"{self.parent.alias}.{self.name}"


def Q(entity: type, alias: Optional[str] = None) -> EntityPath:
    """
    Create an entity path.

    Args:
        entity: Entity class
        alias: Query alias (defaults to the lower-cased class name)
    """
    return EntityPath(entity, alias or entity.__name__.lower())


# =============================================================================
# VALUES AND COMPUTATIONS
# =============================================================================

@dataclass(frozen=True)
class Constant(ComparableExpression):
    """A literal value, bound as a statement parameter."""
    value: Any

    @property
    def value_type(self) -> type:
        return type(self.value)

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class Arithmetic(ComparableExpression):
    """Binary arithmetic between numeric expressions."""
    op: Operator
    left: Expression
    right: Expression

    @property
    def value_type(self) -> type:
        if self.op is Operator.DIV:
            return float
        types = {self.left.value_type, self.right.value_type}
        if types <= {int}:
            return int
        if Decimal in types and float not in types:
            return Decimal
        return float

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"({self.left} {self.op.value} {self.right})"


@dataclass(frozen=True)
class Aggregate(ComparableExpression):
    """An aggregate; ``argument`` is None for ``count(*)``."""
    function: AggregateFunction
    argument: Optional[Expression] = None

    @property
    def value_type(self) -> type:
        if self.function in (AggregateFunction.COUNT, AggregateFunction.COUNT_DISTINCT):
            return int
        if self.function is AggregateFunction.AVG:
            return float
        return self.argument.value_type

    def children(self) -> Tuple[Expression, ...]:
        return (self.argument,) if self.argument is not None else ()

    def __str__(self) -> str:
        inner = "*" if self.argument is None else str(self.argument)
        if self.function is AggregateFunction.COUNT_DISTINCT:
            return f"count(distinct {inner})"
        return f"{self.function.value.lower()}({inner})"


# =============================================================================
# PREDICATES
# =============================================================================

class Predicate(ComparableExpression):
    """A boolean expression; combine with and_/or_/not_ or & | ~."""

    @property
    def value_type(self) -> type:
        return bool

    def and_(self, *others: Optional["Predicate"]) -> "Predicate":
        return and_(self, *others)

    def or_(self, *others: Optional["Predicate"]) -> "Predicate":
        return or_(self, *others)

    def not_(self) -> "Predicate":
        return Not(self)

    def __and__(self, other):
        return and_(self, other)

    def __or__(self, other):
        return or_(self, other)

    def __invert__(self):
        return Not(self)


@dataclass(frozen=True)
class Comparison(Predicate):
    """Binary comparison (=, <>, >, >=, <, <=, LIKE)."""
    op: Operator
    left: Expression
    right: Expression

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"{self.left} {self.op.value} {self.right}"


@dataclass(frozen=True)
class Between(Predicate):
    """Inclusive range check."""
    operand: Expression
    low: Expression
    high: Expression

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand, self.low, self.high)

    def __str__(self) -> str:
        return f"{self.operand} between {self.low} and {self.high}"


@dataclass(frozen=True)
class InList(Predicate):
    """Membership test; an empty list matches nothing (or everything when negated)."""
    operand: Expression
    values: Tuple[Expression, ...]
    negated: bool = False

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,) + self.values

    def __str__(self) -> str:
        op = "not in" if self.negated else "in"
        return f"{self.operand} {op} ({', '.join(str(v) for v in self.values)})"


@dataclass(frozen=True)
class NullCheck(Predicate):
    operand: Expression
    negated: bool = False

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"{self.operand} is {'not ' if self.negated else ''}null"


@dataclass(frozen=True)
class BooleanOperation(Predicate):
    """Conjunction or disjunction of two or more predicates."""
    op: Operator
    operands: Tuple[Predicate, ...]

    def children(self) -> Tuple[Expression, ...]:
        return self.operands

    def __str__(self) -> str:
        return "(" + f" {self.op.value} ".join(str(p) for p in self.operands) + ")"


@dataclass(frozen=True)
class Not(Predicate):
    operand: Predicate

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"not {self.operand}"


def _combine(op: Operator, predicates: Iterable[Optional[Predicate]]) -> Optional[Predicate]:
    operands = []
    for predicate in predicates:
        if predicate is None:
            continue
        if not isinstance(predicate, Predicate):
            raise QueryValidationError(
                message=f"Expected a predicate, got {type(predicate).__name__}",
                details={"value": repr(predicate)},
            )
        # flatten nested operations of the same kind
        if isinstance(predicate, BooleanOperation) and predicate.op is op:
            operands.extend(predicate.operands)
        else:
            operands.append(predicate)

    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    return BooleanOperation(op, tuple(operands))


def and_(*predicates: Optional[Predicate]) -> Optional[Predicate]:
    """Conjunction; None entries are skipped, None when nothing remains."""
    return _combine(Operator.AND, predicates)


def or_(*predicates: Optional[Predicate]) -> Optional[Predicate]:
    """Disjunction; None entries are skipped, None when nothing remains."""
    return _combine(Operator.OR, predicates)


def not_(predicate: Predicate) -> Predicate:
    return Not(predicate)


# =============================================================================
# AGGREGATE FUNCTIONS
# =============================================================================

def count(expression: Optional[ComparableExpression] = None) -> Aggregate:
    """``count(*)`` without an argument, ``count(expr)`` otherwise."""
    if expression is None or isinstance(expression, EntityPath):
        return Aggregate(AggregateFunction.COUNT, None)
    return expression.count()


def count_distinct(expression: ComparableExpression) -> Aggregate:
    return expression.count_distinct()


def sum_(expression: ComparableExpression) -> Aggregate:
    return expression.sum()


def avg(expression: ComparableExpression) -> Aggregate:
    return expression.avg()


def max_(expression: ComparableExpression) -> Aggregate:
    return expression.max()


def min_(expression: ComparableExpression) -> Aggregate:
    return expression.min()


# =============================================================================
# ORDERING
# =============================================================================

@dataclass(frozen=True)
class OrderSpecifier:
    """An order key: expression, direction and null placement."""
    target: Expression
    order: Order = Order.ASC
    null_handling: NullHandling = NullHandling.DEFAULT

    def nulls_first(self) -> "OrderSpecifier":
        return replace(self, null_handling=NullHandling.NULLS_FIRST)

    def nulls_last(self) -> "OrderSpecifier":
        return replace(self, null_handling=NullHandling.NULLS_LAST)

    @property
    def is_ascending(self) -> bool:
        return self.order is Order.ASC

    def resolve_nulls_first(self, default: str = "last") -> bool:
        """Whether NULLs sort first, with DEFAULT resolved to ``default``."""
        if self.null_handling is NullHandling.NULLS_FIRST:
            return True
        if self.null_handling is NullHandling.NULLS_LAST:
            return False
        return default == "first"

    def __str__(self) -> str:
        text = f"{self.target} {self.order.value.lower()}"
        if self.null_handling is not NullHandling.DEFAULT:
            text += " " + self.null_handling.value.replace("_", " ")
        return text
