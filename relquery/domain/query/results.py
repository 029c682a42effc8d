"""
Query results and row materialization.

- ResultTuple: fixed-arity row, addressable by position or by the projected
  expression (or column name for raw statements)
- QueryResults: page of results plus the total matching count
- Materializer: turns positional store rows into entities, scalars or tuples
"""

import logging
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Generic, Hashable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from relquery.modeling.metamodel import EntityType

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _same_key(a: Any, b: Any) -> bool:
    """Structural key equality that keeps 1, 1.0 and True apart."""
    if type(a) is not type(b):
        return False
    if is_dataclass(a) and not isinstance(a, type):
        return all(_same_key(getattr(a, f.name), getattr(b, f.name)) for f in fields(a))
    if isinstance(a, tuple):
        return len(a) == len(b) and all(_same_key(x, y) for x, y in zip(a, b))
    return a == b


class ResultTuple:
    """
    A heterogeneous result row.

    Usage:
        row = query.select(member.username, member.age).fetch_first()
        row[0]                  # by position
        row[member.age]         # by projected expression
        row.get(member.age)
    """

    __slots__ = ("_values", "_keys")

    def __init__(self, values: Sequence[Any], keys: Sequence[Hashable]):
        if len(values) != len(keys):
            raise ValueError(f"ResultTuple arity mismatch: {len(values)} values, {len(keys)} keys")
        self._values = tuple(values)
        self._keys = tuple(keys)

    def _index(self, key: Hashable) -> int:
        for i, k in enumerate(self._keys):
            if k is key:
                return i
        for i, k in enumerate(self._keys):
            if _same_key(k, key):
                return i
        raise KeyError(key)

    def __getitem__(self, key):
        if isinstance(key, (int, slice)):
            return self._values[key]
        return self._values[self._index(key)]

    def get(self, key: Hashable, default: Any = None) -> Any:
        try:
            return self[key]
        except (KeyError, IndexError):
            return default

    def keys(self) -> Tuple[Hashable, ...]:
        return self._keys

    def to_tuple(self) -> Tuple[Any, ...]:
        return self._values

    def as_dict(self) -> Dict[str, Any]:
        """Values keyed by the string form of each key."""
        return {str(k): v for k, v in zip(self._keys, self._values)}

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __eq__(self, other) -> bool:
        if isinstance(other, ResultTuple):
            return self._values == other._values
        if isinstance(other, tuple):
            return self._values == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        return f"ResultTuple{self._values!r}"


@dataclass
class QueryResults(Generic[T]):
    """
    A page of results and the total number of matching rows.

    Attributes:
        results: Rows of the requested page
        total: Matching rows ignoring offset/limit
        limit: Limit used for the page (None when unlimited)
        offset: Offset used for the page
    """
    results: List[T] = field(default_factory=list)
    total: int = 0
    limit: Optional[int] = None
    offset: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.results

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[T]:
        return iter(self.results)


# =============================================================================
# MATERIALIZATION
# =============================================================================

def coerce(value: Any, python_type: Optional[type]) -> Any:
    """Normalize a store value to the declared Python type."""
    if value is None or python_type is None:
        return value
    # datetime is a date subclass
    if python_type is date and isinstance(value, datetime):
        return value.date()
    if isinstance(value, python_type):
        return value
    if python_type is bool:
        return bool(value)
    if python_type is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if python_type is date and isinstance(value, str):
        return date.fromisoformat(value)
    if python_type is Decimal and isinstance(value, (int, float, str)):
        return Decimal(str(value))
    if python_type is float and isinstance(value, (int, Decimal)):
        return float(value)
    if python_type is int and isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    return value


@dataclass(frozen=True)
class Slot:
    """
    Where one projected expression lives in a store row.

    Attributes:
        key: The projected expression (or column name for raw rows)
        width: Number of columns read
        entity_type: Set for entity projections
        python_type: Declared type of a scalar projection
    """
    key: Hashable
    width: int = 1
    entity_type: Optional[EntityType] = None
    python_type: Optional[type] = None


def _load_entity(entity_type: EntityType, values: Dict[str, Any]) -> Any:
    """Build an entity from attribute -> raw value pairs (foreign keys included)."""
    owning = {r.name for r in entity_type.owning_relationships()}
    scalars: Dict[str, Any] = {}
    keys: Dict[str, Any] = {}
    for f in entity_type.fields:
        if f.name in values:
            scalars[f.name] = coerce(values[f.name], f.python_type)
    for name in owning:
        if name in values:
            keys[name] = values[name]
    return entity_type.cls._load(scalars, keys)


def _read_slot(slot: Slot, row: Sequence[Any], start: int) -> Any:
    if slot.entity_type is None:
        return coerce(row[start], slot.python_type)

    columns = slot.entity_type.select_columns()
    values = {attr: row[start + i] for i, (attr, _) in enumerate(columns)}
    # an outer-joined entity with no match comes back as all NULLs
    if all(v is None for v in values.values()):
        return None
    return _load_entity(slot.entity_type, values)


def materialize(rows: List[Tuple[Any, ...]], layout: Sequence[Slot]) -> List[Any]:
    """Convert positional rows into entities, scalars or ResultTuples."""
    results = []
    keys = [slot.key for slot in layout]
    for row in rows:
        values = []
        position = 0
        for slot in layout:
            values.append(_read_slot(slot, row, position))
            position += slot.width
        if len(layout) == 1:
            results.append(values[0])
        else:
            results.append(ResultTuple(values, keys))
    return results


def materialize_raw(
    rows: List[Tuple[Any, ...]],
    columns: List[str],
    entity_type: Optional[EntityType] = None
) -> List[Any]:
    """Convert rows of a raw statement, matching entity attributes by column name."""
    if entity_type is not None:
        by_column = {column.lower(): attr for attr, column in entity_type.select_columns()}
        by_column.update({attr.lower(): attr for attr, _ in entity_type.select_columns()})
        results = []
        for row in rows:
            values = {}
            for column, value in zip(columns, row):
                attr = by_column.get(column.lower())
                if attr is not None:
                    values[attr] = value
            results.append(_load_entity(entity_type, values))
        return results

    if len(columns) == 1:
        return [row[0] for row in rows]
    return [ResultTuple(row, columns) for row in rows]
