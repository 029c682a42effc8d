"""
Entity Metamodel

Static description of entity types:
- Fields (identifier first, then scalar attributes in declaration order)
- Relationship edges (owning many-to-one side, mirrored one-to-many side)
- Table and column names used by the planner

Entities register themselves when their class is created; the registry is
process-wide and may be frozen once every entity is declared.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from relquery.errors import ErrorCode, MetamodelError

logger = logging.getLogger(__name__)


class Cardinality(str, Enum):
    """Relationship cardinality, seen from the declaring entity."""
    MANY_TO_ONE = "N:1"
    ONE_TO_MANY = "1:N"


@dataclass(frozen=True)
class FieldDescriptor:
    """
    A scalar field of an entity.

    Attributes:
        name: Python attribute name
        column: Column name in the entity's table
        python_type: Value type used for construction-time type checks
        identifier: Whether this is the entity's identifier
        nullable: Whether NULL is allowed
    """
    name: str
    column: str
    python_type: type
    identifier: bool = False
    nullable: bool = True


@dataclass(frozen=True)
class RelationshipDescriptor:
    """
    A relationship edge declared on an entity.

    Attributes:
        name: Python attribute name
        source: Name of the declaring entity
        target_name: Name of the related entity
        owning: True for the side holding the foreign key
        join_column: Foreign-key column; on the mirror side it is the
            owning side's column and is resolved lazily
        mapped_by: For the mirror side, the owning relationship's name
        cardinality: MANY_TO_ONE (owning) or ONE_TO_MANY (mirror)
    """
    name: str
    source: str
    target_name: str
    owning: bool
    join_column: Optional[str] = None
    mapped_by: Optional[str] = None
    cardinality: Cardinality = Cardinality.MANY_TO_ONE

    @property
    def target(self) -> type:
        return metamodel.entity(self.target_name).cls

    @property
    def join_key(self) -> str:
        if self.owning:
            return self.join_column
        return metamodel.owning_side(self).join_column


@dataclass
class EntityType:
    """
    Metamodel entry for one entity class.

    Attributes:
        name: Entity name (class name)
        cls: The Python class
        table: Table name
        fields: Field descriptors, identifier first
        relationships: Relationship descriptors in declaration order
    """
    name: str
    cls: type
    table: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    relationships: List[RelationshipDescriptor] = field(default_factory=list)

    def __post_init__(self):
        identifiers = [f for f in self.fields if f.identifier]
        if len(identifiers) != 1:
            raise MetamodelError(
                message=f"Entity '{self.name}' must declare exactly one identifier, found {len(identifiers)}",
                details={"entity": self.name, "identifiers": [f.name for f in identifiers]},
                suggestion="Declare a single Id() attribute",
            )
        # Identifier first, the rest in declaration order
        self.fields = identifiers + [f for f in self.fields if not f.identifier]

    @property
    def identifier(self) -> FieldDescriptor:
        return self.fields[0]

    def get_field(self, name: str) -> FieldDescriptor:
        for f in self.fields:
            if f.name == name:
                return f
        raise MetamodelError(
            message=f"Entity '{self.name}' has no field '{name}'",
            code=ErrorCode.ERR_FIELD_NOT_FOUND,
            details={"entity": self.name, "available_fields": [f.name for f in self.fields]},
        )

    def get_relationship(self, name: str) -> RelationshipDescriptor:
        for r in self.relationships:
            if r.name == name:
                return r
        raise MetamodelError(
            message=f"Entity '{self.name}' has no relationship '{name}'",
            code=ErrorCode.ERR_FIELD_NOT_FOUND,
            details={"entity": self.name, "available_relationships": [r.name for r in self.relationships]},
        )

    def has_field(self, name: str) -> bool:
        return any(f.name == name for f in self.fields)

    def has_relationship(self, name: str) -> bool:
        return any(r.name == name for r in self.relationships)

    def owning_relationships(self) -> List[RelationshipDescriptor]:
        return [r for r in self.relationships if r.owning]

    def select_columns(self) -> List[Tuple[str, str]]:
        """
        Columns an entity projection reads, as (attribute, column) pairs:
        every field, then the foreign key of every owning relationship.
        """
        columns = [(f.name, f.column) for f in self.fields]
        columns.extend((r.name, r.join_column) for r in self.owning_relationships())
        return columns


class Metamodel:
    """
    Process-wide registry of entity types.

    Usage:
        metamodel.fields_of(Member)          # [id, username, age]
        metamodel.relationships_of(Member)   # [team -> Team (owning, team_id)]
    """

    def __init__(self):
        self._entities: Dict[str, EntityType] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, entity_type: EntityType) -> None:
        """Register an entity type (called when an Entity subclass is created)."""
        with self._lock:
            if self._frozen:
                raise MetamodelError(
                    message=f"Cannot register '{entity_type.name}': metamodel is frozen",
                    details={"entity": entity_type.name},
                )
            existing = self._entities.get(entity_type.name)
            if existing is not None and existing.cls is not entity_type.cls:
                logger.warning(f"Entity '{entity_type.name}' redeclared; replacing previous definition")
            self._entities[entity_type.name] = entity_type
        logger.debug(f"Registered entity {entity_type.name} -> table {entity_type.table}")

    def freeze(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def entity(self, entity: Union[str, type, Any]) -> EntityType:
        """Look up an entity type by class, instance or name."""
        if isinstance(entity, str):
            name = entity
        elif isinstance(entity, type):
            name = entity.__name__
        else:
            name = type(entity).__name__

        entity_type = self._entities.get(name)
        if entity_type is None or (isinstance(entity, type) and entity_type.cls is not entity):
            raise MetamodelError(
                message=f"Entity '{name}' is not registered",
                code=ErrorCode.ERR_ENTITY_NOT_FOUND,
                details={"entity": name, "available_entities": sorted(self._entities)},
                suggestion="Subclass relquery.Entity to declare an entity",
            )
        return entity_type

    def is_entity(self, cls: Any) -> bool:
        if not isinstance(cls, type):
            return False
        entity_type = self._entities.get(cls.__name__)
        return entity_type is not None and entity_type.cls is cls

    def fields_of(self, entity: Union[str, type]) -> List[FieldDescriptor]:
        """Ordered field descriptors of an entity, identifier first."""
        return list(self.entity(entity).fields)

    def relationships_of(self, entity: Union[str, type]) -> List[RelationshipDescriptor]:
        """Relationship descriptors of an entity in declaration order."""
        return list(self.entity(entity).relationships)

    def identifier_of(self, entity: Union[str, type]) -> FieldDescriptor:
        return self.entity(entity).identifier

    def owning_side(self, relationship: RelationshipDescriptor) -> RelationshipDescriptor:
        """Owning relationship for a mirror side (the relationship itself if owning)."""
        if relationship.owning:
            return relationship
        return self.entity(relationship.target_name).get_relationship(relationship.mapped_by)

    def mirrors_of(self, relationship: RelationshipDescriptor) -> List[RelationshipDescriptor]:
        """Mirror relationships declared on the target of an owning relationship."""
        if relationship.target_name not in self._entities:
            return []
        target = self._entities[relationship.target_name]
        return [
            r for r in target.relationships
            if not r.owning and r.mapped_by == relationship.name and r.target_name == relationship.source
        ]

    def join_columns(self, relationship: RelationshipDescriptor) -> Tuple[EntityType, str, EntityType, str]:
        """
        Resolve the join condition of a relationship.

        Returns:
            (child entity, foreign-key column, parent entity, identifier column)
        """
        owning = self.owning_side(relationship)
        child = self.entity(owning.source)
        parent = self.entity(owning.target_name)
        return child, owning.join_column, parent, parent.identifier.column

    def entities(self) -> List[EntityType]:
        return list(self._entities.values())

    def clear(self) -> None:
        """Remove all entity types (for testing)."""
        with self._lock:
            self._entities.clear()
            self._frozen = False


# Global registry
metamodel = Metamodel()


def fields_of(entity: Union[str, Type]) -> List[FieldDescriptor]:
    return metamodel.fields_of(entity)


def relationships_of(entity: Union[str, Type]) -> List[RelationshipDescriptor]:
    return metamodel.relationships_of(entity)
