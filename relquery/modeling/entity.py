"""
Declarative Entities

Entities are plain Python classes whose class attributes describe the table:

    class Team(Entity):
        __tablename__ = "team"
        id = Id()
        name = Column(str)
        members = OneToMany("Member", mapped_by="team")

    class Member(Entity):
        id = Id(column="member_id")
        username = Column(str)
        age = Column(int, default=0)
        team = ManyToOne("Team", join_column="team_id")

Bidirectional integrity:
- ManyToOne is the owning side and the only mutator. Assigning it moves the
  child from the previous parent's mirror collection to the new parent's.
- OneToMany is a read-only view over that collection; it is never persisted.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from relquery.errors import MetamodelError, TypeMismatch
from relquery.modeling.metamodel import (
    Cardinality,
    EntityType,
    FieldDescriptor,
    RelationshipDescriptor,
    metamodel,
)

logger = logging.getLogger(__name__)

# Owning and mirror sides are updated together under this lock
_RELATIONSHIP_LOCK = threading.RLock()


class Column:
    """Scalar attribute mapped to a column."""

    identifier = False

    def __init__(
        self,
        python_type: type = str,
        column: Optional[str] = None,
        nullable: bool = True,
        default: Any = None,
    ):
        self.python_type = python_type
        self.column = column
        self.nullable = nullable
        self.default = default
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name
        if self.column is None:
            self.column = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance.__dict__.get(self.name, self.default)

    def __set__(self, instance, value):
        instance.__dict__[self.name] = value

    def descriptor(self) -> FieldDescriptor:
        return FieldDescriptor(
            name=self.name,
            column=self.column,
            python_type=self.python_type,
            identifier=self.identifier,
            nullable=self.nullable,
        )


class Id(Column):
    """Identifier attribute; assigned by the store when left as None."""

    identifier = True

    def __init__(self, python_type: type = int, column: Optional[str] = None):
        super().__init__(python_type, column=column, nullable=False, default=None)


class ManyToOne:
    """
    Owning side of a relationship; holds the foreign key.

    The parent is either a live object assigned in-process or, for entities
    loaded from the store, an unresolved identifier readable via key_of().
    """

    def __init__(self, target, join_column: Optional[str] = None, nullable: bool = True):
        self.target_name = target if isinstance(target, str) else target.__name__
        self.join_column = join_column
        self.nullable = nullable
        self.name: Optional[str] = None
        self.owner_name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name
        self.owner_name = owner.__name__
        if self.join_column is None:
            self.join_column = f"{name}_id"

    @property
    def _key_slot(self) -> str:
        return f"_{self.name}_key"

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance.__dict__.get(self.name)

    def __set__(self, instance, parent):
        self.assign(instance, parent)

    def assign(self, child, parent) -> None:
        """Point child at parent and keep every mirror collection consistent."""
        if parent is not None and type(parent).__name__ != self.target_name:
            raise TypeMismatch(
                message=f"{self.owner_name}.{self.name} expects {self.target_name}, got {type(parent).__name__}",
                details={"relationship": f"{self.owner_name}.{self.name}", "expected": self.target_name},
            )

        with _RELATIONSHIP_LOCK:
            mirrors = metamodel.mirrors_of(self.descriptor())
            previous = child.__dict__.get(self.name)

            if previous is not None and previous is not parent:
                for mirror in mirrors:
                    members = _mirror_collection(previous, mirror.name)
                    members[:] = [c for c in members if c is not child]

            child.__dict__[self.name] = parent
            child.__dict__.pop(self._key_slot, None)

            if parent is not None:
                for mirror in mirrors:
                    members = _mirror_collection(parent, mirror.name)
                    if not any(c is child for c in members):
                        members.append(child)

    def key_of(self, instance) -> Any:
        """Identifier of the referenced parent, resolved or not."""
        parent = instance.__dict__.get(self.name)
        if parent is not None:
            return getattr(parent, metamodel.identifier_of(type(parent)).name)
        return instance.__dict__.get(self._key_slot)

    def load_key(self, instance, key: Any) -> None:
        """Set the unresolved foreign key of a freshly loaded entity."""
        instance.__dict__[self._key_slot] = key

    def descriptor(self) -> RelationshipDescriptor:
        return RelationshipDescriptor(
            name=self.name,
            source=self.owner_name,
            target_name=self.target_name,
            owning=True,
            join_column=self.join_column,
            cardinality=Cardinality.MANY_TO_ONE,
        )


class OneToMany:
    """Mirror side of a relationship: a derived, read-only collection."""

    def __init__(self, target, mapped_by: str):
        self.target_name = target if isinstance(target, str) else target.__name__
        self.mapped_by = mapped_by
        self.name: Optional[str] = None
        self.owner_name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name
        self.owner_name = owner.__name__

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return tuple(_mirror_collection(instance, self.name))

    def __set__(self, instance, value):
        raise AttributeError(
            f"{self.owner_name}.{self.name} is derived from "
            f"{self.target_name}.{self.mapped_by}; assign that side instead"
        )

    def descriptor(self) -> RelationshipDescriptor:
        return RelationshipDescriptor(
            name=self.name,
            source=self.owner_name,
            target_name=self.target_name,
            owning=False,
            mapped_by=self.mapped_by,
            cardinality=Cardinality.ONE_TO_MANY,
        )


def _mirror_collection(instance, name: str) -> List[Any]:
    return instance.__dict__.setdefault(f"_{name}_mirror", [])


class Entity:
    """
    Base class for declarative entities.

    Subclasses register themselves in the process-wide metamodel. Pass
    ``abstract=True`` in the class statement for intermediate base classes.
    """

    __tablename__: Optional[str] = None

    def __init_subclass__(cls, abstract: bool = False, **kwargs):
        super().__init_subclass__(**kwargs)
        if abstract:
            return

        attributes: Dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, (Column, ManyToOne, OneToMany)):
                    attributes[name] = attr

        fields = [a.descriptor() for a in attributes.values() if isinstance(a, Column)]
        relationships = [
            a.descriptor() for a in attributes.values() if isinstance(a, (ManyToOne, OneToMany))
        ]

        metamodel.register(EntityType(
            name=cls.__name__,
            cls=cls,
            table=cls.__dict__.get("__tablename__") or cls.__name__.lower(),
            fields=fields,
            relationships=relationships,
        ))

    def __init__(self, **values):
        cls = type(self)
        for name, value in values.items():
            attr = getattr(cls, name, None)
            if not isinstance(attr, (Column, ManyToOne)):
                raise TypeError(f"{cls.__name__} has no assignable attribute '{name}'")
            setattr(self, name, value)

    @classmethod
    def entity_type(cls) -> EntityType:
        return metamodel.entity(cls)

    @classmethod
    def _load(cls, values: Dict[str, Any], keys: Dict[str, Any]) -> "Entity":
        """Build an instance from stored values without touching mirror collections."""
        instance = cls.__new__(cls)
        instance.__dict__.update(values)
        for name, key in keys.items():
            relationship = getattr(cls, name)
            relationship.load_key(instance, key)
        return instance

    def _scalar_items(self) -> List[Tuple[str, Any]]:
        return [(f.name, getattr(self, f.name)) for f in metamodel.fields_of(type(self))]

    def __repr__(self) -> str:
        body = ", ".join(f"{name}={value!r}" for name, value in self._scalar_items())
        return f"{type(self).__name__}({body})"


def key_of(instance: Entity, relationship: str) -> Any:
    """Foreign key held by an owning relationship of an entity."""
    attr = getattr(type(instance), relationship, None)
    if not isinstance(attr, ManyToOne):
        raise MetamodelError(
            message=f"'{relationship}' is not an owning relationship of {type(instance).__name__}",
            details={"entity": type(instance).__name__, "relationship": relationship},
        )
    return attr.key_of(instance)
