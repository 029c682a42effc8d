"""
relquery Modeling Module

Provides the entity metamodel:
- Declarative entities (Id, Column, ManyToOne, OneToMany)
- Process-wide metamodel registry (fields, relationships, join keys)
- Table creation for fixtures
"""

from .metamodel import (
    Cardinality,
    EntityType,
    FieldDescriptor,
    Metamodel,
    RelationshipDescriptor,
    fields_of,
    metamodel,
    relationships_of,
)
from .entity import Column, Entity, Id, ManyToOne, OneToMany, key_of
from .schema import create_table_sql, create_tables

__all__ = [
    "Cardinality",
    "EntityType",
    "FieldDescriptor",
    "Metamodel",
    "RelationshipDescriptor",
    "fields_of",
    "metamodel",
    "relationships_of",
    "Column",
    "Entity",
    "Id",
    "ManyToOne",
    "OneToMany",
    "key_of",
    "create_table_sql",
    "create_tables",
]
