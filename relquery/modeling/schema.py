"""
Table creation from the metamodel.

Builds CREATE TABLE statements for registered entities and transpiles them
to the adapter's dialect with SQLGlot. Only fixture-level DDL: identifier
primary key, scalar columns and owning foreign-key columns.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

import sqlglot

from relquery.adapters.base import BaseAdapter
from relquery.core.config import settings
from relquery.modeling.metamodel import EntityType, metamodel

logger = logging.getLogger(__name__)

# Python type -> generic SQL type (SQLGlot maps it to the target dialect)
SQL_TYPES = {
    bool: "BOOLEAN",
    int: "BIGINT",
    float: "DOUBLE",
    Decimal: "DECIMAL(18, 4)",
    str: "VARCHAR",
    datetime: "TIMESTAMP",
    date: "DATE",
}


def _sql_type(python_type: type) -> str:
    return SQL_TYPES.get(python_type, "VARCHAR")


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def create_table_sql(entity_type: EntityType, dialect: Optional[str] = None) -> str:
    """Render CREATE TABLE IF NOT EXISTS for one entity."""
    columns: List[str] = []
    for f in entity_type.fields:
        parts = [_quote(f.column), _sql_type(f.python_type)]
        if f.identifier:
            parts.append("PRIMARY KEY")
        elif not f.nullable:
            parts.append("NOT NULL")
        columns.append(" ".join(parts))

    for relationship in entity_type.owning_relationships():
        key_type = metamodel.entity(relationship.target_name).identifier.python_type
        columns.append(f"{_quote(relationship.join_column)} {_sql_type(key_type)}")

    ddl = f"CREATE TABLE IF NOT EXISTS {_quote(entity_type.table)} ({', '.join(columns)})"
    return sqlglot.transpile(ddl, write=dialect or settings.dialect_for())[0]


def create_tables(adapter: BaseAdapter, *entities: type, dialect: Optional[str] = None) -> List[str]:
    """
    Create tables for the given entity classes (all registered when omitted).

    Returns:
        The executed statements, in order
    """
    dialect = dialect or settings.dialect_for(adapter.ENGINE)
    entity_types = [metamodel.entity(e) for e in entities] if entities else metamodel.entities()

    statements = []
    for entity_type in entity_types:
        sql = create_table_sql(entity_type, dialect)
        logger.debug(f"Creating table {entity_type.table}: {sql}")
        adapter.execute(sql)
        statements.append(sql)
    return statements
