"""
Session - explicit persistence of entities.

The query layer is read-only; a Session is how fixtures and applications
put entities into the store:

    with Session(adapter) as session:
        team_a = session.persist(Team("teamA"))
        session.persist(Member("member1", 10, team_a))

Entering the session opens a transaction and holds the adapter lock until it
commits (or rolls back on error).
"""

import logging
from typing import Any, List, Optional

from sqlglot import expressions as exp

from relquery.adapters.base import AdapterError, BaseAdapter
from relquery.core.config import settings
from relquery.errors import PersistenceError
from relquery.modeling.entity import Entity, key_of
from relquery.modeling.metamodel import EntityType, metamodel

logger = logging.getLogger(__name__)


class Session:
    """
    Unit of work over one adapter.

    Usage:
        session = Session(adapter)
        session.persist(Team("teamA"))   # autocommit outside a with-block
    """

    def __init__(self, adapter: BaseAdapter, dialect: Optional[str] = None):
        self.adapter = adapter
        self.dialect = dialect or settings.dialect_for(adapter.ENGINE)

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def __enter__(self) -> "Session":
        self.adapter.lock.acquire()
        try:
            self.adapter.begin()
        except AdapterError as e:
            self.adapter.lock.release()
            raise self._failure("Could not open transaction", e) from e
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.adapter.commit()
                logger.debug("Session committed")
            else:
                self.adapter.rollback()
                logger.info(f"Session rolled back after {exc_type.__name__}")
        finally:
            self.adapter.lock.release()
        return False

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def persist(self, entity: Entity) -> Entity:
        """
        Insert an entity, assigning its identifier when unset.

        Parents referenced through owning relationships must be persisted first.

        Returns:
            The same entity, with its identifier set
        """
        entity_type = metamodel.entity(type(entity))
        identifier = entity_type.identifier

        with self.adapter.lock:
            if getattr(entity, identifier.name) is None:
                setattr(entity, identifier.name, self._next_identifier(entity_type))

            columns: List[str] = []
            values: List[Any] = []
            for f in entity_type.fields:
                columns.append(f.column)
                values.append(getattr(entity, f.name))

            for relationship in entity_type.owning_relationships():
                parent = getattr(entity, relationship.name)
                key = key_of(entity, relationship.name)
                if parent is not None and key is None:
                    raise PersistenceError(
                        message=f"{entity_type.name}.{relationship.name} references an unsaved {relationship.target_name}",
                        details={"entity": entity_type.name, "relationship": relationship.name},
                        suggestion=f"Persist the {relationship.target_name} first",
                    )
                columns.append(relationship.join_column)
                values.append(key)

            sql = self._insert_sql(entity_type, columns)
            try:
                self.adapter.execute(sql, values)
            except AdapterError as e:
                raise self._failure(f"Could not persist {entity_type.name}", e, sql) from e

        logger.debug(f"Persisted {entity!r}")
        return entity

    def persist_all(self, *entities: Entity) -> List[Entity]:
        return [self.persist(e) for e in entities]

    def _next_identifier(self, entity_type: EntityType) -> int:
        column = exp.column(entity_type.identifier.column, quoted=True)
        select = exp.select(
            exp.Add(
                this=exp.Coalesce(this=exp.Max(this=column), expressions=[exp.Literal.number(0)]),
                expression=exp.Literal.number(1),
            )
        ).from_(exp.Table(this=exp.to_identifier(entity_type.table, quoted=True)))
        sql = select.sql(dialect=self.dialect)

        try:
            result = self.adapter.execute(sql)
        except AdapterError as e:
            raise self._failure(f"Could not assign identifier for {entity_type.name}", e, sql) from e
        return int(result.rows[0][0])

    def _insert_sql(self, entity_type: EntityType, columns: List[str]) -> str:
        table = exp.Table(this=exp.to_identifier(entity_type.table, quoted=True))
        schema = exp.Schema(this=table, expressions=[exp.to_identifier(c, quoted=True) for c in columns])
        values = exp.values([tuple(exp.Placeholder() for _ in columns)])
        return exp.Insert(this=schema, expression=values).sql(dialect=self.dialect)

    def _failure(self, message: str, error: AdapterError, sql: str = "") -> PersistenceError:
        failure = PersistenceError(
            message=f"{message}: {error}",
            details={"engine": self.adapter.ENGINE, "sql": sql},
            original_error=error,
        )
        failure.log()
        return failure
