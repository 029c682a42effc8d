"""
Tests for the entity metamodel.
"""

import pytest

from relquery.errors import ErrorCode, MetamodelError
from relquery.modeling import Column, Entity, Id, create_table_sql, metamodel
from relquery.modeling.metamodel import Cardinality, EntityType, FieldDescriptor, Metamodel
from relquery.models import Member, Team


class TestFields:
    """Tests for field descriptors."""

    def test_fields_in_declaration_order(self):
        """Identifier comes first, then scalar fields as declared."""
        names = [f.name for f in metamodel.fields_of(Member)]
        assert names == ["id", "username", "age"]

    def test_identifier(self):
        identifier = metamodel.identifier_of(Member)
        assert identifier.name == "id"
        assert identifier.column == "member_id"
        assert identifier.identifier is True

    def test_column_defaults_to_attribute_name(self):
        assert Member.entity_type().get_field("username").column == "username"

    def test_field_types(self):
        types = {f.name: f.python_type for f in metamodel.fields_of(Member)}
        assert types == {"id": int, "username": str, "age": int}

    def test_unknown_field(self):
        with pytest.raises(MetamodelError) as exc_info:
            Member.entity_type().get_field("nickname")
        assert exc_info.value.code == ErrorCode.ERR_FIELD_NOT_FOUND


class TestRelationships:
    """Tests for relationship descriptors."""

    def test_owning_side(self):
        (team,) = metamodel.relationships_of(Member)
        assert team.name == "team"
        assert team.owning is True
        assert team.join_column == "team_id"
        assert team.target is Team
        assert team.cardinality == Cardinality.MANY_TO_ONE

    def test_mirror_side(self):
        (members,) = metamodel.relationships_of(Team)
        assert members.owning is False
        assert members.mapped_by == "team"
        assert members.target is Member
        assert members.cardinality == Cardinality.ONE_TO_MANY

    def test_mirror_resolves_to_owning_side(self):
        members = Team.entity_type().get_relationship("members")
        owning = metamodel.owning_side(members)
        assert owning.source == "Member"
        assert owning.name == "team"

    def test_join_columns_same_for_both_sides(self):
        team = Member.entity_type().get_relationship("team")
        members = Team.entity_type().get_relationship("members")
        child, fk, parent, pk = metamodel.join_columns(team)
        assert (child.cls, fk, parent.cls, pk) == (Member, "team_id", Team, "id")
        assert metamodel.join_columns(members) == metamodel.join_columns(team)

    def test_select_columns_include_foreign_key(self):
        assert Member.entity_type().select_columns() == [
            ("id", "member_id"),
            ("username", "username"),
            ("age", "age"),
            ("team", "team_id"),
        ]
        assert Team.entity_type().select_columns() == [("id", "id"), ("name", "name")]


class TestRegistry:
    """Tests for entity registration."""

    def test_lookup_by_class_name_and_instance(self):
        assert metamodel.entity(Member).cls is Member
        assert metamodel.entity("Team").cls is Team
        assert metamodel.entity(Team("x")).cls is Team

    def test_unknown_entity(self):
        with pytest.raises(MetamodelError) as exc_info:
            metamodel.entity("Nope")
        assert exc_info.value.code == ErrorCode.ERR_ENTITY_NOT_FOUND

    def test_is_entity(self):
        assert metamodel.is_entity(Member)
        assert not metamodel.is_entity(str)
        assert not metamodel.is_entity("Member")

    def test_entity_requires_identifier(self):
        with pytest.raises(MetamodelError):
            class NoIdentifier(Entity):
                name = Column(str)

    def test_entity_rejects_two_identifiers(self):
        with pytest.raises(MetamodelError):
            class TwoIdentifiers(Entity):
                id = Id()
                other_id = Id()

    def test_frozen_registry_rejects_registration(self):
        registry = Metamodel()
        registry.freeze()
        entity_type = EntityType(
            name="Tag",
            cls=object,
            table="tag",
            fields=[FieldDescriptor(name="id", column="id", python_type=int, identifier=True, nullable=False)],
        )
        with pytest.raises(MetamodelError):
            registry.register(entity_type)
        assert registry.frozen

    def test_table_name_defaults_to_class_name(self):
        class Badge(Entity):
            id = Id()
            label = Column(str)

        assert Badge.entity_type().table == "badge"

    def test_abstract_base_is_not_registered(self):
        class Audited(Entity, abstract=True):
            created_by = Column(str)

        class Invoice(Audited):
            id = Id()

        assert not metamodel.is_entity(Audited)
        assert [f.name for f in metamodel.fields_of(Invoice)] == ["id", "created_by"]


class TestSchema:
    """Tests for table DDL generation."""

    def test_member_table(self):
        sql = create_table_sql(Member.entity_type(), "duckdb")
        assert sql.startswith('CREATE TABLE IF NOT EXISTS "member"')
        assert '"member_id" BIGINT PRIMARY KEY' in sql
        assert '"team_id" BIGINT' in sql

    def test_table_is_created(self, duckdb_adapter):
        from relquery.modeling import create_tables

        statements = create_tables(duckdb_adapter, Team, Member)
        assert len(statements) == 2
        result = duckdb_adapter.execute('SELECT COUNT(*) FROM "member"')
        assert result.rows == [(0,)]
