"""
Pytest configuration and shared fixtures for relquery tests.
"""

import pytest

from relquery.adapters import DuckDBAdapter, SQLiteAdapter
from relquery.domain.query import Q, QueryFactory, QueryPlanner
from relquery.modeling import create_tables
from relquery.models import Member, Team
from relquery.persistence import Session


def seed(adapter):
    """Create tables and persist teamA{member1, member2}, teamB{member3, member4}."""
    create_tables(adapter, Team, Member)
    with Session(adapter) as session:
        team_a = session.persist(Team("teamA"))
        team_b = session.persist(Team("teamB"))
        session.persist_all(
            Member("member1", 10, team_a),
            Member("member2", 20, team_a),
            Member("member3", 30, team_b),
            Member("member4", 40, team_b),
        )
    return team_a, team_b


@pytest.fixture
def duckdb_adapter():
    """Connected in-memory DuckDB adapter."""
    adapter = DuckDBAdapter({"database": ":memory:"})
    adapter.connect()
    yield adapter
    adapter.disconnect()


@pytest.fixture
def sqlite_adapter():
    """Connected in-memory SQLite adapter."""
    adapter = SQLiteAdapter({"database": ":memory:"})
    adapter.connect()
    yield adapter
    adapter.disconnect()


@pytest.fixture
def teams(duckdb_adapter):
    """Seeded DuckDB store; returns the persisted (teamA, teamB)."""
    return seed(duckdb_adapter)


@pytest.fixture
def query(duckdb_adapter, teams):
    """Query factory over the seeded DuckDB store."""
    return QueryFactory(duckdb_adapter)


@pytest.fixture
def sqlite_query(sqlite_adapter):
    """Query factory over a seeded SQLite store."""
    seed(sqlite_adapter)
    return QueryFactory(sqlite_adapter)


@pytest.fixture
def member():
    return Q(Member)


@pytest.fixture
def team():
    return Q(Team)


@pytest.fixture
def planner():
    """DuckDB planner with nulls-last default ordering."""
    return QueryPlanner(dialect="duckdb", default_null_ordering="last")
