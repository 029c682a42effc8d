"""
Tests for raw statements.

Raw SQL bypasses the planner but keeps the fetch-mode contract.
"""

import pytest

from relquery.adapters import AdapterError
from relquery.domain.query import ResultTuple
from relquery.errors import NonUniqueResult, QueryValidationError, StoreExecutionFailure
from relquery.modeling import key_of
from relquery.models import Member


MEMBERS = 'SELECT * FROM "member" WHERE age > ? ORDER BY age'


class TestRawFetch:
    """Fetch modes on raw statements."""

    def test_scalars(self, query):
        names = query.raw('SELECT username FROM "member" ORDER BY age').fetch()
        assert names == ["member1", "member2", "member3", "member4"]

    def test_entities(self, query, teams):
        _, team_b = teams
        members = query.raw(MEMBERS, [25], entity=Member).fetch()
        assert [m.username for m in members] == ["member3", "member4"]
        assert all(isinstance(m, Member) for m in members)
        assert key_of(members[0], "team") == team_b.id

    def test_tuples(self, query):
        row = query.raw('SELECT username, age FROM "member" WHERE username = ?', ["member2"]).fetch_one()
        assert isinstance(row, ResultTuple)
        assert row == ("member2", 20)
        assert row["age"] == 20

    def test_fetch_one_none(self, query):
        assert query.raw(MEMBERS, [100], entity=Member).fetch_one() is None

    def test_fetch_one_non_unique(self, query):
        with pytest.raises(NonUniqueResult):
            query.raw(MEMBERS, [15], entity=Member).fetch_one()

    def test_fetch_first(self, query):
        first = query.raw('SELECT * FROM "member" WHERE username = ?', ["member2"], entity=Member).fetch_first()
        assert first.age == 20

    def test_fetch_count(self, query):
        assert query.raw(MEMBERS, [15]).fetch_count() == 3

    def test_fetch_results(self, query):
        page = query.raw(MEMBERS, [0]).limit(2).offset(1).fetch_results()
        assert page.total == 4
        assert len(page.results) == 2
        assert page.limit == 2
        assert page.offset == 1

    def test_trailing_semicolon(self, query):
        assert query.raw('SELECT COUNT(*) FROM "member";').fetch_count() == 1

    def test_sqlite(self, sqlite_query):
        assert sqlite_query.raw('SELECT username FROM "member" WHERE age >= ? ORDER BY age', [30]).fetch() == [
            "member3",
            "member4",
        ]
        assert sqlite_query.raw('SELECT * FROM "member"').offset(3).fetch_count() == 4
        assert len(sqlite_query.raw('SELECT * FROM "member"').offset(3).fetch()) == 1


class TestRawErrors:
    """Errors on raw statements."""

    def test_empty_sql(self, query):
        with pytest.raises(QueryValidationError):
            query.raw("   ")

    def test_store_failure(self, query):
        with pytest.raises(StoreExecutionFailure) as exc_info:
            query.raw("SELECT * FROM no_such_table").fetch()
        error = exc_info.value
        assert error.engine == "duckdb"
        assert isinstance(error.__cause__, AdapterError)
        assert error.original_error is not None

    def test_negative_limit(self, query):
        with pytest.raises(QueryValidationError):
            query.raw(MEMBERS, [0]).limit(-1)
