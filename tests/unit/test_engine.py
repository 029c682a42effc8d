"""
Tests for the execution engine: locking, timeouts and cancellation.
"""

import threading

import pytest

from relquery.adapters import AdapterError
from relquery.domain.query import QueryEngine, QueryFactory
from relquery.domain.query.state import RawStatement
from relquery.errors import ErrorCode, QueryTimeout, StoreExecutionFailure, UnboundAlias

# Never finishes on its own
ENDLESS = "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT MAX(x) FROM c"


class TestTimeout:
    """A deadline interrupts the running statement."""

    def test_timeout_raises_query_timeout(self, sqlite_adapter):
        engine = QueryEngine(sqlite_adapter)
        with pytest.raises(QueryTimeout) as exc_info:
            engine.fetch(RawStatement(ENDLESS), timeout=0.2)
        error = exc_info.value
        assert error.code == ErrorCode.ERR_QUERY_TIMEOUT
        assert error.details["timeout_seconds"] == 0.2
        assert isinstance(error.__cause__, AdapterError)

    def test_timeout_is_a_store_failure(self, sqlite_adapter):
        engine = QueryEngine(sqlite_adapter)
        with pytest.raises(StoreExecutionFailure):
            engine.fetch_count(RawStatement(ENDLESS), timeout=0.2)

    def test_settings_default_timeout(self, sqlite_adapter, monkeypatch):
        from relquery.core.config import settings

        monkeypatch.setattr(settings, "query_timeout_seconds", 0.2)
        with pytest.raises(QueryTimeout):
            QueryEngine(sqlite_adapter).fetch(RawStatement(ENDLESS))

    def test_adapter_usable_after_timeout(self, sqlite_query, member):
        with pytest.raises(QueryTimeout):
            sqlite_query.raw(ENDLESS).fetch(timeout=0.2)
        assert sqlite_query.select_from(member).fetch_count() == 4

    def test_fast_query_unaffected(self, sqlite_query, member):
        assert sqlite_query.select_from(member).fetch_count(timeout=5) == 4


class TestCancel:
    """cancel() interrupts the query running on the engine."""

    def test_cancel_running_query(self, sqlite_adapter):
        factory = QueryFactory(sqlite_adapter)
        errors = []

        def run():
            try:
                factory.raw(ENDLESS).fetch()
            except QueryTimeout as e:
                errors.append(e)

        worker = threading.Thread(target=run)
        worker.start()
        # retry until the statement is actually running
        while worker.is_alive():
            factory.engine.cancel()
            worker.join(0.05)

        assert len(errors) == 1
        assert errors[0].details["timeout_seconds"] is None
        assert "cancelled" in errors[0].message

    def test_cancel_when_idle(self, sqlite_adapter):
        assert QueryEngine(sqlite_adapter).cancel() is False


class TestExecution:
    """Planning and failure wrapping."""

    def test_planning_errors_before_io(self, duckdb_adapter, member, team):
        # no tables exist: a translation error must win over a store error
        factory = QueryFactory(duckdb_adapter)
        with pytest.raises(UnboundAlias):
            factory.select_from(member).where(team.name.eq("teamA")).fetch()

    def test_store_failure_wraps_adapter_error(self, duckdb_adapter, member):
        factory = QueryFactory(duckdb_adapter)
        with pytest.raises(StoreExecutionFailure) as exc_info:
            factory.select_from(member).fetch()
        error = exc_info.value
        assert error.code == ErrorCode.ERR_QUERY_FAILED
        assert "member" in error.details["sql"]
        assert not isinstance(error, QueryTimeout)

    def test_failures_are_logged(self, duckdb_adapter, member, caplog):
        factory = QueryFactory(duckdb_adapter)
        with caplog.at_level("ERROR", logger="relquery.errors"):
            with pytest.raises(StoreExecutionFailure):
                factory.select_from(member).fetch()
        assert ErrorCode.ERR_QUERY_FAILED.value in caplog.text

    def test_dialect_follows_adapter(self, sqlite_adapter, duckdb_adapter):
        assert QueryEngine(sqlite_adapter).dialect == "sqlite"
        assert QueryEngine(duckdb_adapter).dialect == "duckdb"

    def test_concurrent_queries_share_adapter(self, query, member):
        results = []

        def run():
            for _ in range(10):
                results.append(query.select_from(member).order_by(member.age.asc()).fetch_results().total)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results == [4] * 40


@pytest.fixture
def executed(query, duckdb_adapter, monkeypatch):
    """SQL of every statement sent to the seeded DuckDB adapter from here on."""
    statements = []
    execute = duckdb_adapter.execute

    def recording(sql, params=None):
        statements.append(sql)
        return execute(sql, params)

    monkeypatch.setattr(duckdb_adapter, "execute", recording)
    return statements


class TestRoundTrips:
    """Each fetch mode issues a fixed number of statements."""

    @pytest.mark.parametrize("mode", ["fetch", "fetch_one", "fetch_first", "fetch_count"])
    def test_single_statement_modes(self, query, member, executed, mode):
        getattr(query.select_from(member).where(member.age.eq(10)), mode)()
        assert len(executed) == 1

    def test_fetch_results_counts_then_pages(self, query, member, executed):
        page = query.select_from(member).limit(2).fetch_results()
        assert page.total == 4
        assert len(executed) == 2
        assert executed[0].startswith("SELECT COUNT(*)")

    def test_fetch_results_without_matches(self, query, member, executed):
        page = query.select_from(member).where(member.age.gt(100)).fetch_results()
        assert page.is_empty()
        assert page.total == 0
        assert len(executed) == 2
