"""
Tests for store adapters and the adapter factory.
"""

import pytest

from relquery.adapters import (
    AdapterError,
    ConnectionError,
    DuckDBAdapter,
    QueryError,
    SQLiteAdapter,
    close_adapter,
    close_all_adapters,
    get_adapter,
    list_adapters,
    register_adapter,
)


class TestDuckDBAdapter:
    """Tests for DuckDBAdapter."""

    def test_execute(self, duckdb_adapter):
        result = duckdb_adapter.execute("SELECT ? + 1 AS answer", [41])
        assert result.rows == [(42,)]
        assert result.columns == ["answer"]
        assert result.row_count == 1
        assert result.engine == "duckdb"
        assert result.as_dicts() == [{"answer": 42}]

    def test_statement_without_rows(self, duckdb_adapter):
        result = duckdb_adapter.execute("CREATE TABLE t (x INTEGER)")
        assert result.rows == []

    def test_query_error(self, duckdb_adapter):
        with pytest.raises(QueryError) as exc_info:
            duckdb_adapter.execute("SELECT * FROM missing")
        assert exc_info.value.engine == "duckdb"
        assert exc_info.value.original_error is not None

    def test_not_connected(self):
        with pytest.raises(QueryError):
            DuckDBAdapter().execute("SELECT 1")

    def test_health_check(self, duckdb_adapter):
        assert duckdb_adapter.health_check()
        duckdb_adapter.disconnect()
        assert not duckdb_adapter.health_check()

    def test_transaction(self, duckdb_adapter):
        duckdb_adapter.execute("CREATE TABLE t (x INTEGER)")
        duckdb_adapter.begin()
        assert duckdb_adapter.in_transaction()
        duckdb_adapter.execute("INSERT INTO t VALUES (1)")
        duckdb_adapter.rollback()
        assert duckdb_adapter.execute("SELECT COUNT(*) FROM t").rows == [(0,)]
        assert not duckdb_adapter.in_transaction()

    def test_context_manager(self):
        with DuckDBAdapter() as adapter:
            assert adapter.is_connected()
        assert not adapter.is_connected()


class TestSQLiteAdapter:
    """Tests for SQLiteAdapter."""

    def test_execute(self, sqlite_adapter):
        result = sqlite_adapter.execute("SELECT ? AS name", ["member1"])
        assert result.rows == [("member1",)]
        assert result.columns == ["name"]

    def test_transaction(self, sqlite_adapter):
        sqlite_adapter.execute("CREATE TABLE t (x INTEGER)")
        sqlite_adapter.begin()
        sqlite_adapter.execute("INSERT INTO t VALUES (1)")
        sqlite_adapter.commit()
        assert sqlite_adapter.execute("SELECT COUNT(*) FROM t").rows == [(1,)]

    def test_foreign_keys_enforced(self, sqlite_adapter):
        assert sqlite_adapter.execute("PRAGMA foreign_keys").rows == [(1,)]

    def test_missing_file_without_create(self, tmp_path):
        with pytest.raises(ConnectionError):
            SQLiteAdapter({"database": str(tmp_path / "missing.db"), "create": False})

    def test_disconnect_twice(self, sqlite_adapter):
        sqlite_adapter.disconnect()
        sqlite_adapter.disconnect()
        assert not sqlite_adapter.is_connected()


class TestFactory:
    """Tests for get_adapter and the registry."""

    def test_builtin_engines(self):
        assert {"duckdb", "sqlite", "sqlite3"} <= set(list_adapters())

    def test_get_adapter_connects(self):
        adapter = get_adapter("sqlite", {"database": ":memory:"})
        try:
            assert isinstance(adapter, SQLiteAdapter)
            assert adapter.is_connected()
        finally:
            adapter.disconnect()

    def test_default_engine(self):
        adapter = get_adapter()
        try:
            assert isinstance(adapter, DuckDBAdapter)
        finally:
            adapter.disconnect()

    def test_unsupported_engine(self):
        with pytest.raises(ConnectionError) as exc_info:
            get_adapter("oracle")
        assert isinstance(exc_info.value, AdapterError)
        assert "duckdb" in str(exc_info.value)

    def test_cache(self):
        first = get_adapter("duckdb", cache_key="shared", use_cache=True)
        try:
            assert get_adapter("duckdb", cache_key="shared", use_cache=True) is first
        finally:
            assert close_adapter("shared")
        assert not close_adapter("shared")

    def test_close_all(self):
        get_adapter("duckdb", cache_key="a", use_cache=True)
        get_adapter("sqlite", cache_key="b", use_cache=True)
        assert close_all_adapters() == 2

    def test_register_custom_adapter(self):
        class MemoryAdapter(SQLiteAdapter):
            ENGINE = "memory"

        register_adapter("Memory", MemoryAdapter)
        adapter = get_adapter("memory")
        try:
            assert type(adapter) is MemoryAdapter
        finally:
            adapter.disconnect()
