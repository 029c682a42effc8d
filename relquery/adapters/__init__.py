"""
Store Adapters for relquery

This package provides a unified interface for connecting to relational stores.
Each adapter handles:
- Connection management
- Statement execution
- Parameter placeholder conversion
- Unit-of-work boundaries (begin/commit/rollback)

Supported Engines:
- DuckDB (default)
- SQLite (built-in, zero dependencies)
"""

from relquery.adapters.base import BaseAdapter, AdapterResult, AdapterError, ConnectionError, QueryError
from relquery.adapters.duckdb_adapter import DuckDBAdapter
from relquery.adapters.sqlite_adapter import SQLiteAdapter
from relquery.adapters.factory import (
    get_adapter,
    register_adapter,
    list_adapters,
    close_adapter,
    close_all_adapters,
)

__all__ = [
    "BaseAdapter",
    "AdapterResult",
    "AdapterError",
    "ConnectionError",
    "QueryError",
    "DuckDBAdapter",
    "SQLiteAdapter",
    "get_adapter",
    "register_adapter",
    "list_adapters",
    "close_adapter",
    "close_all_adapters",
]
