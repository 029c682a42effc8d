"""
DuckDB Adapter for relquery

DuckDB is the default store: embedded, in-process, and able to run the
test fixtures without any infrastructure.

Connection modes:
- In-memory (default): one private database per adapter
- File-based: persistent, reopened across adapters
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import duckdb

from relquery.adapters.base import BaseAdapter

logger = logging.getLogger(__name__)


class DuckDBAdapter(BaseAdapter):
    """
    Adapter for DuckDB.

    Config options:
        database: Path to database file, or ":memory:" (default)
        read_only: Open in read-only mode (default: False)
    """

    ENGINE = "duckdb"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config or {})
        self.database = self.config.get("database", ":memory:")
        self.read_only = self.config.get("read_only", False)

    def _open(self):
        return duckdb.connect(database=self.database, read_only=self.read_only)

    def _run(self, sql: str, params: Sequence[Any]) -> Tuple[List[str], List[Tuple[Any, ...]]]:
        cursor = self._connection.execute(sql, list(params))
        if not cursor.description:
            return [], []
        return [d[0] for d in cursor.description], [tuple(row) for row in cursor.fetchall()]

    def interrupt(self) -> None:
        connection = self._connection
        if connection is not None:
            connection.interrupt()
