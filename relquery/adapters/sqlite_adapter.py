"""
SQLite Adapter for relquery

Uses the standard library sqlite3 driver. Transactions are opened explicitly
through begin(), so the connection runs in autocommit mode otherwise.
"""

import logging
import os
import sqlite3
from typing import Any, Dict, List, Optional, Sequence, Tuple

from relquery.adapters.base import BaseAdapter, ConnectionError

logger = logging.getLogger(__name__)


class SQLiteAdapter(BaseAdapter):
    """
    Adapter for SQLite databases.

    Config options:
        database: Path to SQLite file or ':memory:' (default)
        create: Allow creating a missing database file (default: True)
        timeout: Lock wait timeout in seconds (default: 30)
        foreign_keys: Enforce foreign key constraints (default: True)
    """

    ENGINE = "sqlite"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config or {})

        self.database = self.config.get("database", ":memory:")
        if self.database != ":memory:" and not self.config.get("create", True):
            if not os.path.exists(self.database):
                raise ConnectionError(f"Database file not found: {self.database}", engine=self.ENGINE)

        self.timeout = self.config.get("timeout", 30.0)
        self.foreign_keys = self.config.get("foreign_keys", True)

    def _open(self):
        # check_same_thread=False: access is serialized by self.lock instead
        connection = sqlite3.connect(
            self.database,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        if self.foreign_keys:
            connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _run(self, sql: str, params: Sequence[Any]) -> Tuple[List[str], List[Tuple[Any, ...]]]:
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql, tuple(params))
            if not cursor.description:
                return [], []
            return [d[0] for d in cursor.description], [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def interrupt(self) -> None:
        connection = self._connection
        if connection is not None:
            connection.interrupt()
