"""
Base Adapter Interface for relquery

An adapter owns one connection to a relational store. The query engine and
the persistence session only ever talk to this interface, so the typed query
layer behaves the same on every engine.

DESIGN PRINCIPLES:
-----------------
1. Statements use ? placeholders; values are always bound, never inlined
2. Rows come back as positional tuples, in projection order
3. Driver errors are wrapped in AdapterError (original kept)
4. One connection per adapter; callers serialize through ``adapter.lock``
5. interrupt() may be called from another thread while execute() blocks
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """Base exception for adapter errors."""

    def __init__(self, message: str, engine: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.engine = engine
        self.original_error = original_error


class ConnectionError(AdapterError):
    """The store could not be opened."""
    pass


class QueryError(AdapterError):
    """A statement failed or was interrupted."""
    pass


@dataclass
class AdapterResult:
    """
    Rows returned by one statement.

    Attributes:
        rows: Positional rows, column order preserved
        columns: Column labels as reported by the driver
        row_count: Number of rows (derived from rows)
        execution_time_ms: Wall time spent in the driver
        engine: Engine that ran the statement
        sql: Statement text, placeholders included
    """
    rows: List[Tuple[Any, ...]]
    columns: List[str]
    row_count: int = 0
    execution_time_ms: float = 0.0
    engine: str = ""
    sql: str = ""

    def __post_init__(self):
        self.row_count = len(self.rows)

    def as_dicts(self) -> List[Dict[str, Any]]:
        """Rows keyed by column label."""
        return [dict(zip(self.columns, row)) for row in self.rows]


class BaseAdapter(ABC):
    """
    Abstract base class for store adapters.

    Subclasses provide the driver calls:
    - _open(): return a new DB-API style connection
    - _run(): execute one statement, return (columns, rows)
    - interrupt(): abort whatever the connection is running

    Execution bookkeeping (timing, error wrapping, locking, transactions)
    lives here.

    Usage:
        with DuckDBAdapter() as adapter:
            result = adapter.execute("SELECT * FROM member WHERE age > ?", [18])
    """

    ENGINE: str = "base"

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self._connection = None
        self._in_transaction = False
        # re-entrant: a session or engine holds it around several execute() calls
        self.lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Driver hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _open(self):
        """Open and return a driver connection."""

    @abstractmethod
    def _run(self, sql: str, params: Sequence[Any]) -> Tuple[List[str], List[Tuple[Any, ...]]]:
        """Execute on the open connection; return column labels and rows."""

    @abstractmethod
    def interrupt(self) -> None:
        """Abort the statement currently executing on this connection."""

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self) -> None:
        """
        Open the connection.

        Raises:
            ConnectionError: If the driver refuses the connection
        """
        try:
            self._connection = self._open()
        except Exception as e:
            raise ConnectionError(
                f"Failed to connect to {self.ENGINE}: {e}",
                engine=self.ENGINE,
                original_error=e
            ) from e
        logger.info(f"{self.ENGINE} connected: {self.config.get('database', ':memory:')}")

    def disconnect(self) -> None:
        """Close the connection; safe to call when already closed."""
        connection, self._connection = self._connection, None
        self._in_transaction = False
        if connection is None:
            return
        try:
            connection.close()
        except Exception as e:
            logger.warning(f"Error closing {self.ENGINE} connection: {e}")
            return
        logger.info(f"{self.ENGINE} disconnected")

    def is_connected(self) -> bool:
        return self._connection is not None

    def health_check(self) -> bool:
        """True when the connection answers a trivial statement."""
        if self._connection is None:
            return False
        try:
            self.execute("SELECT 1")
            return True
        except QueryError:
            return False

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> AdapterResult:
        """
        Execute a statement and fetch all of its rows.

        Args:
            sql: SQL with ? placeholders
            params: Values in placeholder order

        Raises:
            QueryError: If not connected, or the driver fails or is interrupted
        """
        if self._connection is None:
            raise QueryError(f"Not connected to {self.ENGINE}", engine=self.ENGINE)

        with self.lock:
            start_time = time.perf_counter()
            try:
                columns, rows = self._run(sql, tuple(params or ()))
            except Exception as e:
                raise QueryError(
                    f"{self.ENGINE} statement failed: {e}",
                    engine=self.ENGINE,
                    original_error=e
                ) from e

            return AdapterResult(
                rows=rows,
                columns=columns,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
                engine=self.ENGINE,
                sql=sql,
            )

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def begin(self) -> None:
        with self.lock:
            self.execute("BEGIN TRANSACTION")
            self._in_transaction = True

    def commit(self) -> None:
        with self.lock:
            self.execute("COMMIT")
            self._in_transaction = False

    def rollback(self) -> None:
        with self.lock:
            self.execute("ROLLBACK")
            self._in_transaction = False

    def in_transaction(self) -> bool:
        return self._in_transaction

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False
