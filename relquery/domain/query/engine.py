"""
Query Engine

Executes planned statements on an adapter and materializes the rows.

Execution Flow:
1. Plan the statement(s) (translation errors surface before any I/O)
2. Take the adapter lock for the whole logical query
3. Arm the timeout, if any
4. Execute and wrap adapter failures (StoreExecutionFailure / QueryTimeout)
5. Materialize rows into entities, scalars or tuples

Fetch modes:
- fetch():         every matching row
- fetch_first():   first row or None (limit 1)
- fetch_one():     single row or None, NonUniqueResult when more match
- fetch_results(): page plus total count (two statements, one lock)
- fetch_count():   count only
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Union

from relquery.adapters.base import AdapterError, AdapterResult, BaseAdapter
from relquery.core.config import settings
from relquery.errors import non_unique_result, query_timeout, store_failure
from relquery.domain.query.planner import QueryPlanner, Statement
from relquery.domain.query.results import QueryResults, materialize, materialize_raw
from relquery.domain.query.state import QueryState, RawStatement

logger = logging.getLogger(__name__)

QuerySource = Union[QueryState, RawStatement]


@dataclass
class _Execution:
    """Bookkeeping for one logical query while it holds the adapter."""
    timeout: Optional[float]
    interrupted: bool = False
    cancelled: bool = False


class QueryEngine:
    """
    Runs typed and raw queries against one adapter.

    Usage:
        engine = QueryEngine(adapter)
        members = engine.fetch(state)
        page = engine.fetch_results(state, timeout=5)
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        dialect: Optional[str] = None,
        planner: Optional[QueryPlanner] = None,
    ):
        """
        Initialize the engine.

        Args:
            adapter: Connected store adapter
            dialect: SQL dialect (defaults to the adapter's engine dialect)
            planner: Custom planner (defaults to one for the dialect)
        """
        self.adapter = adapter
        self.dialect = dialect or settings.dialect_for(adapter.ENGINE)
        self.planner = planner or QueryPlanner(dialect=self.dialect)
        self._state_lock = threading.Lock()
        self._active: Optional[_Execution] = None

    # =========================================================================
    # FETCH MODES
    # =========================================================================

    def fetch(self, source: QuerySource, timeout: Optional[float] = None) -> List[Any]:
        """All matching rows."""
        statement = self.planner.plan(source)
        with self._execution(timeout) as execution:
            result = self._run(execution, statement)
        return self._materialize(statement, result)

    def fetch_first(self, source: QuerySource, timeout: Optional[float] = None) -> Optional[Any]:
        """First row, or None when nothing matches."""
        statement = self.planner.plan_limited(source, 1)
        with self._execution(timeout) as execution:
            result = self._run(execution, statement)
        rows = self._materialize(statement, result)
        return rows[0] if rows else None

    def fetch_one(self, source: QuerySource, timeout: Optional[float] = None) -> Optional[Any]:
        """
        The single matching row.

        Returns None when nothing matches.

        Raises:
            NonUniqueResult: If more than one row matches
        """
        # two rows are enough to tell "one" from "many"
        statement = self.planner.plan_limited(source, 2)
        with self._execution(timeout) as execution:
            result = self._run(execution, statement)

        if result.row_count > 1:
            raise non_unique_result(result.row_count, statement.sql)

        rows = self._materialize(statement, result)
        return rows[0] if rows else None

    def fetch_results(self, source: QuerySource, timeout: Optional[float] = None) -> QueryResults:
        """Requested page plus the total number of matching rows."""
        statement = self.planner.plan(source)
        count_statement = self.planner.plan_count(source)

        with self._execution(timeout) as execution:
            total = self._scalar(self._run(execution, count_statement))
            results = self._materialize(statement, self._run(execution, statement))

        return QueryResults(results=results, total=total, limit=source.limit, offset=source.offset)

    def fetch_count(self, source: QuerySource, timeout: Optional[float] = None) -> int:
        """Number of matching rows, ignoring offset and limit."""
        statement = self.planner.plan_count(source)
        with self._execution(timeout) as execution:
            result = self._run(execution, statement)
        return self._scalar(result)

    def to_sql(self, source: QuerySource) -> Statement:
        """Planned statement without executing it."""
        return self.planner.plan(source)

    # =========================================================================
    # CANCELLATION
    # =========================================================================

    def cancel(self) -> bool:
        """
        Interrupt the query currently running on this engine.

        Returns:
            True if a running query was interrupted
        """
        with self._state_lock:
            execution = self._active
            if execution is None:
                return False
            execution.cancelled = True
            self._interrupt_locked(execution)
        return True

    def _on_timeout(self, execution: _Execution) -> None:
        with self._state_lock:
            if self._active is execution:
                logger.warning(f"Query exceeded {execution.timeout}s on {self.adapter.ENGINE}, interrupting")
                self._interrupt_locked(execution)

    def _interrupt_locked(self, execution: _Execution) -> None:
        execution.interrupted = True
        self.adapter.interrupt()

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _resolve_timeout(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None:
            timeout = settings.query_timeout_seconds
        # 0 disables the deadline
        return timeout or None

    @contextmanager
    def _execution(self, timeout: Optional[float]) -> Iterator[_Execution]:
        """Hold the adapter for one logical query, with its deadline armed."""
        execution = _Execution(timeout=self._resolve_timeout(timeout))

        with self.adapter.lock:
            with self._state_lock:
                self._active = execution

            timer = None
            if execution.timeout is not None:
                timer = threading.Timer(execution.timeout, self._on_timeout, args=(execution,))
                timer.daemon = True
                timer.start()

            try:
                yield execution
            finally:
                if timer is not None:
                    timer.cancel()
                with self._state_lock:
                    self._active = None

    def _run(self, execution: _Execution, statement: Statement) -> AdapterResult:
        """Execute one statement, wrapping adapter errors."""
        try:
            result = self.adapter.execute(statement.sql, statement.params)
        except AdapterError as e:
            if execution.interrupted:
                timeout = None if execution.cancelled else execution.timeout
                error = query_timeout(timeout, self.adapter.ENGINE, statement.sql)
                error.original_error = e
                error.log("warning")
            else:
                error = store_failure(e.original_error or e, self.adapter.ENGINE, statement.sql)
                error.log()
            raise error from e

        logger.debug(
            f"Executed on {self.adapter.ENGINE}: {result.row_count} rows "
            f"in {result.execution_time_ms:.1f}ms"
        )
        return result

    def _scalar(self, result: AdapterResult) -> int:
        if not result.rows or result.rows[0][0] is None:
            return 0
        return int(result.rows[0][0])

    def _materialize(self, statement: Statement, result: AdapterResult) -> List[Any]:
        if statement.raw:
            return materialize_raw(result.rows, result.columns, statement.entity_type)
        return materialize(result.rows, statement.layout)
