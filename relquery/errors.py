"""
relquery - Structured Error Handling

ERROR DESIGN PRINCIPLES:
------------------------
1. Every error has a unique code for log searching
2. Messages are human-readable and actionable
3. Construction-time errors (type mismatch, unbound alias) are raised
   before any statement reaches the store
4. Execution-time errors wrap the store failure and keep the original error

ERROR DICT FORMAT:
------------------
{
    "error": {
        "code": "ERR_2001",
        "message": "Cannot compare member.age (int) with 'ten' (str)",
        "details": {"expression": "member.age", "operand": "'ten'"},
        "suggestion": "Compare against a value of type int"
    }
}
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCode(str, Enum):
    """Unique error codes for every error type."""

    # Metamodel (1xxx)
    ERR_METAMODEL_INVALID = "ERR_1001"
    ERR_ENTITY_NOT_FOUND = "ERR_1002"
    ERR_FIELD_NOT_FOUND = "ERR_1003"

    # Query construction (2xxx)
    ERR_TYPE_MISMATCH = "ERR_2001"
    ERR_UNBOUND_ALIAS = "ERR_2002"
    ERR_QUERY_INVALID = "ERR_2003"

    # Query execution (3xxx)
    ERR_NON_UNIQUE_RESULT = "ERR_3001"
    ERR_QUERY_FAILED = "ERR_3002"
    ERR_QUERY_TIMEOUT = "ERR_3003"
    ERR_CONNECTION_FAILED = "ERR_3004"

    # Persistence (4xxx)
    ERR_PERSIST_FAILED = "ERR_4001"


# =============================================================================
# ERROR TYPES
# =============================================================================

@dataclass(eq=False)
class RelQueryError(Exception):
    """
    Structured error with all context needed for debugging.

    Attributes:
        message: Human-readable error message
        code: Unique error code for searching logs
        details: Additional context (dict)
        suggestion: How to fix the issue
    """
    message: str
    code: ErrorCode = ErrorCode.ERR_QUERY_INVALID
    details: Dict[str, Any] = field(default_factory=dict)
    suggestion: Optional[str] = None

    def __post_init__(self):
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dict."""
        error_dict = {
            "code": self.code.value,
            "message": self.message,
        }

        if self.details:
            error_dict["details"] = self.details

        if self.suggestion:
            error_dict["suggestion"] = self.suggestion

        error_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

        return {"error": error_dict}

    def log(self, level: str = "error"):
        """Log the error with context."""
        log_msg = f"[{self.code.value}] {self.message}"
        if self.details:
            log_msg += f" | details={self.details}"

        getattr(logger, level)(log_msg)


@dataclass(eq=False)
class MetamodelError(RelQueryError):
    """Entity declaration or lookup is invalid."""
    code: ErrorCode = ErrorCode.ERR_METAMODEL_INVALID


@dataclass(eq=False)
class TypeMismatch(RelQueryError):
    """Operands of an expression have incompatible types."""
    code: ErrorCode = ErrorCode.ERR_TYPE_MISMATCH


@dataclass(eq=False)
class UnboundAlias(RelQueryError):
    """An expression references an alias the query never declared."""
    code: ErrorCode = ErrorCode.ERR_UNBOUND_ALIAS


@dataclass(eq=False)
class QueryValidationError(RelQueryError):
    """Builder state cannot be translated."""
    code: ErrorCode = ErrorCode.ERR_QUERY_INVALID


@dataclass(eq=False)
class NonUniqueResult(RelQueryError):
    """A single row was expected but more were found."""
    code: ErrorCode = ErrorCode.ERR_NON_UNIQUE_RESULT


@dataclass(eq=False)
class StoreExecutionFailure(RelQueryError):
    """The store rejected or failed a statement."""
    code: ErrorCode = ErrorCode.ERR_QUERY_FAILED
    engine: str = ""
    original_error: Optional[Exception] = None


@dataclass(eq=False)
class QueryTimeout(StoreExecutionFailure):
    """A statement was interrupted by its deadline or by cancel()."""
    code: ErrorCode = ErrorCode.ERR_QUERY_TIMEOUT


@dataclass(eq=False)
class PersistenceError(RelQueryError):
    """An entity could not be written to the store."""
    code: ErrorCode = ErrorCode.ERR_PERSIST_FAILED
    original_error: Optional[Exception] = None


# =============================================================================
# ERROR FACTORY FUNCTIONS
# =============================================================================

def type_mismatch(expression: str, expected: str, actual: str) -> TypeMismatch:
    """Create a type mismatch error for an operand."""
    return TypeMismatch(
        message=f"Cannot use {actual} with {expression} ({expected})",
        details={"expression": expression, "expected": expected, "actual": actual},
        suggestion=f"Use an operand of type {expected}",
    )


def unbound_alias(alias: str, bound: Optional[List[str]] = None) -> UnboundAlias:
    """Create an unbound alias error with the aliases that are available."""
    details: Dict[str, Any] = {"alias": alias}
    if bound:
        details["bound_aliases"] = sorted(bound)

    return UnboundAlias(
        message=f"Alias '{alias}' is not declared by from_() or join()",
        details=details,
        suggestion=f"Add '{alias}' with from_() or join() before referencing it",
    )


def non_unique_result(row_count: int, sql: str) -> NonUniqueResult:
    """Create a non-unique result error."""
    return NonUniqueResult(
        message=f"Expected at most one row, query returned {row_count}",
        details={"row_count": row_count, "sql": sql},
        suggestion="Narrow the filter or use fetch_first()",
    )


def store_failure(error: Exception, engine: str, sql: str) -> StoreExecutionFailure:
    """Wrap an adapter failure."""
    return StoreExecutionFailure(
        message=f"Statement failed on {engine or 'store'}: {error}",
        details={"sql": sql},
        engine=engine,
        original_error=error,
    )


def query_timeout(timeout_seconds: Optional[float], engine: str, sql: str) -> QueryTimeout:
    """Create a timeout/cancellation error."""
    if timeout_seconds is None:
        message = "Statement was cancelled"
    else:
        message = f"Statement exceeded timeout of {timeout_seconds}s"

    return QueryTimeout(
        message=message,
        details={"sql": sql, "timeout_seconds": timeout_seconds},
        suggestion="Add filters or raise RELQUERY_QUERY_TIMEOUT_SECONDS",
        engine=engine,
    )
