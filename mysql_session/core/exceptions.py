"""
Custom Exceptions - Library-specific error classes.

This module defines the error taxonomy every public session operation
translates driver failures into:
- ConfigurationError      : missing or invalid settings
- DatabaseConnectionError : connect, reconnect or charset failures
- QueryError              : issuing, preparing, binding or executing statements
- TransactionError        : a failed unit of work, after rollback

Callers never see raw PyMySQL errors; the driver error is kept as __cause__.
"""
from typing import Any, Optional, Sequence, Tuple


def split_driver_error(exc: BaseException) -> Tuple[Optional[int], str]:
    """
    Extract (error number, message) from a driver exception.

    PyMySQL errors carry ``args == (errno, message)``; transport errors
    (OSError and friends) carry an errno attribute or nothing at all.
    """
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return args[0], str(args[1])
    code = getattr(exc, "errno", None)
    return (code if isinstance(code, int) else None), str(exc) or type(exc).__name__


class MySQLSessionError(Exception):
    """
    Base exception for all mysql_session errors.

    Subclass this for specific error types.
    """
    error_code: str = "mysql_session_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to a plain dict (useful for structured logs)."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(MySQLSessionError):
    """Raised when a required setting is missing or fails its validator."""
    error_code = "configuration_error"

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, details=f"key={key}" if key else None)
        self.key = key


class DatabaseConnectionError(MySQLSessionError):
    """Raised when connecting, reconnecting or negotiating the charset fails."""
    error_code = "connection_error"

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message, details=f"code={code}" if code is not None else None)
        self.code = code


class SessionClosedError(DatabaseConnectionError):
    """Raised when an operation is attempted on a closed session."""
    error_code = "session_closed"

    def __init__(self, operation: str):
        super().__init__(f"Session is closed (attempted {operation})")
        self.operation = operation


class QueryError(MySQLSessionError):
    """
    Raised when a statement cannot be issued, prepared, bound or executed.

    Attributes:
        code: Driver error number, if the driver reported one
        sql: Statement text that failed
        params: Bound parameters (prepared statements only)
        operation: Name of the session operation that failed
    """
    error_code = "query_error"

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        sql: Optional[str] = None,
        params: Optional[Sequence[Any]] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, details=f"code={code}" if code is not None else None)
        self.code = code
        self.sql = sql
        self.params = params
        self.operation = operation

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["operation"] = self.operation
        data["sql"] = self.sql
        return data


class PrepareError(QueryError):
    """Raised when the server rejects a statement at PREPARE time."""
    error_code = "prepare_error"


class BindError(QueryError):
    """Raised when parameters cannot be bound to a prepared statement."""
    error_code = "bind_error"


class ExecuteError(QueryError):
    """Raised when a prepared statement fails to execute."""
    error_code = "execute_error"


class TransactionError(MySQLSessionError):
    """
    Raised when a transactional unit of work fails.

    The failure that triggered the rollback is available both as
    ``original`` and as ``__cause__``. If the rollback itself failed,
    that error is recorded in ``rollback_error`` instead of being raised.
    """
    error_code = "transaction_error"

    def __init__(self, original: BaseException, rollback_error: Optional[BaseException] = None):
        message = f"Transaction rolled back: {original}"
        if rollback_error is not None:
            message = f"Transaction failed and rollback also failed: {original}"
        super().__init__(message, details=type(original).__name__)
        self.original = original
        self.rollback_error = rollback_error
