"""
mysql_session - a single MySQL connection that keeps itself alive.

    >>> from mysql_session import open_session
    >>> with open_session() as db:
    ...     db.fetch_one("SELECT 1")
    1
"""
from mysql_session.core import (
    BindError,
    ConfigurationError,
    DatabaseConfig,
    DatabaseConnectionError,
    ExecuteError,
    MySQLSessionError,
    PrepareError,
    QueryError,
    SessionClosedError,
    TransactionError,
    get_database_config,
    setup_logging,
)
from mysql_session.database import (
    BindType,
    DatabaseSession,
    LinkState,
    ResultSet,
    connect,
    open_session,
)

__version__ = "0.1.0"

__all__ = [
    "BindType",
    "DatabaseConfig",
    "DatabaseSession",
    "LinkState",
    "ResultSet",
    "connect",
    "get_database_config",
    "open_session",
    "setup_logging",
    "BindError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "ExecuteError",
    "MySQLSessionError",
    "PrepareError",
    "QueryError",
    "SessionClosedError",
    "TransactionError",
]
