"""
Core module - Configuration and cross-cutting concerns.

This module provides:
- config.py         : Environment-based configuration and section resolution
- exceptions.py     : Error taxonomy raised by the session
- logging_config.py : Centralized logging setup
- validators.py     : Syntax checks for connection settings
"""
from mysql_session.core.config import (
    DatabaseConfig,
    Settings,
    get_database_config,
    get_settings,
    resolve_section,
)
from mysql_session.core.exceptions import (
    BindError,
    ConfigurationError,
    DatabaseConnectionError,
    ExecuteError,
    MySQLSessionError,
    PrepareError,
    QueryError,
    SessionClosedError,
    TransactionError,
)
from mysql_session.core.logging_config import setup_logging, get_logger, LoggerMixin

__all__ = [
    "DatabaseConfig",
    "Settings",
    "get_database_config",
    "get_settings",
    "resolve_section",
    "BindError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "ExecuteError",
    "MySQLSessionError",
    "PrepareError",
    "QueryError",
    "SessionClosedError",
    "TransactionError",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
]
