"""
Database module - MySQL session layer.

This module handles:
- The owned connection and its liveness state (connection.py, liveness.py)
- Materialized query results (result.py)
- Server-side prepared statements (prepared.py)
"""
from mysql_session.database.connection import DatabaseSession, connect, open_session
from mysql_session.database.liveness import LinkState, LivenessTracker
from mysql_session.database.prepared import BindType, PreparedStatement, bind_type_for, bind_types
from mysql_session.database.result import ResultSet

__all__ = [
    # Session
    "DatabaseSession",
    "connect",
    "open_session",
    # Liveness
    "LinkState",
    "LivenessTracker",
    # Prepared statements
    "BindType",
    "PreparedStatement",
    "bind_type_for",
    "bind_types",
    # Results
    "ResultSet",
]
