"""
Database Session - one owned MySQL connection with liveness bookkeeping.

This module provides DatabaseSession, which:
- Opens a single PyMySQL connection and negotiates utf8mb4
- Trusts the connection without a round trip while it is inside its idle
  budget (a fraction of the server's wait_timeout)
- Probes with SELECT 1 once the budget is exceeded, and reconnects if the
  probe fails
- Translates every driver failure into the mysql_session error taxonomy

A session has a single logical owner and does no internal locking.
"""
import itertools
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, TypeVar

import pymysql
from pymysql.constants import CLIENT

from mysql_session.core.config import DatabaseConfig, get_database_config, get_settings
from mysql_session.core.exceptions import (
    DatabaseConnectionError,
    QueryError,
    SessionClosedError,
    TransactionError,
    split_driver_error,
)
from mysql_session.core.logging_config import LoggerMixin
from mysql_session.database.liveness import LinkState, LivenessTracker
from mysql_session.database.prepared import PreparedStatement
from mysql_session.database.result import ResultSet

T = TypeVar("T")

PROBE_SQL = "SELECT 1"
WAIT_TIMEOUT_SQL = "SELECT @@SESSION.wait_timeout"

# Errors raised by the driver or the socket underneath it
DRIVER_ERRORS = (pymysql.err.Error, OSError)


def _preview(sql: str, limit: int = 100) -> str:
    sql = " ".join(sql.split())
    return sql if len(sql) <= limit else sql[:limit] + "..."


class DatabaseSession(LoggerMixin):
    """
    Owns one MySQL connection and keeps it usable.

    Every query-class operation calls ping() first, so a connection the
    server dropped while idle is replaced transparently.

    Example:
        >>> with DatabaseSession() as db:
        ...     db.fetch_one("SELECT 1")
        1

    Attributes:
        config: Resolved connection settings
        handle: The live PyMySQL connection (None before connect / after close)
        liveness: Idle budget and state machine
        closed: True once close() has run
        last_insert_id: Id generated by the most recent INSERT
        affected_rows: Row count of the most recent statement
    """

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        *,
        connector: Callable[..., Any] = pymysql.connect,
        clock: Callable[[], float] = time.monotonic,
        idle_timeout_fraction: Optional[float] = None,
        logger=None,
    ):
        """
        Resolve configuration and open the connection.

        Args:
            config: Connection settings. Resolved from the environment if omitted.
            connector: Callable returning a PyMySQL-compatible connection
            clock: Monotonic clock used for the idle budget
            idle_timeout_fraction: Share of wait_timeout trusted without probing
                (defaults to MYSQL_IDLE_TIMEOUT_FRACTION, 0.5)
            logger: Logger to use instead of the class logger

        Raises:
            ConfigurationError: If settings are missing or invalid
            DatabaseConnectionError: If the initial connect fails
        """
        self.closed = False
        self.handle = None
        self._logger = logger

        self.config = config or get_database_config()
        if idle_timeout_fraction is None:
            idle_timeout_fraction = get_settings().idle_timeout_fraction
        if not 0 < idle_timeout_fraction <= 1:
            raise ValueError("idle_timeout_fraction must be in (0, 1]")
        self.idle_timeout_fraction = idle_timeout_fraction

        self.liveness = LivenessTracker(clock)
        self.last_insert_id = 0
        self.affected_rows = 0
        self._connector = connector
        self._statement_ids = itertools.count(1)
        self._in_transaction = False

        self.connect()

    def __enter__(self) -> "DatabaseSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self):
        self.close()

    def __repr__(self) -> str:
        return f"<DatabaseSession {self.config.describe()} state={self.liveness.state.value}>"

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _require_open(self, operation: str) -> None:
        if self.closed:
            raise SessionClosedError(operation)

    def _release_handle(self) -> None:
        """Close the current handle, if any. Errors are logged and suppressed."""
        handle, self.handle = self.handle, None
        if handle is None:
            return
        try:
            handle.close()
        except Exception as e:
            self.logger.warning(f"Error releasing connection to {self.config.describe()}: {e}")

    def connect(self) -> None:
        """
        Open a fresh connection, releasing any previous one first.

        Raises:
            DatabaseConnectionError: If connecting, setting the charset or
                reading wait_timeout fails
        """
        self._require_open("connect")
        self._release_handle()
        self.liveness.transition(LinkState.DEAD)

        try:
            handle = self._connector(
                **self.config.to_connect_kwargs(),
                client_flag=CLIENT.MULTI_STATEMENTS,
                autocommit=True,
            )
        except DRIVER_ERRORS as e:
            code, message = split_driver_error(e)
            self.logger.error(f"Connect to {self.config.describe()} failed ({code}): {message}")
            raise DatabaseConnectionError(f"Connect Error ({code}) {message}", code=code) from e

        try:
            idle_timeout = self._initialize(handle)
        except DatabaseConnectionError:
            try:
                handle.close()
            except Exception as e:
                self.logger.debug(f"Ignoring close error on half-open connection: {e}")
            raise

        self.handle = handle
        self.liveness.reset(idle_timeout)
        self.logger.info(
            f"Connected to {self.config.describe()} "
            f"(idle budget {idle_timeout:.1f}s)"
        )

    def _initialize(self, handle) -> float:
        """Negotiate the charset and derive the idle budget from wait_timeout."""
        try:
            handle.set_character_set(self.config.charset)
        except DRIVER_ERRORS as e:
            code, message = split_driver_error(e)
            self.logger.error(f"Error setting charset {self.config.charset}: {message}")
            raise DatabaseConnectionError(f"Error setting charset: {message}", code=code) from e

        try:
            with handle.cursor() as cursor:
                cursor.execute(WAIT_TIMEOUT_SQL)
                row = cursor.fetchone()
            wait_timeout = float(row[0])
        except (pymysql.err.Error, OSError, TypeError, ValueError) as e:
            code, message = split_driver_error(e)
            self.logger.error(f"Could not read wait_timeout: {message}")
            raise DatabaseConnectionError(f"Could not read wait_timeout: {message}", code=code) from e

        return wait_timeout * self.idle_timeout_fraction

    def reconnect(self, reason: str = "requested") -> None:
        """Replace the connection with a new one."""
        self.logger.warning(f"Reconnecting to {self.config.describe()}: {reason}")
        self.liveness.transition(LinkState.RECONNECTING)
        self.connect()

    def ping(self) -> LinkState:
        """
        Make sure the connection is usable.

        Inside the idle budget the connection is trusted without a round trip.
        Past it, SELECT 1 is issued; if that fails for any reason the session
        reconnects.

        Returns:
            FRESH (trusted from cache), LIVE (probe succeeded) or
            RECONNECTING (a new connection was opened)

        Raises:
            DatabaseConnectionError: If reconnecting fails, or the connection
                was lost inside a transaction
        """
        self._require_open("ping")

        if self.handle is not None and self.liveness.is_fresh():
            self.liveness.touch()
            return self.liveness.transition(LinkState.FRESH)

        self.liveness.transition(LinkState.STALE)
        reason = "no connection handle"
        if self.handle is not None:
            self.liveness.transition(LinkState.PROBING)
            self.logger.debug(f"Idle for {self.liveness.idle_for():.1f}s, probing connection")
            try:
                with self.handle.cursor() as cursor:
                    cursor.execute(PROBE_SQL)
                    cursor.fetchall()
                self.liveness.touch()
                return self.liveness.transition(LinkState.LIVE)
            except Exception as e:
                reason = f"liveness probe failed: {e}"
                self.logger.warning(f"Connection to {self.config.describe()} is dead: {e}")

        self.liveness.transition(LinkState.DEAD)
        if self._in_transaction:
            raise DatabaseConnectionError(f"Connection lost inside a transaction ({reason})")

        self.reconnect(reason)
        return LinkState.RECONNECTING

    def close(self) -> None:
        """
        Release the connection. Safe to call more than once.

        Errors while closing are logged and never raised.
        """
        if getattr(self, "closed", True):
            return
        self.closed = True
        if hasattr(self, "liveness"):
            self.liveness.transition(LinkState.CLOSED)

        handle, self.handle = self.handle, None
        if handle is None:
            return
        try:
            handle.close()
        except Exception as e:
            self.logger.warning(f"Error closing connection: {e}")
        else:
            self.logger.info(f"Closed connection to {self.config.describe()}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _query_error(self, operation: str, sql: str, error: BaseException, prefix: str = "Query Error") -> QueryError:
        code, message = split_driver_error(error)
        self.logger.error(f"{operation} failed ({code}): {message} | sql={_preview(sql)}")
        if isinstance(error, (pymysql.err.OperationalError, pymysql.err.InterfaceError, OSError)):
            # Transport-level failure: do not trust the connection on the next call
            self.liveness.invalidate()
        return QueryError(f"{prefix}: {message}", code=code, sql=sql, operation=operation)

    def _execute(self, operation: str, sql: str) -> Optional[ResultSet]:
        self._require_open(operation)
        self.ping()
        self.logger.debug(f"{operation}: {_preview(sql)}")

        try:
            with self.handle.cursor() as cursor:
                cursor.execute(sql)
                self.affected_rows = cursor.rowcount
                self.last_insert_id = cursor.lastrowid or 0
                result = ResultSet.from_cursor(cursor)
        except DRIVER_ERRORS as e:
            raise self._query_error(operation, sql, e) from e

        self.liveness.touch()
        return result

    def query(self, sql: str) -> Optional[ResultSet]:
        """
        Execute a statement.

        Connections are opened with multi-statement support (needed by
        execute_multi), so the server also accepts several ;-separated
        statements here. Never build sql from untrusted input; bind it with
        prepare_and_execute() instead.

        Returns:
            ResultSet for row-producing statements, None otherwise

        Raises:
            QueryError: If the server rejects the statement
        """
        return self._execute("query", sql)

    def fetch_all(self, sql: str) -> List[Dict[str, Any]]:
        """All rows as dicts; empty list if there are none."""
        result = self._execute("fetch_all", sql)
        return result.fetch_all() if result is not None else []

    def fetch_row(self, sql: str) -> Optional[Dict[str, Any]]:
        """First row as a dict, or None."""
        result = self._execute("fetch_row", sql)
        return result.fetch_assoc() if result is not None else None

    def fetch_one(self, sql: str) -> Any:
        """
        First column of the first row.

        Returns None when the statement produced no result set or no rows.
        """
        result = self._execute("fetch_one", sql)
        return result.first_value() if result is not None else None

    def fetch_column(self, sql: str) -> List[Any]:
        """First column of every row; empty list if there are none."""
        result = self._execute("fetch_column", sql)
        return result.column(0) if result is not None else []

    def execute_multi(self, sql: str) -> List[List[Dict[str, Any]]]:
        """
        Execute several ;-separated statements in one round trip.

        Only statements that produce a result set appear in the output, so
        the output can be shorter than the number of statements.

        Raises:
            QueryError: If issuing the batch or advancing to a result fails
        """
        self._require_open("execute_multi")
        self.ping()
        self.logger.debug(f"execute_multi: {_preview(sql)}")

        results: List[List[Dict[str, Any]]] = []
        stage = "Multi-query Error"
        try:
            with self.handle.cursor() as cursor:
                cursor.execute(sql)
                stage = "Multi-query advance failed"
                while True:
                    result = ResultSet.from_cursor(cursor)
                    if result is not None:
                        results.append(result.fetch_all())
                    self.affected_rows = cursor.rowcount
                    self.last_insert_id = cursor.lastrowid or self.last_insert_id
                    if not cursor.nextset():
                        break
        except DRIVER_ERRORS as e:
            raise self._query_error("execute_multi", sql, e, prefix=stage) from e

        self.liveness.touch()
        return results

    def insert(self, sql: str) -> int:
        """Execute an INSERT and return the generated id."""
        self._execute("insert", sql)
        return self.last_insert_id

    def escape(self, value):
        """
        Escape a string, or every string inside a list/tuple/dict.

        The shape of the input is preserved. None is returned as-is without
        touching the connection.

        Raises:
            QueryError: If a value cannot be escaped
        """
        if value is None:
            return None
        self._require_open("escape")
        if self.handle is None:
            self.reconnect("no connection handle")

        try:
            return self._escape(value)
        except (pymysql.err.Error, TypeError) as e:
            self.logger.error(f"escape failed: {e}")
            raise QueryError(f"Escape failed: {e}", operation="escape") from e

    def _escape(self, value):
        if value is None:
            return None
        if isinstance(value, str):
            # escape() quotes the literal; callers want the bare escaped text
            return self.handle.escape(value)[1:-1]
        if isinstance(value, list):
            return [self._escape(item) for item in value]
        if isinstance(value, tuple):
            return tuple(self._escape(item) for item in value)
        if isinstance(value, dict):
            return {key: self._escape(item) for key, item in value.items()}
        raise TypeError(f"Cannot escape value of type {type(value).__name__}")

    def prepare_and_execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[ResultSet]:
        """
        Run a statement with ? placeholders as a server-side prepared statement.

        Args:
            sql: Statement text with ? placeholders
            params: Values bound in order (see prepared.bind_type_for)

        Returns:
            ResultSet for row-producing statements, None otherwise

        Raises:
            PrepareError, BindError, ExecuteError: subclasses of QueryError
        """
        self._require_open("prepare_and_execute")
        self.ping()
        name = f"stmt_{next(self._statement_ids)}"
        self.logger.debug(f"prepare_and_execute [{name}]: {_preview(sql)} params={len(params or [])}")

        try:
            with PreparedStatement(self.handle, name, sql) as statement:
                result = statement.execute(params)
        except QueryError as e:
            self.logger.error(f"{e.message} | sql={_preview(sql)}")
            if isinstance(e.__cause__, (pymysql.err.OperationalError, pymysql.err.InterfaceError)):
                self.liveness.invalidate()
            raise

        self.affected_rows = statement.affected_rows
        self.last_insert_id = statement.last_insert_id
        self.liveness.touch()
        return result

    def transaction(self, work: Callable[[], T]) -> T:
        """
        Run work() inside a transaction.

        Commits if work() returns, rolls back if it (or the commit) raises.

        Returns:
            Whatever work() returned

        Raises:
            QueryError: If the transaction cannot be started, or a transaction
                is already running on this session (BEGIN would commit it)
            TransactionError: If work() or the commit failed; the original
                error is the __cause__
        """
        self._require_open("transaction")
        if self._in_transaction:
            self.logger.error("transaction() called inside a running transaction")
            raise QueryError("Nested transactions are not supported", sql="BEGIN", operation="transaction")
        self.ping()

        try:
            self.handle.begin()
        except DRIVER_ERRORS as e:
            raise self._query_error("transaction", "BEGIN", e, prefix="Could not begin transaction") from e

        self._in_transaction = True
        try:
            result = work()
            self.handle.commit()
        except Exception as e:
            rollback_error = self._rollback()
            self.logger.error(f"Transaction rolled back: {type(e).__name__}: {e}")
            raise TransactionError(e, rollback_error) from e
        except BaseException:
            self._rollback()
            raise
        finally:
            self._in_transaction = False

        self.liveness.touch()
        return result

    def _rollback(self) -> Optional[BaseException]:
        """Best-effort rollback; returns the rollback error instead of raising it."""
        if self.handle is None:
            return None
        try:
            self.handle.rollback()
        except Exception as e:
            self.logger.error(f"Rollback failed: {e}")
            return e
        return None


def connect(config: Optional[DatabaseConfig] = None, **kwargs) -> DatabaseSession:
    """
    Open a session.

    Args:
        config: Connection settings. Resolved from the environment if omitted.
        **kwargs: Passed to DatabaseSession

    Returns:
        Connected DatabaseSession
    """
    return DatabaseSession(config, **kwargs)


@contextmanager
def open_session(config: Optional[DatabaseConfig] = None, **kwargs) -> Generator[DatabaseSession, None, None]:
    """
    Open a session that is closed when the block exits, however it exits.

    Usage:
        with open_session() as db:
            rows = db.fetch_all("SELECT * FROM users")
    """
    session = DatabaseSession(config, **kwargs)
    try:
        yield session
    finally:
        session.close()
