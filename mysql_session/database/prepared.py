"""
Server-side prepared statements.

PyMySQL interpolates parameters on the client, so prepared statements are
driven through MySQL's SQL-level protocol instead:

    PREPARE stmt_1 FROM 'SELECT * FROM users WHERE id = ? AND name = ?'
    SET @stmt_1_0 = 42, @stmt_1_1 = 'bob'
    EXECUTE stmt_1 USING @stmt_1_0, @stmt_1_1
    SET @stmt_1_0 = NULL, @stmt_1_1 = NULL
    DEALLOCATE PREPARE stmt_1

Each parameter is rendered as a literal of its bind type, chosen by a fixed
precedence on the Python type (see bind_type_for). None is bound with the
STRING type and rendered as NULL.
"""
import io
from enum import Enum
from typing import Any, Optional, Sequence

import pymysql

from mysql_session.core.exceptions import BindError, ExecuteError, PrepareError, split_driver_error
from mysql_session.core.logging_config import get_logger
from mysql_session.database.result import ResultSet

logger = get_logger(__name__)

BLOB_TYPES = (bytes, bytearray, memoryview)


class BindType(str, Enum):
    """Wire type a parameter is bound with."""
    INTEGER = "i"
    DOUBLE = "d"
    STRING = "s"
    BLOB = "b"


BINARY_STREAM_TYPES = (io.RawIOBase, io.BufferedIOBase)


def _is_binary_stream(value: Any) -> bool:
    return isinstance(value, BINARY_STREAM_TYPES)


def bind_type_for(value: Any) -> BindType:
    """
    Map a parameter to its bind type.

    Precedence: int (bool included) -> INTEGER, float -> DOUBLE,
    None -> STRING (sent as NULL), bytes-like or binary stream -> BLOB,
    anything else -> STRING.
    """
    if isinstance(value, int):
        return BindType.INTEGER
    if isinstance(value, float):
        return BindType.DOUBLE
    if value is None:
        return BindType.STRING
    if isinstance(value, BLOB_TYPES) or _is_binary_stream(value):
        return BindType.BLOB
    return BindType.STRING


def bind_types(params: Sequence[Any]) -> str:
    """Type string for a parameter list, e.g. (1, 2.5, None, "x") -> "idss"."""
    return "".join(bind_type_for(param).value for param in params)


def render_literal(handle, value: Any, bind_type: BindType) -> str:
    """Render a parameter as an SQL literal of the given bind type."""
    if bind_type is BindType.INTEGER:
        return handle.escape(int(value))
    if bind_type is BindType.DOUBLE:
        return handle.escape(float(value))
    if bind_type is BindType.BLOB:
        data = value.read() if _is_binary_stream(value) else value
        return handle.escape(bytes(data))
    if value is None:
        return "NULL"
    if isinstance(value, io.TextIOBase):
        value = value.read()
    return handle.escape(str(value))


class PreparedStatement:
    """
    One server-side prepared statement on an open connection.

    Use as a context manager so the statement is deallocated on every path:

        >>> with PreparedStatement(handle, "stmt_1", "SELECT ? + ?") as stmt:
        ...     result = stmt.execute([1, 2])
    """

    def __init__(self, handle, name: str, sql: str):
        self.handle = handle
        self.name = name
        self.sql = sql
        self.prepared = False
        self.bound = 0
        self.affected_rows = 0
        self.last_insert_id = 0

    def __enter__(self) -> "PreparedStatement":
        self.prepare()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.deallocate()

    def _variable(self, index: int) -> str:
        return f"@{self.name}_{index}"

    def prepare(self) -> None:
        try:
            with self.handle.cursor() as cursor:
                cursor.execute(f"PREPARE {self.name} FROM %s", (self.sql,))
        except pymysql.err.Error as e:
            code, message = split_driver_error(e)
            raise PrepareError(
                f"Prepare failed: {message}", code=code, sql=self.sql,
                operation="prepare_and_execute",
            ) from e
        self.prepared = True

    def bind(self, params: Sequence[Any]) -> None:
        """Assign each parameter to a user variable as a typed literal."""
        try:
            assignments = [
                f"{self._variable(i)} = {render_literal(self.handle, param, bind_type_for(param))}"
                for i, param in enumerate(params)
            ]
            self.bound = len(assignments)
            with self.handle.cursor() as cursor:
                cursor.execute("SET " + ", ".join(assignments))
        except (pymysql.err.Error, TypeError, ValueError) as e:
            code, message = split_driver_error(e)
            raise BindError(
                f"Binding parameters failed: {message}", code=code, sql=self.sql,
                params=list(params), operation="prepare_and_execute",
            ) from e

    def execute(self, params: Optional[Sequence[Any]] = None) -> Optional[ResultSet]:
        """
        Bind params (if any) and execute.

        Returns:
            ResultSet, or None if the statement produced no result set
        """
        params = list(params or [])
        if params:
            self.bind(params)
            using = " USING " + ", ".join(self._variable(i) for i in range(len(params)))
        else:
            using = ""

        try:
            with self.handle.cursor() as cursor:
                cursor.execute(f"EXECUTE {self.name}{using}")
                self.affected_rows = cursor.rowcount
                self.last_insert_id = cursor.lastrowid or 0
                return ResultSet.from_cursor(cursor)
        except pymysql.err.Error as e:
            code, message = split_driver_error(e)
            raise ExecuteError(
                f"Execute failed: {message}", code=code, sql=self.sql,
                params=params, operation="prepare_and_execute",
            ) from e

    def deallocate(self) -> None:
        """Clear bound variables and release the statement; failures are logged, never raised."""
        if self.bound:
            cleared = ", ".join(f"{self._variable(i)} = NULL" for i in range(self.bound))
            self.bound = 0
            try:
                with self.handle.cursor() as cursor:
                    cursor.execute("SET " + cleared)
            except (pymysql.err.Error, OSError) as e:
                logger.warning(f"Could not clear parameters of {self.name}: {e}")

        if not self.prepared:
            return
        self.prepared = False
        try:
            with self.handle.cursor() as cursor:
                cursor.execute(f"DEALLOCATE PREPARE {self.name}")
        except (pymysql.err.Error, OSError) as e:
            logger.warning(f"Could not deallocate prepared statement {self.name}: {e}")
