"""
Shared fixtures: a scripted stand-in for a PyMySQL server and connection.

FakeServer hands out FakeConnection objects from its connect() method, which
is passed to DatabaseSession as the connector. Responses are scripted per
statement; every executed statement is recorded.
"""
import re

import pymysql
import pytest

from mysql_session.core.config import DatabaseConfig
from mysql_session.database.connection import DatabaseSession, PROBE_SQL, WAIT_TIMEOUT_SQL

_SELECT_LITERAL = re.compile(r"^SELECT (-?\d+)$", re.IGNORECASE)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.rowcount = -1
        self.lastrowid = None
        self._rows = []
        self._pending = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _load(self, result):
        if isinstance(result, Exception):
            raise result
        if result is None:
            self.description = None
            self._rows = []
            self.rowcount = self.conn.server.rowcount
        else:
            columns, rows = result
            self.description = tuple((name,) for name in columns)
            self._rows = list(rows)
            self.rowcount = len(rows)
        self.lastrowid = self.conn.server.lastrowid

    def execute(self, sql, args=None):
        if args is not None:
            sql = sql % tuple(self.conn.escape(arg) for arg in args)
        self.conn.check_alive()
        self.conn.server.executed.append(sql)
        if sql == PROBE_SQL:
            self.conn.server.probes += 1
        self._pending = list(self.conn.server.respond(sql))
        self._load(self._pending.pop(0))
        return self.rowcount

    def fetchall(self):
        rows, self._rows = self._rows, []
        return tuple(rows)

    def fetchone(self):
        if not self._rows:
            return None
        return self._rows.pop(0)

    def nextset(self):
        self.conn.server.nextset_calls += 1
        if not self._pending:
            return None
        self._load(self._pending.pop(0))
        return True

    def close(self):
        self._pending = []


class FakeConnection:
    def __init__(self, server, kwargs):
        self.server = server
        self.kwargs = kwargs
        self.open = True
        self.dead = False
        self.charset = None

    def check_alive(self):
        if not self.open:
            raise pymysql.err.InterfaceError(0, "")
        if self.dead:
            raise pymysql.err.OperationalError(2006, "MySQL server has gone away")

    def cursor(self):
        self.check_alive()
        return FakeCursor(self)

    def set_character_set(self, charset, collation=None):
        if self.server.charset_error is not None:
            raise self.server.charset_error
        self.charset = charset

    def escape(self, obj):
        if isinstance(obj, str):
            self.server.escape_calls += 1
        return self.server.escaper.escape(obj)

    def begin(self):
        self.check_alive()
        self.server.executed.append("BEGIN")

    def commit(self):
        self.check_alive()
        if self.server.commit_error is not None:
            raise self.server.commit_error
        self.server.executed.append("COMMIT")

    def rollback(self):
        self.check_alive()
        if self.server.rollback_error is not None:
            raise self.server.rollback_error
        self.server.executed.append("ROLLBACK")

    def close(self):
        if not self.open:
            raise pymysql.err.Error("Already closed")
        self.open = False
        self.server.closes += 1


class FakeServer:
    """
    Scripted MySQL server.

    responses maps a statement to one of:
    - None: no result set
    - (columns, rows): a result set
    - an Exception instance: raised when the statement runs
    - a list of the above: one entry per statement of a multi-statement batch
    """

    def __init__(self, wait_timeout: int = 100):
        self.wait_timeout = wait_timeout
        self.responses = {}
        self.executed = []
        self.connections = []
        self.probes = 0
        self.nextset_calls = 0
        self.escape_calls = 0
        self.closes = 0
        self.rowcount = 0
        self.lastrowid = 0
        self.connect_error = None
        self.charset_error = None
        self.commit_error = None
        self.rollback_error = None
        # An unconnected driver connection renders literals exactly as a live one
        self.escaper = pymysql.connections.Connection(defer_connect=True)
        self.escaper.server_status = 0

    def connect(self, **kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        conn = FakeConnection(self, kwargs)
        self.connections.append(conn)
        return conn

    @property
    def current(self):
        return self.connections[-1]

    def kill(self):
        """Make every open connection behave as if the server dropped it."""
        for conn in self.connections:
            conn.dead = True

    def _single(self, sql):
        if sql in self.responses:
            return self.responses[sql]
        if sql == WAIT_TIMEOUT_SQL:
            return (["@@SESSION.wait_timeout"], [(self.wait_timeout,)])
        match = _SELECT_LITERAL.match(sql)
        if match:
            return ([match.group(1)], [(int(match.group(1)),)])
        return None

    def respond(self, sql):
        if sql in self.responses and isinstance(self.responses[sql], list):
            return self.responses[sql]
        if sql.startswith(("PREPARE", "SET")):
            return [self._single(sql)]
        statements = [part.strip() for part in sql.split(";") if part.strip()]
        if len(statements) > 1:
            return [self._single(statement) for statement in statements]
        return [self._single(sql)]

    def statements(self, prefix):
        return [sql for sql in self.executed if sql.startswith(prefix)]


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return DatabaseConfig(host="localhost", user="app", password="secret", database="appdb")


@pytest.fixture
def session(server, clock, config):
    db = DatabaseSession(config, connector=server.connect, clock=clock, idle_timeout_fraction=0.5)
    yield db
    db.close()
