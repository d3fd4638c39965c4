"""
Tests for DatabaseSession connection lifecycle and liveness probing.
"""
import pymysql
import pytest
from pymysql.constants import CLIENT

from mysql_session.core.exceptions import DatabaseConnectionError, SessionClosedError
from mysql_session.database.connection import (
    DatabaseSession,
    PROBE_SQL,
    WAIT_TIMEOUT_SQL,
    open_session,
)
from mysql_session.database.liveness import LinkState


class TestConnect:
    """Opening and re-opening the connection."""

    def test_connects_on_construction(self, session, server):
        assert len(server.connections) == 1
        assert session.handle is server.current
        assert session.liveness.state == LinkState.FRESH

    def test_connect_kwargs(self, session, server):
        kwargs = server.current.kwargs
        assert kwargs["host"] == "localhost"
        assert kwargs["database"] == "appdb"
        assert kwargs["autocommit"] is True
        assert kwargs["client_flag"] & CLIENT.MULTI_STATEMENTS

    def test_negotiates_utf8mb4(self, session, server):
        assert server.current.charset == "utf8mb4"

    def test_idle_budget_is_half_of_wait_timeout(self, session):
        assert session.liveness.idle_timeout == 50

    def test_idle_budget_fraction_is_configurable(self, server, clock, config):
        db = DatabaseSession(config, connector=server.connect, clock=clock, idle_timeout_fraction=1.0)
        assert db.liveness.idle_timeout == 100
        db.close()

    def test_reads_wait_timeout(self, session, server):
        assert WAIT_TIMEOUT_SQL in server.executed

    def test_connect_failure_raises_connection_error(self, server, clock, config):
        server.connect_error = pymysql.err.OperationalError(1045, "Access denied for user 'app'")

        with pytest.raises(DatabaseConnectionError) as exc_info:
            DatabaseSession(config, connector=server.connect, clock=clock)

        assert exc_info.value.code == 1045
        assert "Access denied" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, pymysql.err.OperationalError)

    def test_charset_failure_raises_and_releases_handle(self, server, clock, config):
        server.charset_error = pymysql.err.OperationalError(1115, "Unknown character set")

        with pytest.raises(DatabaseConnectionError, match="charset"):
            DatabaseSession(config, connector=server.connect, clock=clock)

        assert server.closes == 1

    def test_reconnect_releases_previous_handle(self, session, server):
        first = server.current

        session.reconnect()

        assert len(server.connections) == 2
        assert first.open is False
        assert session.handle is server.current

    def test_invalid_fraction_rejected(self, server, clock, config):
        with pytest.raises(ValueError):
            DatabaseSession(config, connector=server.connect, clock=clock, idle_timeout_fraction=0)


class TestLiveness:
    """Idle budget caching and the probe/reconnect path."""

    def test_calls_inside_budget_do_not_probe(self, session, server, clock):
        clock.advance(10)
        session.fetch_one("SELECT 42")
        clock.advance(10)
        session.fetch_one("SELECT 43")

        assert server.probes == 0

    def test_calls_spanning_budget_probe_once(self, session, server, clock):
        session.fetch_one("SELECT 42")
        clock.advance(60)
        session.fetch_one("SELECT 43")

        assert server.probes == 1
        assert session.liveness.state == LinkState.LIVE

    def test_activity_extends_budget(self, session, server, clock):
        for _ in range(5):
            clock.advance(40)
            session.fetch_one("SELECT 42")

        assert server.probes == 0

    def test_ping_returns_fresh_inside_budget(self, session):
        assert session.ping() == LinkState.FRESH

    def test_ping_probes_when_stale(self, session, server, clock):
        clock.advance(51)

        assert session.ping() == LinkState.LIVE
        assert server.executed[-1] == PROBE_SQL

    def test_dead_connection_reconnects_transparently(self, session, server, clock):
        server.kill()
        clock.advance(60)

        assert session.fetch_one("SELECT 42") == 42
        assert len(server.connections) == 2
        assert session.handle is server.current

    def test_failed_query_forces_probe_on_next_call(self, session, server):
        from mysql_session.core.exceptions import QueryError

        server.kill()
        with pytest.raises(QueryError):
            session.fetch_one("SELECT 42")

        assert session.fetch_one("SELECT 42") == 42
        assert len(server.connections) == 2

    def test_reconnect_failure_surfaces_connection_error(self, session, server, clock):
        server.kill()
        server.connect_error = pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        clock.advance(60)

        with pytest.raises(DatabaseConnectionError):
            session.fetch_all("SELECT 42")

    def test_recovers_after_failed_reconnect(self, session, server, clock):
        server.kill()
        server.connect_error = pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        clock.advance(60)
        with pytest.raises(DatabaseConnectionError):
            session.ping()

        server.connect_error = None
        assert session.fetch_one("SELECT 7") == 7


class TestClose:
    """Idempotent close and scoped cleanup."""

    def test_close_twice_releases_once(self, session, server):
        session.close()
        session.close()

        assert server.closes == 1
        assert session.closed is True
        assert session.liveness.state == LinkState.CLOSED

    def test_close_swallows_release_errors(self, session, server):
        server.current.open = False  # next close() raises "Already closed"

        session.close()

        assert session.closed is True

    def test_operations_after_close_do_not_reach_driver(self, session, server):
        session.close()
        executed = len(server.executed)

        with pytest.raises(SessionClosedError):
            session.fetch_one("SELECT 42")
        with pytest.raises(SessionClosedError):
            session.escape("abc")

        assert len(server.executed) == executed
        assert server.escape_calls == 0

    def test_context_manager_closes_on_error(self, server, clock, config):
        with pytest.raises(RuntimeError):
            with DatabaseSession(config, connector=server.connect, clock=clock) as db:
                db.fetch_one("SELECT 42")
                raise RuntimeError("boom")

        assert db.closed is True
        assert server.closes == 1

    def test_open_session_closes_on_exit(self, server, clock, config):
        with open_session(config, connector=server.connect, clock=clock) as db:
            assert db.fetch_one("SELECT 1") == 1

        assert db.closed is True
        assert server.closes == 1
