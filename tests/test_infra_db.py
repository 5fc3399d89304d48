"""Tests for database layer."""

import os
from unittest.mock import MagicMock, call, patch

import pytest


class TestGetConnPasswordFallback:
    """DB_PASSWORD fallback in get_conn() - no real DB needed."""

    def test_db_password_fallback_dsn_without_password(self):
        from roombook.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u host=h port=5432", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roombook.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u host=h port=5432",
                connect_timeout=5,
                password="from-env",
            )

    def test_db_password_not_used_when_dsn_has_password(self):
        from roombook.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u password=from-dsn host=h", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roombook.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u password=from-dsn host=h",
                connect_timeout=5,
            )

    def test_db_password_fallback_url_without_password(self):
        from roombook.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roombook.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "postgres://u@h/db",
                connect_timeout=5,
                password="from-env",
            )

    def test_db_password_not_used_when_url_has_password(self):
        from roombook.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u:p@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roombook.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u:p@h/db", connect_timeout=5)

    def test_connect_timeout_from_env(self):
        from roombook.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u host=h", "DB_CONNECT_TIMEOUT": "2"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roombook.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("dbname=db user=u host=h", connect_timeout=2)

    def test_raises_without_database_url(self):
        from roombook.infra.db import get_conn

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


class TestTxnMocked:
    """txn() behaviour with a mocked connection."""

    def _conn(self):
        conn = MagicMock()
        cur = conn.cursor.return_value.__enter__.return_value
        return conn, cur

    def test_sets_statement_timeout_and_commits(self):
        from roombook.infra.db import txn

        conn, cur = self._conn()
        with txn(conn, timeout_ms=1500) as yielded:
            yielded.execute("SELECT 1")

        assert cur.execute.call_args_list == [
            call("SET LOCAL statement_timeout = %s", (1500,)),
            call("SELECT 1"),
        ]
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_not_called()

    def test_timeout_from_env(self, monkeypatch):
        from roombook.infra.db import txn

        monkeypatch.setenv("DB_STATEMENT_TIMEOUT_MS", "750")
        conn, cur = self._conn()
        with txn(conn):
            pass

        cur.execute.assert_called_once_with("SET LOCAL statement_timeout = %s", (750,))

    def test_zero_timeout_disables(self):
        from roombook.infra.db import txn

        conn, cur = self._conn()
        with txn(conn, timeout_ms=0):
            pass

        cur.execute.assert_not_called()

    def test_rollback_on_exception(self):
        from roombook.infra.db import txn

        conn, _ = self._conn()
        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("boom")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_owned_connection_closed(self):
        from roombook.infra.db import txn

        conn, _ = self._conn()
        with patch("roombook.infra.db.get_conn", return_value=conn):
            with txn():
                pass

        conn.close.assert_called_once()


# Skip integration tests if DATABASE_URL is not set
_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxn:
    """txn() against a real database."""

    def test_commits_on_success(self):
        from roombook.infra.db import get_conn, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_txn (id serial, val text)")
            conn.commit()

            with txn(conn) as cur:
                cur.execute("INSERT INTO test_txn (val) VALUES (%s)", ("test",))

            with conn.cursor() as cur:
                cur.execute("SELECT val FROM test_txn")
                assert cur.fetchone()[0] == "test"
        finally:
            conn.close()

    def test_statement_timeout_cancels(self):
        import psycopg2

        from roombook.infra.db import txn

        with pytest.raises(psycopg2.extensions.QueryCanceledError):
            with txn(timeout_ms=50) as cur:
                cur.execute("SELECT pg_sleep(1)")
