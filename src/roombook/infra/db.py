"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for short transactions with a statement timeout
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

_DEFAULT_CONNECT_TIMEOUT = 5
_DEFAULT_STATEMENT_TIMEOUT_MS = 5000


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def statement_timeout_ms() -> int:
    """Per-statement timeout applied inside txn() (DB_STATEMENT_TIMEOUT_MS)."""
    return int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", _DEFAULT_STATEMENT_TIMEOUT_MS))


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    DB_PASSWORD is used when the DSN carries no password (secret injected
    separately). DB_CONNECT_TIMEOUT bounds the connect call in seconds.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.OperationalError: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    kwargs: dict[str, object] = {
        "connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT", _DEFAULT_CONNECT_TIMEOUT)),
    }
    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        kwargs["password"] = db_password

    return psycopg2.connect(dsn, **kwargs)


@contextmanager
def txn(
    conn: PgConnection | None = None,
    *,
    timeout_ms: int | None = None,
) -> Iterator[PgCursor]:
    """Context manager for a short transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception. Every statement in
    the block is bounded by ``timeout_ms`` (default: statement_timeout_ms());
    a timeout surfaces as psycopg2.extensions.QueryCanceledError.

    Example:
        with txn() as cur:
            cur.execute("SELECT 1")
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    if timeout_ms is None:
        timeout_ms = statement_timeout_ms()

    try:
        with conn.cursor() as cur:
            if timeout_ms > 0:
                cur.execute("SET LOCAL statement_timeout = %s", (timeout_ms,))
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()
