"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without alembic.context.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlparse, urlunparse

from psycopg2.extensions import parse_dsn

_DRIVER_PREFIX = "postgresql+psycopg2://"


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a unix socket directory and goes into the
    query string (postgresql+psycopg2://u:p@/db?host=/var/run/postgresql).
    """
    tokens = parse_dsn(dsn)

    password = tokens.get("password") or os.environ.get("DB_PASSWORD", "")
    user = quote_plus(tokens.get("user", ""))
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")
    credentials = f"{user}:{quote_plus(password)}"

    if host.startswith("/"):
        return f"{_DRIVER_PREFIX}{credentials}@/{dbname}?host={quote_plus(host)}"

    return f"{_DRIVER_PREFIX}{credentials}@{host}:{port}/{dbname}"


def _with_password(url: str, password: str) -> str:
    parsed = urlparse(url)
    if parsed.password:
        return url
    netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(password)}@{parsed.hostname}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def get_database_url() -> str:
    """SQLAlchemy URL for DATABASE_URL (URL or key=value form).

    DB_PASSWORD is injected when the DSN carries no password.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" not in url:
        return libpq_dsn_to_url(url)

    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            url = _DRIVER_PREFIX + url[len(scheme):]
            break

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password:
        url = _with_password(url, db_password)
    return url
