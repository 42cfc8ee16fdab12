"""Database URL resolution.

DATABASE_URL may be a SQLAlchemy URL (postgres://, postgresql://,
postgresql+psycopg2://, sqlite://) or a libpq key=value DSN as handed out by
managed PostgreSQL providers. Either way the result is a SQLAlchemy URL. When
DB_PASSWORD is set and the PostgreSQL URL carries no password, it is injected.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlparse, urlunparse

import psycopg2
from psycopg2.extensions import parse_dsn


def parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Parse a libpq key=value DSN with libpq's own rules (quoting, escapes).

    Raises:
        RuntimeError: If libpq rejects the string.
    """
    try:
        return parse_dsn(dsn)
    except psycopg2.ProgrammingError as exc:
        raise RuntimeError(f"DATABASE_URL is not a valid connection string: {exc}") from exc


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a unix socket directory and is passed as the
    host query parameter; otherwise host and port go in the netloc.
    """
    tokens = parse_libpq_dsn(dsn)

    if not tokens.get("password"):
        db_password = os.environ.get("DB_PASSWORD", "")
        if db_password:
            tokens["password"] = db_password

    user = quote_plus(tokens.get("user", ""))
    password = quote_plus(tokens.get("password", ""))
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")
    credentials = f"{user}:{password}@" if password else (f"{user}@" if user else "")

    if host.startswith("/"):
        return f"postgresql+psycopg2://{credentials}/{dbname}?host={quote_plus(host)}"
    return f"postgresql+psycopg2://{credentials}{host}:{port}/{dbname}"


def normalize_url(url: str) -> str:
    """Normalize a URL-form DATABASE_URL to an explicit psycopg2 driver URL."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg2://" + url[len("postgresql://"):]
    if not url.startswith("postgresql"):
        return url

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password:
        parsed = urlparse(url)
        if not parsed.password and parsed.hostname:
            replaced = parsed._replace(
                netloc=f"{quote_plus(parsed.username or '')}:{quote_plus(db_password)}@{parsed.hostname}"
                + (f":{parsed.port}" if parsed.port else "")
            )
            url = urlunparse(replaced)
    return url


def get_database_url(url: str | None = None) -> str:
    """Resolve the database URL from the argument or DATABASE_URL.

    Raises:
        RuntimeError: If neither is set.
    """
    url = url or os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" in url:
        return normalize_url(url)
    return libpq_dsn_to_url(url)
