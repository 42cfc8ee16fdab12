"""Database access layer using SQLAlchemy engines.

Provides create_db_engine(): an Engine for DATABASE_URL or an explicit URL.
Callers own transactions through engine.begin().
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from sitebuilder.observability.logging import get_logger
from sitebuilder.observability.redaction import redact_url

from .database_url import get_database_url

logger = get_logger(__name__)


def _configure_sqlite(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML statement, which leaves DDL
    # outside the transaction. Take over transaction control so a failed step
    # rolls back its DDL too, and enforce foreign keys (off by default).
    @sa.event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @sa.event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str | None = None, **kwargs) -> Engine:
    """Create an engine for url, defaulting to DATABASE_URL.

    Args:
        url: SQLAlchemy URL or libpq DSN. If None, DATABASE_URL is used.
        **kwargs: Passed through to sqlalchemy.create_engine.

    Returns:
        Engine. SQLite engines get transactional DDL and foreign keys enabled.

    Raises:
        RuntimeError: If no URL is given and DATABASE_URL is not set.
    """
    resolved = get_database_url(url)
    engine = sa.create_engine(resolved, **kwargs)
    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine)
    logger.debug(
        "engine created",
        extra={"extra_fields": {"url": redact_url(resolved), "dialect": engine.dialect.name}},
    )
    return engine

