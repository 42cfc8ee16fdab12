"""Shared pytest fixtures for sitebuilder migration tests."""
import sys
sys.dont_write_bytecode = True

import os  # noqa: E402

import pytest  # noqa: E402

from sitebuilder.infra.db import create_db_engine  # noqa: E402


@pytest.fixture
def sqlite_url(tmp_path):
    """URL of a fresh SQLite database file."""
    return f"sqlite:///{tmp_path / 'sitebuilder.db'}"


@pytest.fixture
def engine(sqlite_url):
    """SQLite engine with foreign keys and transactional DDL."""
    eng = create_db_engine(sqlite_url)
    yield eng
    eng.dispose()


@pytest.fixture
def pg_engine():
    """Engine for TEST_DATABASE_URL, reset to an empty public schema."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set - skipping PostgreSQL tests")
    import sqlalchemy as sa

    eng = create_db_engine(url)
    with eng.begin() as conn:
        conn.execute(sa.text("DROP SCHEMA public CASCADE"))
        conn.execute(sa.text("CREATE SCHEMA public"))
    yield eng
    eng.dispose()
