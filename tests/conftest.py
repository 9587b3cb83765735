"""
Pytest fixtures for the snippetbox tests.

Every test runs against its own in-memory SQLite database, so no external
server is needed.
"""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.engine import Engine

from snippetbox.api.main import create_app
from snippetbox.db import create_db_engine
from snippetbox.store import SnippetModel

_DB_ENV_VARS = (
    "DSN",
    "POSTGRES_URL",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "POSTGRES_DB",
    "POSTGRES_PORT",
    "POSTGRES_HOST",
    "HOST",
    "PORT",
    "ENV",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Process environment with every setting this app reads removed."""
    for name in _DB_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Isolated in-memory SQLite pool."""
    engine = create_db_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def snippets(engine: Engine) -> SnippetModel:
    """Store with the snippets table in place."""
    store = SnippetModel(engine)
    store.create_snippet_table()
    return store


@pytest.fixture
def app(engine: Engine) -> FastAPI:
    return create_app(engine)


@pytest.fixture
def client(app: FastAPI, snippets: SnippetModel) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with the application lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def expire_snippet(engine: Engine):
    """Move a snippet's expiry into the past without deleting the row."""

    def _expire(snippet_id: int) -> None:
        with engine.begin() as conn:
            conn.execute(
                text("UPDATE snippets SET expires = datetime('now', '-1 day') WHERE id = :id"),
                {"id": snippet_id},
            )

    return _expire


@pytest.fixture
def row_count(engine: Engine):
    """Physical number of rows in the snippets table, expired ones included."""

    def _count() -> int:
        with engine.connect() as conn:
            return conn.execute(text("SELECT COUNT(*) FROM snippets")).scalar_one()

    return _count
