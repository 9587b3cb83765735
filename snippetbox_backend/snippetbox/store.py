"""
Snippet data access.

All expiry checks run inside SQL against the database clock, so a snippet
disappears from every query the moment ``expires <= now`` on the server,
while its row stays in the table.
"""

import logging
from typing import List

from sqlalchemy import insert, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from snippetbox.db import Base, make_session_factory, utc_days_from_now, utc_now
from snippetbox.models import NoRecordError, Snippet
from snippetbox.schemas import SnippetOut

logger = logging.getLogger(__name__)


class SnippetModel:
    """Wraps the shared connection pool; safe to use from concurrent requests."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    # PUBLIC_INTERFACE
    def insert(self, title: str, content: str, expires: int) -> int:
        """Insert a snippet expiring ``expires`` days from now and return its id."""
        stmt = insert(Snippet.__table__).values(
            title=title,
            content=content,
            created=utc_now(),
            expires=utc_days_from_now(expires),
        )
        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return int(result.inserted_primary_key[0])

    # PUBLIC_INTERFACE
    def get(self, snippet_id: int) -> SnippetOut:
        """Return an unexpired snippet, or raise NoRecordError."""
        stmt = select(Snippet).where(Snippet.expires > utc_now(), Snippet.id == snippet_id)
        with self._session_factory() as db:
            row = db.execute(stmt).scalar_one_or_none()
            if row is None:
                raise NoRecordError(snippet_id)
            return SnippetOut.model_validate(row)

    # PUBLIC_INTERFACE
    def latest(self, limit: int) -> List[SnippetOut]:
        """Return up to ``limit`` unexpired snippets, newest id first."""
        stmt = (
            select(Snippet)
            .where(Snippet.expires > utc_now())
            .order_by(Snippet.id.desc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return [SnippetOut.model_validate(row) for row in db.execute(stmt).scalars()]

    def create_snippet_table(self) -> None:
        Base.metadata.create_all(bind=self.engine, tables=[Snippet.__table__])

    def create_snippet_index(self) -> None:
        """Not idempotent: fails when idx_snippets_created already exists."""
        with self.engine.begin() as conn:
            conn.execute(text("CREATE INDEX idx_snippets_created ON snippets (created)"))


# PUBLIC_INTERFACE
def bootstrap(snippets: SnippetModel) -> None:
    """
    Create the snippets table and its index.

    Table creation errors propagate and should stop startup. An index that
    cannot be created (usually because it already exists) is only logged.
    """
    snippets.create_snippet_table()
    try:
        snippets.create_snippet_index()
    except SQLAlchemyError as exc:
        logger.warning("Skipping snippets index creation: %s", exc.__class__.__name__)
        logger.debug("Index creation error detail", exc_info=True)
