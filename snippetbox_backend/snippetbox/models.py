from sqlalchemy import Column, DateTime, Integer, String, Text

from snippetbox.db import Base


class NoRecordError(LookupError):
    """No unexpired snippet matches the requested id."""


class Snippet(Base):
    """SQLAlchemy model representing a snippet."""
    __tablename__ = "snippets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    # Naive UTC, written by the database clock.
    created = Column(DateTime, nullable=False)
    expires = Column(DateTime, nullable=False)
