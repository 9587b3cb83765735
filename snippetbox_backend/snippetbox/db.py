from fastapi import Request
from sqlalchemy import DateTime, create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.functions import FunctionElement

Base = declarative_base()


# PUBLIC_INTERFACE
def create_db_engine(url: str) -> Engine:
    """
    Create the application's connection pool for a SQLAlchemy URL.

    SQLite connections are shared across Starlette's threadpool, and an
    in-memory database is pinned to a single connection so every request sees
    the same data.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(url, pool_pre_ping=True)


# PUBLIC_INTERFACE
def open_db(url: str) -> Engine:
    """Create an engine and verify connectivity with SELECT 1."""
    engine = create_db_engine(url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        engine.dispose()
        raise
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# PUBLIC_INTERFACE
def get_db(request: Request):
    """FastAPI dependency that yields a database session and ensures it is closed."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


# Database-side UTC clock. Visibility of a snippet is always decided by the
# database, never by the application's clock.


class utc_now(FunctionElement):
    type = DateTime()
    inherit_cache = True


class utc_days_from_now(FunctionElement):
    """utc_now() plus a bound number of days."""

    type = DateTime()
    inherit_cache = True


@compiles(utc_now, "postgresql")
def _pg_utc_now(element, compiler, **kw):
    return "TIMEZONE('utc', CURRENT_TIMESTAMP)"


@compiles(utc_days_from_now, "postgresql")
def _pg_utc_days_from_now(element, compiler, **kw):
    days = compiler.process(element.clauses, **kw)
    return f"TIMEZONE('utc', CURRENT_TIMESTAMP) + make_interval(days => {days})"


@compiles(utc_now, "mysql")
def _mysql_utc_now(element, compiler, **kw):
    return "UTC_TIMESTAMP()"


@compiles(utc_days_from_now, "mysql")
def _mysql_utc_days_from_now(element, compiler, **kw):
    days = compiler.process(element.clauses, **kw)
    return f"DATE_ADD(UTC_TIMESTAMP(), INTERVAL {days} DAY)"


@compiles(utc_now, "sqlite")
def _sqlite_utc_now(element, compiler, **kw):
    return "datetime('now')"


@compiles(utc_days_from_now, "sqlite")
def _sqlite_utc_days_from_now(element, compiler, **kw):
    days = compiler.process(element.clauses, **kw)
    return f"datetime('now', '+' || {days} || ' days')"
