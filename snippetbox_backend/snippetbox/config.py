import os
from dataclasses import dataclass

from sqlalchemy.engine import make_url


class ConfigError(RuntimeError):
    """Raised when the runtime environment cannot produce a usable configuration."""


@dataclass(frozen=True)
class Env:
    host: str
    port: int
    dsn: str
    env: str = "prod"

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


def _normalize_sqlalchemy_postgres_url(url: str) -> str:
    """
    Normalize a Postgres URL into a SQLAlchemy psycopg2 URL.

    Accepts:
    - postgresql://...
    - postgresql+psycopg2://...

    Returns:
    - postgresql+psycopg2://...
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url


def _env_postgres_url_if_usable() -> str | None:
    """
    Return a SQLAlchemy-ready URL from POSTGRES_URL, but only if it is usable.

    A credential-less URL such as postgresql://localhost:5432/snippetbox makes
    psycopg2 fall back to the OS user, so it is only accepted when both the
    username and the password are present.
    """
    postgres_url = os.getenv("POSTGRES_URL")
    if not postgres_url:
        return None

    if not postgres_url.startswith(("postgresql://", "postgresql+psycopg2://")):
        # Some other backend; SQLAlchemy validates it when the engine is built.
        return postgres_url

    normalized = _normalize_sqlalchemy_postgres_url(postgres_url)
    try:
        parsed = make_url(normalized)
    except Exception:
        # Malformed; let create_engine raise with its own message.
        return normalized

    if parsed.username and parsed.password:
        return normalized
    return None


def _build_database_url() -> str | None:
    """
    Build a SQLAlchemy database URL.

    Preference order:
    1) DSN
    2) POSTGRES_URL (only if it includes explicit credentials)
    3) POSTGRES_USER/POSTGRES_PASSWORD/POSTGRES_DB/POSTGRES_PORT (compose a URL)

    Returns None when nothing usable is set.
    """
    dsn = (os.getenv("DSN") or "").strip()
    if dsn:
        return _normalize_sqlalchemy_postgres_url(dsn)

    usable_env_url = _env_postgres_url_if_usable()
    if usable_env_url:
        return usable_env_url

    user = os.getenv("POSTGRES_USER")
    password = os.getenv("POSTGRES_PASSWORD")
    db = os.getenv("POSTGRES_DB")
    port = os.getenv("POSTGRES_PORT")
    if user and password and db and port:
        host = os.getenv("POSTGRES_HOST") or "localhost"
        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"

    return None


# PUBLIC_INTERFACE
def load_env() -> Env:
    """Read HOST, PORT, ENV and the database URL from the process environment."""
    dsn = _build_database_url()
    if not dsn:
        raise ConfigError("no database configured: set DSN, POSTGRES_URL or POSTGRES_USER/PASSWORD/DB/PORT")

    raw_port = (os.getenv("PORT") or "4000").strip()
    try:
        port = int(raw_port)
    except ValueError as exc:
        raise ConfigError(f"PORT must be an integer, got {raw_port!r}") from exc

    return Env(
        host=(os.getenv("HOST") or "127.0.0.1").strip(),
        port=port,
        dsn=dsn,
        env=(os.getenv("ENV") or "prod").strip().lower(),
    )
