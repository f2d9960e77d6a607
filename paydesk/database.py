import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DEFAULT_DATABASE_URL = "postgresql://postgres@localhost/paydesk"

# Each reconciliation pass and each concurrent payment insert holds its own
# connection, plus one for the scheduler's advisory lock.
DEFAULT_POOL_SIZE = 10

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()

DATABASE_URL = ""
engine = None
_configured_database_url = None


def _get_database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def _pool_size() -> int:
    try:
        return max(1, int(os.getenv("DB_POOL_SIZE", DEFAULT_POOL_SIZE)))
    except ValueError:
        return DEFAULT_POOL_SIZE


def configure_database() -> None:
    """(Re)bind SessionLocal when DATABASE_URL changed since the last call."""
    global DATABASE_URL, engine, _configured_database_url

    database_url = _get_database_url()

    if engine is not None and _configured_database_url == database_url:
        return

    if engine is not None:
        engine.dispose()

    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=_pool_size(),
    )
    SessionLocal.configure(bind=engine)
    DATABASE_URL = database_url
    _configured_database_url = database_url


def dispose_database() -> None:
    if engine is not None:
        engine.dispose()


configure_database()
