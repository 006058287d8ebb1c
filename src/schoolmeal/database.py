"""Database configuration and session management."""

from collections.abc import Iterator
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from schoolmeal.config import Settings, get_settings


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def create_db_engine(settings: Settings | None = None, database_url: str | None = None) -> Engine:
    """Build a sync engine for the configured database."""
    settings = settings or get_settings()
    url = database_url or settings.database_url

    kwargs: dict = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs["pool_timeout"] = settings.db_pool_timeout
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the given engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@lru_cache
def get_engine() -> Engine:
    """Get the process-wide default engine."""
    return create_db_engine()


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Get the process-wide default session factory."""
    return create_session_factory(get_engine())


def get_db() -> Iterator[Session]:
    """Dependency for getting a database session."""
    with get_session_factory()() as session:
        yield session
