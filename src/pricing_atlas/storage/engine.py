"""SQLAlchemy engine, session factory and transaction boundaries.

Engines and session factories are plain objects handed to the repositories,
so several pipelines (and test databases) can coexist in one process.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from pricing_atlas.config import get_database_url, sql_echo_enabled

logger = logging.getLogger(__name__)

Base = declarative_base()


class StoragePersistenceError(Exception):
    """A database operation failed and its transaction was rolled back."""


def _is_sqlite_memory(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url == "sqlite://")


def create_database_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine for `url` (defaults to the configured database URL).

    SQLite connections are shared across worker threads; in-memory SQLite
    uses a single static connection so every session sees the same data.
    That single connection also means concurrent transactions interleave:
    a rollback in one thread can discard another thread's pending rows.
    Use in-memory SQLite for single-writer work (tests, one worker) and a
    file or server database for concurrent pipeline runs.
    """
    database_url = url or get_database_url()
    kwargs: dict = {"echo": sql_echo_enabled() if echo is None else echo, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_sqlite_memory(database_url):
            kwargs["poolclass"] = StaticPool
    logger.info("Creating database engine for: %s", database_url.split("@")[-1])
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_all_tables(engine: Engine) -> None:
    # Register the ORM tables on Base before creating them.
    from pricing_atlas.storage import models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("Ensured pricing tables exist")


@contextmanager
def transaction_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Commit on success; roll back and raise StoragePersistenceError otherwise."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        logger.error("Database transaction failed, rolling back: %s", exc)
        session.rollback()
        raise StoragePersistenceError(f"Transaction failed: {exc}") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
