"""SQLModel engine and session management."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import Session, SQLModel, create_engine

from equipment_lifecycle.core.config import settings
from equipment_lifecycle.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def make_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """Build an engine; SQLite gets cross-thread access and a busy timeout."""

    url = url or settings.database_url
    connect_args: dict = {}
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout_seconds,
        }
    return create_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = make_engine()


def init_db(bind: Engine | None = None) -> None:
    # Register table models on the shared metadata before creating tables.
    import equipment_lifecycle.models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


@contextmanager
def get_session(bind: Engine | None = None) -> Iterator[Session]:
    """Get a database session as a context manager.

    Objects stay readable after commit so services can build read models
    once the unit of work is closed.
    """
    session = Session(bind or engine, expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()


@contextmanager
def store_session(bind: Engine | None = None, details: Optional[dict[str, Any]] = None) -> Iterator[Session]:
    """Like :func:`get_session`, but driver and pool failures surface as ``StoreUnavailableError``.

    Integrity violations pass through unchanged for the caller to map.
    """
    try:
        with get_session(bind) as session:
            yield session
    except IntegrityError:
        raise
    except (DBAPIError, PoolTimeoutError) as exc:
        logger.error("Data store unavailable: %s", exc, exc_info=True)
        raise StoreUnavailableError(
            "The data store is unavailable; nothing was applied.", dict(details or {})
        ) from exc


__all__ = ["engine", "get_session", "init_db", "make_engine", "store_session"]
