from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator, Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from nodeplane.errors import StoreUnavailable

log = logging.getLogger(__name__)


class Database:
    """Owns the connection pool and the session factory.

    Built once by the application factory and handed to request handlers via
    ``app.state.database``; nothing holds a process-wide engine.
    """

    def __init__(self, url: str, **engine_kwargs: Any):
        engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_engine(url, **engine_kwargs)
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_errors() -> Iterator[None]:
    """Surface lost connectivity as the retryable StoreUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        log.error(f"Store unavailable: {e}")
        raise StoreUnavailable() from e


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back on any exception."""
    try:
        yield db
        with store_errors():
            db.commit()
    except BaseException:
        db.rollback()
        raise
