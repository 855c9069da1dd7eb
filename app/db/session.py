"""Session factory shared by request handlers, streaming hooks and scripts."""
from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy.orm import Session, sessionmaker

from .engine import create_sync_engine


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    """Return the process-wide factory; the engine is created on first use."""

    return sessionmaker(bind=create_sync_engine(), autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Commit on success, roll back and re-raise on error, always close.

    Streaming responses outlive the request-scoped session, so their hooks open
    their own scope here.
    """

    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
