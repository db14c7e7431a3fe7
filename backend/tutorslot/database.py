"""
Database engine, session factory, and metadata shared by the SQL repositories.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings

logger = logging.getLogger(__name__)

Base: DeclarativeMeta = declarative_base()


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url or db_url in {"sqlite://", "sqlite+pysqlite://"}:
            # One shared connection, otherwise every checkout sees a fresh empty database
            kwargs["poolclass"] = StaticPool
    return kwargs


def build_engine(db_url: Optional[str] = None) -> Engine:
    url = db_url or settings.database_url
    engine = create_engine(url, **_build_engine_kwargs(url))
    logger.debug(f"Database engine created for dialect {engine.dialect.name}")
    return engine


def build_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine or build_engine(),
        expire_on_commit=False,
    )


def init_db(engine: Engine) -> None:
    """Create the booking tables if they do not exist yet."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Transactional scope: commit on success, roll back on error, always close."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
