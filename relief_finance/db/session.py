"""SQLAlchemy engine and session factory."""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from relief_finance.core.config import Settings, get_settings
from relief_finance.obs import instrument_sqlalchemy_engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(settings: Settings) -> Engine:
    """Create the engine; SQLite connections get foreign keys and cross-thread use enabled."""

    if settings.database_url.startswith("sqlite"):
        bind = create_engine(settings.database_url, connect_args={"check_same_thread": False})
        event.listen(bind, "connect", _enable_sqlite_foreign_keys)
    else:
        bind = create_engine(settings.database_url, pool_pre_ping=True)
    if settings.enable_tracing:
        instrument_sqlalchemy_engine(bind)
    return bind


engine = build_engine(get_settings())
# Write units flush explicitly before their totals queries.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["SessionLocal", "build_engine", "engine", "get_session"]
