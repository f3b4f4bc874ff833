"""Serializable write units."""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm import Session


@contextmanager
def serializable_transaction(session: Session) -> Iterator[None]:
    """Run the enclosed reads and writes as one SERIALIZABLE unit.

    SQLite takes the database write lock up front with ``BEGIN IMMEDIATE``.
    Elsewhere the isolation level must be set before the transaction's first
    query, so a transaction left open by an earlier read on this session (such
    as the refresh after the previous unit) is committed first.
    """

    bind = session.get_bind()
    if bind is None:
        raise RuntimeError("Session is not bound to an engine")

    dialect = bind.dialect.name
    if dialect == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))
    else:
        if session.in_transaction():
            session.commit()
        session.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))

    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


__all__ = ["serializable_transaction"]
