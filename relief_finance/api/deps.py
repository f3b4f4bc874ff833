"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from relief_finance.db.session import SessionLocal
from relief_finance.obs import ACTOR_HEADER, REQUEST_ID_HEADER
from relief_finance.services.context import RequestContext
from relief_finance.services.orchestrator import ConsistencyOrchestrator
from relief_finance.services.reversals import BookingReversalService


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_request_context(
    request: Request,
    actor: str | None = Header(default=None, alias=ACTOR_HEADER),
    request_id: str | None = Header(default=None, alias=REQUEST_ID_HEADER),
) -> RequestContext:
    """Build the caller context from explicit headers; the middleware may have minted the request id."""

    return RequestContext(
        actor=actor,
        request_id=getattr(request.state, "request_id", None) or request_id,
    )


def get_orchestrator(session: Session = Depends(get_db_session)) -> ConsistencyOrchestrator:
    return ConsistencyOrchestrator(session)


def get_reversal_service(session: Session = Depends(get_db_session)) -> BookingReversalService:
    return BookingReversalService(session)


__all__ = ["get_db_session", "get_orchestrator", "get_request_context", "get_reversal_service"]
