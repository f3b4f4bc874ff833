"""Funding transaction endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context
from relief_finance.api.errors import to_http_exception
from relief_finance.models import Transaction
from relief_finance.schemas.transaction import TransactionCreate, TransactionRead, TransactionUpdate
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

router = APIRouter(prefix="/transactions")


@router.post("", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def create_transaction(
    payload: TransactionCreate,
    request: Request,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> TransactionRead:
    request.state.project_id = payload.project_id
    try:
        transaction = engine.create_transaction(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return TransactionRead.model_validate(transaction)


@router.get("/project/{project_id}", response_model=list[TransactionRead])
def list_project_transactions(
    project_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[TransactionRead]:
    return [TransactionRead.model_validate(item) for item in engine.repository.transactions_for_project(project_id)]


@router.get("/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> TransactionRead:
    try:
        transaction = engine.repository.get_active(Transaction, transaction_id)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return TransactionRead.model_validate(transaction)


@router.patch("/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> TransactionRead:
    try:
        transaction = engine.update_transaction(
            transaction_id, payload.model_dump(exclude_unset=True), context=context
        )
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return TransactionRead.model_validate(transaction)


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(
    transaction_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_transaction(transaction_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "create_transaction",
    "delete_transaction",
    "get_transaction",
    "list_project_transactions",
    "router",
    "update_transaction",
]
