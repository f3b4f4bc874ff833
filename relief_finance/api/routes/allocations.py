"""Cost allocation endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context
from relief_finance.api.errors import to_http_exception
from relief_finance.schemas.transaction import CostAllocationCreate, CostAllocationRead, CostAllocationUpdate
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

router = APIRouter(prefix="/cost-allocations")


@router.post("", response_model=CostAllocationRead, status_code=status.HTTP_201_CREATED)
def create_allocation(
    payload: CostAllocationCreate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> CostAllocationRead:
    try:
        allocation = engine.create_allocation(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return CostAllocationRead.model_validate(allocation)


@router.get("/transaction/{transaction_id}", response_model=list[CostAllocationRead])
def list_transaction_allocations(
    transaction_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[CostAllocationRead]:
    allocations = engine.repository.allocations(transaction_id=transaction_id)
    return [CostAllocationRead.model_validate(item) for item in allocations]


@router.patch("/{allocation_id}", response_model=CostAllocationRead)
def update_allocation(
    allocation_id: str,
    payload: CostAllocationUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> CostAllocationRead:
    try:
        allocation = engine.update_allocation(allocation_id, payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return CostAllocationRead.model_validate(allocation)


@router.delete("/{allocation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_allocation(
    allocation_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_allocation(allocation_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "create_allocation",
    "delete_allocation",
    "list_transaction_allocations",
    "router",
    "update_allocation",
]
