"""Cost line endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context
from relief_finance.api.errors import to_http_exception
from relief_finance.models import CostDetail
from relief_finance.schemas.budget import CostDetailCreate, CostDetailRead, CostDetailUpdate
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

router = APIRouter(prefix="/cost-details")


@router.post("", response_model=CostDetailRead, status_code=status.HTTP_201_CREATED)
def create_cost_detail(
    payload: CostDetailCreate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> CostDetailRead:
    try:
        detail = engine.create_cost_detail(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return CostDetailRead.model_validate(detail)


@router.get("/by-budget/{budget_id}", response_model=list[CostDetailRead])
def list_budget_cost_details(
    budget_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[CostDetailRead]:
    return [CostDetailRead.model_validate(item) for item in engine.repository.cost_details_for_budget(budget_id)]


@router.get("/{cost_detail_id}", response_model=CostDetailRead)
def get_cost_detail(
    cost_detail_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> CostDetailRead:
    try:
        detail = engine.repository.get_active(CostDetail, cost_detail_id)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return CostDetailRead.model_validate(detail)


@router.patch("/{cost_detail_id}", response_model=CostDetailRead)
def update_cost_detail(
    cost_detail_id: str,
    payload: CostDetailUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> CostDetailRead:
    try:
        detail = engine.update_cost_detail(cost_detail_id, payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return CostDetailRead.model_validate(detail)


@router.delete("/{cost_detail_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_cost_detail(
    cost_detail_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_cost_detail(cost_detail_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "create_cost_detail",
    "delete_cost_detail",
    "get_cost_detail",
    "list_budget_cost_details",
    "router",
    "update_cost_detail",
]
