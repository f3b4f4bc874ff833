"""Budget endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context
from relief_finance.api.errors import to_http_exception
from relief_finance.models import Budget
from relief_finance.schemas.budget import BudgetCreate, BudgetRead, BudgetUpdate
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

router = APIRouter(prefix="/budgets")


@router.post("", response_model=BudgetRead, status_code=status.HTTP_201_CREATED)
def create_budget(
    payload: BudgetCreate,
    request: Request,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> BudgetRead:
    request.state.project_id = payload.project_id
    try:
        budget = engine.create_budget(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return BudgetRead.model_validate(budget)


@router.get("/project/{project_id}", response_model=list[BudgetRead])
def list_project_budgets(
    project_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[BudgetRead]:
    return [BudgetRead.model_validate(item) for item in engine.repository.budgets_for_project(project_id)]


@router.get("/{budget_id}", response_model=BudgetRead)
def get_budget(budget_id: str, engine: ConsistencyOrchestrator = Depends(get_orchestrator)) -> BudgetRead:
    try:
        budget = engine.repository.get_active(Budget, budget_id)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return BudgetRead.model_validate(budget)


@router.patch("/{budget_id}", response_model=BudgetRead)
def update_budget(
    budget_id: str,
    payload: BudgetUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> BudgetRead:
    try:
        budget = engine.update_budget(budget_id, payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return BudgetRead.model_validate(budget)


@router.post("/{budget_id}/refresh-rates", response_model=BudgetRead)
def refresh_budget_rates(
    budget_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> BudgetRead:
    try:
        budget = engine.refresh_budget_rates(budget_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return BudgetRead.model_validate(budget)


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_budget(
    budget_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_budget(budget_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "create_budget",
    "delete_budget",
    "get_budget",
    "list_project_budgets",
    "refresh_budget_rates",
    "router",
    "update_budget",
]
