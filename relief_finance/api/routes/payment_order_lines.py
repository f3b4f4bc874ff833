"""Payment line endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context
from relief_finance.api.errors import to_http_exception
from relief_finance.schemas.payment_order import (
    PaymentOrderLineCreate,
    PaymentOrderLineRead,
    PaymentOrderLineUpdate,
)
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

router = APIRouter(prefix="/payment-order-lines")


@router.post("", response_model=PaymentOrderLineRead, status_code=status.HTTP_201_CREATED)
def create_payment_line(
    payload: PaymentOrderLineCreate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> PaymentOrderLineRead:
    try:
        line = engine.create_payment_line(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return PaymentOrderLineRead.model_validate(line)


@router.get("/payment-order/{order_id}", response_model=list[PaymentOrderLineRead])
def list_order_lines(
    order_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[PaymentOrderLineRead]:
    return [PaymentOrderLineRead.model_validate(item) for item in engine.repository.lines_for_order(order_id)]


@router.patch("/{line_id}", response_model=PaymentOrderLineRead)
def update_payment_line(
    line_id: str,
    payload: PaymentOrderLineUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> PaymentOrderLineRead:
    try:
        line = engine.update_payment_line(line_id, payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return PaymentOrderLineRead.model_validate(line)


@router.delete("/{line_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment_line(
    line_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_payment_line(line_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "create_payment_line",
    "delete_payment_line",
    "list_order_lines",
    "router",
    "update_payment_line",
]
