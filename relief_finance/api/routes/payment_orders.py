"""Payment order endpoints, including the administrative booking reversal."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context, get_reversal_service
from relief_finance.api.errors import to_http_exception
from relief_finance.models import PaymentOrder
from relief_finance.schemas.payment_order import (
    BookingReversalRequest,
    PaymentOrderCreate,
    PaymentOrderDetail,
    PaymentOrderRead,
    PaymentOrderUpdate,
)
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator
from relief_finance.services.reversals import BookingReversalService

router = APIRouter(prefix="/payment-orders")


def _detail(engine: ConsistencyOrchestrator, order: PaymentOrder) -> PaymentOrderDetail:
    base = PaymentOrderRead.model_validate(order).model_dump()
    return PaymentOrderDetail(**base, lock_state=engine.lock_state(order.id).value)


@router.post("", response_model=PaymentOrderRead, status_code=status.HTTP_201_CREATED)
def create_payment_order(
    payload: PaymentOrderCreate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> PaymentOrderRead:
    try:
        order = engine.create_payment_order(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return PaymentOrderRead.model_validate(order)


@router.get("/project/{project_id}", response_model=list[PaymentOrderRead])
def list_project_payment_orders(
    project_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[PaymentOrderRead]:
    orders = engine.repository.payment_orders_for_project(project_id)
    return [PaymentOrderRead.model_validate(item) for item in orders]


@router.get("/{order_id}", response_model=PaymentOrderDetail)
def get_payment_order(
    order_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> PaymentOrderDetail:
    try:
        order = engine.repository.get_active(PaymentOrder, order_id)
        return _detail(engine, order)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{order_id}", response_model=PaymentOrderRead)
def update_payment_order(
    order_id: str,
    payload: PaymentOrderUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> PaymentOrderRead:
    try:
        order = engine.update_payment_order(order_id, payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return PaymentOrderRead.model_validate(order)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment_order(
    order_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_payment_order(order_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{order_id}/reversal", response_model=PaymentOrderDetail)
def reverse_booking(
    order_id: str,
    payload: BookingReversalRequest,
    service: BookingReversalService = Depends(get_reversal_service),
    context: RequestContext = Depends(get_request_context),
) -> PaymentOrderDetail:
    try:
        order = service.reverse_booking(order_id, reason=payload.reason, context=context)
        return _detail(service, order)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc


__all__ = [
    "create_payment_order",
    "delete_payment_order",
    "get_payment_order",
    "list_project_payment_orders",
    "reverse_booking",
    "router",
    "update_payment_order",
]
