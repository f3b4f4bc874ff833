"""Signature endpoints; a BOOKED signature locks its payment order."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from relief_finance.api.deps import get_orchestrator, get_request_context
from relief_finance.api.errors import to_http_exception
from relief_finance.schemas.payment_order import SignatureCreate, SignatureRead, SignatureUpdate
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import ConsistencyError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

router = APIRouter(prefix="/signatures")


@router.post("", response_model=SignatureRead, status_code=status.HTTP_201_CREATED)
def create_signature(
    payload: SignatureCreate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> SignatureRead:
    try:
        signature = engine.create_signature(payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return SignatureRead.model_validate(signature)


@router.get("/payment-order/{order_id}", response_model=list[SignatureRead])
def list_order_signatures(
    order_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
) -> list[SignatureRead]:
    return [SignatureRead.model_validate(item) for item in engine.repository.signatures_for_order(order_id)]


@router.patch("/{signature_id}", response_model=SignatureRead)
def update_signature(
    signature_id: str,
    payload: SignatureUpdate,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> SignatureRead:
    try:
        signature = engine.update_signature(signature_id, payload.model_dump(exclude_unset=True), context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return SignatureRead.model_validate(signature)


@router.delete("/{signature_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_signature(
    signature_id: str,
    engine: ConsistencyOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        engine.delete_signature(signature_id, context=context)
    except ConsistencyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "create_signature",
    "delete_signature",
    "list_order_signatures",
    "router",
    "update_signature",
]
