"""Schemas for payment orders, their lines and signatures."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from relief_finance.models import SignatureKind

_WRITE_CONFIG = ConfigDict(extra="allow")


class PaymentOrderCreate(BaseModel):
    model_config = _WRITE_CONFIG

    transaction_id: str | None = None
    payment_order_date: date | None = None
    description: str | None = Field(default=None, max_length=255)
    message: str | None = Field(default=None, max_length=255)


class PaymentOrderUpdate(PaymentOrderCreate):
    pass


class PaymentOrderRead(BaseModel):
    """Order header; ``total_amount`` and ``number_of_lines`` are maintained by the engine."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str | None
    payment_order_date: date | None
    description: str | None
    message: str | None
    total_amount: Decimal
    number_of_lines: int
    lock_version: int
    deleted: bool


class PaymentOrderDetail(PaymentOrderRead):
    lock_state: str


class PaymentOrderLineCreate(BaseModel):
    model_config = _WRITE_CONFIG

    payment_order_id: str = Field(..., min_length=1)
    transaction_id: str | None = None
    organization_id: str | None = Field(default=None, max_length=64)
    cost_detail_id: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    amount: Decimal
    memo: str | None = Field(default=None, max_length=255)


class PaymentOrderLineUpdate(BaseModel):
    model_config = _WRITE_CONFIG

    transaction_id: str | None = None
    organization_id: str | None = Field(default=None, max_length=64)
    cost_detail_id: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    amount: Decimal | None = None
    memo: str | None = Field(default=None, max_length=255)


class PaymentOrderLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_order_id: str
    transaction_id: str | None
    organization_id: str
    cost_detail_id: str
    currency: str | None
    amount: Decimal
    memo: str | None
    deleted: bool


class SignatureCreate(BaseModel):
    model_config = _WRITE_CONFIG

    payment_order_id: str = Field(..., min_length=1)
    status_kind: SignatureKind
    signed_by: str | None = Field(default=None, max_length=128)
    signature: str | None = Field(default=None, max_length=255)
    signature_date: date | None = None


class SignatureUpdate(BaseModel):
    model_config = _WRITE_CONFIG

    status_kind: SignatureKind | None = None
    signed_by: str | None = Field(default=None, max_length=128)
    signature: str | None = Field(default=None, max_length=255)
    signature_date: date | None = None


class SignatureRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    payment_order_id: str
    status_kind: SignatureKind
    signed_by: str | None
    signature: str | None
    signature_date: date | None
    deleted: bool


class BookingReversalRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


__all__ = [
    "BookingReversalRequest",
    "PaymentOrderCreate",
    "PaymentOrderDetail",
    "PaymentOrderLineCreate",
    "PaymentOrderLineRead",
    "PaymentOrderLineUpdate",
    "PaymentOrderRead",
    "PaymentOrderUpdate",
    "SignatureCreate",
    "SignatureRead",
    "SignatureUpdate",
]
