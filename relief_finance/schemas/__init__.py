"""Pydantic schemas package."""

from .budget import (
    BudgetCreate,
    BudgetRead,
    BudgetUpdate,
    CostDetailCreate,
    CostDetailRead,
    CostDetailUpdate,
)
from .payment_order import (
    BookingReversalRequest,
    PaymentOrderCreate,
    PaymentOrderDetail,
    PaymentOrderLineCreate,
    PaymentOrderLineRead,
    PaymentOrderLineUpdate,
    PaymentOrderRead,
    PaymentOrderUpdate,
    SignatureCreate,
    SignatureRead,
    SignatureUpdate,
)
from .transaction import (
    CostAllocationCreate,
    CostAllocationRead,
    CostAllocationUpdate,
    TransactionCreate,
    TransactionRead,
    TransactionUpdate,
)

__all__ = [
    "BookingReversalRequest",
    "BudgetCreate",
    "BudgetRead",
    "BudgetUpdate",
    "CostAllocationCreate",
    "CostAllocationRead",
    "CostAllocationUpdate",
    "CostDetailCreate",
    "CostDetailRead",
    "CostDetailUpdate",
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
    "TransactionCreate",
    "TransactionRead",
    "TransactionUpdate",
]
