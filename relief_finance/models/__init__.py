"""ORM models package."""
from .audit_log import AuditLog
from .base import Base, SoftDeleteMixin, TimestampMixin
from .budget import Budget, CostDetail, ReportingCurrency
from .exchange_rate import ExchangeRate
from .payment_order import PaymentOrder, PaymentOrderLine, Signature, SignatureKind
from .project import Project
from .transaction import CostAllocation, Transaction

__all__ = [
    "AuditLog",
    "Base",
    "Budget",
    "CostAllocation",
    "CostDetail",
    "ExchangeRate",
    "PaymentOrder",
    "PaymentOrderLine",
    "Project",
    "ReportingCurrency",
    "Signature",
    "SignatureKind",
    "SoftDeleteMixin",
    "TimestampMixin",
    "Transaction",
]
