"""Payment order, payment line and signature ORM models."""
from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from relief_finance.models.base import Base, SoftDeleteMixin, TimestampMixin


class SignatureKind(str, enum.Enum):
    """Approval stages in signing order; ``BOOKED`` is final and locks the order."""

    PREPARED = "PREPARED"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    BOOKED = "BOOKED"


class PaymentOrder(SoftDeleteMixin, TimestampMixin, Base):
    """Disbursement batch. ``total_amount`` and ``number_of_lines`` are derived."""

    __tablename__ = "payment_orders"
    __table_args__ = (
        Index("ix_payment_orders_transaction_id", "transaction_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("transactions.id", ondelete="SET NULL")
    )
    payment_order_date: Mapped[date | None] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(String(255))
    message: Mapped[str | None] = mapped_column(String(255))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=0)
    number_of_lines: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": lock_version}


class PaymentOrderLine(SoftDeleteMixin, TimestampMixin, Base):
    """Single payment; inherits the order's transaction unless it carries its own."""

    __tablename__ = "payment_order_lines"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_order_lines_amount_positive"),
        Index("ix_payment_order_lines_payment_order_id", "payment_order_id"),
        Index("ix_payment_order_lines_cost_detail_id", "cost_detail_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payment_orders.id", ondelete="RESTRICT"), nullable=False
    )
    transaction_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("transactions.id", ondelete="SET NULL")
    )
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    cost_detail_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cost_details.id", ondelete="RESTRICT"), nullable=False
    )
    currency: Mapped[str | None] = mapped_column(String(3))
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False)
    memo: Mapped[str | None] = mapped_column(String(255))


class Signature(SoftDeleteMixin, TimestampMixin, Base):
    """Approval record on a payment order."""

    __tablename__ = "signatures"
    __table_args__ = (
        Index("ix_signatures_payment_order_id", "payment_order_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payment_orders.id", ondelete="RESTRICT"), nullable=False
    )
    status_kind: Mapped[SignatureKind] = mapped_column(
        SAEnum(SignatureKind, name="signature_kind"), nullable=False
    )
    signed_by: Mapped[str | None] = mapped_column(String(128))
    signature: Mapped[str | None] = mapped_column(String(255))
    signature_date: Mapped[date | None] = mapped_column(Date)


__all__ = ["PaymentOrder", "PaymentOrderLine", "Signature", "SignatureKind"]
