"""Funding transaction and cost allocation ORM models."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_finance.models.base import Base, SoftDeleteMixin, TimestampMixin


class Transaction(SoftDeleteMixin, TimestampMixin, Base):
    """Funding record; ``approved_amount`` caps what may be allocated and paid."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_project_id", "project_id"),
        Index("ix_transactions_budget_id", "budget_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False
    )
    budget_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("budgets.id", ondelete="RESTRICT"), nullable=False
    )
    organization_id: Mapped[str | None] = mapped_column(String(64))
    financier_organization_id: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str | None] = mapped_column(String(64))
    date_planned: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ok_status: Mapped[bool | None] = mapped_column(Boolean)
    applied_for_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    approved_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    first_share_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    second_share_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    project = relationship("Project", back_populates="transactions")
    budget = relationship("Budget")

    __mapper_args__ = {"version_id_col": lock_version}


class CostAllocation(SoftDeleteMixin, TimestampMixin, Base):
    """Planned split of a transaction's funding against one cost line.

    A (transaction, cost line) pair may carry several rows; they are summed.
    """

    __tablename__ = "cost_allocations"
    __table_args__ = (
        CheckConstraint("planned_amount >= 0", name="ck_cost_allocations_planned_non_negative"),
        Index("ix_cost_allocations_pair", "transaction_id", "cost_detail_id"),
        Index("ix_cost_allocations_cost_detail_id", "cost_detail_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("transactions.id", ondelete="RESTRICT"), nullable=False
    )
    cost_detail_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cost_details.id", ondelete="RESTRICT"), nullable=False
    )
    planned_amount: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=0)
    note: Mapped[str | None] = mapped_column(String(255))


__all__ = ["CostAllocation", "Transaction"]
