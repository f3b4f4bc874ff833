"""Budget and cost line ORM models."""
from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_finance.models.base import Base, SoftDeleteMixin, TimestampMixin


class ReportingCurrency(str, enum.Enum):
    GBP = "GBP"
    SEK = "SEK"
    EUR = "EUR"


class Budget(SoftDeleteMixin, TimestampMixin, Base):
    """A project's planned spend, fixing the local currency and reporting rates."""

    __tablename__ = "budgets"
    __table_args__ = (
        Index("ix_budgets_project_id", "project_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(255))
    local_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    local_to_gbp_rate_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("exchange_rates.id", ondelete="SET NULL")
    )
    local_to_sek_rate_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("exchange_rates.id", ondelete="SET NULL")
    )
    local_to_eur_rate_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("exchange_rates.id", ondelete="SET NULL")
    )
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    project = relationship("Project", back_populates="budgets")

    __mapper_args__ = {"version_id_col": lock_version}

    def rate_id_for(self, target: ReportingCurrency) -> str | None:
        return getattr(self, f"local_to_{target.value.lower()}_rate_id")

    def set_rate_id(self, target: ReportingCurrency, rate_id: str | None) -> None:
        setattr(self, f"local_to_{target.value.lower()}_rate_id", rate_id)


class CostDetail(SoftDeleteMixin, TimestampMixin, Base):
    """One budgeted cost line. The ``amount_*`` columns are derived, never user input."""

    __tablename__ = "cost_details"
    __table_args__ = (
        CheckConstraint("units >= 0", name="ck_cost_details_units_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_cost_details_unit_price_non_negative"),
        CheckConstraint("percentage_charging >= 0", name="ck_cost_details_percentage_non_negative"),
        Index("ix_cost_details_budget_id", "budget_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    budget_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("budgets.id", ondelete="RESTRICT"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(255))
    cost_type: Mapped[str | None] = mapped_column(String(128))
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=0)
    percentage_charging: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=0)
    amount_local: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    amount_gbp: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    amount_sek: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    amount_eur: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))

    budget = relationship("Budget")


__all__ = ["Budget", "CostDetail", "ReportingCurrency"]
