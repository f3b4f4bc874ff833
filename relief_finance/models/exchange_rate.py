"""Exchange rate master data."""
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from relief_finance.models.base import Base, SoftDeleteMixin, TimestampMixin


class ExchangeRate(SoftDeleteMixin, TimestampMixin, Base):
    """Conversion rate from ``base_currency`` into ``quote_currency``.

    Maintained by the master-data layer; the engine only reads it.
    """

    __tablename__ = "exchange_rates"
    __table_args__ = (
        CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
        Index("ix_exchange_rates_pair", "base_currency", "quote_currency"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    quote_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    valid_from: Mapped[date | None] = mapped_column(Date)


__all__ = ["ExchangeRate"]
