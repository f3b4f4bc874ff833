"""Project ORM model."""
from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_finance.models.base import Base, TimestampMixin


class Project(TimestampMixin, Base):
    """Relief project owning budgets and funding transactions."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    budgets = relationship("Budget", back_populates="project")
    transactions = relationship("Transaction", back_populates="project")


__all__ = ["Project"]
