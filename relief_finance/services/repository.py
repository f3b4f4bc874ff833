"""Read access to active engine entities.

Every query here filters tombstoned rows; callers never see deleted data
unless they ask for a row by id, in which case they get ``AlreadyDeleted``.
"""
from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import TypeVar

from sqlalchemy import ColumnElement, func, or_, select
from sqlalchemy.orm import Session

from relief_finance.models import (
    Budget,
    CostAllocation,
    CostDetail,
    ExchangeRate,
    PaymentOrder,
    PaymentOrderLine,
    Signature,
    Transaction,
)
from relief_finance.models.base import Base
from relief_finance.services.amounts import as_amount
from relief_finance.services.errors import AlreadyDeletedError, NotFoundError

ModelT = TypeVar("ModelT", bound=Base)


def effective_transaction_id() -> ColumnElement[str]:
    """SQL expression for a line's own transaction, falling back to its order header."""

    return func.coalesce(PaymentOrderLine.transaction_id, PaymentOrder.transaction_id)


class Repository:
    """Fetch-active-by-id / fetch-active-by-parent queries and ledger totals."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_active(self, model: type[ModelT], entity_id: str | None, *, for_update: bool = False) -> ModelT:
        entity = model.__name__
        if not entity_id:
            raise NotFoundError(f"{entity} id is required", entity=entity, rule="required")
        stmt = select(model).where(model.id == entity_id)  # type: ignore[attr-defined]
        if for_update:
            stmt = stmt.with_for_update()
        instance = self._session.scalars(stmt).one_or_none()
        if instance is None:
            raise NotFoundError(f"{entity} '{entity_id}' was not found", entity=entity, entity_id=entity_id)
        if getattr(instance, "deleted", False):
            raise AlreadyDeletedError(
                f"{entity} '{entity_id}' has been deleted", entity=entity, entity_id=entity_id
            )
        return instance

    # -- by parent ---------------------------------------------------------

    def budgets_for_project(self, project_id: str) -> Sequence[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.project_id == project_id, Budget.deleted.is_(False))
            .order_by(Budget.created_at)
        )
        return self._session.scalars(stmt).all()

    def cost_details_for_budget(self, budget_id: str, *, for_update: bool = False) -> Sequence[CostDetail]:
        stmt = (
            select(CostDetail)
            .where(CostDetail.budget_id == budget_id, CostDetail.deleted.is_(False))
            .order_by(CostDetail.created_at, CostDetail.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalars(stmt).all()

    def transactions_for_project(self, project_id: str) -> Sequence[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.project_id == project_id, Transaction.deleted.is_(False))
            .order_by(Transaction.created_at)
        )
        return self._session.scalars(stmt).all()

    def transactions_for_budget(self, budget_id: str) -> Sequence[Transaction]:
        stmt = select(Transaction).where(Transaction.budget_id == budget_id, Transaction.deleted.is_(False))
        return self._session.scalars(stmt).all()

    def allocations(
        self,
        *,
        transaction_id: str | None = None,
        cost_detail_id: str | None = None,
    ) -> Sequence[CostAllocation]:
        stmt = select(CostAllocation).where(CostAllocation.deleted.is_(False))
        if transaction_id is not None:
            stmt = stmt.where(CostAllocation.transaction_id == transaction_id)
        if cost_detail_id is not None:
            stmt = stmt.where(CostAllocation.cost_detail_id == cost_detail_id)
        return self._session.scalars(stmt.order_by(CostAllocation.created_at)).all()

    def lines_for_order(self, payment_order_id: str) -> Sequence[PaymentOrderLine]:
        stmt = (
            select(PaymentOrderLine)
            .where(PaymentOrderLine.payment_order_id == payment_order_id, PaymentOrderLine.deleted.is_(False))
            .order_by(PaymentOrderLine.created_at, PaymentOrderLine.id)
        )
        return self._session.scalars(stmt).all()

    def signatures_for_order(self, payment_order_id: str) -> Sequence[Signature]:
        stmt = (
            select(Signature)
            .where(Signature.payment_order_id == payment_order_id, Signature.deleted.is_(False))
            .order_by(Signature.created_at)
        )
        return self._session.scalars(stmt).all()

    def payment_orders_for_project(self, project_id: str) -> Sequence[PaymentOrder]:
        """Orders whose header transaction, or any active line's effective transaction, is in the project."""

        by_header = (
            select(PaymentOrder.id)
            .join(Transaction, Transaction.id == PaymentOrder.transaction_id)
            .where(Transaction.project_id == project_id)
        )
        by_line = (
            select(PaymentOrderLine.payment_order_id)
            .join(PaymentOrder, PaymentOrder.id == PaymentOrderLine.payment_order_id)
            .join(Transaction, Transaction.id == effective_transaction_id())
            .where(PaymentOrderLine.deleted.is_(False), Transaction.project_id == project_id)
        )
        stmt = (
            select(PaymentOrder)
            .where(
                PaymentOrder.deleted.is_(False),
                or_(PaymentOrder.id.in_(by_header), PaymentOrder.id.in_(by_line)),
            )
            .order_by(PaymentOrder.created_at)
        )
        return self._session.scalars(stmt).all()

    def project_ids_for_order(self, order: PaymentOrder) -> set[str]:
        stmt = (
            select(Transaction.project_id)
            .select_from(PaymentOrderLine)
            .join(PaymentOrder, PaymentOrder.id == PaymentOrderLine.payment_order_id)
            .join(Transaction, Transaction.id == effective_transaction_id())
            .where(PaymentOrderLine.payment_order_id == order.id, PaymentOrderLine.deleted.is_(False))
            .distinct()
        )
        projects = set(self._session.scalars(stmt).all())
        if order.transaction_id is not None:
            header = self._session.get(Transaction, order.transaction_id)
            if header is not None:
                projects.add(header.project_id)
        return projects

    def project_id_for_cost_detail(self, cost_detail: CostDetail) -> str:
        budget = self.get_active(Budget, cost_detail.budget_id)
        return budget.project_id

    # -- rates -------------------------------------------------------------

    def active_rate(self, rate_id: str | None) -> ExchangeRate | None:
        """Resolve a rate reference; a missing or deleted rate counts as unassigned."""

        if rate_id is None:
            return None
        rate = self._session.get(ExchangeRate, rate_id)
        if rate is None or rate.deleted:
            return None
        return rate

    def find_active_rate(self, base_currency: str, quote_currency: str) -> ExchangeRate | None:
        """Latest active rate for the currency pair."""

        stmt = (
            select(ExchangeRate)
            .where(
                ExchangeRate.base_currency == base_currency.upper(),
                ExchangeRate.quote_currency == quote_currency.upper(),
                ExchangeRate.deleted.is_(False),
            )
            .order_by(ExchangeRate.valid_from.desc().nulls_last(), ExchangeRate.created_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    # -- ledger totals -----------------------------------------------------

    def allocated_total(
        self,
        *,
        transaction_id: str | None = None,
        cost_detail_id: str | None = None,
        exclude_id: str | None = None,
    ) -> Decimal:
        stmt = select(func.sum(CostAllocation.planned_amount)).where(CostAllocation.deleted.is_(False))
        if transaction_id is not None:
            stmt = stmt.where(CostAllocation.transaction_id == transaction_id)
        if cost_detail_id is not None:
            stmt = stmt.where(CostAllocation.cost_detail_id == cost_detail_id)
        if exclude_id is not None:
            stmt = stmt.where(CostAllocation.id != exclude_id)
        return as_amount(self._session.scalar(stmt))

    def paid_total(
        self,
        *,
        transaction_id: str | None = None,
        cost_detail_id: str | None = None,
        exclude_line_id: str | None = None,
    ) -> Decimal:
        """Sum of active line amounts, matched on the line's effective transaction."""

        stmt = (
            select(func.sum(PaymentOrderLine.amount))
            .join(PaymentOrder, PaymentOrder.id == PaymentOrderLine.payment_order_id)
            .where(PaymentOrderLine.deleted.is_(False), PaymentOrder.deleted.is_(False))
        )
        if transaction_id is not None:
            stmt = stmt.where(effective_transaction_id() == transaction_id)
        if cost_detail_id is not None:
            stmt = stmt.where(PaymentOrderLine.cost_detail_id == cost_detail_id)
        if exclude_line_id is not None:
            stmt = stmt.where(PaymentOrderLine.id != exclude_line_id)
        return as_amount(self._session.scalar(stmt))

    def order_totals(self, payment_order_id: str) -> tuple[Decimal, int]:
        stmt = select(func.sum(PaymentOrderLine.amount), func.count(PaymentOrderLine.id)).where(
            PaymentOrderLine.payment_order_id == payment_order_id,
            PaymentOrderLine.deleted.is_(False),
        )
        total, count = self._session.execute(stmt).one()
        return as_amount(total), int(count or 0)


__all__ = ["Repository", "effective_transaction_id"]
