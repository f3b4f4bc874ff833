"""Payment guard: validates payment order line writes."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from relief_finance.services.amounts import DEFAULT_QUANTUM, ZERO, parse_amount
from relief_finance.services.context import WriteOp
from relief_finance.services.errors import (
    ExceedsAllocationError,
    ExceedsApprovalError,
    InvalidFieldError,
    NoTransactionError,
    OrderLockedError,
)
from relief_finance.services.locking import LockState


@dataclass(frozen=True, slots=True)
class LineDraft:
    """Proposed state of a payment line after the write."""

    line_id: str | None
    transaction_id: str | None
    organization_id: str | None
    cost_detail_id: str | None
    amount: object


@dataclass(frozen=True, slots=True)
class OrderState:
    order_id: str
    lock_state: LockState
    header_transaction_id: str | None


@dataclass(frozen=True, slots=True)
class PaymentSnapshot:
    """Totals over active lines and allocations, excluding the line being written."""

    order: OrderState
    pair_planned: Decimal = ZERO
    pair_paid: Decimal = ZERO
    approved_amount: Decimal | None = None
    transaction_paid: Decimal = ZERO


def resolve_effective_transaction_id(line_transaction_id: str | None, header_transaction_id: str | None) -> str | None:
    """A line's own transaction wins over the order header's."""

    return line_transaction_id or header_transaction_id


class PaymentGuard:
    """Checks, in order: lock, transaction resolution, fields, allocation bound, approval bound."""

    def __init__(self, *, quantum: Decimal = DEFAULT_QUANTUM) -> None:
        self._quantum = quantum

    def check_preconditions(self, draft: LineDraft, op: WriteOp, order: OrderState) -> tuple[str | None, Decimal | None]:
        """Run the checks that need no totals.

        Returns the effective transaction id and the normalised amount; both are
        ``None`` for deletes, which only need an open order.
        """

        if order.lock_state is LockState.LOCKED:
            raise OrderLockedError(
                f"Payment order '{order.order_id}' is booked; its lines are read-only",
                entity="PaymentOrderLine",
                entity_id=draft.line_id,
                rule="order_locked",
                current=order.lock_state,
            )
        if op is WriteOp.DELETE:
            return None, None

        effective = resolve_effective_transaction_id(draft.transaction_id, order.header_transaction_id)
        if effective is None:
            raise NoTransactionError(
                "Payment line has no transaction and its payment order has no header transaction",
                entity="PaymentOrderLine",
                entity_id=draft.line_id,
                field="transaction_id",
                rule="effective_transaction",
            )

        for field in ("organization_id", "cost_detail_id"):
            if not getattr(draft, field):
                raise InvalidFieldError(
                    f"'{field}' is required",
                    entity="PaymentOrderLine",
                    entity_id=draft.line_id,
                    field=field,
                    rule="required",
                )
        amount = parse_amount(
            draft.amount,
            entity="PaymentOrderLine",
            field="amount",
            entity_id=draft.line_id,
            strictly_positive=True,
            quantum=self._quantum,
        )
        return effective, amount

    def validate(self, draft: LineDraft, op: WriteOp, snapshot: PaymentSnapshot) -> tuple[str | None, Decimal | None]:
        effective, amount = self.check_preconditions(draft, op, snapshot.order)
        if amount is None:
            return effective, amount

        pair_total = snapshot.pair_paid + amount
        if pair_total > snapshot.pair_planned:
            raise ExceedsAllocationError(
                f"Payments for transaction '{effective}' and cost line '{draft.cost_detail_id}' would total "
                f"{pair_total}, above the planned allocation {snapshot.pair_planned}",
                entity="PaymentOrderLine",
                entity_id=draft.line_id,
                field="amount",
                rule="allocation_bound",
                current=snapshot.pair_paid,
                attempted=pair_total,
                limit=snapshot.pair_planned,
            )

        transaction_total = snapshot.transaction_paid + amount
        approved = snapshot.approved_amount if snapshot.approved_amount is not None else ZERO
        if transaction_total > approved:
            raise ExceedsApprovalError(
                f"Payments against transaction '{effective}' would total {transaction_total}, "
                f"above the approved amount {approved}",
                entity="PaymentOrderLine",
                entity_id=draft.line_id,
                field="amount",
                rule="approval_bound",
                current=snapshot.transaction_paid,
                attempted=transaction_total,
                limit=approved,
            )
        return effective, amount


__all__ = [
    "LineDraft",
    "OrderState",
    "PaymentGuard",
    "PaymentSnapshot",
    "resolve_effective_transaction_id",
]
