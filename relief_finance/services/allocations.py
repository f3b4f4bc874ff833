"""Allocation ledger: caps on planned funding and the paid safety floor."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import cast

from relief_finance.services.amounts import DEFAULT_QUANTUM, ZERO, parse_amount
from relief_finance.services.context import WriteOp
from relief_finance.services.errors import CapExceededError, PaidFloorViolationError


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Totals over active rows, all excluding the allocation being written."""

    allocation_id: str | None
    transaction_id: str
    cost_detail_id: str
    approved_amount: Decimal | None
    budgeted_amount: Decimal | None
    transaction_allocated: Decimal
    cost_detail_allocated: Decimal
    pair_allocated: Decimal
    pair_paid: Decimal
    current_planned: Decimal | None = None


class AllocationLedger:
    """Validates CostAllocation writes against the two caps and the paid floor.

    Checks run in a fixed order on every create, update and delete: the
    transaction cap, the cost line cap, then the paid floor. The first
    violation is raised.
    """

    def __init__(self, *, quantum: Decimal = DEFAULT_QUANTUM) -> None:
        self._quantum = quantum

    def validate(self, snapshot: LedgerSnapshot, op: WriteOp, planned_amount: object = None) -> Decimal:
        """Return the normalised planned amount the row will hold after ``op``."""

        if op is WriteOp.DELETE:
            proposed = ZERO
        else:
            proposed = cast(
                Decimal,
                parse_amount(
                    planned_amount,
                    entity="CostAllocation",
                    field="planned_amount",
                    entity_id=snapshot.allocation_id,
                    quantum=self._quantum,
                ),
            )

        self._check_transaction_cap(snapshot, proposed)
        self._check_cost_detail_cap(snapshot, proposed)
        self._check_paid_floor(snapshot, proposed, op)
        return proposed

    def _check_transaction_cap(self, snapshot: LedgerSnapshot, proposed: Decimal) -> None:
        total = snapshot.transaction_allocated + proposed
        # No approved amount means nothing has been approved yet.
        limit = snapshot.approved_amount if snapshot.approved_amount is not None else ZERO
        if total > limit:
            raise CapExceededError(
                f"Allocations for transaction '{snapshot.transaction_id}' would total {total}, "
                f"above the approved amount {limit}",
                entity="Transaction",
                entity_id=snapshot.transaction_id,
                field="planned_amount",
                rule="transaction_cap",
                current=snapshot.transaction_allocated,
                attempted=total,
                limit=limit,
            )

    def _check_cost_detail_cap(self, snapshot: LedgerSnapshot, proposed: Decimal) -> None:
        total = snapshot.cost_detail_allocated + proposed
        limit = snapshot.budgeted_amount
        if limit is None or total > limit:
            raise CapExceededError(
                f"Allocations for cost line '{snapshot.cost_detail_id}' would total {total}, "
                f"above the budgeted amount {limit}",
                entity="CostDetail",
                entity_id=snapshot.cost_detail_id,
                field="planned_amount",
                rule="cost_detail_cap",
                current=snapshot.cost_detail_allocated,
                attempted=total,
                limit=limit,
            )

    def _check_paid_floor(self, snapshot: LedgerSnapshot, proposed: Decimal, op: WriteOp) -> None:
        planned_for_pair = snapshot.pair_allocated + proposed
        if planned_for_pair < snapshot.pair_paid:
            action = "Deleting" if op is WriteOp.DELETE else "Setting"
            raise PaidFloorViolationError(
                f"{action} this allocation would leave {planned_for_pair} planned against "
                f"{snapshot.pair_paid} already paid",
                entity="CostAllocation",
                entity_id=snapshot.allocation_id,
                field="planned_amount",
                rule="paid_floor",
                current=snapshot.current_planned,
                attempted=proposed,
                limit=snapshot.pair_paid,
            )


__all__ = ["AllocationLedger", "LedgerSnapshot"]
