from __future__ import annotations

from decimal import Decimal

import pytest

from relief_finance.services.allocations import AllocationLedger, LedgerSnapshot
from relief_finance.services.context import WriteOp
from relief_finance.services.errors import CapExceededError, InvalidFieldError, PaidFloorViolationError


def _snapshot(**overrides) -> LedgerSnapshot:
    values = {
        "allocation_id": None,
        "transaction_id": "tx-1",
        "cost_detail_id": "cd-1",
        "approved_amount": Decimal("1000"),
        "budgeted_amount": Decimal("1100"),
        "transaction_allocated": Decimal("0"),
        "cost_detail_allocated": Decimal("0"),
        "pair_allocated": Decimal("0"),
        "pair_paid": Decimal("0"),
    }
    values.update(overrides)
    return LedgerSnapshot(**values)


def test_create_within_both_caps_returns_normalised_amount() -> None:
    ledger = AllocationLedger()
    assert ledger.validate(_snapshot(), WriteOp.CREATE, "900") == Decimal("900.000")


def test_transaction_cap_is_checked_first() -> None:
    ledger = AllocationLedger()
    snapshot = _snapshot(budgeted_amount=Decimal("10"))

    with pytest.raises(CapExceededError) as excinfo:
        ledger.validate(snapshot, WriteOp.CREATE, Decimal("1050"))

    assert excinfo.value.rule == "transaction_cap"
    assert excinfo.value.limit == Decimal("1000")
    assert excinfo.value.attempted == Decimal("1050.000")


def test_missing_approved_amount_caps_at_zero() -> None:
    ledger = AllocationLedger()
    with pytest.raises(CapExceededError) as excinfo:
        ledger.validate(_snapshot(approved_amount=None), WriteOp.CREATE, Decimal("1"))
    assert excinfo.value.limit == Decimal("0")


def test_zero_allocation_allowed_without_approval() -> None:
    ledger = AllocationLedger()
    assert ledger.validate(_snapshot(approved_amount=None), WriteOp.CREATE, 0) == Decimal("0.000")


def test_cost_detail_cap_counts_other_transactions() -> None:
    ledger = AllocationLedger()
    snapshot = _snapshot(cost_detail_allocated=Decimal("600"))

    with pytest.raises(CapExceededError) as excinfo:
        ledger.validate(snapshot, WriteOp.CREATE, Decimal("600"))

    assert excinfo.value.rule == "cost_detail_cap"
    assert excinfo.value.entity == "CostDetail"


def test_unbudgeted_cost_detail_rejects_allocation() -> None:
    ledger = AllocationLedger()
    with pytest.raises(CapExceededError):
        ledger.validate(_snapshot(budgeted_amount=None), WriteOp.CREATE, Decimal("1"))


def test_update_below_paid_violates_floor() -> None:
    ledger = AllocationLedger()
    snapshot = _snapshot(
        allocation_id="al-1",
        pair_paid=Decimal("900"),
        current_planned=Decimal("900"),
    )

    with pytest.raises(PaidFloorViolationError) as excinfo:
        ledger.validate(snapshot, WriteOp.UPDATE, Decimal("800"))

    assert excinfo.value.limit == Decimal("900")
    assert excinfo.value.current == Decimal("900")


def test_floor_is_satisfied_by_sibling_rows_of_the_pair() -> None:
    ledger = AllocationLedger()
    snapshot = _snapshot(allocation_id="al-1", pair_allocated=Decimal("500"), pair_paid=Decimal("450"))
    assert ledger.validate(snapshot, WriteOp.DELETE) == Decimal("0")


def test_delete_of_paid_allocation_is_rejected() -> None:
    ledger = AllocationLedger()
    snapshot = _snapshot(allocation_id="al-1", pair_paid=Decimal("1"), transaction_allocated=Decimal("0"))

    with pytest.raises(PaidFloorViolationError) as excinfo:
        ledger.validate(snapshot, WriteOp.DELETE)

    assert "Deleting" in excinfo.value.message


def test_negative_planned_amount_is_invalid() -> None:
    ledger = AllocationLedger()
    with pytest.raises(InvalidFieldError) as excinfo:
        ledger.validate(_snapshot(), WriteOp.CREATE, Decimal("-1"))
    assert excinfo.value.field == "planned_amount"


def test_exact_cap_is_accepted() -> None:
    ledger = AllocationLedger()
    snapshot = _snapshot(transaction_allocated=Decimal("400"), cost_detail_allocated=Decimal("500"))
    assert ledger.validate(snapshot, WriteOp.CREATE, Decimal("600")) == Decimal("600.000")
