from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from relief_finance.models import Budget, CostAllocation, CostDetail, ExchangeRate
from relief_finance.services.errors import (
    AlreadyDeletedError,
    CapExceededError,
    InvalidFieldError,
    NotFoundError,
    PaidFloorViolationError,
)

from conftest import PROJECT_A, RATE_TRY_EUR, RATE_TRY_GBP, RATE_TRY_SEK, RATE_USD_SEK


def _add_line(orchestrator, context, budget_id: str, units: int, unit_price: str) -> CostDetail:
    return orchestrator.create_cost_detail(
        {"budget_id": budget_id, "units": units, "unit_price": Decimal(unit_price)}, context=context
    )


def test_assigning_rates_recomputes_every_line(orchestrator, context, scenario, db_session: Session) -> None:
    second = _add_line(orchestrator, context, scenario.budget.id, 2, "50")

    budget = orchestrator.update_budget(
        scenario.budget.id,
        {"local_to_gbp_rate_id": RATE_TRY_GBP, "local_to_eur_rate_id": RATE_TRY_EUR},
        context=context,
    )

    db_session.refresh(scenario.cost_detail)
    db_session.refresh(second)
    assert budget.local_to_gbp_rate_id == RATE_TRY_GBP
    assert scenario.cost_detail.amount_gbp == Decimal("27.500")
    assert scenario.cost_detail.amount_eur == Decimal("31.900")
    assert scenario.cost_detail.amount_sek == Decimal("3850.000")
    assert second.amount_local == Decimal("100.000")
    assert second.amount_gbp == Decimal("2.500")
    assert second.amount_eur == Decimal("2.900")


def test_clearing_a_rate_nulls_the_reporting_amount(orchestrator, context, scenario, db_session: Session) -> None:
    orchestrator.update_budget(scenario.budget.id, {"local_to_sek_rate_id": None}, context=context)

    db_session.refresh(scenario.cost_detail)
    assert scenario.cost_detail.amount_sek is None
    assert scenario.cost_detail.amount_local == Decimal("1100.000")


def test_rate_for_the_wrong_pair_is_rejected(orchestrator, context, scenario) -> None:
    with pytest.raises(InvalidFieldError) as excinfo:
        orchestrator.update_budget(scenario.budget.id, {"local_to_sek_rate_id": RATE_USD_SEK}, context=context)
    assert excinfo.value.rule == "rate_currency_mismatch"

    with pytest.raises(InvalidFieldError):
        orchestrator.update_budget(scenario.budget.id, {"local_to_gbp_rate_id": RATE_TRY_SEK}, context=context)


def test_unknown_rate_reference_is_rejected(orchestrator, context, scenario) -> None:
    with pytest.raises(NotFoundError):
        orchestrator.update_budget(scenario.budget.id, {"local_to_eur_rate_id": "missing-rate"}, context=context)


def test_currency_change_revalidates_existing_rates(orchestrator, context, scenario, db_session: Session) -> None:
    with pytest.raises(InvalidFieldError):
        orchestrator.update_budget(scenario.budget.id, {"local_currency": "USD"}, context=context)

    orchestrator.update_budget(
        scenario.budget.id,
        {"local_currency": "usd", "local_to_sek_rate_id": RATE_USD_SEK},
        context=context,
    )
    db_session.refresh(scenario.cost_detail)
    assert scenario.cost_detail.amount_sek == Decimal("11440.000")


def test_invalid_currency_code_is_rejected(orchestrator, context) -> None:
    with pytest.raises(InvalidFieldError) as excinfo:
        orchestrator.create_budget({"project_id": PROJECT_A, "local_currency": "TR"}, context=context)
    assert excinfo.value.rule == "currency_code"


def test_refresh_rates_picks_active_rates_for_local_currency(orchestrator, context, scenario, db_session) -> None:
    budget = orchestrator.refresh_budget_rates(scenario.budget.id, context=context)

    assert budget.local_to_gbp_rate_id == RATE_TRY_GBP
    assert budget.local_to_sek_rate_id == RATE_TRY_SEK
    assert budget.local_to_eur_rate_id == RATE_TRY_EUR
    db_session.refresh(scenario.cost_detail)
    assert scenario.cost_detail.amount_gbp == Decimal("27.500")


def test_deleted_rate_counts_as_unassigned(orchestrator, context, scenario, db_session: Session) -> None:
    rate = db_session.get(ExchangeRate, RATE_TRY_SEK)
    rate.mark_deleted()
    db_session.commit()

    detail = orchestrator.update_cost_detail(scenario.cost_detail.id, {"description": "Family tents"}, context=context)

    assert detail.amount_sek is None
    assert detail.description == "Family tents"


def test_budget_version_advances_with_each_recompute(orchestrator, context, scenario) -> None:
    before = scenario.budget.lock_version
    budget = orchestrator.update_budget(scenario.budget.id, {"local_to_gbp_rate_id": RATE_TRY_GBP}, context=context)
    assert budget.lock_version > before


def test_budget_delete_cascades_to_lines_and_allocations(orchestrator, context, scenario, db_session) -> None:
    allocation = orchestrator.create_allocation(
        {"transaction_id": scenario.transaction.id, "cost_detail_id": scenario.cost_detail.id, "planned_amount": Decimal("100")},
        context=context,
    )

    orchestrator.delete_budget(scenario.budget.id, context=context)

    db_session.refresh(scenario.cost_detail)
    db_session.refresh(allocation)
    assert scenario.cost_detail.deleted is True
    assert allocation.deleted is True
    assert orchestrator.repository.cost_details_for_budget(scenario.budget.id) == []
    with pytest.raises(AlreadyDeletedError):
        orchestrator.create_cost_detail({"budget_id": scenario.budget.id, "units": 1}, context=context)


def test_budget_delete_with_payments_is_rejected_atomically(orchestrator, context, scenario, db_session) -> None:
    orchestrator.create_allocation(
        {"transaction_id": scenario.transaction.id, "cost_detail_id": scenario.cost_detail.id, "planned_amount": Decimal("100")},
        context=context,
    )
    order = orchestrator.create_payment_order({"transaction_id": scenario.transaction.id}, context=context)
    orchestrator.create_payment_line(
        {
            "payment_order_id": order.id,
            "organization_id": "org-1",
            "cost_detail_id": scenario.cost_detail.id,
            "amount": Decimal("10"),
        },
        context=context,
    )

    with pytest.raises(PaidFloorViolationError):
        orchestrator.delete_budget(scenario.budget.id, context=context)

    db_session.refresh(scenario.budget)
    assert scenario.budget.deleted is False
    assert all(not row.deleted for row in db_session.query(CostAllocation).all())


def test_cost_detail_delete_cascades_allocations(orchestrator, context, scenario, db_session) -> None:
    allocation = orchestrator.create_allocation(
        {"transaction_id": scenario.transaction.id, "cost_detail_id": scenario.cost_detail.id, "planned_amount": Decimal("100")},
        context=context,
    )

    orchestrator.delete_cost_detail(scenario.cost_detail.id, context=context)

    db_session.refresh(allocation)
    assert allocation.deleted is True
    assert orchestrator.repository.allocated_total(transaction_id=scenario.transaction.id) == Decimal("0.000")


def test_percentage_above_maximum_is_rejected(orchestrator, context, scenario) -> None:
    with pytest.raises(InvalidFieldError) as excinfo:
        orchestrator.update_cost_detail(
            scenario.cost_detail.id, {"percentage_charging": Decimal("1000")}, context=context
        )
    assert excinfo.value.rule == "max_percentage_charging"


def test_unknown_field_is_rejected(orchestrator, context, scenario) -> None:
    with pytest.raises(InvalidFieldError) as excinfo:
        orchestrator.update_cost_detail(scenario.cost_detail.id, {"colour": "red"}, context=context)
    assert excinfo.value.rule == "unknown_field"


def test_sub_scale_price_keeps_amounts_stable_across_reloads(
    orchestrator, context, scenario, db_session: Session
) -> None:
    line = _add_line(orchestrator, context, scenario.budget.id, 1000, "0.0014")
    assert line.unit_price == Decimal("0.001")
    assert line.amount_local == Decimal("1.000")
    orchestrator.create_allocation(
        {"transaction_id": scenario.transaction.id, "cost_detail_id": line.id, "planned_amount": line.amount_local},
        context=context,
    )

    db_session.expire_all()
    orchestrator.update_budget(scenario.budget.id, {"local_to_gbp_rate_id": RATE_TRY_GBP}, context=context)
    db_session.expire_all()
    first = db_session.get(CostDetail, line.id)
    after_rate = (first.amount_local, first.amount_gbp, first.amount_sek)

    orchestrator.refresh_budget_rates(scenario.budget.id, context=context)
    db_session.expire_all()
    second = db_session.get(CostDetail, line.id)

    assert after_rate == (Decimal("1.000"), Decimal("0.025"), Decimal("3.500"))
    assert (second.amount_local, second.amount_gbp, second.amount_sek) == after_rate
    assert orchestrator.repository.allocated_total(cost_detail_id=line.id) <= second.amount_local


def test_budget_recompute_refuses_to_drop_a_line_below_its_allocations(
    orchestrator, context, scenario, db_session: Session
) -> None:
    orchestrator.create_allocation(
        {"transaction_id": scenario.transaction.id, "cost_detail_id": scenario.cost_detail.id, "planned_amount": Decimal("1000")},
        context=context,
    )
    # A row whose stored amount no longer matches its quantities, as left by an import.
    db_session.execute(
        update(CostDetail).where(CostDetail.id == scenario.cost_detail.id).values(unit_price=Decimal("50"))
    )
    db_session.commit()

    with pytest.raises(CapExceededError) as excinfo:
        orchestrator.update_budget(scenario.budget.id, {"local_to_gbp_rate_id": RATE_TRY_GBP}, context=context)

    assert excinfo.value.rule == "cost_detail_cap"
    assert excinfo.value.limit == Decimal("1000.000")
    db_session.expire_all()
    assert db_session.get(Budget, scenario.budget.id).local_to_gbp_rate_id is None
    assert db_session.get(CostDetail, scenario.cost_detail.id).amount_local == Decimal("1100.000")
