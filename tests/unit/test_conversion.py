from __future__ import annotations

from decimal import Decimal

import pytest

from relief_finance.models import ExchangeRate, ReportingCurrency
from relief_finance.services.amounts import parse_amount, round_amount
from relief_finance.services.conversion import (
    Quantities,
    check_rate_pair,
    gross_amount,
    recompute,
    validate_quantities,
)
from relief_finance.services.errors import ErrorKind, InvalidFieldError

MAX_PERCENTAGE = Decimal("999.999")


def test_recompute_converts_local_and_sek_amounts() -> None:
    quantities = validate_quantities(10, Decimal("100"), Decimal("10"), max_percentage=MAX_PERCENTAGE)
    amounts = recompute(quantities, {ReportingCurrency.SEK: Decimal("3.5")})

    assert amounts.amount_local == Decimal("1100.000")
    assert amounts.amount_sek == Decimal("3850.000")
    assert amounts.amount_gbp is None
    assert amounts.amount_eur is None
    assert amounts.unresolved == (ReportingCurrency.GBP, ReportingCurrency.EUR)


def test_recompute_is_idempotent() -> None:
    quantities = Quantities(units=3, unit_price=Decimal("33.333"), percentage_charging=Decimal("7.5"))
    rates = {
        ReportingCurrency.GBP: Decimal("0.025"),
        ReportingCurrency.SEK: Decimal("3.5"),
        ReportingCurrency.EUR: Decimal("0.029"),
    }

    assert recompute(quantities, rates) == recompute(quantities, rates)


def test_each_target_is_rounded_once_from_the_unrounded_gross() -> None:
    quantities = validate_quantities(1, Decimal("0.001"), Decimal("50"), max_percentage=MAX_PERCENTAGE)
    amounts = recompute(quantities, {ReportingCurrency.SEK: Decimal("1000")})

    # Rounding the local amount first would give 0.002 * 1000 = 2.000.
    assert amounts.amount_local == Decimal("0.002")
    assert amounts.amount_sek == Decimal("1.500")


def test_quantities_are_rounded_to_their_stored_scale() -> None:
    quantities = validate_quantities(1000, "0.0014", "12.3456", max_percentage=MAX_PERCENTAGE)

    assert quantities.unit_price == Decimal("0.001")
    assert quantities.percentage_charging == Decimal("12.346")
    assert recompute(quantities, {}).amount_local == Decimal("1.123")


def test_round_amount_rounds_half_up() -> None:
    assert round_amount(Decimal("2.0005")) == Decimal("2.001")
    assert round_amount(Decimal("-2.0005")) == Decimal("-2.001")


def test_gross_amount_applies_percentage_charging() -> None:
    quantities = Quantities(units=4, unit_price=Decimal("25"), percentage_charging=Decimal("50"))
    assert gross_amount(quantities) == Decimal("150")


def test_zero_units_gives_zero_amounts() -> None:
    quantities = validate_quantities(0, Decimal("100"), Decimal("10"), max_percentage=MAX_PERCENTAGE)
    amounts = recompute(quantities, {ReportingCurrency.SEK: Decimal("3.5")})
    assert amounts.amount_local == Decimal("0.000")
    assert amounts.amount_sek == Decimal("0.000")


@pytest.mark.parametrize(
    ("units", "unit_price", "percentage", "field", "rule"),
    [
        (-1, Decimal("1"), Decimal("0"), "units", "non_negative"),
        (Decimal("1.5"), Decimal("1"), Decimal("0"), "units", "integer"),
        (1, Decimal("-0.5"), Decimal("0"), "unit_price", "non_negative"),
        (1, "abc", Decimal("0"), "unit_price", "not_a_number"),
        (1, Decimal("1"), Decimal("1000"), "percentage_charging", "max_percentage_charging"),
        (1, Decimal("NaN"), Decimal("0"), "unit_price", "finite"),
    ],
)
def test_validate_quantities_rejects_bad_inputs(units, unit_price, percentage, field, rule) -> None:
    with pytest.raises(InvalidFieldError) as excinfo:
        validate_quantities(units, unit_price, percentage, max_percentage=MAX_PERCENTAGE)

    assert excinfo.value.kind is ErrorKind.INVALID_FIELD
    assert excinfo.value.field == field
    assert excinfo.value.rule == rule


def test_parse_amount_rejects_values_that_round_to_zero_when_strictly_positive() -> None:
    with pytest.raises(InvalidFieldError) as excinfo:
        parse_amount(Decimal("0.0004"), entity="PaymentOrderLine", field="amount", strictly_positive=True)
    assert excinfo.value.rule == "positive"


def test_check_rate_pair_rejects_wrong_currencies() -> None:
    rate = ExchangeRate(base_currency="USD", quote_currency="SEK", rate=Decimal("10.4"))

    with pytest.raises(InvalidFieldError) as excinfo:
        check_rate_pair(rate, local_currency="TRY", target=ReportingCurrency.SEK, budget_id="b-1")

    assert excinfo.value.rule == "rate_currency_mismatch"
    assert excinfo.value.field == "local_to_sek_rate_id"


def test_check_rate_pair_accepts_matching_pair_case_insensitively() -> None:
    rate = ExchangeRate(base_currency="try", quote_currency="sek", rate=Decimal("3.5"))
    check_rate_pair(rate, local_currency="TRY", target=ReportingCurrency.SEK)
