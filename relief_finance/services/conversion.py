"""Cost line amount derivation and reporting-currency conversion."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import cast

from relief_finance.models import CostDetail, ExchangeRate, ReportingCurrency
from relief_finance.services.amounts import DEFAULT_QUANTUM, parse_amount, round_amount
from relief_finance.services.errors import InvalidFieldError

_HUNDRED = Decimal(100)
# Scale of the unit_price and percentage_charging columns.
QUANTITY_QUANTUM = Decimal("0.001")


@dataclass(frozen=True, slots=True)
class Quantities:
    """Validated quantity inputs of a cost line."""

    units: int
    unit_price: Decimal
    percentage_charging: Decimal


@dataclass(frozen=True, slots=True)
class ConvertedAmounts:
    """Derived amounts of a cost line. ``None`` means no rate is assigned yet."""

    amount_local: Decimal
    amount_gbp: Decimal | None
    amount_sek: Decimal | None
    amount_eur: Decimal | None

    def for_target(self, target: ReportingCurrency) -> Decimal | None:
        return getattr(self, f"amount_{target.value.lower()}")

    @property
    def unresolved(self) -> tuple[ReportingCurrency, ...]:
        return tuple(target for target in ReportingCurrency if self.for_target(target) is None)


def validate_quantities(
    units: object,
    unit_price: object,
    percentage_charging: object,
    *,
    max_percentage: Decimal,
    entity_id: str | None = None,
) -> Quantities:
    """Normalise quantity inputs, raising ``InvalidFieldError`` on bad values.

    Price and percentage are rounded half-up to the scale they are stored at,
    so amounts derived now match amounts derived from the stored row later.
    """

    units_value = cast(
        Decimal, parse_amount(units, entity="CostDetail", field="units", entity_id=entity_id, quantum=None)
    )
    if units_value != units_value.to_integral_value():
        raise InvalidFieldError(
            "'units' must be a whole number",
            entity="CostDetail",
            entity_id=entity_id,
            field="units",
            rule="integer",
            attempted=units_value,
        )
    price = cast(
        Decimal,
        parse_amount(
            unit_price, entity="CostDetail", field="unit_price", entity_id=entity_id, quantum=QUANTITY_QUANTUM
        ),
    )
    percentage = cast(
        Decimal,
        parse_amount(
            percentage_charging,
            entity="CostDetail",
            field="percentage_charging",
            entity_id=entity_id,
            quantum=QUANTITY_QUANTUM,
        ),
    )
    if percentage > max_percentage:
        raise InvalidFieldError(
            f"'percentage_charging' exceeds the maximum of {max_percentage}",
            entity="CostDetail",
            entity_id=entity_id,
            field="percentage_charging",
            rule="max_percentage_charging",
            attempted=percentage,
            limit=max_percentage,
        )
    return Quantities(units=int(units_value), unit_price=price, percentage_charging=percentage)


def gross_amount(quantities: Quantities) -> Decimal:
    """Unrounded ``units * unit_price * (1 + percentage / 100)``."""

    return (
        Decimal(quantities.units)
        * quantities.unit_price
        * (Decimal(1) + quantities.percentage_charging / _HUNDRED)
    )


def recompute(
    quantities: Quantities,
    rates: Mapping[ReportingCurrency, Decimal | None],
    *,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> ConvertedAmounts:
    """Derive local and reporting amounts from quantities and resolved rates.

    Each target is converted from the unrounded gross and rounded once, so
    no target inherits another target's rounding.
    """

    gross = gross_amount(quantities)
    converted: dict[ReportingCurrency, Decimal | None] = {}
    for target in ReportingCurrency:
        rate = rates.get(target)
        converted[target] = None if rate is None else round_amount(gross * Decimal(str(rate)), quantum)
    return ConvertedAmounts(
        amount_local=round_amount(gross, quantum),
        amount_gbp=converted[ReportingCurrency.GBP],
        amount_sek=converted[ReportingCurrency.SEK],
        amount_eur=converted[ReportingCurrency.EUR],
    )


def check_rate_pair(
    rate: ExchangeRate,
    *,
    local_currency: str,
    target: ReportingCurrency,
    budget_id: str | None = None,
) -> None:
    """Reject a rate reference whose currencies do not match the budget slot."""

    if rate.base_currency.upper() != local_currency.upper() or rate.quote_currency.upper() != target.value:
        raise InvalidFieldError(
            f"Rate {rate.base_currency}->{rate.quote_currency} cannot be used for "
            f"{local_currency.upper()}->{target.value}",
            entity="Budget",
            entity_id=budget_id,
            field=f"local_to_{target.value.lower()}_rate_id",
            rule="rate_currency_mismatch",
            current=f"{local_currency.upper()}->{target.value}",
            attempted=f"{rate.base_currency}->{rate.quote_currency}",
        )


def apply_amounts(cost_detail: CostDetail, quantities: Quantities, amounts: ConvertedAmounts) -> bool:
    """Write quantities and derived amounts onto the row; return whether anything changed."""

    values = {
        "units": quantities.units,
        "unit_price": quantities.unit_price,
        "percentage_charging": quantities.percentage_charging,
        "amount_local": amounts.amount_local,
        "amount_gbp": amounts.amount_gbp,
        "amount_sek": amounts.amount_sek,
        "amount_eur": amounts.amount_eur,
    }
    changed = False
    for name, value in values.items():
        if getattr(cost_detail, name) != value:
            setattr(cost_detail, name, value)
            changed = True
    return changed


__all__ = [
    "QUANTITY_QUANTUM",
    "ConvertedAmounts",
    "Quantities",
    "apply_amounts",
    "check_rate_pair",
    "gross_amount",
    "recompute",
    "validate_quantities",
]
