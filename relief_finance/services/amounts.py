"""Decimal helpers shared by the engine components."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from relief_finance.services.errors import InvalidFieldError

DEFAULT_QUANTUM = Decimal("0.001")
ZERO = Decimal(0)


def round_amount(value: Decimal | int | float | str, quantum: Decimal = DEFAULT_QUANTUM) -> Decimal:
    """Return ``value`` rounded half-up to ``quantum``."""

    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def as_amount(value: object, quantum: Decimal = DEFAULT_QUANTUM) -> Decimal:
    """Normalise a database aggregate (possibly ``None`` or float on SQLite)."""

    if value is None:
        return round_amount(ZERO, quantum)
    return round_amount(value, quantum)  # type: ignore[arg-type]


def parse_amount(
    value: object,
    *,
    entity: str,
    field: str,
    entity_id: str | None = None,
    required: bool = True,
    strictly_positive: bool = False,
    quantum: Decimal | None = DEFAULT_QUANTUM,
) -> Decimal | None:
    """Validate a caller-supplied monetary or quantity value.

    Rejects missing (when ``required``), non-numeric, non-finite and negative
    values; with ``strictly_positive`` zero is rejected as well.
    """

    if value is None:
        if required:
            raise InvalidFieldError(
                f"'{field}' is required", entity=entity, entity_id=entity_id, field=field, rule="required"
            )
        return None
    if isinstance(value, bool):
        raise InvalidFieldError(
            f"'{field}' is not a number", entity=entity, entity_id=entity_id, field=field, rule="not_a_number", attempted=value
        )
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidFieldError(
            f"'{field}' is not a number", entity=entity, entity_id=entity_id, field=field, rule="not_a_number", attempted=value
        ) from exc
    if not number.is_finite():
        raise InvalidFieldError(
            f"'{field}' must be finite", entity=entity, entity_id=entity_id, field=field, rule="finite", attempted=str(number)
        )
    if quantum is not None:
        number = round_amount(number, quantum)
    if strictly_positive and number <= 0:
        raise InvalidFieldError(
            f"'{field}' must be greater than zero",
            entity=entity,
            entity_id=entity_id,
            field=field,
            rule="positive",
            attempted=number,
            limit=ZERO,
        )
    if number < 0:
        raise InvalidFieldError(
            f"'{field}' must not be negative",
            entity=entity,
            entity_id=entity_id,
            field=field,
            rule="non_negative",
            attempted=number,
            limit=ZERO,
        )
    return number


__all__ = ["DEFAULT_QUANTUM", "ZERO", "as_amount", "parse_amount", "round_amount"]
