"""Single validated write path for budgets, funding, allocations and payments.

Every mutating request goes through :class:`ConsistencyOrchestrator`. For each
request it loads the rows the relevant check needs, runs exactly that check,
and performs the write together with any derived-field recompute inside one
serializable unit. A rejected request writes nothing.

Aggregate roots (budgets, transactions, payment orders) carry an optimistic
version. A write that depends on an aggregate's totals touches its root, so
two writers racing on the same aggregate cannot both commit.
"""
from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, cast

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from relief_finance.core.config import Settings, get_settings
from relief_finance.db.isolation import serializable_transaction
from relief_finance.models import (
    AuditLog,
    Budget,
    CostAllocation,
    CostDetail,
    ExchangeRate,
    PaymentOrder,
    PaymentOrderLine,
    Project,
    ReportingCurrency,
    Signature,
    SignatureKind,
    Transaction,
)
from relief_finance.obs import (
    engine_span,
    mark_rejected,
    record_booking_transition,
    record_engine_rejection,
    record_engine_write,
    record_recomputed_lines,
)
from relief_finance.services.allocations import AllocationLedger, LedgerSnapshot
from relief_finance.services.amounts import ZERO, parse_amount
from relief_finance.services.context import RequestContext, WriteOp
from relief_finance.services.conversion import (
    ConvertedAmounts,
    apply_amounts,
    check_rate_pair,
    recompute,
    validate_quantities,
)
from relief_finance.services.errors import (
    CapExceededError,
    ConcurrentModificationError,
    ConsistencyError,
    CrossProjectMismatchError,
    InvalidFieldError,
    NotFoundError,
    PaidFloorViolationError,
)
from relief_finance.services.locking import LockState, LockStateMachine
from relief_finance.services.payments import LineDraft, OrderState, PaymentGuard, PaymentSnapshot
from relief_finance.services.repository import Repository

logger = logging.getLogger(__name__)

_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}$")
_SYSTEM_FIELDS = frozenset({"id", "deleted", "deleted_at", "created_at", "updated_at", "lock_version"})

_BUDGET_FIELDS = frozenset(
    {"description", "local_currency", "project_id", "local_to_gbp_rate_id", "local_to_sek_rate_id", "local_to_eur_rate_id"}
)
_COST_DETAIL_FIELDS = frozenset({"description", "cost_type", "units", "unit_price", "percentage_charging"})
_COST_DETAIL_DERIVED = frozenset({"amount_local", "amount_gbp", "amount_sek", "amount_eur"})
_TRANSACTION_AMOUNTS = ("applied_for_amount", "approved_amount", "first_share_amount", "second_share_amount")
_TRANSACTION_FIELDS = frozenset(
    {
        "project_id",
        "budget_id",
        "organization_id",
        "financier_organization_id",
        "status",
        "date_planned",
        "ok_status",
        *_TRANSACTION_AMOUNTS,
    }
)
_ALLOCATION_FIELDS = frozenset({"planned_amount", "note"})
_ORDER_FIELDS = frozenset({"transaction_id", "payment_order_date", "description", "message"})
_ORDER_DERIVED = frozenset({"total_amount", "number_of_lines"})
_LINE_FIELDS = frozenset({"transaction_id", "organization_id", "cost_detail_id", "currency", "amount", "memo"})
_SIGNATURE_FIELDS = frozenset({"status_kind", "signed_by", "signature", "signature_date"})


def _jsonable(values: Mapping[str, Any]) -> dict[str, Any]:
    rendered: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            rendered[key] = str(value)
        elif isinstance(value, (date, datetime)):
            rendered[key] = value.isoformat()
        elif isinstance(value, Enum):
            rendered[key] = value.value
        else:
            rendered[key] = value
    return rendered


def _check_fields(
    entity: str,
    entity_id: str | None,
    values: Mapping[str, Any],
    writable: frozenset[str],
    *,
    derived: frozenset[str] = frozenset(),
    immutable: frozenset[str] = frozenset(),
) -> None:
    for name in values:
        if name in writable:
            continue
        if name in derived:
            message, rule = f"'{name}' is derived and cannot be written", "derived_field"
        elif name in immutable or name in _SYSTEM_FIELDS:
            message, rule = f"'{name}' cannot be changed", "immutable_field"
        else:
            message, rule = f"'{name}' is not a field of {entity}", "unknown_field"
        raise InvalidFieldError(
            message, entity=entity, entity_id=entity_id, field=name, rule=rule, attempted=values[name]
        )


def _currency_code(value: object, *, entity: str, field: str, entity_id: str | None = None) -> str:
    if not isinstance(value, str) or not _CURRENCY_CODE.match(value):
        raise InvalidFieldError(
            f"'{field}' must be a three-letter currency code",
            entity=entity,
            entity_id=entity_id,
            field=field,
            rule="currency_code",
            attempted=value,
        )
    return value.upper()


def _signature_kind(value: object, *, entity_id: str | None = None) -> SignatureKind:
    try:
        return SignatureKind(value)
    except ValueError as exc:
        raise InvalidFieldError(
            f"'{value}' is not a signature status",
            entity="Signature",
            entity_id=entity_id,
            field="status_kind",
            rule="signature_kind",
            attempted=value,
            limit=[kind.value for kind in SignatureKind],
        ) from exc


class ConsistencyOrchestrator:
    """Composes conversion, ledger, guard and lock checks on every write."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        quantum = self._settings.amount_quantum
        self._quantum = quantum
        self._repo = Repository(session)
        self._ledger = AllocationLedger(quantum=quantum)
        self._guard = PaymentGuard(quantum=quantum)
        self._locks = LockStateMachine()

    @property
    def repository(self) -> Repository:
        return self._repo

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def create_budget(self, values: Mapping[str, Any], *, context: RequestContext) -> Budget:
        _check_fields("Budget", None, values, _BUDGET_FIELDS)
        with self._write_unit("budget.create", context, entity="Budget"):
            project_id = values.get("project_id")
            self._require_project(project_id)
            budget = Budget(
                project_id=project_id,
                description=values.get("description"),
                local_currency=_currency_code(values.get("local_currency"), entity="Budget", field="local_currency"),
            )
            for target in ReportingCurrency:
                budget.set_rate_id(target, values.get(f"local_to_{target.value.lower()}_rate_id"))
            self._validate_rate_references(budget, targets=tuple(ReportingCurrency))
            self._session.add(budget)
            self._session.flush()
            self._audit(context, "budget.create", "Budget", budget.id, budget.project_id, values)
        self._session.refresh(budget)
        return budget

    def update_budget(self, budget_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> Budget:
        """Apply header changes; a currency or rate change recomputes every cost line in the same unit."""

        _check_fields("Budget", budget_id, changes, _BUDGET_FIELDS)
        with self._write_unit("budget.update", context, entity="Budget", entity_id=budget_id):
            budget = self._repo.get_active(Budget, budget_id, for_update=True)

            if "project_id" in changes and changes["project_id"] != budget.project_id:
                self._require_project(changes["project_id"])
                if self._repo.transactions_for_budget(budget.id):
                    raise CrossProjectMismatchError(
                        f"Budget '{budget.id}' is referenced by transactions of project '{budget.project_id}'",
                        entity="Budget",
                        entity_id=budget.id,
                        field="project_id",
                        rule="budget_project_in_use",
                        current=budget.project_id,
                        attempted=changes["project_id"],
                    )
                budget.project_id = changes["project_id"]

            if "description" in changes:
                budget.description = changes["description"]

            changed_targets: set[ReportingCurrency] = set()
            if "local_currency" in changes:
                currency = _currency_code(
                    changes["local_currency"], entity="Budget", field="local_currency", entity_id=budget.id
                )
                if currency != budget.local_currency:
                    budget.local_currency = currency
                    changed_targets.update(ReportingCurrency)
            for target in ReportingCurrency:
                key = f"local_to_{target.value.lower()}_rate_id"
                if key in changes and changes[key] != budget.rate_id_for(target):
                    budget.set_rate_id(target, changes[key])
                    changed_targets.add(target)

            if changed_targets:
                self._validate_rate_references(budget, targets=tuple(changed_targets))
                recomputed = self._recompute_budget_lines(budget)
                logger.info(
                    "budget rates changed",
                    extra={"budget_id": budget.id, "recomputed_lines": recomputed},
                )
            self._touch(budget)
            self._audit(context, "budget.update", "Budget", budget.id, budget.project_id, changes)
        self._session.refresh(budget)
        return budget

    def refresh_budget_rates(self, budget_id: str, *, context: RequestContext) -> Budget:
        """Point each reporting slot at the latest active rate for its pair and recompute all lines."""

        with self._write_unit("budget.refresh_rates", context, entity="Budget", entity_id=budget_id):
            budget = self._repo.get_active(Budget, budget_id, for_update=True)
            assigned: dict[str, str | None] = {}
            for target in ReportingCurrency:
                rate = self._repo.find_active_rate(budget.local_currency, target.value)
                budget.set_rate_id(target, rate.id if rate is not None else None)
                assigned[target.value] = rate.id if rate is not None else None
            recomputed = self._recompute_budget_lines(budget)
            self._touch(budget)
            self._audit(
                context,
                "budget.refresh_rates",
                "Budget",
                budget.id,
                budget.project_id,
                {"rates": assigned, "recomputed_lines": recomputed},
            )
        self._session.refresh(budget)
        return budget

    def delete_budget(self, budget_id: str, *, context: RequestContext) -> Budget:
        """Soft-delete the budget, cascading to its cost lines and their allocations."""

        with self._write_unit("budget.delete", context, entity="Budget", entity_id=budget_id):
            budget = self._repo.get_active(Budget, budget_id, for_update=True)
            now = datetime.now(timezone.utc)
            details = self._repo.cost_details_for_budget(budget.id, for_update=True)
            for detail in details:
                self._retire_cost_detail(detail, now)
            budget.mark_deleted(now)
            self._audit(
                context,
                "budget.delete",
                "Budget",
                budget.id,
                budget.project_id,
                {"cascaded_cost_details": [detail.id for detail in details]},
            )
        self._session.refresh(budget)
        return budget

    # ------------------------------------------------------------------
    # Cost lines
    # ------------------------------------------------------------------

    def create_cost_detail(self, values: Mapping[str, Any], *, context: RequestContext) -> CostDetail:
        _check_fields(
            "CostDetail", None, values, _COST_DETAIL_FIELDS | {"budget_id"}, derived=_COST_DETAIL_DERIVED
        )
        with self._write_unit("cost_detail.create", context, entity="CostDetail"):
            budget = self._repo.get_active(Budget, values.get("budget_id"), for_update=True)
            quantities = validate_quantities(
                values.get("units", 0),
                values.get("unit_price", ZERO),
                values.get("percentage_charging", ZERO),
                max_percentage=self._settings.max_percentage_charging,
            )
            detail = CostDetail(
                budget_id=budget.id,
                description=values.get("description"),
                cost_type=values.get("cost_type"),
            )
            apply_amounts(detail, quantities, self._convert(quantities, budget))
            self._session.add(detail)
            self._session.flush()
            self._touch(budget)
            self._audit(context, "cost_detail.create", "CostDetail", detail.id, budget.project_id, values)
        self._session.refresh(detail)
        return detail

    def update_cost_detail(self, cost_detail_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> CostDetail:
        """Apply quantity or text changes; derived amounts are always recomputed, never accepted."""

        _check_fields(
            "CostDetail",
            cost_detail_id,
            changes,
            _COST_DETAIL_FIELDS,
            derived=_COST_DETAIL_DERIVED,
            immutable=frozenset({"budget_id"}),
        )
        with self._write_unit("cost_detail.update", context, entity="CostDetail", entity_id=cost_detail_id):
            detail = self._repo.get_active(CostDetail, cost_detail_id, for_update=True)
            budget = self._repo.get_active(Budget, detail.budget_id, for_update=True)
            quantities = validate_quantities(
                changes.get("units", detail.units),
                changes.get("unit_price", detail.unit_price),
                changes.get("percentage_charging", detail.percentage_charging),
                max_percentage=self._settings.max_percentage_charging,
                entity_id=detail.id,
            )
            amounts = self._convert(quantities, budget)
            self._ensure_covers_allocations(detail, amounts)
            for name in ("description", "cost_type"):
                if name in changes:
                    setattr(detail, name, changes[name])
            apply_amounts(detail, quantities, amounts)
            self._touch(budget)
            self._audit(context, "cost_detail.update", "CostDetail", detail.id, budget.project_id, changes)
        self._session.refresh(detail)
        return detail

    def delete_cost_detail(self, cost_detail_id: str, *, context: RequestContext) -> CostDetail:
        with self._write_unit("cost_detail.delete", context, entity="CostDetail", entity_id=cost_detail_id):
            detail = self._repo.get_active(CostDetail, cost_detail_id, for_update=True)
            budget = self._repo.get_active(Budget, detail.budget_id, for_update=True)
            cascaded = self._retire_cost_detail(detail, datetime.now(timezone.utc))
            self._touch(budget)
            self._audit(
                context,
                "cost_detail.delete",
                "CostDetail",
                detail.id,
                budget.project_id,
                {"cascaded_allocations": cascaded},
            )
        self._session.refresh(detail)
        return detail

    # ------------------------------------------------------------------
    # Funding transactions
    # ------------------------------------------------------------------

    def create_transaction(self, values: Mapping[str, Any], *, context: RequestContext) -> Transaction:
        _check_fields("Transaction", None, values, _TRANSACTION_FIELDS)
        with self._write_unit("transaction.create", context, entity="Transaction"):
            project_id = values.get("project_id")
            self._require_project(project_id)
            budget = self._repo.get_active(Budget, values.get("budget_id"))
            self._ensure_budget_in_project(budget, project_id, transaction_id=None)
            transaction = Transaction(project_id=project_id, budget_id=budget.id)
            self._assign_transaction_fields(transaction, values)
            self._session.add(transaction)
            self._session.flush()
            self._audit(context, "transaction.create", "Transaction", transaction.id, project_id, values)
        self._session.refresh(transaction)
        return transaction

    def update_transaction(self, transaction_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> Transaction:
        _check_fields("Transaction", transaction_id, changes, _TRANSACTION_FIELDS)
        with self._write_unit("transaction.update", context, entity="Transaction", entity_id=transaction_id):
            transaction = self._repo.get_active(Transaction, transaction_id, for_update=True)
            project_id = changes.get("project_id", transaction.project_id)

            if project_id != transaction.project_id:
                self._require_project(project_id)
                committed = self._repo.allocations(transaction_id=transaction.id) or self._repo.paid_total(
                    transaction_id=transaction.id
                )
                if committed:
                    raise CrossProjectMismatchError(
                        f"Transaction '{transaction.id}' already carries allocations or payments "
                        f"in project '{transaction.project_id}'",
                        entity="Transaction",
                        entity_id=transaction.id,
                        field="project_id",
                        rule="project_change_with_commitments",
                        current=transaction.project_id,
                        attempted=project_id,
                    )
            if project_id != transaction.project_id or "budget_id" in changes:
                budget = self._repo.get_active(Budget, changes.get("budget_id", transaction.budget_id))
                self._ensure_budget_in_project(budget, project_id, transaction_id=transaction.id)
                transaction.project_id = project_id
                transaction.budget_id = budget.id

            self._assign_transaction_fields(transaction, changes)
            allocated = self._repo.allocated_total(transaction_id=transaction.id)
            approved = transaction.approved_amount if transaction.approved_amount is not None else ZERO
            if allocated > approved:
                raise CapExceededError(
                    f"Transaction '{transaction.id}' has {allocated} allocated; "
                    f"the approved amount cannot drop to {approved}",
                    entity="Transaction",
                    entity_id=transaction.id,
                    field="approved_amount",
                    rule="transaction_cap",
                    current=allocated,
                    attempted=approved,
                    limit=allocated,
                )
            self._touch(transaction)
            self._audit(context, "transaction.update", "Transaction", transaction.id, transaction.project_id, changes)
        self._session.refresh(transaction)
        return transaction

    def delete_transaction(self, transaction_id: str, *, context: RequestContext) -> Transaction:
        """Soft-delete a transaction and its allocations; refused once money has been paid against it."""

        with self._write_unit("transaction.delete", context, entity="Transaction", entity_id=transaction_id):
            transaction = self._repo.get_active(Transaction, transaction_id, for_update=True)
            paid = self._repo.paid_total(transaction_id=transaction.id)
            if paid > ZERO:
                raise PaidFloorViolationError(
                    f"Transaction '{transaction.id}' has {paid} paid against it",
                    entity="Transaction",
                    entity_id=transaction.id,
                    rule="paid_floor",
                    current=paid,
                    attempted=ZERO,
                    limit=paid,
                )
            now = datetime.now(timezone.utc)
            cascaded = []
            for allocation in self._repo.allocations(transaction_id=transaction.id):
                allocation.mark_deleted(now)
                cascaded.append(allocation.id)
            transaction.mark_deleted(now)
            self._audit(
                context,
                "transaction.delete",
                "Transaction",
                transaction.id,
                transaction.project_id,
                {"cascaded_allocations": cascaded},
            )
        self._session.refresh(transaction)
        return transaction

    # ------------------------------------------------------------------
    # Allocations
    # ------------------------------------------------------------------

    def create_allocation(self, values: Mapping[str, Any], *, context: RequestContext) -> CostAllocation:
        _check_fields("CostAllocation", None, values, _ALLOCATION_FIELDS | {"transaction_id", "cost_detail_id"})
        with self._write_unit("cost_allocation.create", context, entity="CostAllocation"):
            transaction, detail, budget = self._load_allocation_pair(
                values.get("transaction_id"), values.get("cost_detail_id")
            )
            snapshot = self._ledger_snapshot(transaction, detail, allocation=None)
            planned = self._ledger.validate(snapshot, WriteOp.CREATE, values.get("planned_amount"))
            allocation = CostAllocation(
                transaction_id=transaction.id,
                cost_detail_id=detail.id,
                planned_amount=planned,
                note=values.get("note"),
            )
            self._session.add(allocation)
            self._session.flush()
            self._touch(transaction, budget)
            self._audit(
                context, "cost_allocation.create", "CostAllocation", allocation.id, transaction.project_id, values
            )
        self._session.refresh(allocation)
        return allocation

    def update_allocation(self, allocation_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> CostAllocation:
        _check_fields(
            "CostAllocation",
            allocation_id,
            changes,
            _ALLOCATION_FIELDS,
            immutable=frozenset({"transaction_id", "cost_detail_id"}),
        )
        with self._write_unit("cost_allocation.update", context, entity="CostAllocation", entity_id=allocation_id):
            allocation = self._repo.get_active(CostAllocation, allocation_id, for_update=True)
            transaction, detail, budget = self._load_allocation_pair(
                allocation.transaction_id, allocation.cost_detail_id
            )
            snapshot = self._ledger_snapshot(transaction, detail, allocation=allocation)
            planned = self._ledger.validate(
                snapshot, WriteOp.UPDATE, changes.get("planned_amount", allocation.planned_amount)
            )
            allocation.planned_amount = planned
            if "note" in changes:
                allocation.note = changes["note"]
            self._touch(transaction, budget)
            self._audit(
                context, "cost_allocation.update", "CostAllocation", allocation.id, transaction.project_id, changes
            )
        self._session.refresh(allocation)
        return allocation

    def delete_allocation(self, allocation_id: str, *, context: RequestContext) -> CostAllocation:
        with self._write_unit("cost_allocation.delete", context, entity="CostAllocation", entity_id=allocation_id):
            allocation = self._repo.get_active(CostAllocation, allocation_id, for_update=True)
            transaction, detail, budget = self._load_allocation_pair(
                allocation.transaction_id, allocation.cost_detail_id
            )
            snapshot = self._ledger_snapshot(transaction, detail, allocation=allocation)
            self._ledger.validate(snapshot, WriteOp.DELETE)
            allocation.mark_deleted()
            self._touch(transaction, budget)
            self._audit(
                context,
                "cost_allocation.delete",
                "CostAllocation",
                allocation.id,
                transaction.project_id,
                {"planned_amount": allocation.planned_amount},
            )
        self._session.refresh(allocation)
        return allocation

    # ------------------------------------------------------------------
    # Payment orders
    # ------------------------------------------------------------------

    def create_payment_order(self, values: Mapping[str, Any], *, context: RequestContext) -> PaymentOrder:
        _check_fields("PaymentOrder", None, values, _ORDER_FIELDS, derived=_ORDER_DERIVED)
        with self._write_unit("payment_order.create", context, entity="PaymentOrder"):
            header = None
            if values.get("transaction_id") is not None:
                header = self._repo.get_active(Transaction, values["transaction_id"])
            order = PaymentOrder(
                transaction_id=header.id if header is not None else None,
                payment_order_date=values.get("payment_order_date"),
                description=values.get("description"),
                message=values.get("message"),
                total_amount=ZERO,
                number_of_lines=0,
            )
            self._session.add(order)
            self._session.flush()
            self._audit(
                context,
                "payment_order.create",
                "PaymentOrder",
                order.id,
                header.project_id if header is not None else None,
                values,
            )
        self._session.refresh(order)
        return order

    def update_payment_order(self, order_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> PaymentOrder:
        """Update the header; moving the header transaction re-validates every line that inherits it."""

        _check_fields("PaymentOrder", order_id, changes, _ORDER_FIELDS, derived=_ORDER_DERIVED)
        with self._write_unit("payment_order.update", context, entity="PaymentOrder", entity_id=order_id):
            order = self._repo.get_active(PaymentOrder, order_id, for_update=True)
            state = self._order_state(order)
            self._locks.ensure_open(state.lock_state, order_id=order.id)

            for name in ("payment_order_date", "description", "message"):
                if name in changes:
                    setattr(order, name, changes[name])

            new_header_id = changes.get("transaction_id", order.transaction_id)
            if new_header_id != order.transaction_id:
                previous_header_id = order.transaction_id
                if new_header_id is not None:
                    self._repo.get_active(Transaction, new_header_id, for_update=True)
                order.transaction_id = new_header_id
                self._session.flush()
                moved = OrderState(order_id=order.id, lock_state=state.lock_state, header_transaction_id=new_header_id)
                touched: list[Transaction] = []
                for line in self._repo.lines_for_order(order.id):
                    if line.transaction_id is not None:
                        continue
                    transaction, _ = self._validate_line(self._draft_from_line(line), WriteOp.UPDATE, moved)
                    touched.append(transaction)
                if previous_header_id is not None:
                    previous = self._session.get(Transaction, previous_header_id)
                    if previous is not None and not previous.deleted:
                        touched.append(previous)
                self._touch(*touched)
            self._touch(order)
            self._audit(
                context, "payment_order.update", "PaymentOrder", order.id, self._order_project(order), changes
            )
        self._session.refresh(order)
        return order

    def delete_payment_order(self, order_id: str, *, context: RequestContext) -> PaymentOrder:
        """Soft-delete an open order together with its lines."""

        with self._write_unit("payment_order.delete", context, entity="PaymentOrder", entity_id=order_id):
            order = self._repo.get_active(PaymentOrder, order_id, for_update=True)
            state = self._order_state(order)
            self._locks.ensure_open(state.lock_state, order_id=order.id)
            project_id = self._order_project(order)
            now = datetime.now(timezone.utc)
            lines = self._repo.lines_for_order(order.id)
            for line in lines:
                line.mark_deleted(now)
            order.mark_deleted(now)
            order.total_amount = ZERO
            order.number_of_lines = 0
            self._audit(
                context,
                "payment_order.delete",
                "PaymentOrder",
                order.id,
                project_id,
                {"cascaded_lines": [line.id for line in lines]},
            )
        self._session.refresh(order)
        return order

    def lock_state(self, order_id: str) -> LockState:
        order = self._repo.get_active(PaymentOrder, order_id)
        return self._order_state(order).lock_state

    # ------------------------------------------------------------------
    # Payment lines
    # ------------------------------------------------------------------

    def create_payment_line(self, values: Mapping[str, Any], *, context: RequestContext) -> PaymentOrderLine:
        _check_fields("PaymentOrderLine", None, values, _LINE_FIELDS | {"payment_order_id"})
        with self._write_unit("payment_order_line.create", context, entity="PaymentOrderLine"):
            order = self._repo.get_active(PaymentOrder, values.get("payment_order_id"), for_update=True)
            draft = LineDraft(
                line_id=None,
                transaction_id=values.get("transaction_id"),
                organization_id=values.get("organization_id"),
                cost_detail_id=values.get("cost_detail_id"),
                amount=values.get("amount"),
            )
            transaction, amount = self._validate_line(draft, WriteOp.CREATE, self._order_state(order))
            line = PaymentOrderLine(
                payment_order_id=order.id,
                transaction_id=draft.transaction_id,
                organization_id=draft.organization_id,
                cost_detail_id=draft.cost_detail_id,
                currency=self._optional_currency(values.get("currency")),
                amount=amount,
                memo=values.get("memo"),
            )
            self._session.add(line)
            self._session.flush()
            self._refresh_order_totals(order)
            self._touch(transaction)
            self._audit(
                context, "payment_order_line.create", "PaymentOrderLine", line.id, transaction.project_id, values
            )
        self._session.refresh(line)
        return line

    def update_payment_line(self, line_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> PaymentOrderLine:
        _check_fields(
            "PaymentOrderLine", line_id, changes, _LINE_FIELDS, immutable=frozenset({"payment_order_id"})
        )
        with self._write_unit("payment_order_line.update", context, entity="PaymentOrderLine", entity_id=line_id):
            line = self._repo.get_active(PaymentOrderLine, line_id, for_update=True)
            order = self._repo.get_active(PaymentOrder, line.payment_order_id, for_update=True)
            state = self._order_state(order)
            previous_transaction_id = line.transaction_id or order.transaction_id
            draft = LineDraft(
                line_id=line.id,
                transaction_id=changes.get("transaction_id", line.transaction_id),
                organization_id=changes.get("organization_id", line.organization_id),
                cost_detail_id=changes.get("cost_detail_id", line.cost_detail_id),
                amount=changes.get("amount", line.amount),
            )
            transaction, amount = self._validate_line(draft, WriteOp.UPDATE, state)
            line.transaction_id = draft.transaction_id
            line.organization_id = draft.organization_id
            line.cost_detail_id = draft.cost_detail_id
            line.amount = amount
            if "currency" in changes:
                line.currency = self._optional_currency(changes["currency"], line_id=line.id)
            if "memo" in changes:
                line.memo = changes["memo"]
            self._session.flush()
            self._refresh_order_totals(order)
            touched = [transaction]
            if previous_transaction_id and previous_transaction_id != transaction.id:
                previous = self._session.get(Transaction, previous_transaction_id)
                if previous is not None and not previous.deleted:
                    touched.append(previous)
            self._touch(*touched)
            self._audit(
                context, "payment_order_line.update", "PaymentOrderLine", line.id, transaction.project_id, changes
            )
        self._session.refresh(line)
        return line

    def delete_payment_line(self, line_id: str, *, context: RequestContext) -> PaymentOrderLine:
        with self._write_unit("payment_order_line.delete", context, entity="PaymentOrderLine", entity_id=line_id):
            line = self._repo.get_active(PaymentOrderLine, line_id, for_update=True)
            order = self._repo.get_active(PaymentOrder, line.payment_order_id, for_update=True)
            self._guard.check_preconditions(self._draft_from_line(line), WriteOp.DELETE, self._order_state(order))
            line.mark_deleted()
            self._session.flush()
            self._refresh_order_totals(order)
            self._audit(
                context,
                "payment_order_line.delete",
                "PaymentOrderLine",
                line.id,
                self._order_project(order),
                {"amount": line.amount},
            )
        self._session.refresh(line)
        return line

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def create_signature(self, values: Mapping[str, Any], *, context: RequestContext) -> Signature:
        """Record an approval; a ``BOOKED`` signature locks the order."""

        _check_fields("Signature", None, values, _SIGNATURE_FIELDS | {"payment_order_id"})
        with self._write_unit("signature.create", context, entity="Signature"):
            order = self._repo.get_active(PaymentOrder, values.get("payment_order_id"), for_update=True)
            before = self._order_state(order).lock_state
            self._locks.ensure_open(before, order_id=order.id, entity="Signature")
            signature = Signature(
                payment_order_id=order.id,
                status_kind=_signature_kind(values.get("status_kind")),
                signed_by=values.get("signed_by"),
                signature=values.get("signature"),
                signature_date=values.get("signature_date"),
            )
            self._session.add(signature)
            self._session.flush()
            self._settle_lock_state(order, before)
            self._audit(
                context, "signature.create", "Signature", signature.id, self._order_project(order), values
            )
        self._session.refresh(signature)
        return signature

    def update_signature(self, signature_id: str, changes: Mapping[str, Any], *, context: RequestContext) -> Signature:
        _check_fields(
            "Signature", signature_id, changes, _SIGNATURE_FIELDS, immutable=frozenset({"payment_order_id"})
        )
        with self._write_unit("signature.update", context, entity="Signature", entity_id=signature_id):
            signature = self._repo.get_active(Signature, signature_id, for_update=True)
            order = self._repo.get_active(PaymentOrder, signature.payment_order_id, for_update=True)
            before = self._order_state(order).lock_state
            self._locks.ensure_open(before, order_id=order.id, entity="Signature", entity_id=signature.id)
            if "status_kind" in changes:
                signature.status_kind = _signature_kind(changes["status_kind"], entity_id=signature.id)
            for name in ("signed_by", "signature", "signature_date"):
                if name in changes:
                    setattr(signature, name, changes[name])
            self._session.flush()
            self._settle_lock_state(order, before)
            self._audit(
                context, "signature.update", "Signature", signature.id, self._order_project(order), changes
            )
        self._session.refresh(signature)
        return signature

    def delete_signature(self, signature_id: str, *, context: RequestContext) -> Signature:
        """Soft-delete a signature of an open order; a booked order keeps its signatures."""

        with self._write_unit("signature.delete", context, entity="Signature", entity_id=signature_id):
            signature = self._repo.get_active(Signature, signature_id, for_update=True)
            order = self._repo.get_active(PaymentOrder, signature.payment_order_id, for_update=True)
            before = self._order_state(order).lock_state
            self._locks.ensure_open(before, order_id=order.id, entity="Signature", entity_id=signature.id)
            signature.mark_deleted()
            self._session.flush()
            self._settle_lock_state(order, before)
            self._audit(
                context,
                "signature.delete",
                "Signature",
                signature.id,
                self._order_project(order),
                {"status_kind": signature.status_kind},
            )
        self._session.refresh(signature)
        return signature

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _write_unit(
        self,
        operation: str,
        context: RequestContext,
        *,
        entity: str,
        entity_id: str | None = None,
    ) -> Iterator[None]:
        started = time.perf_counter()
        with engine_span(
            f"engine.{operation}",
            entity=entity,
            entity_id=entity_id,
            actor=context.actor,
            request_id=context.request_id,
        ) as span:
            try:
                with serializable_transaction(self._session):
                    yield
            except StaleDataError as exc:
                error = ConcurrentModificationError(
                    f"{entity} was modified by a concurrent write; re-fetch and resubmit",
                    entity=entity,
                    entity_id=entity_id,
                    rule="optimistic_version",
                )
                self._reject(operation, error, span)
                raise error from exc
            except ConsistencyError as exc:
                self._reject(operation, exc, span)
                raise
        record_engine_write(operation, time.perf_counter() - started)
        logger.info(
            "engine write accepted",
            extra={"operation": operation, "entity": entity, "entity_id": entity_id, "actor": context.actor},
        )

    @staticmethod
    def _reject(operation: str, error: ConsistencyError, span: Any) -> None:
        record_engine_rejection(operation, error.kind.value)
        mark_rejected(span, kind=error.kind.value, rule=error.rule)
        logger.warning(
            "engine write rejected: %s",
            error.message,
            extra={
                "operation": operation,
                "kind": error.kind.value,
                "entity": error.entity,
                "entity_id": error.entity_id,
                "rule": error.rule,
            },
        )

    def _audit(
        self,
        context: RequestContext,
        action: str,
        resource_type: str,
        resource_id: str | None,
        project_id: str | None,
        payload: Mapping[str, Any],
    ) -> None:
        self._session.add(
            AuditLog(
                project_id=project_id,
                actor=context.actor,
                request_id=context.request_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                payload=_jsonable(payload),
            )
        )

    @staticmethod
    def _touch(*roots: Budget | Transaction | PaymentOrder) -> None:
        """Mark aggregate roots dirty so their version is checked and bumped on flush."""

        now = datetime.now(timezone.utc)
        for root in roots:
            root.updated_at = now

    def _require_project(self, project_id: object) -> Project:
        if not project_id:
            raise InvalidFieldError("'project_id' is required", entity="Project", field="project_id", rule="required")
        project = self._session.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' was not found", entity="Project", entity_id=str(project_id))
        return project

    @staticmethod
    def _ensure_budget_in_project(budget: Budget, project_id: str, *, transaction_id: str | None) -> None:
        if budget.project_id != project_id:
            raise CrossProjectMismatchError(
                f"Budget '{budget.id}' belongs to project '{budget.project_id}', not '{project_id}'",
                entity="Transaction",
                entity_id=transaction_id,
                field="budget_id",
                rule="budget_project",
                current=budget.project_id,
                attempted=project_id,
            )

    def _assign_transaction_fields(self, transaction: Transaction, values: Mapping[str, Any]) -> None:
        for name in _TRANSACTION_AMOUNTS:
            if name in values:
                setattr(
                    transaction,
                    name,
                    parse_amount(
                        values[name],
                        entity="Transaction",
                        field=name,
                        entity_id=transaction.id,
                        required=False,
                        quantum=self._quantum,
                    ),
                )
        for name in ("organization_id", "financier_organization_id", "status", "date_planned", "ok_status"):
            if name in values:
                setattr(transaction, name, values[name])

    def _optional_currency(self, value: object, *, line_id: str | None = None) -> str | None:
        if value is None:
            return None
        return _currency_code(value, entity="PaymentOrderLine", field="currency", entity_id=line_id)

    # -- conversion --------------------------------------------------------

    def _validate_rate_references(self, budget: Budget, *, targets: tuple[ReportingCurrency, ...]) -> None:
        for target in targets:
            rate_id = budget.rate_id_for(target)
            if rate_id is None:
                continue
            rate = self._repo.get_active(ExchangeRate, rate_id)
            check_rate_pair(rate, local_currency=budget.local_currency, target=target, budget_id=budget.id)

    def _resolved_rates(self, budget: Budget) -> dict[ReportingCurrency, Decimal | None]:
        rates: dict[ReportingCurrency, Decimal | None] = {}
        for target in ReportingCurrency:
            rate = self._repo.active_rate(budget.rate_id_for(target))
            usable = (
                rate is not None
                and rate.base_currency.upper() == budget.local_currency.upper()
                and rate.quote_currency.upper() == target.value
            )
            rates[target] = Decimal(str(rate.rate)) if usable else None
        return rates

    def _convert(self, quantities: Any, budget: Budget) -> ConvertedAmounts:
        return recompute(quantities, self._resolved_rates(budget), quantum=self._quantum)

    def _recompute_budget_lines(self, budget: Budget) -> int:
        """Recompute every active line of the budget; returns how many changed."""

        rates = self._resolved_rates(budget)
        changed = 0
        for detail in self._repo.cost_details_for_budget(budget.id, for_update=True):
            quantities = validate_quantities(
                detail.units,
                detail.unit_price,
                detail.percentage_charging,
                max_percentage=self._settings.max_percentage_charging,
                entity_id=detail.id,
            )
            amounts = recompute(quantities, rates, quantum=self._quantum)
            self._ensure_covers_allocations(detail, amounts)
            if apply_amounts(detail, quantities, amounts):
                changed += 1
        record_recomputed_lines(changed)
        return changed

    def _ensure_covers_allocations(self, detail: CostDetail, amounts: ConvertedAmounts) -> None:
        allocated = self._repo.allocated_total(cost_detail_id=detail.id)
        if allocated > amounts.amount_local:
            raise CapExceededError(
                f"Cost line '{detail.id}' would be budgeted at {amounts.amount_local}, "
                f"below the {allocated} already allocated to it",
                entity="CostDetail",
                entity_id=detail.id,
                field="amount_local",
                rule="cost_detail_cap",
                current=detail.amount_local,
                attempted=amounts.amount_local,
                limit=allocated,
            )

    def _retire_cost_detail(self, detail: CostDetail, now: datetime) -> list[str]:
        paid = self._repo.paid_total(cost_detail_id=detail.id)
        if paid > ZERO:
            raise PaidFloorViolationError(
                f"Cost line '{detail.id}' has {paid} paid against it",
                entity="CostDetail",
                entity_id=detail.id,
                rule="paid_floor",
                current=paid,
                attempted=ZERO,
                limit=paid,
            )
        cascaded = []
        touched: dict[str, Transaction] = {}
        for allocation in self._repo.allocations(cost_detail_id=detail.id):
            allocation.mark_deleted(now)
            cascaded.append(allocation.id)
            if allocation.transaction_id not in touched:
                touched[allocation.transaction_id] = self._repo.get_active(
                    Transaction, allocation.transaction_id, for_update=True
                )
        self._touch(*touched.values())
        detail.mark_deleted(now)
        return cascaded

    # -- ledger ------------------------------------------------------------

    def _load_allocation_pair(
        self, transaction_id: str | None, cost_detail_id: str | None
    ) -> tuple[Transaction, CostDetail, Budget]:
        transaction = self._repo.get_active(Transaction, transaction_id, for_update=True)
        detail = self._repo.get_active(CostDetail, cost_detail_id)
        budget = self._repo.get_active(Budget, detail.budget_id, for_update=True)
        if budget.project_id != transaction.project_id:
            raise CrossProjectMismatchError(
                f"Cost line '{detail.id}' belongs to project '{budget.project_id}', "
                f"transaction '{transaction.id}' to '{transaction.project_id}'",
                entity="CostAllocation",
                field="cost_detail_id",
                rule="allocation_project",
                current=transaction.project_id,
                attempted=budget.project_id,
            )
        return transaction, detail, budget

    def _ledger_snapshot(
        self, transaction: Transaction, detail: CostDetail, *, allocation: CostAllocation | None
    ) -> LedgerSnapshot:
        exclude_id = allocation.id if allocation is not None else None
        return LedgerSnapshot(
            allocation_id=exclude_id,
            transaction_id=transaction.id,
            cost_detail_id=detail.id,
            approved_amount=transaction.approved_amount,
            budgeted_amount=detail.amount_local,
            transaction_allocated=self._repo.allocated_total(transaction_id=transaction.id, exclude_id=exclude_id),
            cost_detail_allocated=self._repo.allocated_total(cost_detail_id=detail.id, exclude_id=exclude_id),
            pair_allocated=self._repo.allocated_total(
                transaction_id=transaction.id, cost_detail_id=detail.id, exclude_id=exclude_id
            ),
            pair_paid=self._repo.paid_total(transaction_id=transaction.id, cost_detail_id=detail.id),
            current_planned=allocation.planned_amount if allocation is not None else None,
        )

    # -- payments ----------------------------------------------------------

    def _order_state(self, order: PaymentOrder) -> OrderState:
        signatures = self._repo.signatures_for_order(order.id)
        return OrderState(
            order_id=order.id,
            lock_state=self._locks.derive(signatures),
            header_transaction_id=order.transaction_id,
        )

    def _order_project(self, order: PaymentOrder) -> str | None:
        projects = self._repo.project_ids_for_order(order)
        return next(iter(projects)) if len(projects) == 1 else None

    @staticmethod
    def _draft_from_line(line: PaymentOrderLine) -> LineDraft:
        return LineDraft(
            line_id=line.id,
            transaction_id=line.transaction_id,
            organization_id=line.organization_id,
            cost_detail_id=line.cost_detail_id,
            amount=line.amount,
        )

    def _validate_line(self, draft: LineDraft, op: WriteOp, state: OrderState) -> tuple[Transaction, Decimal]:
        effective_id, _ = self._guard.check_preconditions(draft, op, state)
        transaction = self._repo.get_active(Transaction, effective_id, for_update=True)
        detail = self._repo.get_active(CostDetail, draft.cost_detail_id)
        detail_project = self._repo.project_id_for_cost_detail(detail)
        if detail_project != transaction.project_id:
            raise CrossProjectMismatchError(
                f"Cost line '{detail.id}' belongs to project '{detail_project}', "
                f"transaction '{transaction.id}' to '{transaction.project_id}'",
                entity="PaymentOrderLine",
                entity_id=draft.line_id,
                field="cost_detail_id",
                rule="payment_project",
                current=transaction.project_id,
                attempted=detail_project,
            )
        snapshot = PaymentSnapshot(
            order=state,
            pair_planned=self._repo.allocated_total(transaction_id=transaction.id, cost_detail_id=detail.id),
            pair_paid=self._repo.paid_total(
                transaction_id=transaction.id, cost_detail_id=detail.id, exclude_line_id=draft.line_id
            ),
            approved_amount=transaction.approved_amount,
            transaction_paid=self._repo.paid_total(transaction_id=transaction.id, exclude_line_id=draft.line_id),
        )
        _, amount = self._guard.validate(draft, op, snapshot)
        return transaction, cast(Decimal, amount)

    def _refresh_order_totals(self, order: PaymentOrder) -> None:
        total, count = self._repo.order_totals(order.id)
        order.total_amount = total
        order.number_of_lines = count
        self._touch(order)

    def _settle_lock_state(self, order: PaymentOrder, before: LockState) -> None:
        after = self._locks.derive(self._repo.signatures_for_order(order.id))
        self._locks.transition(before, after, order_id=order.id)
        self._touch(order)
        if after is LockState.LOCKED and before is LockState.OPEN:
            record_booking_transition("booked")
            logger.info("payment order booked and locked", extra={"payment_order_id": order.id})


__all__ = ["ConsistencyOrchestrator"]
