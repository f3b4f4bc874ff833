from __future__ import annotations

import pytest

from relief_finance.models import Signature, SignatureKind
from relief_finance.services.errors import ErrorKind, OrderLockedError
from relief_finance.services.locking import LockState, LockStateMachine


def _signature(kind: SignatureKind, *, deleted: bool = False) -> Signature:
    return Signature(payment_order_id="po-1", status_kind=kind, deleted=deleted)


def test_order_without_booked_signature_is_open() -> None:
    signatures = [_signature(SignatureKind.PREPARED), _signature(SignatureKind.APPROVED)]
    assert LockStateMachine.derive(signatures) is LockState.OPEN


def test_booked_signature_locks_order() -> None:
    signatures = [_signature(SignatureKind.PREPARED), _signature(SignatureKind.BOOKED)]
    assert LockStateMachine.derive(signatures) is LockState.LOCKED


def test_deleted_booked_signature_does_not_lock() -> None:
    assert LockStateMachine.derive([_signature(SignatureKind.BOOKED, deleted=True)]) is LockState.OPEN


def test_open_to_locked_is_allowed() -> None:
    machine = LockStateMachine()
    assert machine.transition(LockState.OPEN, LockState.LOCKED, order_id="po-1") is LockState.LOCKED


def test_locked_never_returns_to_open() -> None:
    machine = LockStateMachine()
    with pytest.raises(OrderLockedError) as excinfo:
        machine.transition(LockState.LOCKED, LockState.OPEN, order_id="po-1")

    assert excinfo.value.kind is ErrorKind.ORDER_LOCKED
    assert excinfo.value.rule == "lock_monotonic"


def test_ensure_open_reports_the_guarded_entity() -> None:
    machine = LockStateMachine()
    machine.ensure_open(LockState.OPEN, order_id="po-1")

    with pytest.raises(OrderLockedError) as excinfo:
        machine.ensure_open(LockState.LOCKED, order_id="po-1", entity="Signature", entity_id="sig-1")

    assert excinfo.value.entity == "Signature"
    assert excinfo.value.entity_id == "sig-1"
