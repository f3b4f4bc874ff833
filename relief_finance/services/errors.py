"""Typed failures raised by the consistency engine.

Every failure is a rejected operation: it is raised before anything is written
and carries enough structure for a caller to render a specific message.
"""
from __future__ import annotations

import enum
from decimal import Decimal
from typing import Any, ClassVar


class ErrorKind(str, enum.Enum):
    INVALID_FIELD = "InvalidField"
    CAP_EXCEEDED = "CapExceeded"
    PAID_FLOOR_VIOLATION = "PaidFloorViolation"
    NO_TRANSACTION = "NoTransaction"
    EXCEEDS_ALLOCATION = "ExceedsAllocation"
    EXCEEDS_APPROVAL = "ExceedsApproval"
    ORDER_LOCKED = "OrderLocked"
    CROSS_PROJECT_MISMATCH = "CrossProjectMismatch"
    NOT_FOUND = "NotFound"
    ALREADY_DELETED = "AlreadyDeleted"
    CONCURRENT_MODIFICATION = "ConcurrentModification"
    REVERSAL_NOT_PERMITTED = "ReversalNotPermitted"


def _render(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


class ConsistencyError(RuntimeError):
    """Base class for engine rejections."""

    kind: ClassVar[ErrorKind]

    def __init__(
        self,
        message: str,
        *,
        entity: str,
        entity_id: str | None = None,
        field: str | None = None,
        rule: str | None = None,
        current: Any = None,
        attempted: Any = None,
        limit: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        self.field = field
        self.rule = rule
        self.current = current
        self.attempted = attempted
        self.limit = limit

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "field": self.field,
            "rule": self.rule,
            "current": _render(self.current),
            "attempted": _render(self.attempted),
            "limit": _render(self.limit),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, entity={self.entity!r}, rule={self.rule!r})"


class InvalidFieldError(ConsistencyError):
    """Missing or out-of-range input."""

    kind = ErrorKind.INVALID_FIELD


class CapExceededError(ConsistencyError):
    """A transaction or cost line allocation ceiling would be violated."""

    kind = ErrorKind.CAP_EXCEEDED


class PaidFloorViolationError(ConsistencyError):
    """The write would under-allocate money that has already been paid."""

    kind = ErrorKind.PAID_FLOOR_VIOLATION


class NoTransactionError(ConsistencyError):
    """A payment line resolves no transaction, neither its own nor the order's."""

    kind = ErrorKind.NO_TRANSACTION


class ExceedsAllocationError(ConsistencyError):
    """Payments for a (transaction, cost line) pair would exceed its planned amount."""

    kind = ErrorKind.EXCEEDS_ALLOCATION


class ExceedsApprovalError(ConsistencyError):
    """Payments against a transaction would exceed its approved amount."""

    kind = ErrorKind.EXCEEDS_APPROVAL


class OrderLockedError(ConsistencyError):
    """Mutation attempted on a payment order carrying a Booked signature."""

    kind = ErrorKind.ORDER_LOCKED


class CrossProjectMismatchError(ConsistencyError):
    """Referenced records belong to different projects."""

    kind = ErrorKind.CROSS_PROJECT_MISMATCH


class NotFoundError(ConsistencyError):
    """Referenced record does not exist."""

    kind = ErrorKind.NOT_FOUND


class AlreadyDeletedError(ConsistencyError):
    """Referenced record exists but carries a tombstone."""

    kind = ErrorKind.ALREADY_DELETED


class ConcurrentModificationError(ConsistencyError):
    """Another writer committed against the same aggregate first; re-fetch and resubmit."""

    kind = ErrorKind.CONCURRENT_MODIFICATION


class ReversalNotPermittedError(ConsistencyError):
    kind = ErrorKind.REVERSAL_NOT_PERMITTED


__all__ = [
    "AlreadyDeletedError",
    "CapExceededError",
    "ConcurrentModificationError",
    "ConsistencyError",
    "CrossProjectMismatchError",
    "ErrorKind",
    "ExceedsAllocationError",
    "ExceedsApprovalError",
    "InvalidFieldError",
    "NoTransactionError",
    "NotFoundError",
    "OrderLockedError",
    "PaidFloorViolationError",
    "ReversalNotPermittedError",
]
