"""Open/Locked state of payment orders, derived from their signatures."""
from __future__ import annotations

import enum
from collections.abc import Iterable

from relief_finance.models import Signature, SignatureKind
from relief_finance.services.errors import OrderLockedError


class LockState(str, enum.Enum):
    OPEN = "Open"
    LOCKED = "Locked"


class LockStateMachine:
    """Derives the lock state and refuses writes that need an open order.

    The state is never stored: it is recomputed from the active signature set
    read in the same unit as the guarded write.
    """

    _ALLOWED_TRANSITIONS: dict[LockState, set[LockState]] = {
        LockState.OPEN: {LockState.OPEN, LockState.LOCKED},
        LockState.LOCKED: {LockState.LOCKED},
    }

    @staticmethod
    def derive(signatures: Iterable[Signature]) -> LockState:
        for signature in signatures:
            if not signature.deleted and signature.status_kind == SignatureKind.BOOKED:
                return LockState.LOCKED
        return LockState.OPEN

    def ensure_open(
        self,
        state: LockState,
        *,
        order_id: str,
        entity: str = "PaymentOrder",
        entity_id: str | None = None,
    ) -> None:
        if state is LockState.LOCKED:
            raise OrderLockedError(
                f"Payment order '{order_id}' is booked and read-only",
                entity=entity,
                entity_id=entity_id or order_id,
                rule="order_locked",
                current=state,
            )

    def transition(self, current: LockState, new: LockState, *, order_id: str) -> LockState:
        """Accept ``current -> new`` only if it is a permitted move."""

        if new not in self._ALLOWED_TRANSITIONS[current]:
            raise OrderLockedError(
                f"Payment order '{order_id}' cannot move from {current.value} to {new.value}",
                entity="PaymentOrder",
                entity_id=order_id,
                rule="lock_monotonic",
                current=current,
                attempted=new,
            )
        return new


__all__ = ["LockState", "LockStateMachine"]
