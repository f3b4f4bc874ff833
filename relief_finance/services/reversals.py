"""Administrative reversal of a booked payment order.

Booking is one-way for every regular write path. Finance administrators can
still reopen an order when the installation enables it; the reversal
tombstones the ``BOOKED`` signatures, keeps them for audit, and records the
stated reason.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from relief_finance.models import PaymentOrder, SignatureKind
from relief_finance.obs import record_booking_transition
from relief_finance.services.context import RequestContext
from relief_finance.services.errors import InvalidFieldError, ReversalNotPermittedError
from relief_finance.services.locking import LockState
from relief_finance.services.orchestrator import ConsistencyOrchestrator

logger = logging.getLogger(__name__)


class BookingReversalService(ConsistencyOrchestrator):
    """Reopens booked payment orders when ``allow_booking_reversal`` is set."""

    def reverse_booking(self, order_id: str, *, reason: str | None, context: RequestContext) -> PaymentOrder:
        if not self._settings.allow_booking_reversal:
            raise ReversalNotPermittedError(
                "Booking reversal is disabled for this installation",
                entity="PaymentOrder",
                entity_id=order_id,
                rule="reversal_disabled",
            )
        if not reason or not reason.strip():
            raise InvalidFieldError(
                "A reason is required to reverse a booking",
                entity="PaymentOrder",
                entity_id=order_id,
                field="reason",
                rule="required",
            )

        with self._write_unit("payment_order.reverse_booking", context, entity="PaymentOrder", entity_id=order_id):
            order = self._repo.get_active(PaymentOrder, order_id, for_update=True)
            signatures = self._repo.signatures_for_order(order.id)
            if self._locks.derive(signatures) is not LockState.LOCKED:
                raise ReversalNotPermittedError(
                    f"Payment order '{order.id}' is not booked",
                    entity="PaymentOrder",
                    entity_id=order.id,
                    rule="order_not_booked",
                    current=LockState.OPEN,
                )
            now = datetime.now(timezone.utc)
            reversed_ids = []
            for signature in signatures:
                if signature.status_kind == SignatureKind.BOOKED:
                    signature.mark_deleted(now)
                    reversed_ids.append(signature.id)
            self._touch(order)
            self._audit(
                context,
                "payment_order.reverse_booking",
                "PaymentOrder",
                order.id,
                self._order_project(order),
                {"reason": reason.strip(), "reversed_signatures": reversed_ids},
            )
        record_booking_transition("reversed")
        logger.warning(
            "payment order booking reversed",
            extra={"payment_order_id": order_id, "actor": context.actor, "reason": reason},
        )
        self._session.refresh(order)
        return order


__all__ = ["BookingReversalService"]
