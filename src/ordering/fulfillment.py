"""Fulfillment: runs order transitions and keeps the timers in step.

Each method processes one transition command while holding the order's lock
(and, for cancellations, the locks on every stock row the rollback touches),
then adjusts the delayed jobs once the Unit of Work has committed:

- payment proof / settlement: the auto-cancel job is removed
- shipment: the auto-confirm job is scheduled
- delivery confirmation: the auto-confirm job is removed
- any cancellation: the auto-cancel job is removed

Queue changes happen only when the transition was applied. A queue error is
logged and does not undo the committed transition; a stray job that fires
later is skipped by the status guard.
"""

from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.order.order import Order, OrderStatus, Transition, target_of
from ordering.order.transitions import (
    AdminCancelOrder,
    AutoCancelOrder,
    AutoConfirmOrder,
    CancelOrder,
    ConfirmDelivery,
    ConfirmPayment,
    SettlePayment,
    ShipOrder,
    SubmitPaymentProof,
)
from ordering.scheduling.scheduler import DelayedJobScheduler
from ordering.utils.locks import get_locks, order_key, stock_key

logger = structlog.get_logger(__name__)


class FulfillmentService:
    def __init__(self, scheduler: DelayedJobScheduler | None = None) -> None:
        self.scheduler = scheduler or DelayedJobScheduler()

    # -------------------------------------------------------------------
    # Customer and admin actions
    # -------------------------------------------------------------------
    def submit_payment_proof(self, order_id, customer_id, payment_reference):
        return self._run(
            order_id,
            Transition.SUBMIT_PAYMENT_PROOF,
            SubmitPaymentProof(order_id=order_id, customer_id=customer_id, payment_reference=payment_reference),
        )

    def confirm_payment(self, order_id, admin_id):
        return self._run(order_id, Transition.CONFIRM_PAYMENT, ConfirmPayment(order_id=order_id, admin_id=admin_id))

    def settle_payment(self, order_id, transaction_reference=None):
        return self._run(
            order_id,
            Transition.SETTLE_PAYMENT,
            SettlePayment(order_id=order_id, transaction_reference=transaction_reference),
        )

    def ship(self, order_id, admin_id):
        return self._run(order_id, Transition.SHIP, ShipOrder(order_id=order_id, admin_id=admin_id))

    def confirm_delivery(self, order_id, customer_id):
        return self._run(
            order_id,
            Transition.CONFIRM_DELIVERY,
            ConfirmDelivery(order_id=order_id, customer_id=customer_id),
        )

    def cancel(self, order_id, customer_id, reason=None):
        return self._run(
            order_id,
            Transition.CANCEL,
            CancelOrder(order_id=order_id, customer_id=customer_id, reason=reason),
        )

    def admin_cancel(self, order_id, admin_id, reason=None):
        return self._run(
            order_id,
            Transition.ADMIN_CANCEL,
            AdminCancelOrder(order_id=order_id, admin_id=admin_id, reason=reason),
        )

    # -------------------------------------------------------------------
    # Job-triggered transitions
    # -------------------------------------------------------------------
    def auto_cancel(self, order_id):
        return self._run(order_id, Transition.AUTO_CANCEL, AutoCancelOrder(order_id=order_id))

    def auto_confirm(self, order_id, as_of=None):
        return self._run(
            order_id,
            Transition.AUTO_CONFIRM,
            AutoConfirmOrder(order_id=order_id, as_of=as_of or datetime.now(UTC)),
        )

    # -------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------
    def _lock_keys(self, order_id, transition):
        keys = [order_key(order_id)]
        if target_of(transition) == OrderStatus.CANCELLED:
            # Items are immutable after placement
            order = current_domain.repository_for(Order).get(order_id)
            keys.extend(stock_key(order.store_id, item.product_id) for item in order.items)
        return keys

    def _run(self, order_id, transition, command):
        with get_locks().hold(self._lock_keys(order_id, transition)):
            result = current_domain.process(command, asynchronous=False)

        if result.applied:
            self._after_commit(order_id, transition)
        return result

    def _after_commit(self, order_id, transition):
        try:
            if transition in (Transition.SUBMIT_PAYMENT_PROOF, Transition.SETTLE_PAYMENT):
                self.scheduler.cancel_auto_cancel(order_id)
            elif transition == Transition.SHIP:
                self.scheduler.schedule_auto_confirm(order_id, get_settings().auto_confirm_dwell)
            elif transition == Transition.CONFIRM_DELIVERY:
                self.scheduler.cancel_auto_confirm(order_id)
            elif target_of(transition) == OrderStatus.CANCELLED:
                self.scheduler.cancel_auto_cancel(order_id)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to update delayed jobs after transition",
                order_id=str(order_id),
                transition=transition.value,
                error=str(exc),
            )
