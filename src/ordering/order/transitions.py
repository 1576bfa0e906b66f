"""Order status transitions: commands and handler.

One command per named transition. Customer-initiated commands only see the
customer's own orders; anything else is reported as not found. Transitions that
end in CANCELLED roll the order back in the same Unit of Work, so a cancelled
order never exists with its stock still taken.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.order.order import Order, OrderStatus, Transition, target_of
from ordering.order.rollback import OrderRollback

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class SubmitPaymentProof:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=255)


@ordering.command(part_of="Order")
class ConfirmPayment:
    order_id = Identifier(required=True)
    admin_id = Identifier(required=True)


@ordering.command(part_of="Order")
class SettlePayment:
    """Verified payment notification from the gateway."""

    order_id = Identifier(required=True)
    transaction_reference = String(max_length=255)


@ordering.command(part_of="Order")
class ShipOrder:
    order_id = Identifier(required=True)
    admin_id = Identifier(required=True)


@ordering.command(part_of="Order")
class ConfirmDelivery:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String(max_length=500)


@ordering.command(part_of="Order")
class AdminCancelOrder:
    order_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    reason = String(max_length=500)


@ordering.command(part_of="Order")
class AutoCancelOrder:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class AutoConfirmOrder:
    order_id = Identifier(required=True)
    as_of = DateTime()  # Optional: defaults to now


def _load(order_id, customer_id=None) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if customer_id is not None and str(order.customer_id) != str(customer_id):
        raise ObjectNotFoundError(f"Order {order_id} not found")
    return order


def _transition(order, transition, actor_id=None, reason=None, payment_reference=None):
    result = order.apply_transition(
        transition,
        actor_id=actor_id,
        reason=reason,
        payment_reference=payment_reference,
    )
    if result.skipped:
        logger.info(
            "Transition skipped",
            order_id=str(order.id),
            transition=result.transition,
            status=result.from_status,
        )
        return result

    if target_of(transition) == OrderStatus.CANCELLED:
        OrderRollback().run(order, actor_id=actor_id, reason=reason)

    current_domain.repository_for(Order).add(order)
    logger.info(
        "Transition applied",
        order_id=str(order.id),
        transition=result.transition,
        from_status=result.from_status,
        to_status=result.to_status,
        actor_id=actor_id,
    )
    return result


@ordering.command_handler(part_of=Order)
class OrderTransitionHandler:
    @handle(SubmitPaymentProof)
    def submit_payment_proof(self, command):
        order = _load(command.order_id, customer_id=command.customer_id)
        return _transition(
            order,
            Transition.SUBMIT_PAYMENT_PROOF,
            actor_id=command.customer_id,
            payment_reference=command.payment_reference,
        )

    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        return _transition(_load(command.order_id), Transition.CONFIRM_PAYMENT, actor_id=command.admin_id)

    @handle(SettlePayment)
    def settle_payment(self, command):
        return _transition(
            _load(command.order_id),
            Transition.SETTLE_PAYMENT,
            payment_reference=command.transaction_reference,
        )

    @handle(ShipOrder)
    def ship_order(self, command):
        return _transition(_load(command.order_id), Transition.SHIP, actor_id=command.admin_id)

    @handle(ConfirmDelivery)
    def confirm_delivery(self, command):
        order = _load(command.order_id, customer_id=command.customer_id)
        return _transition(order, Transition.CONFIRM_DELIVERY, actor_id=command.customer_id)

    @handle(CancelOrder)
    def cancel_order(self, command):
        order = _load(command.order_id, customer_id=command.customer_id)
        return _transition(
            order,
            Transition.CANCEL,
            actor_id=command.customer_id,
            reason=command.reason or "Cancelled by customer",
        )

    @handle(AdminCancelOrder)
    def admin_cancel_order(self, command):
        return _transition(
            _load(command.order_id),
            Transition.ADMIN_CANCEL,
            actor_id=command.admin_id,
            reason=command.reason or "Cancelled by admin",
        )

    @handle(AutoCancelOrder)
    def auto_cancel_order(self, command):
        return _transition(
            _load(command.order_id),
            Transition.AUTO_CANCEL,
            reason="Payment deadline passed",
        )

    @handle(AutoConfirmOrder)
    def auto_confirm_order(self, command):
        order = _load(command.order_id)
        order.ensure_dwell_elapsed(command.as_of or datetime.now(UTC), get_settings().auto_confirm_dwell)
        return _transition(order, Transition.AUTO_CONFIRM)
