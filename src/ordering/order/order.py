"""Order aggregate: the core of the ordering domain.

An order is created once, by checkout, with its items' prices frozen and its
stock already taken from the store. From then on only guarded transitions move
its status:

    PENDING_PAYMENT → PAYMENT_REVIEW → PROCESSING → SHIPPED → CONFIRMED
    PENDING_PAYMENT ──────────────────→ PROCESSING          (gateway settlement)
    PENDING_PAYMENT / PAYMENT_REVIEW / PROCESSING → CANCELLED

Each named transition lists the statuses it may start from. Applying one from
any other status changes nothing and reports the transition as skipped; jobs
can be delivered more than once and payment can race the auto-cancel job, so
a mismatched status is an expected outcome rather than an error. CANCELLED and
CONFIRMED are terminal.

Money fields are integers in minor currency units.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from ordering.domain import ordering
from ordering.errors import TransitionTooEarly
from ordering.order.events import OrderPlaced, OrderTransitioned


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_REVIEW = "PAYMENT_REVIEW"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentMethod(Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    GATEWAY = "GATEWAY"


class Transition(Enum):
    SUBMIT_PAYMENT_PROOF = "submit_payment_proof"
    CONFIRM_PAYMENT = "confirm_payment"
    SETTLE_PAYMENT = "settle_payment"
    SHIP = "ship"
    CONFIRM_DELIVERY = "confirm_delivery"
    AUTO_CONFIRM = "auto_confirm"
    CANCEL = "cancel"
    AUTO_CANCEL = "auto_cancel"
    ADMIN_CANCEL = "admin_cancel"


class TransitionOutcome(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"


# transition -> (statuses it may start from, status it ends in)
_TRANSITIONS = {
    Transition.SUBMIT_PAYMENT_PROOF: ({OrderStatus.PENDING_PAYMENT}, OrderStatus.PAYMENT_REVIEW),
    Transition.CONFIRM_PAYMENT: ({OrderStatus.PAYMENT_REVIEW}, OrderStatus.PROCESSING),
    Transition.SETTLE_PAYMENT: (
        {OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_REVIEW},
        OrderStatus.PROCESSING,
    ),
    Transition.SHIP: ({OrderStatus.PROCESSING}, OrderStatus.SHIPPED),
    Transition.CONFIRM_DELIVERY: ({OrderStatus.SHIPPED}, OrderStatus.CONFIRMED),
    Transition.AUTO_CONFIRM: ({OrderStatus.SHIPPED}, OrderStatus.CONFIRMED),
    Transition.CANCEL: ({OrderStatus.PENDING_PAYMENT}, OrderStatus.CANCELLED),
    Transition.AUTO_CANCEL: ({OrderStatus.PENDING_PAYMENT}, OrderStatus.CANCELLED),
    Transition.ADMIN_CANCEL: (
        {OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_REVIEW, OrderStatus.PROCESSING},
        OrderStatus.CANCELLED,
    ),
}

TERMINAL_STATUSES = {OrderStatus.CANCELLED, OrderStatus.CONFIRMED}


def allowed_from(transition) -> set[OrderStatus]:
    return set(_TRANSITIONS[Transition(transition)][0])


def target_of(transition) -> OrderStatus:
    return _TRANSITIONS[Transition(transition)][1]


def as_utc(value: datetime | None) -> datetime | None:
    """SQL providers hand back naive datetimes; everything here is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@dataclass(frozen=True)
class TransitionResult:
    order_id: str
    transition: str
    outcome: str
    from_status: str
    to_status: str

    @property
    def applied(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED.value

    @property
    def skipped(self) -> bool:
        return self.outcome == TransitionOutcome.SKIPPED.value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line of an order with the unit price captured at checkout.

    Items are written once, when the order is placed, and never change.
    """

    product_id = Identifier(required=True)
    product_name = String(max_length=255)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    line_total = Integer(required=True, min_value=0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier(required=True)
    store_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING_PAYMENT.value)
    items = HasMany(OrderItem)
    subtotal = Integer(default=0, min_value=0)
    shipping_cost = Integer(default=0, min_value=0)
    discount_total = Integer(default=0, min_value=0)
    grand_total = Integer(default=0, min_value=0)
    total_items = Integer(default=0, min_value=0)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.BANK_TRANSFER.value)
    shipping_method = String(max_length=50, default="STANDARD")
    voucher_code = String(max_length=50)
    payment_reference = String(max_length=255)
    payment_deadline_at = DateTime()
    shipped_at = DateTime()
    cancellation_reason = String(max_length=500)
    cancelled_by = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def grand_total_must_balance(self):
        expected = (self.subtotal or 0) - (self.discount_total or 0) + (self.shipping_cost or 0)
        if self.grand_total != expected:
            raise ValidationError(
                {"grand_total": [f"Grand total {self.grand_total} does not equal subtotal - discount + shipping"]}
            )

    @invariant.post
    def discount_cannot_exceed_subtotal(self):
        if (self.discount_total or 0) > (self.subtotal or 0):
            raise ValidationError({"discount_total": ["Discount cannot exceed the subtotal"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        store_id,
        lines,
        payment_window: timedelta,
        shipping_cost=0,
        discount_total=0,
        payment_method=PaymentMethod.BANK_TRANSFER.value,
        shipping_method="STANDARD",
        voucher_code=None,
        placed_at=None,
    ):
        """Create a PENDING_PAYMENT order from priced lines.

        Args:
            lines: dicts with product_id, product_name, unit_price and quantity.
                The unit price is the snapshot the order keeps for good.
            payment_window: time the customer has to pay before auto-cancel.
        """
        if not lines:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = placed_at or datetime.now(UTC)
        items = [
            OrderItem(
                product_id=str(line["product_id"]),
                product_name=line.get("product_name"),
                unit_price=line["unit_price"],
                quantity=line["quantity"],
                line_total=line["unit_price"] * line["quantity"],
            )
            for line in lines
        ]
        subtotal = sum(item.line_total for item in items)
        discount_total = min(discount_total or 0, subtotal)

        order = cls(
            customer_id=str(customer_id),
            store_id=str(store_id),
            status=OrderStatus.PENDING_PAYMENT.value,
            items=items,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            discount_total=discount_total,
            grand_total=subtotal - discount_total + shipping_cost,
            total_items=sum(item.quantity for item in items),
            payment_method=PaymentMethod(payment_method).value,
            shipping_method=shipping_method,
            voucher_code=voucher_code,
            payment_deadline_at=now + payment_window,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                store_id=str(store_id),
                items=json.dumps(
                    [
                        {
                            "product_id": str(item.product_id),
                            "quantity": item.quantity,
                            "unit_price": item.unit_price,
                            "line_total": item.line_total,
                        }
                        for item in items
                    ]
                ),
                subtotal=order.subtotal,
                shipping_cost=order.shipping_cost,
                discount_total=order.discount_total,
                grand_total=order.grand_total,
                voucher_code=voucher_code,
                payment_deadline_at=order.payment_deadline_at,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def apply_transition(self, transition, actor_id=None, reason=None, payment_reference=None, at=None):
        """Move the order along ``transition`` if its status allows it.

        Returns a TransitionResult; a status outside the transition's allowed
        starting points yields a skipped result and leaves the order untouched.
        """
        transition = Transition(transition)
        pre_states, target = _TRANSITIONS[transition]
        current = OrderStatus(self.status)

        if current not in pre_states:
            return TransitionResult(
                order_id=str(self.id),
                transition=transition.value,
                outcome=TransitionOutcome.SKIPPED.value,
                from_status=current.value,
                to_status=current.value,
            )

        now = at or datetime.now(UTC)
        self.status = target.value
        self.updated_at = now

        if target == OrderStatus.SHIPPED:
            self.shipped_at = now
        elif target == OrderStatus.CANCELLED:
            self.cancellation_reason = reason
            self.cancelled_by = str(actor_id) if actor_id else None
        if payment_reference:
            self.payment_reference = payment_reference

        self.raise_(
            OrderTransitioned(
                order_id=str(self.id),
                transition=transition.value,
                from_status=current.value,
                to_status=target.value,
                actor_id=str(actor_id) if actor_id else None,
                reason=reason,
                transitioned_at=now,
            )
        )
        return TransitionResult(
            order_id=str(self.id),
            transition=transition.value,
            outcome=TransitionOutcome.APPLIED.value,
            from_status=current.value,
            to_status=target.value,
        )

    def auto_confirm_due_at(self, dwell: timedelta) -> datetime | None:
        shipped = as_utc(self.shipped_at or self.updated_at)
        return shipped + dwell if shipped else None

    def ensure_dwell_elapsed(self, now: datetime, dwell: timedelta):
        """Refuse an auto-confirm that arrives before the post-shipment dwell.

        Only meaningful while SHIPPED; any other status is left to the guard.
        """
        if OrderStatus(self.status) != OrderStatus.SHIPPED:
            return
        due_at = self.auto_confirm_due_at(dwell)
        if due_at and as_utc(now) < due_at:
            remaining = (due_at - as_utc(now)).total_seconds()
            raise TransitionTooEarly(
                f"Order {self.id} cannot be auto-confirmed before {due_at.isoformat()}",
                retry_in=remaining,
            )

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    def item_lines(self) -> list[tuple[str, int]]:
        return [(str(item.product_id), item.quantity) for item in self.items]
