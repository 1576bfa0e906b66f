"""Checkout: turns a submitted item list into an order.

    1. Idempotency: a key seen before short-circuits everything below.
    2. Store resolution: explicit store, else explicit coordinates, else the
       chosen saved address, else the primary address. Explicit coordinates
       that resolve to nothing are final; there is no fallback store.
    3. PlaceOrder: one Unit of Work that prices the items, reserves stock and
       creates the order (see ``ordering.order.placement``). In-process
       callers touching the same stock rows are serialised around it.
    4. After commit: schedule the auto-cancel job for the payment deadline.
       The queue is not part of the transaction; a scheduling failure is
       logged and the order stands.
    5. Record the result against the idempotency key.
"""

import json
from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.checkout.idempotency import IdempotencyRegistry
from ordering.config import get_settings
from ordering.errors import StoreNotResolved
from ordering.inventory.ledger import merge_lines
from ordering.location import get_address_book, get_store_locator
from ordering.location.port import Coordinates
from ordering.order.order import Order, PaymentMethod, as_utc
from ordering.order.placement import PlaceOrder
from ordering.scheduling.scheduler import DelayedJobScheduler
from ordering.utils.locks import get_locks, stock_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeliveryParams:
    latitude: float | None = None
    longitude: float | None = None
    address_id: str | None = None
    payment_method: str = PaymentMethod.BANK_TRANSFER.value
    shipping_method: str = "STANDARD"
    voucher_code: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def serialize_order(order: Order) -> dict:
    """JSON-safe view of an order, as returned by checkout and cached for replays."""

    def _iso(value):
        return as_utc(value).isoformat() if value else None

    return {
        "order_id": str(order.id),
        "customer_id": str(order.customer_id),
        "store_id": str(order.store_id),
        "status": order.status,
        "items": [
            {
                "product_id": str(item.product_id),
                "product_name": item.product_name,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "line_total": item.line_total,
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "shipping_cost": order.shipping_cost,
        "discount_total": order.discount_total,
        "grand_total": order.grand_total,
        "total_items": order.total_items,
        "payment_method": order.payment_method,
        "shipping_method": order.shipping_method,
        "voucher_code": order.voucher_code,
        "payment_deadline_at": _iso(order.payment_deadline_at),
        "shipped_at": _iso(order.shipped_at),
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


class CheckoutService:
    def __init__(
        self,
        registry: IdempotencyRegistry | None = None,
        scheduler: DelayedJobScheduler | None = None,
    ) -> None:
        self.registry = registry or IdempotencyRegistry()
        self.scheduler = scheduler or DelayedJobScheduler()

    def create_order(self, customer_id, items, store_id=None, idempotency_key=None, delivery=None) -> dict:
        """Create an order for ``items`` (dicts with product_id and quantity).

        Returns the serialised order; a replayed idempotency key returns the
        first call's result unchanged.
        """
        delivery = delivery or DeliveryParams()
        if not idempotency_key:
            return self._create(customer_id, items, store_id, delivery)

        acquisition = self.registry.acquire_or_await(idempotency_key)
        if not acquisition.is_new:
            return acquisition.wait()

        try:
            result = self._create(customer_id, items, store_id, delivery)
        except Exception as exc:
            self.registry.release(idempotency_key, exc)
            raise
        self.registry.complete(idempotency_key, result)
        return result

    def resolve_store(self, customer_id, store_id=None, delivery=None) -> str:
        delivery = delivery or DeliveryParams()
        if store_id:
            return str(store_id)

        locator = get_store_locator()
        if delivery.has_coordinates:
            resolved = locator.nearest_store(Coordinates(delivery.latitude, delivery.longitude))
            if resolved is None:
                raise StoreNotResolved()
            return resolved

        address_book = get_address_book()
        resolved = None
        if delivery.address_id:
            point = address_book.address_coordinates(customer_id, delivery.address_id)
            if point is not None:
                resolved = locator.nearest_store(point)
        if resolved is None:
            point = address_book.primary_coordinates(customer_id)
            if point is not None:
                resolved = locator.nearest_store(point)
        if resolved is None:
            raise StoreNotResolved()
        return resolved

    def _create(self, customer_id, items, store_id, delivery) -> dict:
        lines = merge_lines((item["product_id"], item["quantity"]) for item in items or [])
        if not lines:
            raise ValidationError({"items": ["An order needs at least one item"]})

        store_id = self.resolve_store(customer_id, store_id, delivery)
        logger.info(
            "Checkout started",
            customer_id=str(customer_id),
            store_id=store_id,
            lines=len(lines),
        )

        with get_locks().hold(stock_key(store_id, line.product_id) for line in lines):
            order_id = current_domain.process(
                PlaceOrder(
                    customer_id=customer_id,
                    store_id=store_id,
                    items=json.dumps([{"product_id": line.product_id, "quantity": line.quantity} for line in lines]),
                    payment_method=delivery.payment_method,
                    shipping_method=delivery.shipping_method,
                    voucher_code=delivery.voucher_code,
                ),
                asynchronous=False,
            )

        order = current_domain.repository_for(Order).get(order_id)
        self._arm_auto_cancel(order)
        return serialize_order(order)

    def _arm_auto_cancel(self, order) -> None:
        try:
            self.scheduler.schedule_auto_cancel(order.id, get_settings().payment_window)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to schedule auto-cancel",
                order_id=str(order.id),
                error=str(exc),
            )
