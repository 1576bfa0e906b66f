"""Order placement: the single Unit of Work behind checkout.

Everything that can reject the order (products, shipping method, voucher,
totals) is checked before stock moves; the ledger's reservation is itself
all-or-nothing. The order, its items, the stock rows, the journal lines and the
redeemed voucher are committed together when the handler returns.
"""

import json
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.config import get_settings
from ordering.domain import ordering
from ordering.inventory.ledger import InventoryLedger, merge_lines
from ordering.order.order import Order, PaymentMethod
from ordering.voucher.voucher import Voucher, find_voucher

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    store_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.BANK_TRANSFER.value)
    shipping_method = String(max_length=50, default="STANDARD")
    voucher_code = String(max_length=50)
    placed_at = DateTime()


def _price_lines(lines):
    """Snapshot the current price of every product, rejecting unsellable ones."""
    repo = current_domain.repository_for(Product)
    priced = []
    for line in lines:
        try:
            product = repo.get(line.product_id)
        except ObjectNotFoundError:
            raise ValidationError({"product_id": [f"Product {line.product_id} does not exist"]}) from None
        if not product.is_active:
            raise ValidationError({"product_id": [f"Product {line.product_id} is not available"]})

        priced.append(
            {
                "product_id": line.product_id,
                "product_name": product.name,
                "unit_price": int(round(product.price)),
                "quantity": line.quantity,
            }
        )
    return priced


def _shipping_cost(shipping_method):
    rates = get_settings().shipping_rates
    method = (shipping_method or "STANDARD").upper()
    if method not in rates:
        raise ValidationError({"shipping_method": [f"Unknown shipping method {shipping_method}"]})
    return method, rates[method]


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        settings = get_settings()
        now = command.placed_at or datetime.now(UTC)

        lines = merge_lines((entry["product_id"], entry["quantity"]) for entry in json.loads(command.items))
        if not lines:
            raise ValidationError({"items": ["An order needs at least one item"]})

        priced = _price_lines(lines)
        shipping_method, shipping_cost = _shipping_cost(command.shipping_method)

        voucher = None
        discount = 0
        if command.voucher_code:
            voucher = find_voucher(command.voucher_code)
            if voucher is None:
                raise ValidationError({"voucher_code": [f"Voucher {command.voucher_code} does not exist"]})
            voucher.redeem(command.customer_id, at=now)
            discount = voucher.amount

        order = Order.place(
            customer_id=command.customer_id,
            store_id=command.store_id,
            lines=priced,
            payment_window=settings.payment_window,
            shipping_cost=shipping_cost,
            discount_total=discount,
            payment_method=command.payment_method,
            shipping_method=shipping_method,
            voucher_code=command.voucher_code,
            placed_at=now,
        )

        InventoryLedger().reserve(
            command.store_id,
            lines,
            actor_id=command.customer_id,
            reference=str(order.id),
        )

        current_domain.repository_for(Order).add(order)
        if voucher is not None:
            current_domain.repository_for(Voucher).add(voucher)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            customer_id=str(command.customer_id),
            store_id=str(command.store_id),
            grand_total=order.grand_total,
            total_items=order.total_items,
            payment_deadline_at=order.payment_deadline_at.isoformat(),
        )
        return str(order.id)
