"""Domain events for the Order aggregate.

Events are versioned, immutable facts. They are dispatched when the Unit of
Work that raised them commits, so a rolled-back checkout or cancellation never
announces anything.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """Checkout created an order and reserved its stock."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    store_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity, unit_price, line_total}
    subtotal = Integer(required=True)
    shipping_cost = Integer(required=True)
    discount_total = Integer(required=True)
    grand_total = Integer(required=True)
    voucher_code = String(max_length=50)
    payment_deadline_at = DateTime(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderTransitioned:
    """A guarded status transition was applied to an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    transition = String(required=True, max_length=50)
    from_status = String(required=True, max_length=50)
    to_status = String(required=True, max_length=50)
    actor_id = Identifier()
    reason = String(max_length=500)
    transitioned_at = DateTime(required=True)
