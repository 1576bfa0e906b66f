"""Domain events for StoreInventory."""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="StoreInventory")
class StockLevelChanged:
    """The on-hand quantity of a product at a store moved by ``qty_change``."""

    __version__ = 1

    store_id = Identifier(required=True)
    product_id = Identifier(required=True)
    qty_change = Integer(required=True)
    new_stock_qty = Integer(required=True)
    reason = String(required=True, max_length=20)
    reference = String(max_length=255)
    changed_at = DateTime(required=True)
