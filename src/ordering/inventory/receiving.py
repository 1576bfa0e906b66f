"""Stock receiving: command and handler for putting stock on a store's shelves."""

from protean import handle
from protean.fields import Identifier, Integer, String

from ordering.domain import ordering
from ordering.inventory.ledger import InventoryLedger
from ordering.inventory.stock import JournalReason, StoreInventory


@ordering.command(part_of="StoreInventory")
class ReceiveStock:
    store_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    actor_id = Identifier()
    reason = String(choices=JournalReason, default=JournalReason.ADD.value)
    reference = String(max_length=255)


@ordering.command_handler(part_of=StoreInventory)
class ReceiveStockHandler:
    @handle(ReceiveStock)
    def receive_stock(self, command):
        entry = InventoryLedger().receive(
            store_id=command.store_id,
            product_id=command.product_id,
            quantity=command.quantity,
            actor_id=command.actor_id,
            reason=command.reason,
            reference=command.reference,
        )
        return str(entry.id)
