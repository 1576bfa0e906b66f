"""Store inventory rows and the stock journal.

StoreInventory holds the on-hand quantity of one product at one store. Every
change to it is paired with an append-only StockJournal row; the journal is the
audit trail stock is reconciled against. Both are only mutated through
``ordering.inventory.ledger.InventoryLedger``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering
from ordering.errors import InsufficientStock
from ordering.inventory.events import StockLevelChanged


class JournalReason(Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"


# Reasons that take stock out of a store; the rest put it back in
_OUTBOUND_REASONS = {JournalReason.REMOVE, JournalReason.TRANSFER_OUT, JournalReason.RESERVE}


@ordering.aggregate
class StoreInventory:
    store_id = Identifier(required=True)
    product_id = Identifier(required=True)
    stock_qty = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def stock_cannot_go_negative(self):
        if self.stock_qty is not None and self.stock_qty < 0:
            raise ValidationError({"stock_qty": ["Stock quantity cannot be negative"]})

    @classmethod
    def open(cls, store_id, product_id):
        now = datetime.now(UTC)
        return cls(
            store_id=str(store_id),
            product_id=str(product_id),
            stock_qty=0,
            created_at=now,
            updated_at=now,
        )

    def decrement(self, quantity, reason=JournalReason.REMOVE, reference=None):
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if self.stock_qty < quantity:
            raise InsufficientStock(self.product_id, available=self.stock_qty, requested=quantity)

        self._change(-quantity, reason, reference)

    def increment(self, quantity, reason=JournalReason.ADD, reference=None):
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        self._change(quantity, reason, reference)

    def _change(self, delta, reason, reference):
        now = datetime.now(UTC)
        self.stock_qty += delta
        self.updated_at = now

        self.raise_(
            StockLevelChanged(
                store_id=str(self.store_id),
                product_id=str(self.product_id),
                qty_change=delta,
                new_stock_qty=self.stock_qty,
                reason=JournalReason(reason).value,
                reference=reference,
                changed_at=now,
            )
        )


@ordering.aggregate
class StockJournal:
    """One immutable line of the stock audit trail.

    ``qty_change`` is signed: negative for stock leaving the store, positive for
    stock coming in. ``reference`` carries the order id when an order caused
    the movement.
    """

    store_id = Identifier(required=True)
    product_id = Identifier(required=True)
    qty_change = Integer(required=True)
    reason = String(required=True, choices=JournalReason)
    actor_id = Identifier()
    reference = String(max_length=255)
    created_at = DateTime()

    @invariant.post
    def sign_must_match_reason(self):
        if self.qty_change == 0:
            raise ValidationError({"qty_change": ["Journal entries must move stock"]})
        outbound = JournalReason(self.reason) in _OUTBOUND_REASONS
        if outbound != (self.qty_change < 0):
            raise ValidationError({"qty_change": [f"Sign does not match reason {self.reason}"]})

    @classmethod
    def record(cls, store_id, product_id, qty_change, reason, actor_id=None, reference=None):
        return cls(
            store_id=str(store_id),
            product_id=str(product_id),
            qty_change=qty_change,
            reason=JournalReason(reason).value,
            actor_id=str(actor_id) if actor_id else None,
            reference=str(reference) if reference else None,
            created_at=datetime.now(UTC),
        )
