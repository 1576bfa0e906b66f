"""Inventory ledger: the only code allowed to move stock.

Checkout reserves through it, rollback restores through it and receiving
stocks shelves through it. Each call runs inside the caller's Unit of Work, so
stock rows and journal lines commit or roll back together with the order change
that caused them.

``reserve`` is all-or-nothing: every line is looked up and checked before any
row is written, so a failure on the last line leaves the first untouched even
where the persistence provider has no real transaction.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.errors import InsufficientStock, NoInventory
from ordering.inventory.stock import JournalReason, StockJournal, StoreInventory

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int


def merge_lines(lines: Iterable) -> list[StockLine]:
    """Collapse repeated products into one line each, keeping first-seen order.

    Accepts ``StockLine`` objects, objects exposing ``product_id``/``quantity``
    (order items) or ``(product_id, quantity)`` tuples.
    """
    totals: dict[str, int] = {}
    for line in lines:
        if isinstance(line, tuple):
            product_id, quantity = line
        else:
            product_id, quantity = line.product_id, line.quantity
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": [f"Quantity for product {product_id} must be positive"]})
        key = str(product_id)
        totals[key] = totals.get(key, 0) + int(quantity)
    return [StockLine(product_id=pid, quantity=qty) for pid, qty in totals.items()]


class InventoryLedger:
    def find_row(self, store_id, product_id) -> StoreInventory | None:
        rows = (
            current_domain.repository_for(StoreInventory)
            ._dao.query.filter(store_id=str(store_id), product_id=str(product_id))
            .all()
            .items
        )
        return rows[0] if rows else None

    def available(self, store_id, product_id) -> int:
        row = self.find_row(store_id, product_id)
        return row.stock_qty if row else 0

    def reserve(self, store_id, lines, actor_id=None, reference=None) -> list[StockJournal]:
        """Take stock for every line or for none of them.

        Raises:
            NoInventory: the store has no row for one of the products.
            InsufficientStock: a row holds less than the requested quantity.
        """
        merged = merge_lines(lines)
        if not merged:
            raise ValidationError({"items": ["At least one item is required"]})

        rows = []
        for line in merged:
            row = self.find_row(store_id, line.product_id)
            if row is None:
                logger.info(
                    "Reservation rejected: product not stocked",
                    store_id=str(store_id),
                    product_id=line.product_id,
                    reference=reference,
                )
                raise NoInventory(line.product_id, store_id)
            if row.stock_qty < line.quantity:
                logger.info(
                    "Reservation rejected: insufficient stock",
                    store_id=str(store_id),
                    product_id=line.product_id,
                    requested=line.quantity,
                    available=row.stock_qty,
                    reference=reference,
                )
                raise InsufficientStock(line.product_id, available=row.stock_qty, requested=line.quantity)
            rows.append((row, line))

        return [self._apply(row, -line.quantity, JournalReason.REMOVE, actor_id, reference) for row, line in rows]

    def restore(self, store_id, lines, actor_id=None, reference=None) -> list[StockJournal]:
        """Put stock back for every line, journaled as stock-in (ADD)."""
        entries = []
        for line in merge_lines(lines):
            row = self.find_row(store_id, line.product_id)
            if row is None:
                logger.warning(
                    "Restoring stock for a product with no inventory row, opening one",
                    store_id=str(store_id),
                    product_id=line.product_id,
                    reference=reference,
                )
                row = StoreInventory.open(store_id, line.product_id)
            entries.append(self._apply(row, line.quantity, JournalReason.ADD, actor_id, reference))
        return entries

    def receive(self, store_id, product_id, quantity, actor_id=None, reason=JournalReason.ADD, reference=None):
        """Stock-in for a single product, opening the inventory row on first receipt."""
        reason = JournalReason(reason)
        if reason not in (JournalReason.ADD, JournalReason.TRANSFER_IN, JournalReason.RELEASE):
            raise ValidationError({"reason": [f"{reason.value} does not add stock"]})
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        row = self.find_row(store_id, product_id) or StoreInventory.open(store_id, product_id)
        return self._apply(row, quantity, reason, actor_id, reference)

    def journal_for(self, store_id, product_id) -> list[StockJournal]:
        entries = (
            current_domain.repository_for(StockJournal)
            ._dao.query.filter(store_id=str(store_id), product_id=str(product_id))
            .all()
            .items
        )
        return sorted(entries, key=lambda entry: entry.created_at)

    def _apply(self, row, delta, reason, actor_id, reference) -> StockJournal:
        previous = row.stock_qty
        if delta < 0:
            row.decrement(-delta, reason=reason, reference=reference)
        else:
            row.increment(delta, reason=reason, reference=reference)

        entry = StockJournal.record(
            store_id=row.store_id,
            product_id=row.product_id,
            qty_change=delta,
            reason=reason,
            actor_id=actor_id,
            reference=reference,
        )
        current_domain.repository_for(StoreInventory).add(row)
        current_domain.repository_for(StockJournal).add(entry)

        logger.info(
            "Stock moved",
            store_id=str(row.store_id),
            product_id=str(row.product_id),
            reason=JournalReason(reason).value,
            qty_change=delta,
            previous_qty=previous,
            new_qty=row.stock_qty,
            reference=reference,
        )
        return entry
