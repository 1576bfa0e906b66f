"""Order rollback: undoes what checkout did when an order is cancelled.

Runs inside the cancelling transition's Unit of Work:

1. Every item's quantity goes back to the order's store through the inventory
   ledger, journaled as stock-in. Any failure here aborts the cancellation.
2. Vouchers the customer used within ``voucher_window`` of the order's
   creation time are reactivated. Vouchers do not record which order used
   them, so this correlation is approximate: a voucher spent on another order
   placed within the window is reactivated too. Voucher failures are logged
   and never abort step 1.

The voucher guard covers errors raised while reactivating and staging the
voucher writes. The writes themselves share the cancellation's Unit of Work,
so on a SQL provider a voucher row that fails at flush or commit (a version
conflict with a concurrent redemption, a constraint violation) rolls back the
whole cancellation, stock restore included. The caller sees the error and the
order keeps its status, so a retried cancellation starts from a consistent
state.
"""

from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.inventory.ledger import InventoryLedger
from ordering.order.order import as_utc
from ordering.voucher.voucher import Voucher

logger = structlog.get_logger(__name__)


@dataclass
class RollbackResult:
    order_id: str
    success: bool = True
    inventory_restored: list[dict] = field(default_factory=list)
    vouchers_reactivated: list[str] = field(default_factory=list)
    voucher_error: str | None = None


class OrderRollback:
    def __init__(self, ledger: InventoryLedger | None = None, voucher_window: timedelta | None = None):
        self.ledger = ledger or InventoryLedger()
        self.voucher_window = voucher_window or get_settings().voucher_rollback_window

    def run(self, order, actor_id=None, reason=None) -> RollbackResult:
        result = RollbackResult(order_id=str(order.id))
        logger.info(
            "Rolling back order",
            order_id=str(order.id),
            store_id=str(order.store_id),
            actor_id=actor_id,
            reason=reason,
        )

        entries = self.ledger.restore(
            order.store_id,
            order.item_lines(),
            actor_id=actor_id or order.customer_id,
            reference=str(order.id),
        )
        result.inventory_restored = [
            {"product_id": str(entry.product_id), "quantity": entry.qty_change} for entry in entries
        ]
        logger.info(
            "Inventory restored",
            order_id=str(order.id),
            lines=len(result.inventory_restored),
            units=sum(line["quantity"] for line in result.inventory_restored),
        )

        try:
            result.vouchers_reactivated = self.reactivate_vouchers(order)
        except Exception as exc:  # noqa: BLE001
            result.voucher_error = str(exc)
            logger.warning(
                "Voucher rollback failed, continuing with inventory rollback",
                order_id=str(order.id),
                customer_id=str(order.customer_id),
                error=str(exc),
            )

        logger.info(
            "Order rollback complete",
            order_id=str(order.id),
            vouchers_reactivated=len(result.vouchers_reactivated),
        )
        return result

    def reactivate_vouchers(self, order) -> list[str]:
        created_at = as_utc(order.created_at)
        window_start = created_at - self.voucher_window
        window_end = created_at + self.voucher_window

        repo = current_domain.repository_for(Voucher)
        used = repo._dao.query.filter(customer_id=str(order.customer_id), is_used=True).all().items

        reactivated = []
        for voucher in used:
            used_at = as_utc(voucher.used_at)
            if used_at is None or not window_start <= used_at <= window_end:
                continue
            voucher.reactivate()
            repo.add(voucher)
            reactivated.append(voucher.code)
            logger.info("Voucher reactivated", order_id=str(order.id), voucher_code=voucher.code)
        return reactivated
