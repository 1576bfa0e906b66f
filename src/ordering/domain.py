"""Ordering bounded context: checkout, order lifecycle and store inventory.

Orders, store inventory rows, the stock journal, vouchers and idempotency
entries live in one domain so a single Unit of Work covers an order and the
stock it consumes.
"""

from protean.domain import Domain

ordering = Domain(name="ordering")
