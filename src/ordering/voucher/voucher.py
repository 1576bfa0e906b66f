"""Voucher aggregate: single-use discount codes owned by a customer.

Checkout redeems a voucher against an order's subtotal. Order rollback hands it
back, but vouchers carry no reference to the order that consumed them: rollback
reactivates the customer's vouchers whose ``used_at`` falls within a window
around the order's creation time (see ``ordering.order.rollback``).
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class Voucher:
    code = String(required=True, max_length=50, unique=True)
    customer_id = Identifier(required=True)
    amount = Integer(required=True, min_value=0)
    is_used = Boolean(default=False)
    used_at = DateTime()

    @invariant.post
    def used_vouchers_carry_a_timestamp(self):
        if self.is_used and self.used_at is None:
            raise ValidationError({"used_at": ["A used voucher must record when it was used"]})

    def redeem(self, customer_id, at=None):
        if str(self.customer_id) != str(customer_id):
            raise ValidationError({"voucher_code": [f"Voucher {self.code} does not belong to this customer"]})
        if self.is_used:
            raise ValidationError({"voucher_code": [f"Voucher {self.code} has already been used"]})

        self.used_at = at or datetime.now(UTC)
        self.is_used = True

    def reactivate(self):
        self.is_used = False
        self.used_at = None


def find_voucher(code) -> Voucher | None:
    vouchers = current_domain.repository_for(Voucher)._dao.query.filter(code=code).all().items
    return vouchers[0] if vouchers else None
