"""Product aggregate: the live catalogue entry checkout prices against.

Only the fields checkout needs are modelled: the current unit price (integer
minor units) and whether the product is still sold. Orders copy the price into
their items at creation, so later price changes never reach existing orders.
"""

from protean.exceptions import ValidationError
from protean.fields import Boolean, Integer, String

from ordering.domain import ordering


@ordering.aggregate
class Product:
    name = String(required=True, max_length=255)
    price = Integer(required=True, min_value=0)
    is_active = Boolean(default=True)

    def change_price(self, new_price):
        if new_price is None or new_price < 0:
            raise ValidationError({"price": ["Price must be a non-negative amount"]})
        self.price = new_price

    def deactivate(self):
        self.is_active = False
