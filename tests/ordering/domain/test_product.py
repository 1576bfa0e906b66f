"""Tests for the Product aggregate."""

import pytest
from ordering.catalogue.product import Product
from protean.exceptions import ValidationError


def _product():
    return Product(name="Fresh Milk 1L", price=15000)


class TestProduct:
    def test_active_by_default(self):
        assert _product().is_active is True

    def test_change_price(self):
        product = _product()
        product.change_price(16500)
        assert product.price == 16500

    def test_price_cannot_be_negative(self):
        with pytest.raises(ValidationError):
            _product().change_price(-1)

    def test_deactivate(self):
        product = _product()
        product.deactivate()
        assert product.is_active is False
