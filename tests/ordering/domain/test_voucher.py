"""Tests for the Voucher aggregate."""

from datetime import UTC, datetime

import pytest
from ordering.voucher.voucher import Voucher
from protean.exceptions import ValidationError


def _voucher():
    return Voucher(code="HEMAT10", customer_id="cust-001", amount=10000)


class TestVoucher:
    def test_redeem_marks_used(self):
        voucher = _voucher()
        at = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        voucher.redeem("cust-001", at=at)
        assert voucher.is_used is True
        assert voucher.used_at == at

    def test_cannot_redeem_twice(self):
        voucher = _voucher()
        voucher.redeem("cust-001")
        with pytest.raises(ValidationError) as exc:
            voucher.redeem("cust-001")
        assert "voucher_code" in exc.value.messages

    def test_cannot_redeem_someone_elses_voucher(self):
        with pytest.raises(ValidationError):
            _voucher().redeem("cust-002")

    def test_reactivate_clears_usage(self):
        voucher = _voucher()
        voucher.redeem("cust-001")
        voucher.reactivate()
        assert voucher.is_used is False
        assert voucher.used_at is None
        voucher.redeem("cust-001")
        assert voucher.is_used is True
