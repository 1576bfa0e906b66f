"""Midtrans payment gateway adapter.

Midtrans signs each HTTP notification with
``sha512(order_id + status_code + gross_amount + server_key)`` as a hex digest
in the ``signature_key`` field.
"""

import hashlib
import hmac

from payments.gateway.port import PaymentGateway, PaymentNotification


def midtrans_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


class MidtransGateway(PaymentGateway):
    def __init__(self, server_key: str) -> None:
        if not server_key:
            raise ValueError("MIDTRANS_SERVER_KEY is not configured")
        self.server_key = server_key

    def verify_notification(self, notification: PaymentNotification) -> bool:
        expected = midtrans_signature(
            notification.order_id,
            notification.status_code,
            notification.gross_amount,
            self.server_key,
        )
        return hmac.compare_digest(expected, notification.signature_key or "")
