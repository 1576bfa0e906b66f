"""Fake payment gateway for development and testing.

Accepts any notification signed with ``test-signature`` and records every
verification it is asked to do.
"""

from payments.gateway.port import PaymentGateway, PaymentNotification

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def verify_notification(self, notification: PaymentNotification) -> bool:
        self.calls.append({"method": "verify_notification", "order_id": notification.order_id})
        return notification.signature_key == TEST_SIGNATURE
