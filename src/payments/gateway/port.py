"""Payment gateway port (abstract interface).

The ordering engine only consumes verified payment notifications: which order
they refer to and whether the money arrived. Each adapter knows how its
gateway signs notifications.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class PaymentOutcome(Enum):
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"


_PAID_STATUSES = {"capture", "settlement"}
_FAILED_STATUSES = {"deny", "cancel", "expire", "failure"}


@dataclass(frozen=True)
class PaymentNotification:
    """A payment status callback as posted by the gateway."""

    order_id: str
    transaction_status: str
    status_code: str
    gross_amount: str
    signature_key: str
    transaction_id: str | None = None

    @property
    def outcome(self) -> PaymentOutcome:
        status = (self.transaction_status or "").lower()
        if status in _PAID_STATUSES:
            return PaymentOutcome.PAID
        if status in _FAILED_STATUSES:
            return PaymentOutcome.FAILED
        return PaymentOutcome.PENDING


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def verify_notification(self, notification: PaymentNotification) -> bool:
        """Verify that a notification is authentically from the gateway."""
        ...
