"""Exceptions raised by the ordering engine.

Business-rule failures are Protean ``ValidationError`` subclasses so they reach
API callers as field-keyed messages and abort the enclosing Unit of Work.
``TransientFailure`` is the one family the job queue retries.
"""

from protean.exceptions import InvalidOperationError, ValidationError


class InsufficientStock(ValidationError):
    def __init__(self, product_id, available: int, requested: int | None = None) -> None:
        self.product_id = str(product_id)
        self.available = available
        self.requested = requested
        super().__init__(
            {
                "stock": [f"Insufficient stock. Available: {available}"],
                "product_id": [self.product_id],
            }
        )


class NoInventory(ValidationError):
    def __init__(self, product_id, store_id) -> None:
        self.product_id = str(product_id)
        self.store_id = str(store_id)
        super().__init__({"product_id": [f"Product {self.product_id} is not available in this store"]})


class StoreNotResolved(ValidationError):
    def __init__(self) -> None:
        super().__init__({"store_id": ["No store found within service radius"]})


class RequestInProgress(InvalidOperationError):
    """Another process holds the idempotency key and has not finished yet."""


class TransientFailure(Exception):
    """A job failed in a way that is expected to clear up; the queue retries it.

    ``retry_in`` (seconds) overrides the queue's exponential backoff for the
    next attempt.
    """

    def __init__(self, message: str, retry_in: float | None = None) -> None:
        super().__init__(message)
        self.retry_in = retry_in


class TransitionTooEarly(TransientFailure):
    pass
