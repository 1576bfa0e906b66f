"""FastAPI routes for payment gateway notifications."""

import structlog
from fastapi import APIRouter, HTTPException

from ordering.api.routes import fulfillment_service
from payments.api.schemas import PaymentNotificationRequest, WebhookResponse
from payments.gateway import get_gateway
from payments.gateway.port import PaymentNotification, PaymentOutcome

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(body: PaymentNotificationRequest) -> WebhookResponse:
    """Apply a verified gateway notification to its order.

    A paid notification settles the order and disarms its auto-cancel job. A
    failed or pending one changes nothing; the auto-cancel job stays armed.
    """
    notification = PaymentNotification(**body.model_dump())
    if not get_gateway().verify_notification(notification):
        logger.warning("Rejected payment notification with bad signature", order_id=notification.order_id)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    outcome = notification.outcome
    logger.info(
        "Payment notification received",
        order_id=notification.order_id,
        transaction_status=notification.transaction_status,
        outcome=outcome.value,
    )
    if outcome != PaymentOutcome.PAID:
        return WebhookResponse(status="ignored")

    result = fulfillment_service.settle_payment(notification.order_id, notification.transaction_id)
    return WebhookResponse(status=result.outcome, order_status=result.to_status)
