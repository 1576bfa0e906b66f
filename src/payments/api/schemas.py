"""Pydantic request/response schemas for the payment webhook."""

from pydantic import BaseModel


class PaymentNotificationRequest(BaseModel):
    order_id: str
    transaction_status: str
    status_code: str
    gross_amount: str
    signature_key: str
    transaction_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "0b6f8f5e-2c7e-4c47-9d1a-7f3b1c1d2e3f",
                    "transaction_status": "settlement",
                    "status_code": "200",
                    "gross_amount": "50000.00",
                    "signature_key": "test-signature",
                }
            ]
        }
    }


class WebhookResponse(BaseModel):
    status: str
    order_status: str | None = None
