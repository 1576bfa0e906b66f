"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), kept separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    customer_id: str
    items: list[OrderLineRequest] = Field(min_length=1)
    store_id: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address_id: str | None = None
    payment_method: str = "BANK_TRANSFER"
    shipping_method: str = "STANDARD"
    voucher_code: str | None = None
    idempotency_key: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "items": [{"product_id": "7", "quantity": 5}],
                    "latitude": -6.2,
                    "longitude": 106.816,
                    "payment_method": "BANK_TRANSFER",
                    "shipping_method": "STANDARD",
                    "idempotency_key": "checkout-cust-001-0001",
                }
            ]
        }
    }


class OrderItemResponse(BaseModel):
    product_id: str
    product_name: str | None = None
    unit_price: int
    quantity: int
    line_total: int


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    store_id: str
    status: str
    items: list[OrderItemResponse]
    subtotal: int
    shipping_cost: int
    discount_total: int
    grand_total: int
    total_items: int
    payment_method: str
    shipping_method: str | None = None
    voucher_code: str | None = None
    payment_deadline_at: str | None = None
    shipped_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
class PaymentProofRequest(BaseModel):
    customer_id: str
    payment_reference: str


class AdminActionRequest(BaseModel):
    admin_id: str


class CustomerActionRequest(BaseModel):
    customer_id: str


class CancelOrderRequest(BaseModel):
    customer_id: str
    reason: str | None = None


class AdminCancelOrderRequest(BaseModel):
    admin_id: str
    reason: str | None = None


class TransitionResponse(BaseModel):
    status: str = "applied"
    order_id: str
    order_status: str


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
class ReceiveStockRequest(BaseModel):
    quantity: int = Field(ge=1)
    actor_id: str | None = None
    reference: str | None = None


class StockLevelResponse(BaseModel):
    store_id: str
    product_id: str
    available: int
