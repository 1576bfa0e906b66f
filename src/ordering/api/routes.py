"""FastAPI routes for the Ordering domain: checkout, order actions and stock-in."""

from fastapi import APIRouter, Header, HTTPException
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    AdminActionRequest,
    AdminCancelOrderRequest,
    CancelOrderRequest,
    CreateOrderRequest,
    CustomerActionRequest,
    OrderResponse,
    PaymentProofRequest,
    ReceiveStockRequest,
    StockLevelResponse,
    TransitionResponse,
)
from ordering.checkout.service import CheckoutService, DeliveryParams, serialize_order
from ordering.errors import RequestInProgress
from ordering.fulfillment import FulfillmentService
from ordering.inventory.ledger import InventoryLedger
from ordering.inventory.receiving import ReceiveStock
from ordering.order.order import Order

# One instance per process: duplicates of an in-flight idempotency key wait on
# futures held by this service's registry
checkout_service = CheckoutService()
fulfillment_service = FulfillmentService()


def _transition_response(result) -> TransitionResponse:
    if result.skipped:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot {result.transition.replace('_', ' ')}: order is {result.from_status}",
        )
    return TransitionResponse(order_id=result.order_id, order_status=result.to_status)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(
    body: CreateOrderRequest,
    idempotency_key: str | None = Header(default=None),
) -> OrderResponse:
    """Check out a list of items. The Idempotency-Key header wins over the body field."""
    try:
        result = checkout_service.create_order(
            customer_id=body.customer_id,
            items=[line.model_dump() for line in body.items],
            store_id=body.store_id,
            idempotency_key=idempotency_key or body.idempotency_key,
            delivery=DeliveryParams(
                latitude=body.latitude,
                longitude=body.longitude,
                address_id=body.address_id,
                payment_method=body.payment_method,
                shipping_method=body.shipping_method,
                voucher_code=body.voucher_code,
            ),
        )
    except RequestInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return OrderResponse(**result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    return OrderResponse(**serialize_order(order))


@order_router.put("/{order_id}/payment-proof", response_model=TransitionResponse)
async def submit_payment_proof(order_id: str, body: PaymentProofRequest) -> TransitionResponse:
    result = fulfillment_service.submit_payment_proof(order_id, body.customer_id, body.payment_reference)
    return _transition_response(result)


@order_router.put("/{order_id}/confirm-payment", response_model=TransitionResponse)
async def confirm_payment(order_id: str, body: AdminActionRequest) -> TransitionResponse:
    return _transition_response(fulfillment_service.confirm_payment(order_id, body.admin_id))


@order_router.put("/{order_id}/ship", response_model=TransitionResponse)
async def ship_order(order_id: str, body: AdminActionRequest) -> TransitionResponse:
    return _transition_response(fulfillment_service.ship(order_id, body.admin_id))


@order_router.put("/{order_id}/confirm-delivery", response_model=TransitionResponse)
async def confirm_delivery(order_id: str, body: CustomerActionRequest) -> TransitionResponse:
    return _transition_response(fulfillment_service.confirm_delivery(order_id, body.customer_id))


@order_router.put("/{order_id}/cancel", response_model=TransitionResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> TransitionResponse:
    return _transition_response(fulfillment_service.cancel(order_id, body.customer_id, body.reason))


@order_router.put("/{order_id}/admin-cancel", response_model=TransitionResponse)
async def admin_cancel_order(order_id: str, body: AdminCancelOrderRequest) -> TransitionResponse:
    return _transition_response(fulfillment_service.admin_cancel(order_id, body.admin_id, body.reason))


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.post("/{store_id}/{product_id}/stock", status_code=201, response_model=StockLevelResponse)
async def receive_stock(store_id: str, product_id: str, body: ReceiveStockRequest) -> StockLevelResponse:
    command = ReceiveStock(
        store_id=store_id,
        product_id=product_id,
        quantity=body.quantity,
        actor_id=body.actor_id,
        reference=body.reference,
    )
    current_domain.process(command, asynchronous=False)
    return StockLevelResponse(
        store_id=store_id,
        product_id=product_id,
        available=InventoryLedger().available(store_id, product_id),
    )


@inventory_router.get("/{store_id}/{product_id}", response_model=StockLevelResponse)
async def stock_level(store_id: str, product_id: str) -> StockLevelResponse:
    return StockLevelResponse(
        store_id=store_id,
        product_id=product_id,
        available=InventoryLedger().available(store_id, product_id),
    )
