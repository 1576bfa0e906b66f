"""Shared BDD fixtures and step definitions for checkout and order lifecycle."""

from datetime import UTC, datetime, timedelta

import pytest
from ordering.checkout.idempotency import IdempotencyRegistry, InMemoryIdempotencyStore
from ordering.checkout.service import CheckoutService
from ordering.domain import ordering
from ordering.fulfillment import FulfillmentService
from ordering.inventory.ledger import InventoryLedger
from ordering.order.order import Order
from ordering.workers.worker import JobWorker
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def checkout():
    return CheckoutService(registry=IdempotencyRegistry(store=InMemoryIdempotencyStore()))


@pytest.fixture()
def fulfillment():
    return FulfillmentService()


@pytest.fixture()
def outcome():
    """Container for the last order, transition result and checkout error."""
    return {"order": None, "result": None, "error": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" "{name}" priced at {price:d}'))
def _(make_product, product_id, name, price):
    make_product(product_id, price, name=name)


@given(parsers.cfparse('store "{store_id}" has {quantity:d} units of product "{product_id}"'))
def _(stock_in, store_id, quantity, product_id):
    stock_in(store_id, product_id, quantity)


@given(parsers.cfparse('customer "{customer_id}" checks out {quantity:d} units of product "{product_id}" at "{store_id}"'))
@when(parsers.cfparse('customer "{customer_id}" checks out {quantity:d} units of product "{product_id}" at "{store_id}"'))
def _(checkout, outcome, customer_id, quantity, product_id, store_id):
    outcome["order"] = checkout.create_order(
        customer_id,
        [{"product_id": product_id, "quantity": quantity}],
        store_id=store_id,
    )


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('customer "{customer_id}" tries to check out {quantity:d} unit of product "{product_id}" at "{store_id}"'))
def _(checkout, outcome, customer_id, quantity, product_id, store_id):
    try:
        checkout.create_order(customer_id, [{"product_id": product_id, "quantity": quantity}], store_id=store_id)
    except ValidationError as exc:
        outcome["error"] = exc


@when(parsers.cfparse('the customer submits payment proof "{reference}"'))
def _(fulfillment, outcome, reference):
    order = outcome["order"]
    outcome["result"] = fulfillment.submit_payment_proof(order["order_id"], order["customer_id"], reference)


@given(parsers.cfparse('admin "{admin_id}" confirms the payment'))
@when(parsers.cfparse('admin "{admin_id}" confirms the payment'))
def _(fulfillment, outcome, admin_id):
    outcome["result"] = fulfillment.confirm_payment(outcome["order"]["order_id"], admin_id)


@given(parsers.cfparse('admin "{admin_id}" ships the order'))
@when(parsers.cfparse('admin "{admin_id}" ships the order'))
def _(fulfillment, outcome, admin_id):
    outcome["result"] = fulfillment.ship(outcome["order"]["order_id"], admin_id)


@when("the customer confirms delivery")
def _(fulfillment, outcome):
    order = outcome["order"]
    outcome["result"] = fulfillment.confirm_delivery(order["order_id"], order["customer_id"])


@when("the customer cancels the order")
def _(fulfillment, outcome):
    order = outcome["order"]
    outcome["result"] = fulfillment.cancel(order["order_id"], order["customer_id"], "Changed my mind")


@given("the payment gateway settles the order")
@when("the payment gateway settles the order")
def _(fulfillment, outcome):
    outcome["result"] = fulfillment.settle_payment(outcome["order"]["order_id"], "txn-001")


@when(parsers.cfparse("the job worker runs {amount:d} {unit} from now"))
def _(job_queue, amount, unit):
    JobWorker(ordering, queue=job_queue).run_once(now=datetime.now(UTC) + timedelta(**{unit: amount}))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def _(outcome, status):
    order = current_domain.repository_for(Order).get(outcome["order"]["order_id"])
    assert order.status == status


@then(parsers.cfparse('store "{store_id}" has {quantity:d} units of product "{product_id}" left'))
def _(store_id, quantity, product_id):
    assert InventoryLedger().available(store_id, product_id) == quantity


@then(parsers.cfparse('the journal for product "{product_id}" at "{store_id}" ends with a removal of {quantity:d}'))
def _(outcome, product_id, store_id, quantity):
    entry = InventoryLedger().journal_for(store_id, product_id)[-1]
    assert entry.reason == "REMOVE"
    assert entry.qty_change == -quantity
    assert entry.reference == outcome["order"]["order_id"]


@then(parsers.cfparse('checkout fails with "{message}"'))
def _(outcome, message):
    assert outcome["error"] is not None
    assert message in str(outcome["error"].messages)


@then("the transition is skipped")
def _(outcome):
    assert outcome["result"].skipped
