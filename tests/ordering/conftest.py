import pytest
from ordering.catalogue.product import Product
from ordering.checkout.idempotency import IdempotencyRegistry, InMemoryIdempotencyStore
from ordering.checkout.service import CheckoutService
from ordering.config import reset_settings
from ordering.inventory.receiving import ReceiveStock
from ordering.location import reset_location
from ordering.scheduling import reset_job_queue, set_job_queue
from ordering.scheduling.memory_adapter import InMemoryJobQueue
from ordering.voucher.voucher import Voucher
from payments.gateway import reset_gateway
from protean import current_domain
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


def _reset_infrastructure():
    for _, provider in current_domain.providers.items():
        provider._data_reset()
    current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield
        _reset_infrastructure()


@pytest.fixture(autouse=True)
def job_queue():
    """Fresh in-memory job queue for every test."""
    queue = InMemoryJobQueue()
    set_job_queue(queue)
    yield queue
    reset_job_queue()
    reset_settings()
    reset_gateway()
    reset_location()


@pytest.fixture()
def make_product():
    def _make(product_id, price, name=None, is_active=True):
        product = Product(id=str(product_id), name=name or f"Product {product_id}", price=price, is_active=is_active)
        current_domain.repository_for(Product).add(product)
        return product

    return _make


@pytest.fixture()
def stock_in():
    def _stock_in(store_id, product_id, quantity):
        current_domain.process(
            ReceiveStock(store_id=store_id, product_id=product_id, quantity=quantity, actor_id="admin-1"),
            asynchronous=False,
        )

    return _stock_in


@pytest.fixture()
def make_voucher():
    def _make(code, customer_id, amount):
        voucher = Voucher(code=code, customer_id=customer_id, amount=amount)
        current_domain.repository_for(Voucher).add(voucher)
        return voucher

    return _make


@pytest.fixture()
def groceries(make_product, stock_in):
    """Milk (5 units) and eggs (30 units) on the shelves of store-1."""
    make_product("7", 15000, name="Fresh Milk 1L")
    make_product("8", 2500, name="Free-range Egg")
    stock_in("store-1", "7", 5)
    stock_in("store-1", "8", 30)


@pytest.fixture()
def placed_order(groceries):
    """A PENDING_PAYMENT order for 2 milk and 3 eggs, with its auto-cancel job armed."""
    checkout = CheckoutService(registry=IdempotencyRegistry(store=InMemoryIdempotencyStore()))
    return checkout.create_order(
        "cust-001",
        [{"product_id": "7", "quantity": 2}, {"product_id": "8", "quantity": 3}],
        store_id="store-1",
    )
