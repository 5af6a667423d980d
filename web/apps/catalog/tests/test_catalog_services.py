"""Unit tests for the catalog domain services.

Services are wired to the in-process stub adapters so outcomes are
deterministic; a few purpose-built stubs drive the failure paths.
"""

import pytest

from catalog.adapters import InMemoryBlobStore, InMemoryDocumentStore, InMemoryEntityStore, InMemoryQueue
from catalog.domain import (
    ORDER_TABLE,
    Customer,
    CustomerService,
    DocumentService,
    OrderService,
    Product,
    ProductService,
    Upload,
)
from catalog.results import Err, ErrorKind, Ok


class FailingQueue:
    """Queue stub whose enqueue always fails."""
    def enqueue(self, message): return Err(ErrorKind.STORAGE, "queue down")


@pytest.fixture
def entities():
    return InMemoryEntityStore()


@pytest.fixture
def queue():
    return InMemoryQueue()


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def customers(entities):
    return CustomerService(entities)


@pytest.fixture
def products(entities, blobs):
    return ProductService(entities, blobs)


@pytest.fixture
def orders(entities, queue):
    return OrderService(entities, queue)


def alice():
    return Customer(customer_name="Alice", email="alice@example.com", phone="5551234567", address="1 Main St")


def widget():
    return Product(name="Widget", description="A widget", price=9.99, quantity=10)


def test_create_customer_assigns_identity(customers):
    created = customers.create(alice())
    assert isinstance(created, Ok)
    stored = customers.get("Customer", created.value.row_key)
    assert stored.value.row_key == created.value.row_key
    assert stored.value.email == "alice@example.com"


def test_duplicate_email_is_case_insensitive(customers):
    customers.create(alice())
    dup = alice()
    dup.email = "ALICE@example.com"
    dup.phone = "5559999999"
    result = customers.create(dup)
    assert isinstance(result, Err) and result.kind is ErrorKind.CONFLICT
    assert result.message == "This email is already registered."


def test_duplicate_phone_is_rejected(customers):
    customers.create(alice())
    dup = alice()
    dup.email = "other@example.com"
    result = customers.create(dup)
    assert isinstance(result, Err) and result.message == "This phone number is already registered."


def test_update_keeps_own_email(customers):
    customer = customers.create(alice()).value
    customer.address = "2 Side St"
    assert isinstance(customers.update(customer), Ok)
    assert customers.get("Customer", customer.row_key).value.address == "2 Side St"


def test_alice_widget_scenario(customers, products, orders, queue):
    """Alice orders 3 Widgets at 9.99; the order blocks deleting Alice until it is gone."""
    c = customers.create(alice()).value
    p = products.create(widget()).value

    order = orders.create(c.row_key, p.row_key, 3).value
    assert order.unit_price == 9.99
    assert order.total_price == 29.97
    assert order.customer_name == "Alice"
    assert order.customer_email == "alice@example.com"
    assert order.product_name == "Widget"
    assert order.order_date
    assert queue.messages == ["New order by customer Alice of the product Widget"]

    blocked = customers.delete("Customer", c.row_key)
    assert isinstance(blocked, Err) and blocked.kind is ErrorKind.INTEGRITY
    assert "associated orders" in blocked.message
    assert isinstance(customers.get("Customer", c.row_key), Ok)

    assert isinstance(orders.delete(ORDER_TABLE, order.row_key), Ok)
    assert isinstance(customers.delete("Customer", c.row_key), Ok)
    assert isinstance(customers.get("Customer", c.row_key), Err)


def test_order_with_unknown_references_leaves_snapshots_unset(orders):
    order = orders.create("no-customer", "no-product", 2).value
    assert order.customer_name is None
    assert order.unit_price is None
    assert order.total_price == 0


@pytest.mark.parametrize("price,quantity,total", [(0.125, 1, 0.125), (0.333, 3, 0.999), (1.005, 1, 1.005)])
def test_total_is_exact_product_of_quantity_and_price(customers, products, orders, price, quantity, total):
    c = customers.create(alice()).value
    p = products.create(Product(name="Gadget", description="A gadget", price=price, quantity=10)).value
    order = orders.create(c.row_key, p.row_key, quantity).value
    assert order.unit_price == price
    assert order.total_price == total


def test_total_is_not_resynced_on_price_change(customers, products, orders):
    c = customers.create(alice()).value
    p = products.create(widget()).value
    order = orders.create(c.row_key, p.row_key, 2).value

    p.price = 20.0
    products.update(p)
    assert orders.get(ORDER_TABLE, order.row_key).value.total_price == 19.98


def test_order_update_keeps_email_and_date(entities, customers, products, orders):
    c = customers.create(alice()).value
    p = products.create(widget()).value
    order = orders.create(c.row_key, p.row_key, 1).value

    c.customer_name = "Alice B"
    c.email = "aliceb@example.com"
    customers.update(c)
    cheaper = products.create(Product(name="Gadget", description="A gadget", price=2.5, quantity=5)).value

    updated = orders.update(ORDER_TABLE, order.row_key, c.row_key, cheaper.row_key, 4).value
    assert updated.customer_name == "Alice B"
    assert updated.customer_email == "alice@example.com"
    assert updated.order_date == order.order_date
    assert updated.product_name == "Gadget"
    assert updated.total_price == 10.0


def test_update_missing_order_is_not_found(orders):
    result = orders.update(ORDER_TABLE, "ghost", "c", "p", 1)
    assert isinstance(result, Err) and result.kind is ErrorKind.NOT_FOUND


def test_enqueue_failure_does_not_fail_order(entities, customers, products):
    c = customers.create(alice()).value
    p = products.create(widget()).value
    result = OrderService(entities, FailingQueue()).create(c.row_key, p.row_key, 1)
    assert isinstance(result, Ok)
    assert len(entities.list(ORDER_TABLE).value) == 1


def test_has_orders_is_false_on_empty_store(entities):
    assert entities.has_orders("Customer", "anyone").value is False
    assert entities.has_orders("Product", "anything").value is False


def test_product_image_lifecycle(products, blobs):
    created = products.create(widget(), Upload("photo.PNG", b"img")).value
    assert created.image_url.endswith(".PNG")
    assert len(blobs.blobs) == 1

    created.price = 11.0
    updated = products.update(created).value
    assert updated.image_url == created.image_url

    assert isinstance(products.delete("Product", created.row_key), Ok)
    assert blobs.blobs == {}


def test_referenced_product_cannot_be_deleted(customers, products, orders):
    c = customers.create(alice()).value
    p = products.create(widget()).value
    orders.create(c.row_key, p.row_key, 1)
    result = products.delete("Product", p.row_key)
    assert isinstance(result, Err) and result.kind is ErrorKind.INTEGRITY
    assert isinstance(products.get("Product", p.row_key), Ok)


def test_documents_roundtrip():
    documents = DocumentService(InMemoryDocumentStore())
    documents.upload(Upload("id.pdf", b"%PDF"))
    assert [f["name"] for f in documents.list().value] == ["id.pdf"]
    assert documents.download("id.pdf").value == b"%PDF"
    assert isinstance(documents.delete("id.pdf"), Ok)
    missing = documents.download("id.pdf")
    assert isinstance(missing, Err) and missing.kind is ErrorKind.NOT_FOUND
    assert documents.download("").kind is ErrorKind.VALIDATION
