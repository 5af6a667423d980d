"""Domain entities, ports and services for the storefront catalog.

This module contains the entity dataclasses (customers, products and
orders), protocol definitions (ports) for the storage functions the web
tier depends on, and the services that orchestrate them. Services never
perform I/O themselves: store handles are passed in once, at construction
time, by ``providers.build_services``.

All operations return ``Ok``/``Err`` values from ``catalog.results``.
"""

import logging
import posixpath
import uuid
from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from typing import List, Optional, Protocol

from .results import Err, ErrorKind, Ok, Result

logger = logging.getLogger("catalog")

CUSTOMER_TABLE = "Customer"
PRODUCT_TABLE = "Product"
ORDER_TABLE = "Order"

DOCUMENTS_DIRECTORY = "uploads"

CUSTOMER_HAS_ORDERS = "Cannot delete customer because they have associated orders"
PRODUCT_HAS_ORDERS = "Cannot delete product because it is associated with existing orders"


# ---- Entities ----

class Record:
    """Mixin for entities stored as flat records in the entity store."""

    @classmethod
    def from_record(cls, record: dict):
        """Build an entity from a store record, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in known})

    def to_record(self) -> dict:
        return asdict(self)


@dataclass
class Customer(Record):
    """A storefront customer.

    Attributes:
        customer_name: Display name.
        email: Contact email, unique across customers (case-insensitive).
        phone: Ten-digit phone number, unique across customers.
        address: Postal address.
        file_name: Optional name of an uploaded customer document.
    """

    customer_name: str
    email: str
    phone: str
    address: str
    file_name: Optional[str] = None
    partition_key: str = CUSTOMER_TABLE
    row_key: Optional[str] = None
    etag: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class Product(Record):
    """A catalog product; ``image_url`` points into the blob store."""

    name: str
    description: str
    price: float
    quantity: int
    image_url: Optional[str] = None
    partition_key: str = PRODUCT_TABLE
    row_key: Optional[str] = None
    etag: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class Order(Record):
    """An order with customer and product snapshots taken when it was placed.

    ``total_price`` is computed at creation/update time and is not kept in
    sync with later product price changes.
    """

    customer_row_key: str
    product_row_key: str
    quantity: int
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    product_name: Optional[str] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    order_date: Optional[str] = None
    partition_key: str = ORDER_TABLE
    row_key: Optional[str] = None
    etag: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class Upload:
    """A file sent by a client: a name and its raw bytes."""

    file_name: str
    data: bytes


# ---- Ports (DIP) ----

class EntityStorePort(Protocol):
    """Port for table-like entity storage addressed by (table, pk, rk)."""

    def list(self, table: str) -> Result[List[dict]]:
        ...

    def get(self, table: str, partition_key: str, row_key: str) -> Result[dict]:
        ...

    def insert(self, table: str, record: dict) -> Result[str]:
        """Insert a record and return its row key.

        Missing ``partition_key``/``row_key`` are filled by the store.
        """
        ...

    def replace(self, table: str, record: dict) -> Result[None]:
        ...

    def delete(self, table: str, partition_key: str, row_key: str) -> Result[None]:
        """Delete a record.

        Customer and product deletes are refused with ``INTEGRITY`` while
        orders still reference them.
        """
        ...

    def has_orders(self, table: str, row_key: str) -> Result[bool]:
        ...

    def ping(self) -> Result[None]:
        ...


class BlobStorePort(Protocol):
    """Port for product image storage."""

    def upload(self, file_name: str, data: bytes) -> Result[str]:
        """Store bytes and return the public URI of the blob."""
        ...

    def delete(self, uri: str) -> Result[None]:
        ...


class DocumentStorePort(Protocol):
    """Port for the document file share."""

    def upload(self, directory: str, file_name: str, data: bytes) -> Result[dict]:
        ...

    def download(self, directory: str, file_name: str) -> Result[bytes]:
        ...

    def list(self, directory: str) -> Result[List[dict]]:
        ...

    def delete(self, directory: str, file_name: str) -> Result[None]:
        ...


class QueuePort(Protocol):
    """Port for the order intake queue."""

    def enqueue(self, message: str) -> Result[None]:
        ...


# ---- Services ----

def line_total(quantity: int, unit_price: Optional[float]) -> float:
    """Return ``quantity * unit_price`` computed in decimal arithmetic.

    The float price is read through its shortest repr, so ``3 * 9.99`` is
    29.97 rather than 29.970000000000002. No rounding is applied.
    """
    return float(Decimal(quantity) * Decimal(repr(unit_price or 0)))


def _load(entities: EntityStorePort, cls, table: str, partition_key: str, row_key: str):
    found = entities.get(table, partition_key, row_key)
    if isinstance(found, Err):
        return found
    return Ok(cls.from_record(found.value))


def _load_all(entities: EntityStorePort, cls, table: str):
    found = entities.list(table)
    if isinstance(found, Err):
        return found
    return Ok([cls.from_record(r) for r in found.value])


class CustomerService:
    """Customer lifecycle: uniqueness on create, guarded delete."""

    def __init__(self, entities: EntityStorePort):
        self.entities = entities

    def list(self) -> Result[List[Customer]]:
        return _load_all(self.entities, Customer, CUSTOMER_TABLE)

    def get(self, partition_key: str, row_key: str) -> Result[Customer]:
        return _load(self.entities, Customer, CUSTOMER_TABLE, partition_key, row_key)

    def _check_unique(self, customer: Customer) -> Result[None]:
        existing = self.list()
        if isinstance(existing, Err):
            return existing
        others = [c for c in existing.value if c.row_key != customer.row_key]
        if any((c.email or "").lower() == customer.email.lower() for c in others):
            return Err(ErrorKind.CONFLICT, "This email is already registered.")
        if any(c.phone == customer.phone for c in others):
            return Err(ErrorKind.CONFLICT, "This phone number is already registered.")
        return Ok(None)

    def create(self, customer: Customer) -> Result[Customer]:
        """Create a customer after checking email and phone uniqueness.

        Args:
            customer: New customer; identity fields are assigned here.

        Returns:
            Ok with the stored customer (``row_key`` set), or Err(CONFLICT)
            when the email or phone is already registered.
        """
        unique = self._check_unique(customer)
        if isinstance(unique, Err):
            return unique
        customer.partition_key = CUSTOMER_TABLE
        customer.row_key = str(uuid.uuid4())
        created = self.entities.insert(CUSTOMER_TABLE, customer.to_record())
        if isinstance(created, Err):
            return created
        logger.info("customer created", extra={"row_key": created.value})
        return Ok(customer)

    def update(self, customer: Customer) -> Result[Customer]:
        unique = self._check_unique(customer)
        if isinstance(unique, Err):
            return unique
        replaced = self.entities.replace(CUSTOMER_TABLE, customer.to_record())
        if isinstance(replaced, Err):
            return replaced
        logger.info("customer updated", extra={"row_key": customer.row_key})
        return Ok(customer)

    def delete(self, partition_key: str, row_key: str) -> Result[None]:
        referenced = self.entities.has_orders(CUSTOMER_TABLE, row_key)
        if isinstance(referenced, Err):
            return referenced
        if referenced.value:
            logger.info("customer delete blocked by orders", extra={"row_key": row_key})
            return Err(ErrorKind.INTEGRITY, CUSTOMER_HAS_ORDERS)
        deleted = self.entities.delete(CUSTOMER_TABLE, partition_key, row_key)
        if isinstance(deleted, Ok):
            logger.info("customer deleted", extra={"row_key": row_key})
        return deleted


class ProductService:
    """Product lifecycle including the image kept in the blob store."""

    def __init__(self, entities: EntityStorePort, blobs: BlobStorePort):
        self.entities = entities
        self.blobs = blobs

    def list(self) -> Result[List[Product]]:
        return _load_all(self.entities, Product, PRODUCT_TABLE)

    def get(self, partition_key: str, row_key: str) -> Result[Product]:
        return _load(self.entities, Product, PRODUCT_TABLE, partition_key, row_key)

    def _store_image(self, product: Product, image: Optional[Upload]) -> Result[None]:
        if image is None:
            return Ok(None)
        # blob names are random so uploads never overwrite each other
        blob_name = f"{uuid.uuid4()}{posixpath.splitext(image.file_name)[1]}"
        uploaded = self.blobs.upload(blob_name, image.data)
        if isinstance(uploaded, Err):
            return uploaded
        product.image_url = uploaded.value
        return Ok(None)

    def create(self, product: Product, image: Optional[Upload] = None) -> Result[Product]:
        stored = self._store_image(product, image)
        if isinstance(stored, Err):
            return stored
        product.partition_key = PRODUCT_TABLE
        product.row_key = str(uuid.uuid4())
        created = self.entities.insert(PRODUCT_TABLE, product.to_record())
        if isinstance(created, Err):
            return created
        logger.info("product created", extra={"row_key": product.row_key})
        return Ok(product)

    def update(self, product: Product, image: Optional[Upload] = None) -> Result[Product]:
        """Replace a product; a new image replaces ``image_url``, otherwise it is kept."""
        current = self.get(product.partition_key, product.row_key)
        if isinstance(current, Err):
            return current
        if image is None:
            product.image_url = current.value.image_url
        stored = self._store_image(product, image)
        if isinstance(stored, Err):
            return stored
        replaced = self.entities.replace(PRODUCT_TABLE, product.to_record())
        if isinstance(replaced, Err):
            return replaced
        logger.info("product updated", extra={"row_key": product.row_key})
        return Ok(product)

    def delete(self, partition_key: str, row_key: str) -> Result[None]:
        """Delete an unreferenced product and then its image blob.

        A failure to remove the blob is logged; the product stays deleted.
        """
        current = self.get(partition_key, row_key)
        if isinstance(current, Err):
            return current
        referenced = self.entities.has_orders(PRODUCT_TABLE, row_key)
        if isinstance(referenced, Err):
            return referenced
        if referenced.value:
            logger.info("product delete blocked by orders", extra={"row_key": row_key})
            return Err(ErrorKind.INTEGRITY, PRODUCT_HAS_ORDERS)
        deleted = self.entities.delete(PRODUCT_TABLE, partition_key, row_key)
        if isinstance(deleted, Err):
            return deleted
        logger.info("product deleted", extra={"row_key": row_key})
        if current.value.image_url:
            removed = self.blobs.delete(current.value.image_url)
            if isinstance(removed, Err):
                logger.warning("product image not removed", extra={"row_key": row_key, "error": removed.message})
        return Ok(None)


class OrderService:
    """Order placement and maintenance.

    Placing an order snapshots the customer and product, computes the
    total, writes the order to the entity store and then drops a
    notification on the intake queue.
    """

    def __init__(self, entities: EntityStorePort, queue: QueuePort):
        self.entities = entities
        self.queue = queue

    def list(self) -> Result[List[Order]]:
        return _load_all(self.entities, Order, ORDER_TABLE)

    def get(self, partition_key: str, row_key: str) -> Result[Order]:
        return _load(self.entities, Order, ORDER_TABLE, partition_key, row_key)

    def _snapshot(self, order: Order) -> Result[None]:
        """Copy customer name/email and product name/price into the order.

        A missing customer or product leaves its snapshot fields unset; any
        other lookup failure is returned.
        """
        customer = self.entities.get(CUSTOMER_TABLE, CUSTOMER_TABLE, order.customer_row_key)
        if isinstance(customer, Ok):
            order.customer_name = customer.value.get("customer_name")
            order.customer_email = customer.value.get("email")
        elif customer.kind is not ErrorKind.NOT_FOUND:
            return customer

        product = self.entities.get(PRODUCT_TABLE, PRODUCT_TABLE, order.product_row_key)
        if isinstance(product, Ok):
            order.product_name = product.value.get("name")
            order.unit_price = product.value.get("price")
        elif product.kind is not ErrorKind.NOT_FOUND:
            return product

        order.total_price = line_total(order.quantity, order.unit_price)
        return Ok(None)

    def create(self, customer_row_key: str, product_row_key: str, quantity: int) -> Result[Order]:
        """Place a new order.

        The entity-store write is authoritative. The queue notification is
        best effort: if it cannot be enqueued the failure is logged and the
        created order is still returned.

        Args:
            customer_row_key: Row key of the ordering customer.
            product_row_key: Row key of the ordered product.
            quantity: Units ordered (>= 1).

        Returns:
            Ok with the stored order, or the Err from the store.
        """
        order = Order(
            customer_row_key=customer_row_key,
            product_row_key=product_row_key,
            quantity=quantity,
            row_key=str(uuid.uuid4()),
        )
        snapshot = self._snapshot(order)
        if isinstance(snapshot, Err):
            return snapshot

        created = self.entities.insert(ORDER_TABLE, order.to_record())
        if isinstance(created, Err):
            return created
        logger.info("order created", extra={"row_key": order.row_key, "total_price": order.total_price})
        # pick up the server-side order_date
        stored = self.get(ORDER_TABLE, order.row_key)
        if isinstance(stored, Ok):
            order = stored.value

        notice = f"New order by customer {order.customer_name or ''} of the product {order.product_name or ''}"
        queued = self.queue.enqueue(notice)
        if isinstance(queued, Err):
            logger.warning("order notification not queued", extra={"row_key": order.row_key, "error": queued.message})
        return Ok(order)

    def update(
        self,
        partition_key: str,
        row_key: str,
        customer_row_key: str,
        product_row_key: str,
        quantity: int,
    ) -> Result[Order]:
        """Re-point or resize an existing order.

        The stored ``customer_email`` and ``order_date`` are kept; the
        customer name and product snapshot are refreshed from the current
        records and the total is recomputed.
        """
        current = self.get(partition_key, row_key)
        if isinstance(current, Err):
            return current
        order = current.value
        kept_email = order.customer_email
        order.customer_row_key = customer_row_key
        order.product_row_key = product_row_key
        order.quantity = quantity
        order.customer_name = order.product_name = order.unit_price = None

        snapshot = self._snapshot(order)
        if isinstance(snapshot, Err):
            return snapshot
        order.customer_email = kept_email

        replaced = self.entities.replace(ORDER_TABLE, order.to_record())
        if isinstance(replaced, Err):
            return replaced
        logger.info("order updated", extra={"row_key": row_key, "total_price": order.total_price})
        return Ok(order)

    def delete(self, partition_key: str, row_key: str) -> Result[None]:
        deleted = self.entities.delete(ORDER_TABLE, partition_key, row_key)
        if isinstance(deleted, Ok):
            logger.info("order deleted", extra={"row_key": row_key})
        return deleted


class DocumentService:
    """Customer documents kept in the ``uploads`` directory of the file share."""

    def __init__(self, documents: DocumentStorePort, directory: str = DOCUMENTS_DIRECTORY):
        self.documents = documents
        self.directory = directory

    def list(self) -> Result[List[dict]]:
        return self.documents.list(self.directory)

    def upload(self, upload: Upload) -> Result[dict]:
        stored = self.documents.upload(self.directory, upload.file_name, upload.data)
        if isinstance(stored, Ok):
            logger.info("document uploaded", extra={"file_name": upload.file_name, "size": len(upload.data)})
        return stored

    def download(self, file_name: str) -> Result[bytes]:
        if not file_name:
            return Err(ErrorKind.VALIDATION, "File name cannot be null or empty")
        return self.documents.download(self.directory, file_name)

    def delete(self, file_name: str) -> Result[None]:
        if not file_name:
            return Err(ErrorKind.VALIDATION, "File name cannot be empty.")
        deleted = self.documents.delete(self.directory, file_name)
        if isinstance(deleted, Ok):
            logger.info("document deleted", extra={"file_name": file_name})
        return deleted
