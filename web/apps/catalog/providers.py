"""Service provider helpers wiring the catalog services to their ports.

``get_services`` returns the process-wide ``Services`` bundle, built on
first use. When ``settings.USE_HTTP_ADAPTERS`` is truthy the services talk
to the storage API through one shared ``StorageApiClient``; otherwise they
use the in-process stubs from ``catalog.adapters``, which suits tests and
local development.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from django.conf import settings

from .adapters import InMemoryBlobStore, InMemoryDocumentStore, InMemoryEntityStore, InMemoryQueue
from .domain import CustomerService, DocumentService, EntityStorePort, OrderService, ProductService
from .http_adapters import HttpBlobStore, HttpDocumentStore, HttpEntityStore, HttpOrderQueue, StorageApiClient


@dataclass(frozen=True)
class Services:
    customers: CustomerService
    products: ProductService
    orders: OrderService
    documents: DocumentService
    entities: EntityStorePort


_services: Optional[Services] = None
_lock = threading.Lock()


def build_services(use_http: Optional[bool] = None) -> Services:
    """Construct the store handles once and hand them to every service.

    Args:
        use_http: Force HTTP adapters on or off; defaults to
            ``settings.USE_HTTP_ADAPTERS``.
    """
    if use_http is None:
        use_http = getattr(settings, "USE_HTTP_ADAPTERS", True)
    if use_http:
        api = StorageApiClient()
        entities = HttpEntityStore(api)
        blobs = HttpBlobStore(api)
        documents = HttpDocumentStore(api)
        queue = HttpOrderQueue(api)
    else:
        entities = InMemoryEntityStore()
        blobs = InMemoryBlobStore()
        documents = InMemoryDocumentStore()
        queue = InMemoryQueue()
    return Services(
        customers=CustomerService(entities),
        products=ProductService(entities, blobs),
        orders=OrderService(entities, queue),
        documents=DocumentService(documents),
        entities=entities,
    )


def get_services() -> Services:
    """Return the services for this process, building them on first call."""
    global _services
    with _lock:
        if _services is None:
            _services = build_services()
        return _services


def reset_services() -> None:
    """Drop the cached services so the next call rebuilds them from settings."""
    global _services
    with _lock:
        _services = None
