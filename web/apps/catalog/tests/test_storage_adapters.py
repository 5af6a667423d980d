"""Unit tests for the httpx adapters to the storage API.

``httpx.Client.request`` is monkeypatched so each test controls the
storage responses and can inspect the outgoing calls.
"""
import base64

import httpx
import pytest

from catalog.http_adapters import (
    HttpBlobStore,
    HttpDocumentStore,
    HttpEntityStore,
    HttpOrderQueue,
    StorageApiClient,
)
from catalog.results import Err, ErrorKind, Ok


class DummyResp:
    """Minimal httpx-like response stub.

    Args:
        status_code (int): HTTP status code to simulate.
        json_data: JSON body returned by ``json()``.
    """
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data if json_data is not None else {}
    def json(self): return self._json


@pytest.fixture
def calls(monkeypatch):
    """Record outgoing calls; responses are queued in ``calls.responses``."""
    class Recorder(list):
        responses = []

    rec = Recorder()

    def fake_request(self, method, url, headers=None, **kw):
        rec.append({"method": method, "url": url, "headers": headers or {}, **kw})
        return rec.responses.pop(0) if rec.responses else DummyResp(200, {})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return rec


@pytest.fixture
def api():
    return StorageApiClient(base_url="http://storage:9001")


def test_get_entity_ok(calls, api):
    calls.responses.append(DummyResp(200, {"row_key": "r1", "customer_name": "Alice"}))
    result = HttpEntityStore(api).get("Customer", "Customer", "r1")
    assert result == Ok({"row_key": "r1", "customer_name": "Alice"})
    assert calls[0]["method"] == "GET"
    assert calls[0]["url"] == "http://storage:9001/customers/Customer/r1"


def test_insert_posts_record_and_returns_id(calls, api):
    calls.responses.append(DummyResp(200, {"message": "Order created successfully", "id": "o1"}))
    result = HttpEntityStore(api).insert("Order", {"customer_row_key": "c1"})
    assert result == Ok("o1")
    assert calls[0]["json"] == {"customer_row_key": "c1"}
    assert calls[0]["url"].endswith("/orders")


def test_error_kind_is_carried_over(calls, api):
    calls.responses.append(
        DummyResp(409, {"error": "Cannot delete customer because they have associated orders", "kind": "INTEGRITY"})
    )
    result = HttpEntityStore(api).delete("Customer", "Customer", "c1")
    assert isinstance(result, Err)
    assert result.kind is ErrorKind.INTEGRITY
    assert "associated orders" in result.message


def test_not_found_without_body(calls, api):
    calls.responses.append(DummyResp(404, {}))
    result = HttpEntityStore(api).get("Product", "Product", "nope")
    assert isinstance(result, Err) and result.kind is ErrorKind.NOT_FOUND


def test_has_orders(calls, api):
    calls.responses.append(DummyResp(200, {"has_orders": True}))
    assert HttpEntityStore(api).has_orders("Product", "p1") == Ok(True)
    assert calls[0]["url"] == "http://storage:9001/products/p1/hasorders"


def test_blob_upload_sends_base64(calls, api):
    calls.responses.append(DummyResp(200, {"blob_url": "http://storage:9001/blob/image/x.png"}))
    result = HttpBlobStore(api).upload("x.png", b"png")
    assert result == Ok("http://storage:9001/blob/image/x.png")
    assert base64.b64decode(calls[0]["json"]["base64_data"]) == b"png"


def test_blob_delete_quotes_uri(calls, api):
    HttpBlobStore(api).delete("http://storage:9001/blob/image/x.png")
    assert calls[0]["url"] == "http://storage:9001/blob/delete/http%3A%2F%2Fstorage%3A9001%2Fblob%2Fimage%2Fx.png"


def test_document_download_decodes(calls, api):
    calls.responses.append(DummyResp(200, {"base64_data": base64.b64encode(b"doc").decode()}))
    assert HttpDocumentStore(api).download("uploads", "a.pdf") == Ok(b"doc")
    assert calls[0]["url"] == "http://storage:9001/files/download/uploads/a.pdf"


def test_queue_sends_plain_text(calls, api):
    assert HttpOrderQueue(api).enqueue("New order") == Ok(None)
    assert calls[0]["content"] == b"New order"
    assert calls[0]["headers"]["Content-Type"].startswith("text/plain")


def test_network_error_becomes_storage_err(monkeypatch, api, settings):
    settings.HTTP_RETRY_MAX = 0

    def fake_request(self, method, url, headers=None, **kw):
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    result = HttpEntityStore(api).list("Customer")
    assert isinstance(result, Err) and result.kind is ErrorKind.STORAGE


def test_request_id_is_propagated(calls, api):
    from gateway.middleware import REQUEST_ID_CTX

    token = REQUEST_ID_CTX.set("rid-42")
    try:
        HttpEntityStore(api).ping()
    finally:
        REQUEST_ID_CTX.reset(token)
    assert calls[0]["headers"]["X-Request-ID"] == "rid-42"
