import httpx
import pytest

from catalog.http_adapters import CircuitBreaker, HttpEntityStore, HttpOrderQueue, StorageApiClient
from catalog.results import Err, ErrorKind


class R:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = {} if body is None else body
    def json(self): return self._body


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def test_reads_are_retried_on_5xx(monkeypatch, settings, no_sleep):
    settings.HTTP_RETRY_MAX = 1
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return R(500, {"error": "Storage error", "kind": "STORAGE"})
        return R(200, [{"row_key": "c1"}])

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    result = HttpEntityStore(StorageApiClient(base_url="http://x", breaker=CircuitBreaker("t", 5, 30))).list("Customer")
    assert result.value == [{"row_key": "c1"}]
    assert calls["n"] == 2


def test_read_timeout_is_not_retried(monkeypatch, settings, no_sleep):
    settings.HTTP_RETRY_MAX = 3
    breaker = CircuitBreaker("t", 5, 30)
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        raise httpx.ReadTimeout("slow")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    result = HttpEntityStore(StorageApiClient(base_url="http://x", breaker=breaker)).list("Customer")
    assert isinstance(result, Err) and result.kind is ErrorKind.STORAGE
    assert result.message == "Storage API request timed out"
    assert calls["n"] == 1
    assert breaker._failures == 1


def test_reads_are_retried_on_connect_error(monkeypatch, settings, no_sleep):
    settings.HTTP_RETRY_MAX = 2
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] < 3:
            raise httpx.ConnectError("refused")
        return R(200, [])

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    result = HttpEntityStore(StorageApiClient(base_url="http://x", breaker=CircuitBreaker("t", 5, 30))).list("Customer")
    assert result.value == []
    assert calls["n"] == 3


def test_writes_are_not_retried(monkeypatch, settings, no_sleep):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        raise httpx.ReadTimeout("slow")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    result = HttpOrderQueue(StorageApiClient(base_url="http://x", breaker=CircuitBreaker("t", 5, 30))).enqueue("m")
    assert isinstance(result, Err) and result.kind is ErrorKind.STORAGE
    assert calls["n"] == 1


def test_business_errors_do_not_trip_the_breaker(monkeypatch, settings):
    breaker = CircuitBreaker("t", 1, 30)

    def fake_request(self, method, url, headers=None, **kwargs):
        return R(404, {"error": "Customer not found", "kind": "NOT_FOUND"})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    store = HttpEntityStore(StorageApiClient(base_url="http://x", breaker=breaker))
    store.get("Customer", "Customer", "a")
    assert breaker.state == "CLOSED"


def test_circuit_opens_and_refuses_calls(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 0
    breaker = CircuitBreaker("t", 2, 60)
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        raise httpx.ConnectError("down")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    store = HttpEntityStore(StorageApiClient(base_url="http://x", breaker=breaker))
    store.ping()
    store.ping()
    assert breaker.state == "OPEN"

    refused = store.ping()
    assert isinstance(refused, Err) and refused.message == "Storage API unavailable"
    assert calls["n"] == 2


def test_half_open_trial_call_closes_circuit(monkeypatch):
    breaker = CircuitBreaker("t", 1, 0.0)
    breaker.on_failure()
    assert breaker.state == "HALF_OPEN"

    monkeypatch.setattr(httpx.Client, "request", lambda self, m, u, headers=None, **kw: R(200, {"ok": True}), raising=True)
    HttpEntityStore(StorageApiClient(base_url="http://x", breaker=breaker)).ping()
    assert breaker.state == "CLOSED"


def test_storage_failure_maps_to_502(client, settings, monkeypatch):
    settings.USE_HTTP_ADAPTERS = True
    settings.HTTP_RETRY_MAX = 0

    def fake_request(self, method, url, headers=None, **kwargs):
        raise httpx.ConnectError("down")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    r = client.get("/api/customers/")
    assert r.status_code == 502
    assert r.json()["kind"] == "STORAGE"

    health = client.get("/health/")
    assert health.status_code == 503
