"""HTTP adapter clients for the storage API with retries and a circuit breaker.

This module implements the catalog ports on top of the storage service
using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware.
- A circuit breaker shared by every adapter of the process, so an
    unhealthy storage API is not hammered; after a cool-down a single
    HALF_OPEN trial call decides whether it closes again.
- Retries with exponential backoff on connection errors and 5xx, for
    reads (GET) only. Writes are sent once.
- A bounded timeout on every call (``HTTP_TIMEOUT_SECS``, default 30).
    A timed-out call is a failure and is never retried.

Failures never raise: they come back as ``Err(STORAGE, ...)``. Business
errors reported by the storage API (``{"error", "kind"}`` bodies) are
mapped back to the same ``ErrorKind``.
"""

import base64
import logging
import os
import sys
import threading
import time
from typing import List, Optional
from urllib.parse import quote

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import BlobStorePort, DocumentStorePort, EntityStorePort, QueuePort
from .results import Err, ErrorKind, Ok, Result

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger("catalog.storage")

TABLE_PATHS = {"Customer": "customers", "Product": "products", "Order": "orders"}


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
        or os.environ.get("PYTEST_RUNNING") == "1"
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitOpen(RuntimeError):
    """Raised by ``CircuitBreaker.before_call`` when calls are not allowed."""


class CircuitBreaker:
    """Circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    CLOSED opens after ``fail_threshold`` consecutive failures. OPEN turns
    HALF_OPEN once ``reset_timeout`` seconds have passed; in HALF_OPEN a
    single trial call is let through and its outcome closes or re-opens
    the circuit. Thread-safe.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state for this call, or raise ``CircuitOpen`` to refuse it."""
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpen(f"circuit '{self.name}' is open")
            if st == "HALF_OPEN":
                if self._trial_in_flight:
                    raise CircuitOpen(f"circuit '{self.name}' is half-open")
                self._trial_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._trial_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._trial_in_flight = False

    def reset(self):
        self.on_success()


storage_breaker = CircuitBreaker(
    "storage",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers for an outgoing call, carrying the current ``X-Request-ID``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def _error_from(resp: httpx.Response) -> Err:
    """Map a non-2xx storage response to an ``Err``, keeping the reported kind."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error") or f"Storage API returned HTTP {resp.status_code}"
    try:
        kind = ErrorKind(body.get("kind"))
    except ValueError:
        kind = ErrorKind.NOT_FOUND if resp.status_code == 404 else ErrorKind.STORAGE
    if resp.status_code >= 500:
        kind = ErrorKind.STORAGE
    return Err(kind, message)


# ---------------- Storage API client ---------------- #

class StorageApiClient:
    """Thin ``httpx`` client for the storage service.

    One instance is built per process by ``providers`` and shared by all
    the adapters below.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = (base_url or settings.STORAGE_API_BASE_URL).rstrip("/")
        self.timeout = timeout or getattr(settings, "HTTP_TIMEOUT_SECS", 30.0)
        self.breaker = breaker or storage_breaker

    def request(self, method: str, path: str, **kwargs) -> Result[httpx.Response]:
        """Send one request through the circuit breaker.

        GET requests are retried with exponential backoff on connection errors
        and 5xx responses; other methods are attempted once. Timeouts fail
        immediately.

        Args:
            method: HTTP method.
            path: Path below the storage base URL, starting with ``/``.
            **kwargs: Passed through to ``httpx.Client.request``.

        Returns:
            Ok with the response for any status below 500 (callers inspect
            it), or Err(STORAGE) on timeout, transport failure, 5xx or open circuit.
        """
        retriable = method.upper() == "GET"
        max_retries, backoff = _retry_policy()
        if _is_test_mode():
            backoff = 0.0
        if not retriable:
            max_retries = 0
        tries = 0

        try:
            state = self.breaker.before_call()
        except CircuitOpen as e:
            logger.warning("storage call refused", extra={"path": path, "reason": str(e)})
            return Err(ErrorKind.STORAGE, "Storage API unavailable")

        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})
        headers.update(kwargs.pop("headers", None) or {})
        url = f"{self.base_url}{path}"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, url, headers=headers, **kwargs)
                        if not _should_retry(resp, None):
                            self.breaker.on_success()
                            return Ok(resp)
                    except httpx.TimeoutException as e:
                        self.breaker.on_failure()
                        logger.error("storage call timed out", extra={"path": path, "method": method, "error": str(e)})
                        return Err(ErrorKind.STORAGE, "Storage API request timed out")
                    except httpx.RequestError as e:
                        exc = e

                    if tries >= max_retries:
                        self.breaker.on_failure()
                        if exc is not None:
                            logger.error("storage call failed", extra={"path": path, "method": method, "error": str(exc)})
                            return Err(ErrorKind.STORAGE, f"Storage API request failed: {exc.__class__.__name__}")
                        logger.error("storage call failed", extra={"path": path, "method": method, "status": resp.status_code})
                        return _error_from(resp)

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)
                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    if not _is_test_mode():
                        time.sleep(min(sleep_s, cap))
        finally:
            self.breaker.on_finish()

    def call(self, method: str, path: str, **kwargs) -> Result[httpx.Response]:
        """Like ``request`` but non-2xx responses become ``Err`` values."""
        sent = self.request(method, path, **kwargs)
        if isinstance(sent, Err):
            return sent
        if sent.value.status_code >= 400:
            return _error_from(sent.value)
        return sent


# ---------------- Adapters ---------------- #

class HttpEntityStore(EntityStorePort):
    def __init__(self, api: StorageApiClient):
        self.api = api

    def list(self, table: str) -> Result[List[dict]]:
        sent = self.api.call("GET", f"/{TABLE_PATHS[table]}")
        return sent if isinstance(sent, Err) else Ok(sent.value.json())

    def get(self, table: str, partition_key: str, row_key: str) -> Result[dict]:
        sent = self.api.call("GET", f"/{TABLE_PATHS[table]}/{quote(partition_key, safe='')}/{quote(row_key, safe='')}")
        return sent if isinstance(sent, Err) else Ok(sent.value.json())

    def insert(self, table: str, record: dict) -> Result[str]:
        sent = self.api.call("POST", f"/{TABLE_PATHS[table]}", json=record)
        return sent if isinstance(sent, Err) else Ok(sent.value.json()["id"])

    def replace(self, table: str, record: dict) -> Result[None]:
        sent = self.api.call("PUT", f"/{TABLE_PATHS[table]}", json=record)
        return sent if isinstance(sent, Err) else Ok(None)

    def delete(self, table: str, partition_key: str, row_key: str) -> Result[None]:
        sent = self.api.call("DELETE", f"/{TABLE_PATHS[table]}/{quote(partition_key, safe='')}/{quote(row_key, safe='')}")
        return sent if isinstance(sent, Err) else Ok(None)

    def has_orders(self, table: str, row_key: str) -> Result[bool]:
        sent = self.api.call("GET", f"/{TABLE_PATHS[table]}/{quote(row_key, safe='')}/hasorders")
        return sent if isinstance(sent, Err) else Ok(bool(sent.value.json().get("has_orders")))

    def ping(self) -> Result[None]:
        sent = self.api.call("GET", "/health")
        return sent if isinstance(sent, Err) else Ok(None)


class HttpBlobStore(BlobStorePort):
    def __init__(self, api: StorageApiClient):
        self.api = api

    def upload(self, file_name: str, data: bytes) -> Result[str]:
        payload = {"file_name": file_name, "base64_data": base64.b64encode(data).decode("ascii")}
        sent = self.api.call("POST", "/blob/upload", json=payload)
        return sent if isinstance(sent, Err) else Ok(sent.value.json()["blob_url"])

    def delete(self, uri: str) -> Result[None]:
        sent = self.api.call("DELETE", f"/blob/delete/{quote(uri, safe='')}")
        return sent if isinstance(sent, Err) else Ok(None)


class HttpDocumentStore(DocumentStorePort):
    def __init__(self, api: StorageApiClient):
        self.api = api

    @staticmethod
    def _path(action: str, directory: str, file_name: Optional[str] = None) -> str:
        path = f"/files/{action}/{quote(directory, safe='')}"
        return f"{path}/{quote(file_name, safe='')}" if file_name is not None else path

    def upload(self, directory: str, file_name: str, data: bytes) -> Result[dict]:
        payload = {"base64_data": base64.b64encode(data).decode("ascii")}
        sent = self.api.call("POST", self._path("upload", directory, file_name), json=payload)
        return sent if isinstance(sent, Err) else Ok(sent.value.json())

    def download(self, directory: str, file_name: str) -> Result[bytes]:
        sent = self.api.call("GET", self._path("download", directory, file_name))
        if isinstance(sent, Err):
            return sent
        return Ok(base64.b64decode(sent.value.json()["base64_data"]))

    def list(self, directory: str) -> Result[List[dict]]:
        sent = self.api.call("GET", self._path("list", directory))
        return sent if isinstance(sent, Err) else Ok(sent.value.json()["files"])

    def delete(self, directory: str, file_name: str) -> Result[None]:
        sent = self.api.call("DELETE", self._path("delete", directory, file_name))
        return sent if isinstance(sent, Err) else Ok(None)


class HttpOrderQueue(QueuePort):
    def __init__(self, api: StorageApiClient):
        self.api = api

    def enqueue(self, message: str) -> Result[None]:
        sent = self.api.call(
            "POST",
            "/queue/orders",
            content=message.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        return sent if isinstance(sent, Err) else Ok(None)
