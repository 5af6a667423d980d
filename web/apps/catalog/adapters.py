"""In-process stub adapters for the catalog ports.

These stubs implement the storage ports in memory, without any network
calls. They follow the storage service's observable behavior (default
identities, duplicate-key conflicts, the order reference guard, server
stamped ``order_date``) so unit tests and local development get the same
outcomes as against the real storage API.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from .domain import (
    CUSTOMER_HAS_ORDERS,
    CUSTOMER_TABLE,
    ORDER_TABLE,
    PRODUCT_HAS_ORDERS,
    PRODUCT_TABLE,
    BlobStorePort,
    DocumentStorePort,
    EntityStorePort,
    QueuePort,
)
from .results import Err, ErrorKind, Ok, Result

REFERENCE_FIELDS = {CUSTOMER_TABLE: "customer_row_key", PRODUCT_TABLE: "product_row_key"}
REFERENCED_MESSAGES = {CUSTOMER_TABLE: CUSTOMER_HAS_ORDERS, PRODUCT_TABLE: PRODUCT_HAS_ORDERS}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryEntityStore(EntityStorePort):
    """Dict-backed entity store keyed by (table, partition_key, row_key)."""

    def __init__(self):
        self._rows: Dict[Tuple[str, str, str], dict] = {}
        self._lock = threading.Lock()

    def list(self, table: str) -> Result[List[dict]]:
        with self._lock:
            keys = sorted(k for k in self._rows if k[0] == table)
            return Ok([dict(self._rows[k]) for k in keys])

    def get(self, table: str, partition_key: str, row_key: str) -> Result[dict]:
        with self._lock:
            row = self._rows.get((table, partition_key, row_key))
        if row is None:
            return Err(ErrorKind.NOT_FOUND, f"{table} not found")
        return Ok(dict(row))

    def _stamp(self, row: dict) -> dict:
        row["etag"] = uuid.uuid4().hex
        row["timestamp"] = _now()
        return row

    def insert(self, table: str, record: dict) -> Result[str]:
        row = dict(record)
        row["partition_key"] = row.get("partition_key") or table
        row["row_key"] = row.get("row_key") or str(uuid.uuid4())
        if table == ORDER_TABLE:
            row["order_date"] = _now()
        key = (table, row["partition_key"], row["row_key"])
        with self._lock:
            if key in self._rows:
                return Err(ErrorKind.CONFLICT, "The specified entity already exists")
            self._rows[key] = self._stamp(row)
        return Ok(row["row_key"])

    def replace(self, table: str, record: dict) -> Result[None]:
        key = (table, record.get("partition_key"), record.get("row_key"))
        with self._lock:
            if key not in self._rows:
                return Err(ErrorKind.NOT_FOUND, f"{table} not found")
            self._rows[key] = self._stamp(dict(record))
        return Ok(None)

    def _referenced(self, table: str, row_key: str) -> bool:
        field = REFERENCE_FIELDS[table]
        return any(k[0] == ORDER_TABLE and r.get(field) == row_key for k, r in self._rows.items())

    def delete(self, table: str, partition_key: str, row_key: str) -> Result[None]:
        key = (table, partition_key, row_key)
        with self._lock:
            if key not in self._rows:
                return Err(ErrorKind.NOT_FOUND, f"{table} not found")
            if table in REFERENCE_FIELDS and self._referenced(table, row_key):
                return Err(ErrorKind.INTEGRITY, REFERENCED_MESSAGES[table])
            del self._rows[key]
        return Ok(None)

    def has_orders(self, table: str, row_key: str) -> Result[bool]:
        if table not in REFERENCE_FIELDS:
            return Err(ErrorKind.VALIDATION, f"{table} is not referenced by orders")
        with self._lock:
            return Ok(self._referenced(table, row_key))

    def ping(self) -> Result[None]:
        return Ok(None)


class InMemoryBlobStore(BlobStorePort):
    """Blob store stub; URIs use a fake ``memory://`` host."""

    BASE_URL = "memory://blobs/image"

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def upload(self, file_name: str, data: bytes) -> Result[str]:
        self.blobs[file_name] = data
        return Ok(f"{self.BASE_URL}/{file_name}")

    def delete(self, uri: str) -> Result[None]:
        if not uri:
            return Err(ErrorKind.VALIDATION, "Blob URI is required")
        self.blobs.pop(uri.rsplit("/", 1)[-1], None)
        return Ok(None)


class InMemoryDocumentStore(DocumentStorePort):
    def __init__(self):
        self.files: Dict[Tuple[str, str], Tuple[bytes, str]] = {}

    def upload(self, directory: str, file_name: str, data: bytes) -> Result[dict]:
        self.files[(directory, file_name)] = (data, _now())
        return Ok({"directory_name": directory, "file_name": file_name, "file_size": len(data)})

    def download(self, directory: str, file_name: str) -> Result[bytes]:
        entry = self.files.get((directory, file_name))
        if entry is None:
            return Err(ErrorKind.NOT_FOUND, f"File '{file_name}' not found")
        return Ok(entry[0])

    def list(self, directory: str) -> Result[List[dict]]:
        return Ok([
            {"name": name, "size": len(data), "last_modified": modified}
            for (d, name), (data, modified) in sorted(self.files.items())
            if d == directory
        ])

    def delete(self, directory: str, file_name: str) -> Result[None]:
        self.files.pop((directory, file_name), None)
        return Ok(None)


class InMemoryQueue(QueuePort):
    """Queue stub that records every enqueued message in ``messages``."""

    def __init__(self):
        self.messages: List[str] = []

    def enqueue(self, message: str) -> Result[None]:
        self.messages.append(message)
        return Ok(None)
