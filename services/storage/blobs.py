"""Blob repository for product images.

Images live in a single container (``BLOB_CONTAINER``, default
``image``). Uploading returns a public URI built from
``PUBLIC_BASE_URL``; deleting accepts that URI back and resolves the blob
name from its last path segment.
"""

import os
import posixpath
from dataclasses import dataclass
from urllib.parse import unquote, urlparse

from db import Blob, get_session, utcnow
from logs import get_logger
from results import Err, ErrorKind, Ok, Result

logger = get_logger("storage.blobs")

BLOB_CONTAINER = os.getenv("BLOB_CONTAINER", "image")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:9001")

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(file_name: str) -> str:
    """Infer a content type from the file-name extension (case-insensitive)."""
    ext = posixpath.splitext(file_name)[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


@dataclass(frozen=True)
class BlobContent:
    name: str
    content_type: str
    data: bytes


class BlobRepo:
    """Upload, fetch and delete blobs in one container."""

    def __init__(self, container: str = BLOB_CONTAINER, base_url: str = PUBLIC_BASE_URL):
        self.container = container
        self.base_url = base_url.rstrip("/")

    def uri_for(self, name: str) -> str:
        return f"{self.base_url}/blob/{self.container}/{name}"

    def upload(self, data: bytes, file_name: str) -> Result[str]:
        """Store ``data`` under ``file_name``, overwriting any existing blob.

        Returns:
            Ok with the public URI of the blob.
        """
        if not file_name:
            return Err(ErrorKind.VALIDATION, "file_name is required")
        with get_session() as s:
            obj = s.get(Blob, (self.container, file_name)) or Blob(container=self.container, name=file_name)
            obj.content_type = content_type_for(file_name)
            obj.data = data
            obj.created_at = utcnow()
            s.merge(obj)
            s.commit()
        uri = self.uri_for(file_name)
        logger.info("blob uploaded", extra={"blob": file_name, "size": len(data)})
        return Ok(uri)

    def get(self, name: str) -> Result[BlobContent]:
        with get_session() as s:
            obj = s.get(Blob, (self.container, name))
            if obj is None:
                return Err(ErrorKind.NOT_FOUND, "Blob not found")
            return Ok(BlobContent(name=obj.name, content_type=obj.content_type, data=obj.data))

    def delete(self, uri: str) -> Result[str]:
        """Delete the blob a URI points at; deleting a missing blob succeeds.

        Returns:
            Ok with the decoded URI, or Err(VALIDATION) when no blob name can
            be derived from it.
        """
        decoded = unquote(uri or "")
        name = posixpath.basename(urlparse(decoded).path)
        if not name:
            return Err(ErrorKind.VALIDATION, "Blob URI is required")
        with get_session() as s:
            obj = s.get(Blob, (self.container, name))
            if obj is not None:
                s.delete(obj)
                s.commit()
        logger.info("blob deleted", extra={"blob": name})
        return Ok(decoded)
