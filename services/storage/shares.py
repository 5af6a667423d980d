"""File-share repository for order and customer documents.

Files are grouped in directories under one share (``FILE_SHARE``,
default ``orderdoc``). The share and directories are created on demand
when uploading; reads against a missing directory behave like an empty
one.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

from sqlalchemy import select

from db import ShareDirectory, ShareFile, get_session, utcnow
from logs import get_logger
from results import Err, ErrorKind, Ok, Result

logger = get_logger("storage.files")

FILE_SHARE = os.getenv("FILE_SHARE", "orderdoc")
DEFAULT_DIRECTORY = "uploads"
PAGE_SIZE = int(os.getenv("LIST_PAGE_SIZE", "100"))


@dataclass(frozen=True)
class FileInfo:
    name: str
    size: int
    last_modified: datetime

    def to_dict(self) -> dict:
        return {"name": self.name, "size": self.size, "last_modified": self.last_modified.isoformat()}


def _valid_segment(value: str) -> bool:
    return bool(value) and "/" not in value and value not in (".", "..")


class ShareRepo:
    """Upload, download, list and delete files in share directories."""

    def __init__(self, share: str = FILE_SHARE):
        self.share = share

    def _ensure_directory(self, session, directory: str) -> None:
        if session.get(ShareDirectory, (self.share, directory)) is None:
            session.add(ShareDirectory(share=self.share, path=directory))
            session.flush()

    def upload(self, directory: str, file_name: str, data: bytes) -> Result[FileInfo]:
        if not _valid_segment(directory) or not _valid_segment(file_name):
            return Err(ErrorKind.VALIDATION, "directory and file name are required")
        with get_session() as s:
            self._ensure_directory(s, directory)
            obj = s.get(ShareFile, (self.share, directory, file_name)) or ShareFile(
                share=self.share, directory=directory, name=file_name
            )
            obj.data = data
            obj.size = len(data)
            obj.last_modified = utcnow()
            s.merge(obj)
            s.commit()
            info = FileInfo(name=file_name, size=len(data), last_modified=obj.last_modified)
        logger.info("file uploaded", extra={"directory": directory, "file": file_name, "size": len(data)})
        return Ok(info)

    def download(self, directory: str, file_name: str) -> Result[bytes]:
        with get_session() as s:
            obj = s.get(ShareFile, (self.share, directory, file_name))
            if obj is None:
                return Err(ErrorKind.NOT_FOUND, f"File '{file_name}' not found")
            return Ok(bytes(obj.data))

    def iter_files(self, directory: str, page_size: int = PAGE_SIZE) -> Iterator[FileInfo]:
        """Lazily list the files of a directory ordered by name, a page at a time."""
        after = None
        while True:
            stmt = (
                select(ShareFile.name, ShareFile.size, ShareFile.last_modified)
                .where(ShareFile.share == self.share, ShareFile.directory == directory)
                .order_by(ShareFile.name)
                .limit(page_size)
            )
            if after is not None:
                stmt = stmt.where(ShareFile.name > after)
            with get_session() as s:
                rows = s.execute(stmt).all()
            for name, size, last_modified in rows:
                yield FileInfo(name=name, size=size, last_modified=last_modified)
            if len(rows) < page_size:
                return
            after = rows[-1][0]

    def list(self, directory: str) -> Result[list[FileInfo]]:
        return Ok(list(self.iter_files(directory)))

    def delete(self, directory: str, file_name: str) -> Result[None]:
        """Delete a file if present; a missing file is not an error."""
        with get_session() as s:
            obj = s.get(ShareFile, (self.share, directory, file_name))
            if obj is not None:
                s.delete(obj)
                s.commit()
        logger.info("file deleted", extra={"directory": directory, "file": file_name})
        return Ok(None)
