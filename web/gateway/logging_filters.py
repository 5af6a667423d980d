"""Logging filter that stamps records with the current request id."""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Set ``record.request_id`` from ``REQUEST_ID_CTX`` ("-" outside a request).

    Formatters can then always reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
