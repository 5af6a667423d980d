import logging
import os

from pythonjsonlogger import jsonlogger

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``storage`` hierarchy with JSON output.

    The handler is attached once to the ``storage`` parent logger; module
    loggers such as ``storage.entities`` propagate to it.
    """
    root = logging.getLogger("storage")
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
        root.addHandler(h)
        root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    return logging.getLogger(name if name.startswith("storage") else f"storage.{name}")
