"""Order processor: the consumer side of the order intake queue.

``process`` handles one message payload. It parses the payload as an
order record, gives it a fresh identity in the ``Order`` partition and
inserts it into the entity store. Payloads that are not order JSON (for
example the free-text notifications the storefront sends after creating
an order) are logged and dropped; the message still counts as consumed.
Insert failures are not handled here and reach the worker loop, which
leaves the message in the queue so it is redelivered after its
visibility timeout, up to the poison threshold.

Run the worker with ``python processor.py``.
"""

import os
import threading
from typing import Optional

from pydantic import ValidationError

from db import init_db, utcnow
from logs import get_logger
from queues import QueueRepo, ReceivedMessage
from repo import ORDER_TABLE, EntityRepo, new_row_key
from results import Err, ErrorKind, Ok, Result
from schemas import OrderIn

logger = get_logger("storage.processor")

POLL_INTERVAL = float(os.getenv("WORKER_POLL_INTERVAL", "1.0"))


class ProcessingError(RuntimeError):
    """The order could not be persisted; the message should be retried."""


def parse_order(payload: str) -> Result[OrderIn]:
    try:
        return Ok(OrderIn.model_validate_json(payload))
    except ValidationError as exc:
        return Err(ErrorKind.PARSE, f"invalid order payload: {exc.error_count()} error(s)")


def process(payload: str, orders: Optional[EntityRepo] = None) -> None:
    """Persist the order carried by one queue message.

    Args:
        payload: Raw message text.
        orders: Entity repository for the ``Order`` table; a default one is
            built when omitted.

    Raises:
        ProcessingError: When the insert is rejected by the store.
    """
    logger.info("queue message received")
    parsed = parse_order(payload)
    if isinstance(parsed, Err):
        logger.warning("failed to deserialize order", extra={"error": parsed.message})
        return

    order = parsed.value
    row_key = new_row_key()
    properties = order.properties()
    properties["order_date"] = utcnow().isoformat()

    orders = orders or EntityRepo(ORDER_TABLE)
    logger.info("saving order", extra={"row_key": row_key})
    result = orders.insert(ORDER_TABLE, row_key, properties)
    if isinstance(result, Err):
        raise ProcessingError(result.message)
    logger.info("order saved", extra={"row_key": row_key})


def handle(queue: QueueRepo, message: ReceivedMessage) -> bool:
    """Process one received message and delete it on success.

    Returns:
        bool: True when the message was processed and removed; False when
        processing failed and the message was left for redelivery.
    """
    try:
        process(message.body)
    except Exception:
        logger.exception(
            "order processing failed, message left for redelivery",
            extra={"message_id": message.id, "dequeue_count": message.dequeue_count},
        )
        return False
    deleted = queue.delete(message.id, message.pop_receipt)
    if isinstance(deleted, Err):
        logger.warning("processed message could not be deleted", extra={"message_id": message.id, "error": deleted.message})
    return True


def run_once(queue: Optional[QueueRepo] = None) -> Optional[bool]:
    """Receive and handle a single message.

    Returns:
        None when the queue had no visible message, else the ``handle`` result.
    """
    queue = queue or QueueRepo()
    message = queue.receive()
    if message is None:
        return None
    return handle(queue, message)


def run_worker(
    queue: Optional[QueueRepo] = None,
    poll_interval: float = POLL_INTERVAL,
    stop: Optional[threading.Event] = None,
) -> None:
    """Poll the queue until ``stop`` is set, handling one message at a time."""
    queue = queue or QueueRepo()
    stop = stop or threading.Event()
    queue.ensure_queue()
    logger.info("order worker started", extra={"queue": queue.name})
    while not stop.is_set():
        if run_once(queue) is None:
            stop.wait(poll_interval)
    logger.info("order worker stopped", extra={"queue": queue.name})


if __name__ == "__main__":
    init_db()
    run_worker()
