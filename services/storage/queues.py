"""SQLAlchemy-backed message queue used for order intake.

The queue gives at-least-once delivery with best-effort FIFO ordering:

* ``enqueue`` appends a text message (the queue is created on first use).
* ``receive`` hides the oldest visible message for a visibility timeout,
  bumps its dequeue count and issues a new pop receipt. Rows are locked
  with ``SKIP LOCKED`` so concurrent receivers never get the same message.
* ``delete`` removes a message, but only with its current pop receipt.
* A message received ``max_dequeue_count`` times is moved to the
  ``<name>-poison`` queue instead of being handed out again.

There is no deduplication: enqueueing the same text twice yields two
messages.
"""

import os
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from db import QueueMessage, QueueName, get_session, utcnow
from logs import get_logger
from results import Err, ErrorKind, Ok, Result

logger = get_logger("storage.queue")

ORDER_QUEUE = os.getenv("ORDER_QUEUE", "order")
VISIBILITY_TIMEOUT = float(os.getenv("QUEUE_VISIBILITY_TIMEOUT", "30"))
MAX_DEQUEUE_COUNT = int(os.getenv("QUEUE_MAX_DEQUEUE_COUNT", "5"))


@dataclass(frozen=True)
class ReceivedMessage:
    id: int
    body: str
    dequeue_count: int
    pop_receipt: str


class QueueRepo:
    """One named queue."""

    def __init__(self, name: str = ORDER_QUEUE, max_dequeue_count: int = MAX_DEQUEUE_COUNT):
        self.name = name
        self.max_dequeue_count = max_dequeue_count

    @property
    def poison_name(self) -> str:
        return f"{self.name}-poison"

    def ensure_queue(self) -> None:
        """Create the queue record if absent (idempotent)."""
        with get_session() as s:
            if s.get(QueueName, self.name) is not None:
                return
            s.add(QueueName(name=self.name))
            try:
                s.commit()
            except IntegrityError:
                s.rollback()

    def enqueue(self, body: str) -> Result[int]:
        """Append a message and return its id."""
        if body is None:
            return Err(ErrorKind.VALIDATION, "message body is required")
        self.ensure_queue()
        with get_session() as s:
            msg = QueueMessage(queue_name=self.name, body=body, visible_at=utcnow())
            s.add(msg)
            s.commit()
            msg_id = msg.id
        logger.info("message enqueued", extra={"queue": self.name, "message_id": msg_id})
        return Ok(msg_id)

    def receive(self, visibility_timeout: float = VISIBILITY_TIMEOUT) -> Optional[ReceivedMessage]:
        """Take the oldest visible message, hiding it for ``visibility_timeout`` seconds.

        Messages that already reached the max dequeue count are moved to the
        poison queue on the way and skipped.

        Returns:
            The received message, or None when nothing is visible.
        """
        while True:
            with get_session() as s:
                now = utcnow()
                msg = s.execute(
                    select(QueueMessage)
                    .where(QueueMessage.queue_name == self.name, QueueMessage.visible_at <= now)
                    .order_by(QueueMessage.id)
                    .limit(1)
                    .with_for_update(skip_locked=True)
                ).scalars().first()
                if msg is None:
                    return None
                if msg.dequeue_count >= self.max_dequeue_count:
                    msg.queue_name = self.poison_name
                    msg.pop_receipt = None
                    s.commit()
                    logger.warning(
                        "message moved to poison queue",
                        extra={"queue": self.name, "message_id": msg.id},
                    )
                    continue
                msg.dequeue_count += 1
                msg.pop_receipt = uuid.uuid4().hex
                msg.visible_at = now + timedelta(seconds=visibility_timeout)
                s.commit()
                return ReceivedMessage(
                    id=msg.id,
                    body=msg.body,
                    dequeue_count=msg.dequeue_count,
                    pop_receipt=msg.pop_receipt,
                )

    def delete(self, message_id: int, pop_receipt: str) -> Result[None]:
        with get_session() as s:
            msg = s.get(QueueMessage, message_id)
            if msg is None or msg.queue_name != self.name:
                return Err(ErrorKind.NOT_FOUND, "Message not found")
            if msg.pop_receipt != pop_receipt:
                return Err(ErrorKind.CONFLICT, "Pop receipt does not match")
            s.delete(msg)
            s.commit()
        return Ok(None)

    def peek_count(self) -> int:
        with get_session() as s:
            return s.scalar(
                select(func.count()).select_from(QueueMessage).where(QueueMessage.queue_name == self.name)
            ) or 0
