"""SQLAlchemy repository for table-like entity storage.

Entities are addressed by (table, partition_key, row_key) and carry their
remaining fields as a JSON document. Three tables are used by the
storefront: ``Customer``, ``Product`` and ``Order``.

The module also holds the referential integrity guard: orders reference
customers and products by row key, and a customer or product cannot be
deleted while any order points at it. ``delete_unreferenced`` runs the
check and the delete in one transaction with the target row locked,
while order inserts take a shared lock on the rows they reference.
"""

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError

from db import Entity, EntityTable, get_session, utcnow
from logs import get_logger
from results import Err, ErrorKind, Ok, Result

logger = get_logger("storage.entities")

CUSTOMER_TABLE = "Customer"
PRODUCT_TABLE = "Product"
ORDER_TABLE = "Order"

CUSTOMER_REF = "customer_row_key"
PRODUCT_REF = "product_row_key"
REFERENCE_FIELDS = {CUSTOMER_REF: CUSTOMER_TABLE, PRODUCT_REF: PRODUCT_TABLE}

PAGE_SIZE = int(os.getenv("LIST_PAGE_SIZE", "100"))

REFERENCED_MESSAGES = {
    CUSTOMER_TABLE: "Cannot delete customer because they have associated orders",
    PRODUCT_TABLE: "Cannot delete product because it is associated with existing orders",
}


def new_row_key() -> str:
    return str(uuid.uuid4())


def _new_etag() -> str:
    return uuid.uuid4().hex


@dataclass
class StoredEntity:
    """A detached copy of an entity row."""

    partition_key: str
    row_key: str
    etag: str
    timestamp: Optional[datetime]
    properties: dict = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Entity) -> "StoredEntity":
        return cls(
            partition_key=row.partition_key,
            row_key=row.row_key,
            etag=row.etag,
            timestamp=row.timestamp,
            properties=dict(row.properties or {}),
        )

    def to_dict(self) -> dict:
        body = dict(self.properties)
        body.update(
            partition_key=self.partition_key,
            row_key=self.row_key,
            etag=self.etag,
            timestamp=self.timestamp.isoformat() if self.timestamp else None,
        )
        return body


class Pager:
    """Lazy, restartable cursor over the entities of one table.

    Rows are fetched ``page_size`` at a time using keyset pagination on
    (partition_key, row_key), so a scan never materializes a whole table.
    Iterating the pager again starts a fresh scan; ``pages(after=...)``
    resumes from a continuation token returned alongside each page.
    """

    def __init__(self, table_name: str, *criteria, page_size: int = PAGE_SIZE):
        self.table_name = table_name
        self.criteria = criteria
        self.page_size = page_size

    def pages(self, after: Optional[tuple[str, str]] = None) -> Iterator[tuple[list[StoredEntity], Optional[tuple[str, str]]]]:
        """Yield ``(items, continuation)`` pairs until the table is exhausted.

        Args:
            after: Optional continuation token, the (partition_key, row_key)
                of the last entity already seen.

        Yields:
            tuple: The page items and the token to resume after them, or
            None for the final page.
        """
        while True:
            stmt = select(Entity).where(Entity.table_name == self.table_name, *self.criteria)
            if after is not None:
                pk, rk = after
                stmt = stmt.where(
                    or_(Entity.partition_key > pk, and_(Entity.partition_key == pk, Entity.row_key > rk))
                )
            stmt = stmt.order_by(Entity.partition_key, Entity.row_key).limit(self.page_size)
            with get_session() as s:
                rows = s.scalars(stmt).all()
                items = [StoredEntity.from_row(r) for r in rows]
            if not items:
                return
            last = (items[-1].partition_key, items[-1].row_key)
            more = len(items) == self.page_size
            yield items, (last if more else None)
            if not more:
                return
            after = last

    def __iter__(self) -> Iterator[StoredEntity]:
        for items, _ in self.pages():
            yield from items


class EntityRepo:
    """Repository for one entity table.

    Provides point lookup, lazy listing, insert, unconditional replace and
    delete. Expected failures come back as ``Err`` values.
    """

    def __init__(self, table_name: str):
        self.table_name = table_name

    def ensure_table(self) -> None:
        """Create the table record if it does not exist yet (idempotent)."""
        with get_session() as s:
            if s.get(EntityTable, self.table_name) is not None:
                return
            s.add(EntityTable(name=self.table_name))
            try:
                s.commit()
            except IntegrityError:
                # created concurrently
                s.rollback()

    def list(self, page_size: int = PAGE_SIZE) -> Pager:
        return Pager(self.table_name, page_size=page_size)

    def get(self, partition_key: str, row_key: str) -> Result[StoredEntity]:
        with get_session() as s:
            row = s.get(Entity, (self.table_name, partition_key, row_key))
            if row is None:
                return Err(ErrorKind.NOT_FOUND, f"{self.table_name} not found")
            return Ok(StoredEntity.from_row(row))

    def insert(self, partition_key: str, row_key: str, properties: dict[str, Any]) -> Result[StoredEntity]:
        """Insert a new entity.

        Order inserts take a shared row lock on the customer and product
        they reference so a concurrent guarded delete cannot slip between.

        Returns:
            Ok with the stored entity, or Err(CONFLICT) when the key exists.
        """
        self.ensure_table()
        with get_session() as s:
            if self.table_name == ORDER_TABLE:
                _share_lock_references(s, properties)
            row = Entity(
                table_name=self.table_name,
                partition_key=partition_key,
                row_key=row_key,
                etag=_new_etag(),
                timestamp=utcnow(),
                properties=properties,
            )
            s.add(row)
            try:
                s.commit()
            except IntegrityError:
                s.rollback()
                return Err(ErrorKind.CONFLICT, "The specified entity already exists")
            logger.info("entity inserted", extra={"table": self.table_name, "row_key": row_key})
            return Ok(StoredEntity.from_row(row))

    def replace(self, partition_key: str, row_key: str, properties: dict[str, Any]) -> Result[StoredEntity]:
        """Replace all properties of an existing entity.

        Any concurrency token is accepted (match-any); the entity must exist.
        Order replaces lock the new references the same way inserts do.
        """
        with get_session() as s:
            if self.table_name == ORDER_TABLE:
                _share_lock_references(s, properties)
            row = s.get(Entity, (self.table_name, partition_key, row_key))
            if row is None:
                return Err(ErrorKind.NOT_FOUND, f"{self.table_name} not found")
            row.properties = properties
            row.etag = _new_etag()
            row.timestamp = utcnow()
            s.commit()
            logger.info("entity replaced", extra={"table": self.table_name, "row_key": row_key})
            return Ok(StoredEntity.from_row(row))

    def delete(self, partition_key: str, row_key: str) -> Result[None]:
        with get_session() as s:
            row = s.get(Entity, (self.table_name, partition_key, row_key))
            if row is None:
                return Err(ErrorKind.NOT_FOUND, f"{self.table_name} not found")
            s.delete(row)
            s.commit()
            logger.info("entity deleted", extra={"table": self.table_name, "row_key": row_key})
            return Ok(None)


def _share_lock_references(session, properties: dict) -> None:
    for ref, table in REFERENCE_FIELDS.items():
        key = properties.get(ref)
        if key:
            session.execute(
                select(Entity.row_key)
                .where(Entity.table_name == table, Entity.row_key == key)
                .with_for_update(read=True)
            ).all()


def _first_reference(session, foreign_key: str, ref_field: str) -> Optional[str]:
    return session.scalars(
        select(Entity.row_key)
        .where(
            Entity.table_name == ORDER_TABLE,
            Entity.properties[ref_field].as_string() == foreign_key,
        )
        .limit(1)
    ).first()


def has_referencing_orders(foreign_key: str, ref_field: str) -> bool:
    """Return True when at least one order references ``foreign_key``.

    Args:
        foreign_key: Row key of the customer or product.
        ref_field: ``customer_row_key`` or ``product_row_key``.

    Returns:
        bool: False when no order matches, including when the Order table
        is empty or was never created.

    Raises:
        ValueError: If ``ref_field`` is not a known reference field.
    """
    if ref_field not in REFERENCE_FIELDS:
        raise ValueError(f"unknown reference field: {ref_field}")
    with get_session() as s:
        return _first_reference(s, foreign_key, ref_field) is not None


def delete_unreferenced(table_name: str, partition_key: str, row_key: str, ref_field: str) -> Result[None]:
    """Delete a customer or product only when no order references it.

    The target row is locked for update before the order scan, and the
    delete commits in the same transaction.

    Returns:
        Ok(None) on delete, Err(NOT_FOUND) when the entity is absent, or
        Err(INTEGRITY) when orders still reference it.
    """
    with get_session() as s:
        row = s.execute(
            select(Entity)
            .where(
                Entity.table_name == table_name,
                Entity.partition_key == partition_key,
                Entity.row_key == row_key,
            )
            .with_for_update()
        ).scalars().first()
        if row is None:
            return Err(ErrorKind.NOT_FOUND, f"{table_name} not found")
        if _first_reference(s, row_key, ref_field) is not None:
            s.rollback()
            logger.info("delete blocked by orders", extra={"table": table_name, "row_key": row_key})
            return Err(ErrorKind.INTEGRITY, REFERENCED_MESSAGES[table_name])
        s.delete(row)
        s.commit()
        logger.info("entity deleted", extra={"table": table_name, "row_key": row_key})
        return Ok(None)
