from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, inspect, insert, select
from sqlalchemy.exc import SQLAlchemyError

from app.hub.feed import ChangeFeed, Subscription
from app.hub.models import Base, Customer, collection_name, partition_table, register_partitions

if TYPE_CHECKING:
    from flask import Flask
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    pass


class UnknownStatusError(StoreError):
    pass


@dataclass(frozen=True)
class WriteOp:
    kind: str  # "delete" | "set"
    status: str
    customer_id: str
    customer: Customer | None = None


class WriteBatch:
    """
    Multi-document write applied all-or-nothing by commit().
    A ``set`` replaces any document with the same id in the target partition.
    """

    def __init__(self, store: CustomerStore) -> None:
        self._store = store
        self._ops: list[WriteOp] = []
        self.committed = False

    @property
    def ops(self) -> tuple[WriteOp, ...]:
        return tuple(self._ops)

    def delete(self, status: str, customer_id: str) -> WriteBatch:
        self._store.check_status(status)
        self._ops.append(WriteOp("delete", status, customer_id))
        return self

    def set(self, status: str, customer: Customer) -> WriteBatch:
        self._store.check_status(status)
        # The stored status always matches the partition it is written to.
        self._ops.append(WriteOp("set", status, customer.id, customer.with_status(status)))
        return self

    def commit(self) -> None:
        if self.committed:
            raise StoreError("Batch already committed.")
        if self._ops:
            self._store._commit(self._ops)
        self.committed = True


class CustomerStore:
    """Keyed customer repository partitioned by status."""

    backend = "base"

    def __init__(self, statuses) -> None:
        self.statuses: tuple[str, ...] = tuple(statuses)
        self.feed = ChangeFeed()

    def check_status(self, status: str) -> None:
        if status not in self.statuses:
            raise UnknownStatusError(f"Unknown status {status!r}; expected one of: {', '.join(self.statuses)}")

    def get(self, status: str, customer_id: str) -> Customer | None:
        self.check_status(status)
        return self._get(status, customer_id)

    def list(self, status: str) -> list[Customer]:
        self.check_status(status)
        return self._list(status)

    def add(self, status: str, *, name: str, email: str, phone_number: str) -> Customer:
        """Create a customer in ``status`` with a fresh id and creation timestamp."""
        customer = Customer(
            id=uuid.uuid4().hex,
            name=name,
            email=email,
            phone_number=phone_number,
            status=status,
            created_at=datetime.utcnow(),
        )
        self.batch().set(status, customer).commit()
        return customer

    def delete(self, status: str, customer_id: str) -> bool:
        """Remove one document. Returns False (and writes nothing) if it does not exist."""
        if self.get(status, customer_id) is None:
            return False
        self.batch().delete(status, customer_id).commit()
        return True

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def watch(self, status: str) -> Subscription:
        self.check_status(status)
        return Subscription(self, status)

    def _commit(self, ops: list[WriteOp]) -> None:
        self._apply(ops)
        self.feed.publish(op.status for op in ops)

    def _get(self, status: str, customer_id: str) -> Customer | None:
        raise NotImplementedError

    def _list(self, status: str) -> list[Customer]:
        raise NotImplementedError

    def _apply(self, ops: list[WriteOp]) -> None:
        raise NotImplementedError


def _newest_first(customers) -> list[Customer]:
    return sorted(customers, key=lambda c: c.created_at or datetime.min, reverse=True)


class MemoryCustomerStore(CustomerStore):
    """
    In-process store. Batches are staged on a copy of the partitions and
    swapped in only after every operation has been applied.
    """

    backend = "memory"

    def __init__(self, statuses) -> None:
        super().__init__(statuses)
        self._lock = threading.Lock()
        self._partitions: dict[str, dict[str, Customer]] = {status: {} for status in self.statuses}

    def _get(self, status: str, customer_id: str) -> Customer | None:
        with self._lock:
            return self._partitions[status].get(customer_id)

    def _list(self, status: str) -> list[Customer]:
        with self._lock:
            return _newest_first(self._partitions[status].values())

    def _apply(self, ops: list[WriteOp]) -> None:
        with self._lock:
            staged = {status: dict(docs) for status, docs in self._partitions.items()}
            for op in ops:
                self._stage(staged, op)
            self._partitions = staged

    def _stage(self, staged: dict[str, dict[str, Customer]], op: WriteOp) -> None:
        if op.kind == "delete":
            staged[op.status].pop(op.customer_id, None)
        elif op.kind == "set":
            staged[op.status][op.customer_id] = op.customer
        else:
            raise StoreError(f"Unsupported write {op.kind!r}")


class SqlCustomerStore(CustomerStore):
    """One table per status; each batch runs in a single database transaction."""

    backend = "sql"

    def __init__(self, statuses, engine: Engine, sessionmaker: sessionmaker) -> None:
        super().__init__(statuses)
        self.engine = engine
        self.sessionmaker = sessionmaker
        self.tables = {table.name: table for table in register_partitions(self.statuses)}

    def create_partitions(self) -> None:
        Base.metadata.create_all(bind=self.engine, tables=list(self.tables.values()))

    def missing_partitions(self) -> list[str]:
        insp = inspect(self.engine)
        return [name for name in self.tables if not insp.has_table(name)]

    def _row_to_customer(self, status: str, row) -> Customer:
        if row.status != status:
            logger.warning(
                "Customer %s stored with status %r in %s; using partition status",
                row.id,
                row.status,
                collection_name(status),
            )
        return Customer(
            id=row.id,
            name=row.name,
            email=row.email,
            phone_number=row.phone_number,
            status=status,
            created_at=row.created_at,
            expiry_date=row.expiry_date,
        )

    def _get(self, status: str, customer_id: str) -> Customer | None:
        t = partition_table(status)
        try:
            with self.sessionmaker() as s:
                row = s.execute(select(t).where(t.c.id == customer_id)).one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {collection_name(status)}: {e}") from e
        return self._row_to_customer(status, row) if row is not None else None

    def _list(self, status: str) -> list[Customer]:
        t = partition_table(status)
        try:
            with self.sessionmaker() as s:
                rows = s.execute(select(t).order_by(t.c.created_at.desc(), t.c.id)).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {collection_name(status)}: {e}") from e
        return [self._row_to_customer(status, row) for row in rows]

    def _apply(self, ops: list[WriteOp]) -> None:
        try:
            with self.sessionmaker.begin() as s:
                for op in ops:
                    t = partition_table(op.status)
                    s.execute(delete(t).where(t.c.id == op.customer_id))
                    if op.kind == "set":
                        s.execute(insert(t).values(**op.customer.to_row()))
        except SQLAlchemyError as e:
            raise StoreError(f"Commit failed: {e}") from e


def store_from_config(app: Flask) -> CustomerStore:
    backend = (app.config.get("STORE_BACKEND") or "sql").strip().lower()
    statuses = app.config["CUSTOMER_STATUSES"]
    if backend == "memory":
        return MemoryCustomerStore(statuses)
    return SqlCustomerStore(
        statuses,
        engine=app.extensions["sqlalchemy_engine"],
        sessionmaker=app.extensions["sqlalchemy_sessionmaker"],
    )
