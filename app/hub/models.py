from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Column, DateTime, Index, String, Table, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def collection_name(status: str) -> str:
    """Name of the partition holding customers in ``status`` (e.g. ``pending_customers``)."""
    return f"{status}_customers"


def status_label(status: str) -> str:
    """Human label for a status: ``one_month`` -> ``One month``."""
    text = status.replace("_", " ")
    return text[:1].upper() + text[1:]


def partition_table(status: str) -> Table:
    """
    Table for one status partition, registered on Base.metadata on first use.
    Every partition has the same shape; only the name differs.
    """
    name = collection_name(status)
    existing = Base.metadata.tables.get(name)
    if existing is not None:
        return existing
    return Table(
        name,
        Base.metadata,
        Column("id", String(64), primary_key=True),
        Column("name", Text, nullable=False),
        Column("email", Text, nullable=False),
        Column("phone_number", Text, nullable=False),
        Column("status", String(64), nullable=False),
        Column("created_at", DateTime(timezone=False), nullable=False),
        Column("expiry_date", DateTime(timezone=False), nullable=True),
        Index(f"idx_{name}_created_at", "created_at"),
    )


def register_partitions(statuses: tuple[str, ...] | list[str]) -> list[Table]:
    return [partition_table(status) for status in statuses]


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    email: str
    phone_number: str
    status: str
    created_at: datetime | None = None
    expiry_date: datetime | None = None

    def with_status(self, status: str) -> Customer:
        return dataclasses.replace(self, status=status)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "status": self.status,
            "created_at": self.created_at,
            "expiry_date": self.expiry_date,
        }

    def to_dict(self) -> dict[str, Any]:
        # Field names follow the document format of the partitions.
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phoneNumber": self.phone_number,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "expiryDate": self.expiry_date.isoformat() if self.expiry_date else None,
        }
