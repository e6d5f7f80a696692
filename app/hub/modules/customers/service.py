"""
CUSTOMER STATUS PARTITIONS
==========================

Every customer lives in exactly one partition, named after its status
(``pending_customers``, ``one_month_customers``, ...). There is no status
update in place: a move is a delete from the source partition and a set in
the destination partition, committed as one batch.

Operation        | Writes                              | Failure
-----------------|-------------------------------------|------------------------------
add_customer     | set(view, new record)               | CustomerActionError
delete_customer  | delete(status, id) if it exists     | CustomerActionError
switch_status    | delete(source, id) + set(target)    | TransitionFailedError
                 | nothing when target == source       |

All operations require an Identity; without one NotAuthenticatedError is
raised before the store is touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.hub.store import StoreError

if TYPE_CHECKING:
    from app.hub.identity import Identity
    from app.hub.models import Customer
    from app.hub.store import CustomerStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    ("name", "Name"),
    ("email", "Email"),
    ("phone", "Phone number"),
)


class CustomerActionError(RuntimeError):
    pass


class NotAuthenticatedError(CustomerActionError):
    pass


class TransitionFailedError(CustomerActionError):
    pass


@dataclass(frozen=True)
class TransitionResult:
    customer: Customer
    moved: bool
    source: str
    target: str


def _require_identity(identity: Identity | None, action: str) -> None:
    if identity is None:
        raise NotAuthenticatedError(f"You must be logged in to {action}.")


def validate_customer_payload(payload: dict) -> list[str]:
    """Validate add-customer form input. Returns list of errors."""
    errors = []
    for key, label in REQUIRED_FIELDS:
        if not (payload.get(key) or "").strip():
            errors.append(f"{label} is required.")
    return errors


def list_customers(store: CustomerStore, status: str, *, identity: Identity | None) -> list[Customer]:
    _require_identity(identity, "view customers")
    return store.list(status)


def add_customer(store: CustomerStore, payload: dict, *, status: str, identity: Identity | None) -> Customer:
    """Create one customer in the partition of the selected view."""
    _require_identity(identity, "add a customer")
    store.check_status(status)
    try:
        customer = store.add(
            status,
            name=(payload.get("name") or "").strip(),
            email=(payload.get("email") or "").strip(),
            phone_number=(payload.get("phone") or "").strip(),
        )
    except StoreError as e:
        logger.exception("Error adding customer to %s", status)
        raise CustomerActionError("Could not add customer.") from e
    logger.info("Customer %s added to %s by uid=%s", customer.id, status, identity.uid)
    return customer


def delete_customer(
    store: CustomerStore, customer_id: str, *, status: str, identity: Identity | None
) -> Customer | None:
    """
    Remove a customer from its partition. Returns the deleted record, or None
    when the id was not there (nothing is written in that case).
    """
    _require_identity(identity, "delete a customer")
    try:
        customer = store.get(status, customer_id)
        if customer is None:
            return None
        store.delete(status, customer_id)
    except StoreError as e:
        logger.exception("Error deleting customer %s from %s", customer_id, status)
        raise CustomerActionError("Could not delete customer.") from e
    logger.info("Customer %s deleted from %s by uid=%s", customer_id, status, identity.uid)
    return customer


def switch_customer_status(
    store: CustomerStore, customer: Customer, target: str, *, identity: Identity | None
) -> TransitionResult:
    """
    Move ``customer`` to the ``target`` partition in one atomic batch.

    Same-status moves write nothing. A failed commit leaves the record in its
    original partition and raises TransitionFailedError.
    """
    _require_identity(identity, "move a customer")
    source = customer.status
    store.check_status(source)
    store.check_status(target)

    if target == source:
        logger.debug("Customer %s already %s; skipping move", customer.id, source)
        return TransitionResult(customer=customer, moved=False, source=source, target=target)

    moved = customer.with_status(target)
    batch = store.batch()
    batch.delete(source, customer.id)
    batch.set(target, moved)
    try:
        batch.commit()
    except StoreError as e:
        logger.exception("Error switching customer %s from %s to %s", customer.id, source, target)
        raise TransitionFailedError("Could not update customer status.") from e

    logger.info("Customer %s moved %s -> %s by uid=%s", customer.id, source, target, identity.uid)
    return TransitionResult(customer=moved, moved=True, source=source, target=target)
