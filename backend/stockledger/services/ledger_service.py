# Overview: Ledger writer; the single code path that changes InventoryRecord.quantity.

from __future__ import annotations

from ..errors import InsufficientStockError, ValidationError
from ..models import InventoryRecord, InventoryHistoryEntry
from ..models.inventory import CHANGE_TYPES
from ..time_utils import utcnow
from .unit_of_work import UnitOfWork
"""
Inventory Ledger Invariants (authoritative)

- Exactly one InventoryHistoryEntry is appended per InventoryRecord mutation, in
  the same unit of work as the mutation.
- previous_quantity is the record's quantity immediately before the change,
  new_quantity immediately after, quantity_change = new - previous.
- A change that would take quantity below zero is rejected before anything is
  written.
- Existing entries are never updated or deleted (see the mapper listeners in
  models/inventory.py).
- No commit here; the calling operation commits the whole unit.
"""


def record_change(
    uow: UnitOfWork,
    record: InventoryRecord,
    *,
    quantity_change: int,
    change_type: str,
    actor_id: int,
    reference_id: str | None = None,
    reference_type: str | None = None,
    notes: str | None = None,
) -> InventoryHistoryEntry:
    """
    Apply quantity_change to record and append the matching ledger entry.

    Raises InsufficientStockError if the result would be negative.
    """
    if change_type not in CHANGE_TYPES:
        raise ValidationError(f"Unknown change type {change_type!r}", {"change_type": change_type})
    if isinstance(quantity_change, bool) or not isinstance(quantity_change, int):
        raise ValidationError("quantity_change must be an integer")

    previous = record.quantity
    new = previous + quantity_change
    if new < 0:
        raise InsufficientStockError(
            f"Cannot apply {quantity_change} to inventory {record.id}: "
            f"on hand {previous}, result would be {new}",
            {
                "inventory_id": record.id,
                "product_id": record.product_id,
                "store_id": record.store_id,
                "available": previous,
                "requested": -quantity_change,
            },
        )

    now = utcnow()
    record.quantity = new
    record.updated_at = now

    entry = InventoryHistoryEntry(
        inventory_id=record.id,
        change_type=change_type,
        quantity_change=quantity_change,
        previous_quantity=previous,
        new_quantity=new,
        reference_id=str(reference_id) if reference_id is not None else None,
        reference_type=reference_type,
        notes=notes,
        actor_id=actor_id,
        created_at=now,
    )
    return uow.ledger.append(entry)
