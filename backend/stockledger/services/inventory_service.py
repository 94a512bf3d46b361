# Overview: Service-layer operations for inventory records; stock mutations go through the ledger writer.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import (
    ConflictError,
    InsufficientStockError,
    InvalidOperationError,
    InventoryNotFoundError,
    ValidationError,
)
from ..models import InventoryRecord, InventoryHistoryEntry
from ..models.inventory import (
    CHANGE_PURCHASE,
    CHANGE_SALE,
    CHANGE_TRANSFER_OUT,
    CHANGE_TRANSFER_IN,
    CHANGE_ADJUSTMENT,
    CHANGE_RETURN,
    CHANGE_DAMAGE,
    CHANGE_TYPES,
    MANUAL_CHANGE_TYPES,
    DEFAULT_REORDER_LEVEL,
    DEFAULT_OPTIMAL_LEVEL,
)
from .ledger_service import record_change
from .unit_of_work import UnitOfWork
"""
Inventory Record Invariants (authoritative)

- One InventoryRecord per (product_id, store_id).
- quantity >= 0; every quantity change goes through ledger_service.record_change().
- A new record starts at 0. Any initial stock is booked as a PURCHASE entry so
  that replaying the ledger from the first entry reproduces the live quantity.
- Reorder thresholds are configuration, not stock: changing them writes no entry.
"""

REFERENCE_TYPES = {
    CHANGE_PURCHASE: "PURCHASE_ORDER",
    CHANGE_SALE: "SALE",
    CHANGE_TRANSFER_OUT: "TRANSFER",
    CHANGE_TRANSFER_IN: "TRANSFER",
    CHANGE_ADJUSTMENT: "ADJUSTMENT",
    CHANGE_RETURN: "RETURN",
    CHANGE_DAMAGE: "DAMAGE_REPORT",
}


@dataclass
class MutationResult:
    record: InventoryRecord
    history_entry_id: int


def default_notes(change_type: str, quantity_change: int) -> str:
    direction = "increase" if quantity_change > 0 else "decrease"
    amount = abs(quantity_change)
    notes = {
        CHANGE_PURCHASE: f"Purchase of {amount} units",
        CHANGE_SALE: f"Sale of {amount} units",
        CHANGE_TRANSFER_OUT: f"Transferred out {amount} units",
        CHANGE_TRANSFER_IN: f"Transferred in {amount} units",
        CHANGE_ADJUSTMENT: f"Manual {direction} of {amount} units",
        CHANGE_RETURN: f"Customer return of {amount} units",
        CHANGE_DAMAGE: (
            f"Damaged goods {'write-off' if direction == 'decrease' else 'reversal'} of {amount} units"
        ),
    }
    return notes.get(change_type, f"Inventory {direction} of {amount} units")


def _require_int(value, field: str, *, positive: bool = False, non_negative: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", {field: value})
    if positive and value <= 0:
        raise ValidationError(f"{field} must be positive", {field: value})
    if non_negative and value < 0:
        raise ValidationError(f"{field} cannot be negative", {field: value})
    return value


def _validate_levels(reorder_level: int | None, optimal_level: int | None) -> None:
    if reorder_level is not None:
        _require_int(reorder_level, "reorder_level", non_negative=True)
    if optimal_level is not None:
        _require_int(optimal_level, "optimal_level", non_negative=True)
    if reorder_level is not None and optimal_level is not None and optimal_level <= reorder_level:
        raise ValidationError(
            "Optimal level must be greater than reorder level",
            {"reorder_level": reorder_level, "optimal_level": optimal_level},
        )


def ensure_record(
    uow: UnitOfWork,
    product_id: int,
    store_id: int,
    *,
    template: InventoryRecord | None = None,
) -> InventoryRecord:
    """
    Read-or-create the record for (product_id, store_id), locked for update.

    A created record starts at quantity 0. Thresholds are copied from template
    when given; quantity and the store price override never are.
    """
    record = uow.inventory.get_by_key(product_id, store_id, lock=True)
    if record is not None:
        return record

    uow.catalog.require_product(product_id)
    uow.catalog.require_store(store_id)

    record = InventoryRecord(
        product_id=product_id,
        store_id=store_id,
        quantity=0,
        reorder_level=template.reorder_level if template is not None else DEFAULT_REORDER_LEVEL,
        optimal_level=template.optimal_level if template is not None else DEFAULT_OPTIMAL_LEVEL,
        store_price_cents=None,
    )
    return uow.inventory.add(record)


def allocate_inventory(
    uow: UnitOfWork,
    *,
    product_id: int,
    store_id: int,
    actor_id: int,
    initial_quantity: int = 0,
    reorder_level: int | None = DEFAULT_REORDER_LEVEL,
    optimal_level: int | None = DEFAULT_OPTIMAL_LEVEL,
    store_price_cents: int | None = None,
) -> InventoryRecord:
    """Create the inventory record for a product in a store."""
    _require_int(initial_quantity, "initial_quantity", non_negative=True)
    _validate_levels(reorder_level, optimal_level)
    if store_price_cents is not None:
        _require_int(store_price_cents, "store_price_cents", non_negative=True)

    with uow:
        uow.catalog.require_product(product_id)
        uow.catalog.require_store(store_id)

        if uow.inventory.get_by_key(product_id, store_id) is not None:
            raise ConflictError(
                "Inventory already exists for this product in this store",
                {"product_id": product_id, "store_id": store_id},
            )

        record = uow.inventory.add(InventoryRecord(
            product_id=product_id,
            store_id=store_id,
            quantity=0,
            reorder_level=reorder_level,
            optimal_level=optimal_level,
            store_price_cents=store_price_cents,
        ))

        if initial_quantity > 0:
            record_change(
                uow,
                record,
                quantity_change=initial_quantity,
                change_type=CHANGE_PURCHASE,
                actor_id=actor_id,
                reference_type="INITIAL_STOCK",
                notes=f"Initial allocation of {initial_quantity} units",
            )

        uow.commit()
        return record


def mutate_stock(
    uow: UnitOfWork,
    *,
    product_id: int,
    store_id: int,
    quantity_delta: int,
    change_type: str,
    actor_id: int,
    reference_id: str | None = None,
    notes: str | None = None,
) -> MutationResult:
    """
    Generic single-record mutation addressed by compound key.

    Raises InventoryNotFoundError, InsufficientStockError or InvalidOperationError.
    """
    _require_int(quantity_delta, "quantity_delta")
    if quantity_delta == 0:
        raise InvalidOperationError("Quantity delta cannot be zero")
    if change_type not in CHANGE_TYPES:
        raise InvalidOperationError(f"Unknown change type {change_type!r}", {"change_type": change_type})

    with uow:
        record = uow.inventory.get_by_key(product_id, store_id, lock=True)
        if record is None:
            raise InventoryNotFoundError(
                "No inventory found for product in this store",
                {"product_id": product_id, "store_id": store_id},
            )

        entry = record_change(
            uow,
            record,
            quantity_change=quantity_delta,
            change_type=change_type,
            actor_id=actor_id,
            reference_id=reference_id,
            reference_type=REFERENCE_TYPES.get(change_type) if reference_id else None,
            notes=notes or default_notes(change_type, quantity_delta),
        )
        uow.commit()
        return MutationResult(record=record, history_entry_id=entry.id)


def adjust_inventory(
    uow: UnitOfWork,
    *,
    inventory_id: int,
    delta: int,
    change_type: str,
    actor_id: int,
    notes: str | None = None,
    reference_id: str | None = None,
) -> tuple[InventoryRecord, InventoryHistoryEntry]:
    """
    Manual stock change: PURCHASE, RETURN, DAMAGE or ADJUSTMENT.

    SALE and TRANSFER_* are refused here; they only happen through their own
    operations so that the sale/transfer documents exist alongside the entries.
    """
    _require_int(delta, "delta")
    if delta == 0:
        raise ValidationError("Adjustment quantity cannot be zero")
    if change_type not in MANUAL_CHANGE_TYPES:
        raise InvalidOperationError(
            f"{change_type} cannot be recorded as a manual adjustment",
            {"change_type": change_type, "allowed": list(MANUAL_CHANGE_TYPES)},
        )

    with uow:
        record = uow.inventory.require(inventory_id, lock=True)

        if record.quantity + delta < 0:
            raise InvalidOperationError(
                f"Cannot adjust by {delta}. Current: {record.quantity}, "
                f"result would be: {record.quantity + delta}",
                {"inventory_id": inventory_id, "quantity": record.quantity, "delta": delta},
            )

        entry = record_change(
            uow,
            record,
            quantity_change=delta,
            change_type=change_type,
            actor_id=actor_id,
            reference_id=reference_id,
            reference_type=REFERENCE_TYPES[change_type] if reference_id else None,
            notes=notes or default_notes(change_type, delta),
        )
        uow.commit()
        return record, entry


def receive_shipment(
    uow: UnitOfWork,
    *,
    store_id: int,
    items: list[dict],
    actor_id: int,
    shipment_id: str | None = None,
) -> list[InventoryHistoryEntry]:
    """
    Book a delivery of several products into one store as PURCHASE entries.

    All items succeed or none do. Missing records are created on the fly.
    """
    if not items:
        raise ValidationError("No items in shipment")

    totals: dict[int, int] = {}
    for item in items:
        product_id = item.get("product_id")
        if product_id is None:
            raise ValidationError("Each shipment item requires product_id")
        quantity = _require_int(item.get("quantity"), "quantity", positive=True)
        totals[product_id] = totals.get(product_id, 0) + quantity

    with uow:
        uow.catalog.require_store(store_id)
        entries = []
        for product_id, quantity in totals.items():
            record = ensure_record(uow, product_id, store_id)
            entries.append(record_change(
                uow,
                record,
                quantity_change=quantity,
                change_type=CHANGE_PURCHASE,
                actor_id=actor_id,
                reference_id=shipment_id,
                reference_type="SHIPMENT" if shipment_id else None,
                notes=f"Shipment received: {quantity} units",
            ))
        uow.commit()
        return entries


def set_reorder_levels(
    uow: UnitOfWork,
    *,
    inventory_id: int,
    reorder_level: int,
    optimal_level: int,
) -> InventoryRecord:
    _validate_levels(reorder_level, optimal_level)
    if reorder_level is None or optimal_level is None:
        raise ValidationError("reorder_level and optimal_level are required")

    with uow:
        record = uow.inventory.require(inventory_id, lock=True)
        record.reorder_level = reorder_level
        record.optimal_level = optimal_level
        uow.commit()
        return record


def check_availability(uow: UnitOfWork, *, product_id: int, store_id: int, quantity: int) -> dict:
    """Read-only stock check; never reserves anything."""
    _require_int(quantity, "quantity", positive=True)
    record = uow.inventory.get_by_key(product_id, store_id)
    available = record.quantity if record is not None else 0
    return {
        "product_id": product_id,
        "store_id": store_id,
        "requested": quantity,
        "available": available,
        "is_available": available >= quantity,
        "inventory_id": record.id if record is not None else None,
    }


def get_restock_candidates(uow: UnitOfWork, store_id: int | None = None) -> list[dict]:
    """Records at or below their reorder level, for low-stock alerting."""
    candidates = []
    for record in uow.inventory.list_needing_restock(store_id):
        optimal = record.optimal_level if record.optimal_level is not None else record.reorder_level
        candidates.append({
            "inventory_id": record.id,
            "store_id": record.store_id,
            "store_name": record.store.name,
            "product_id": record.product_id,
            "product_name": record.product.name,
            "current_quantity": record.quantity,
            "reorder_level": record.reorder_level,
            "optimal_level": record.optimal_level,
            "needed": max(0, optimal - record.quantity),
        })
    return candidates


def get_product_inventory_across_stores(uow: UnitOfWork, product_id: int) -> dict:
    product = uow.catalog.require_product(product_id)
    records = uow.inventory.list(product_id=product_id)
    return {
        "product": product.to_dict(),
        "total_quantity": sum(r.quantity for r in records),
        "stores": [
            {
                **record.to_dict(),
                "store_name": record.store.name,
                "needs_restock": record.needs_restock,
            }
            for record in records
        ],
    }


def ensure_sufficient(record: InventoryRecord | None, requested: int, *, product_id: int, store_id: int) -> None:
    """Raise InsufficientStockError when record cannot cover requested units."""
    available = record.quantity if record is not None else 0
    if available < requested:
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id} in store {store_id}: "
            f"on hand {available}, requested {requested}",
            {"product_id": product_id, "store_id": store_id, "available": available, "requested": requested},
        )
