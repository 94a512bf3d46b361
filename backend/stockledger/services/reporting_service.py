# Overview: Read-only reporting over the inventory ledger.

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Iterable

from ..errors import ValidationError
from ..models.inventory import (
    CHANGE_PURCHASE,
    CHANGE_SALE,
    CHANGE_TRANSFER_OUT,
    CHANGE_TRANSFER_IN,
    CHANGE_ADJUSTMENT,
    CHANGE_RETURN,
    CHANGE_DAMAGE,
    CHANGE_TYPES,
)
from ..time_utils import to_utc_z
from .unit_of_work import UnitOfWork


EXPORT_ROW_LIMIT = 10000
MAX_PAGE_SIZE = 500

EXPORT_COLUMNS = (
    "timestamp",
    "product_id",
    "product_name",
    "store_id",
    "store_name",
    "change_type",
    "quantity_change",
    "previous_quantity",
    "new_quantity",
    "reference_id",
    "reference_type",
    "notes",
    "performed_by",
    "performer_email",
)


def _check_change_types(change_types: Iterable[str] | None) -> list[str] | None:
    if not change_types:
        return None
    change_types = list(change_types)
    unknown = [c for c in change_types if c not in CHANGE_TYPES]
    if unknown:
        raise ValidationError("Unknown change type(s)", {"unknown": unknown, "allowed": list(CHANGE_TYPES)})
    return change_types


def _check_range(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and start > end:
        raise ValidationError("start must not be after end")


def _describe(entry) -> dict:
    record = entry.inventory
    data = entry.to_dict()
    data.update({
        "product_id": record.product_id,
        "product_name": record.product.name,
        "store_id": record.store_id,
        "store_name": record.store.name,
    })
    if entry.actor is not None:
        data["actor"] = {
            "id": entry.actor.id,
            "email": entry.actor.email,
            "first_name": entry.actor.first_name,
            "last_name": entry.actor.last_name,
        }
    return data


def get_stock_movement_report(
    uow: UnitOfWork,
    *,
    start: datetime,
    end: datetime,
    store_ids: Iterable[int] | None = None,
    product_ids: Iterable[int] | None = None,
    change_types: Iterable[str] | None = None,
) -> list[dict]:
    """
    Movement per (product, store) over [start, end].

    - received: PURCHASE and RETURN increases
    - sold: SALE decreases
    - transferred_out / transferred_in: TRANSFER_OUT / TRANSFER_IN
    - adjusted: signed sum of ADJUSTMENT and DAMAGE
    - opening_stock: previous_quantity of the first entry in range
    - closing_stock: new_quantity of the last entry in range
    """
    _check_range(start, end)
    entries = uow.ledger.search(
        store_ids=store_ids,
        product_ids=product_ids,
        start=start,
        end=end,
        change_types=_check_change_types(change_types),
    ).all()

    grouped: dict[tuple[int, int], dict] = {}
    for entry in entries:
        record = entry.inventory
        key = (record.product_id, record.store_id)
        group = grouped.get(key)
        if group is None:
            group = grouped[key] = {
                "product_id": record.product_id,
                "product_name": record.product.name,
                "store_id": record.store_id,
                "store_name": record.store.name,
                "opening_stock": entry.previous_quantity,
                "closing_stock": entry.new_quantity,
                "total_received": 0,
                "total_sold": 0,
                "total_transferred_out": 0,
                "total_transferred_in": 0,
                "total_adjusted": 0,
            }

        change = entry.quantity_change
        if entry.change_type in (CHANGE_PURCHASE, CHANGE_RETURN):
            group["total_received"] += max(0, change)
        elif entry.change_type == CHANGE_SALE:
            group["total_sold"] += abs(min(0, change))
        elif entry.change_type == CHANGE_TRANSFER_OUT:
            group["total_transferred_out"] += abs(min(0, change))
        elif entry.change_type == CHANGE_TRANSFER_IN:
            group["total_transferred_in"] += max(0, change)
        elif entry.change_type in (CHANGE_ADJUSTMENT, CHANGE_DAMAGE):
            group["total_adjusted"] += change

        # Entries arrive in ledger order; the last one seen closes the period
        group["closing_stock"] = entry.new_quantity

    results = []
    for group in grouped.values():
        group["net_change"] = (
            group["total_received"]
            - group["total_sold"]
            - group["total_transferred_out"]
            + group["total_transferred_in"]
            + group["total_adjusted"]
        )
        results.append(group)
    return sorted(results, key=lambda g: (g["store_id"], g["product_id"]))


def get_inventory_change_summary(uow: UnitOfWork, inventory_id: int, start: datetime, end: datetime) -> dict:
    _check_range(start, end)
    record = uow.inventory.require(inventory_id)
    entries = uow.ledger.search(inventory_id=inventory_id, start=start, end=end).all()

    by_type = {change_type: 0 for change_type in CHANGE_TYPES}
    increase = 0
    decrease = 0
    for entry in entries:
        by_type[entry.change_type] += entry.quantity_change
        if entry.quantity_change > 0:
            increase += entry.quantity_change
        else:
            decrease += abs(entry.quantity_change)

    net = increase - decrease
    return {
        "inventory": record.to_dict(),
        "summary": {
            "period_start": to_utc_z(start),
            "period_end": to_utc_z(end),
            "total_changes": len(entries),
            "total_increase": increase,
            "total_decrease": decrease,
            "net_change": net,
            "start_quantity": entries[0].previous_quantity if entries else record.quantity - net,
            "end_quantity": entries[-1].new_quantity if entries else record.quantity,
        },
        "changes_by_type": by_type,
    }


def get_inventory_history(
    uow: UnitOfWork,
    *,
    inventory_id: int | None = None,
    page: int = 1,
    limit: int = 50,
    start: datetime | None = None,
    end: datetime | None = None,
    change_types: Iterable[str] | None = None,
) -> dict:
    """Newest-first page of ledger entries."""
    _check_range(start, end)
    if inventory_id is not None:
        uow.inventory.require(inventory_id)
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    query = uow.ledger.search(
        inventory_id=inventory_id,
        start=start,
        end=end,
        change_types=_check_change_types(change_types),
        newest_first=True,
    )
    total = query.count()
    entries = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "history": [_describe(e) for e in entries],
        "total": total,
        "page": page,
        "total_pages": (total + limit - 1) // limit,
    }


def get_audit_trail_by_reference(uow: UnitOfWork, reference_type: str, reference_id: str) -> list[dict]:
    """Every entry describing one logical event, oldest first."""
    if not reference_type or reference_id in (None, ""):
        raise ValidationError("reference_type and reference_id are required")
    return [_describe(e) for e in uow.ledger.by_reference(reference_type, str(reference_id))]


def export_inventory_history(
    uow: UnitOfWork,
    *,
    inventory_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = EXPORT_ROW_LIMIT,
) -> list[dict]:
    """Flat rows for spreadsheets, newest first, capped at EXPORT_ROW_LIMIT."""
    _check_range(start, end)
    query = uow.ledger.search(inventory_id=inventory_id, start=start, end=end, newest_first=True)
    entries = query.limit(max(1, min(limit, EXPORT_ROW_LIMIT))).all()

    rows = []
    for entry in entries:
        record = entry.inventory
        actor = entry.actor
        rows.append({
            "timestamp": to_utc_z(entry.created_at),
            "product_id": record.product_id,
            "product_name": record.product.name,
            "store_id": record.store_id,
            "store_name": record.store.name,
            "change_type": entry.change_type,
            "quantity_change": entry.quantity_change,
            "previous_quantity": entry.previous_quantity,
            "new_quantity": entry.new_quantity,
            "reference_id": entry.reference_id,
            "reference_type": entry.reference_type,
            "notes": entry.notes,
            "performed_by": f"{actor.first_name} {actor.last_name}".strip() if actor else None,
            "performer_email": actor.email if actor else None,
        })
    return rows


def rows_to_csv(rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()
