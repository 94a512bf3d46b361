# Overview: Reconciliation engine; replays the ledger and compares it with live quantities.

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict

from ..errors import IntegrityError
from .unit_of_work import UnitOfWork
"""
Reconciliation Invariants (authoritative)

- Pure read: nothing is written, nothing is corrected. A discrepancy is a
  diagnostic for an operator, never an input to an automatic fix.
- Entries are replayed in (created_at, id) ascending order.
- calculated = first.previous_quantity + sum(quantity_change); 0 when a record
  has no entries.
- discrepancy = quantity - calculated; is_valid iff discrepancy == 0.
- chain_breaks counts entries whose previous_quantity differs from the prior
  entry's new_quantity. It does not affect is_valid.
"""

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    inventory_id: int
    product_id: int
    product_name: str
    store_id: int
    store_name: str
    current_quantity: int
    calculated_quantity: int
    discrepancy: int
    is_valid: bool
    entry_count: int
    chain_breaks: int

    def to_dict(self) -> dict:
        return asdict(self)


def replay(entries) -> tuple[int, int]:
    """Return (calculated_quantity, chain_breaks) for entries already in ledger order."""
    if not entries:
        return 0, 0

    calculated = entries[0].previous_quantity
    chain_breaks = 0
    prior_new = None
    for entry in entries:
        if prior_new is not None and entry.previous_quantity != prior_new:
            chain_breaks += 1
        calculated += entry.quantity_change
        prior_new = entry.new_quantity
    return calculated, chain_breaks


def validate_integrity(uow: UnitOfWork, inventory_id: int | None = None) -> list[ReconciliationReport]:
    """
    One report per inventory record (or only inventory_id).

    Raises InventoryNotFoundError for an unknown inventory_id.
    """
    if inventory_id is not None:
        records = [uow.inventory.require(inventory_id)]
    else:
        records = uow.inventory.list()

    reports = []
    for record in records:
        entries = uow.ledger.entries_for(record.id)
        calculated, chain_breaks = replay(entries)
        discrepancy = record.quantity - calculated

        report = ReconciliationReport(
            inventory_id=record.id,
            product_id=record.product_id,
            product_name=record.product.name,
            store_id=record.store_id,
            store_name=record.store.name,
            current_quantity=record.quantity,
            calculated_quantity=calculated,
            discrepancy=discrepancy,
            is_valid=discrepancy == 0,
            entry_count=len(entries),
            chain_breaks=chain_breaks,
        )
        if not report.is_valid or chain_breaks:
            logger.warning(
                "Inventory %s drift: quantity=%s calculated=%s discrepancy=%s chain_breaks=%s",
                record.id, record.quantity, calculated, discrepancy, chain_breaks,
            )
        reports.append(report)
    return reports


def assert_integrity(uow: UnitOfWork, inventory_id: int | None = None) -> list[ReconciliationReport]:
    """Like validate_integrity, but raises IntegrityError listing every invalid record."""
    reports = validate_integrity(uow, inventory_id)
    invalid = [r for r in reports if not r.is_valid]
    if invalid:
        raise IntegrityError(
            f"{len(invalid)} inventory record(s) do not match their ledger",
            {"invalid": [r.to_dict() for r in invalid]},
        )
    return reports


def summarize(reports: list[ReconciliationReport]) -> dict:
    invalid = [r for r in reports if not r.is_valid]
    return {
        "checked": len(reports),
        "valid": len(reports) - len(invalid),
        "invalid": len(invalid),
        "total_discrepancy": sum(abs(r.discrepancy) for r in invalid),
        "records_with_chain_breaks": sum(1 for r in reports if r.chain_breaks),
    }
