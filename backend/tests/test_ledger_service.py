"""
Ledger writer tests.

Verifies:
- Every quantity change appends exactly one entry with correct arithmetic
- Negative results are rejected before anything is written
- Unknown change types are rejected
"""

import pytest

from stockledger.errors import InsufficientStockError, ValidationError
from stockledger.models import InventoryHistoryEntry
from stockledger.services.ledger_service import record_change


def _entries(db_session, record):
    return (
        db_session.query(InventoryHistoryEntry)
        .filter_by(inventory_id=record.id)
        .order_by(InventoryHistoryEntry.id.asc())
        .all()
    )


class TestRecordChange:
    def test_appends_entry_with_before_and_after(self, db_session, uow, tire_stock, admin):
        with uow:
            record = uow.inventory.require(tire_stock.id, lock=True)
            entry = record_change(
                uow,
                record,
                quantity_change=-4,
                change_type="SALE",
                actor_id=admin.id,
                reference_id=99,
                reference_type="SALE",
            )
            uow.commit()

        assert entry.previous_quantity == 10
        assert entry.new_quantity == 6
        assert entry.quantity_change == -4
        assert entry.reference_id == "99"
        assert tire_stock.quantity == 6

        entries = _entries(db_session, tire_stock)
        assert [e.change_type for e in entries] == ["PURCHASE", "SALE"]

    def test_entry_chain_is_contiguous(self, uow, db_session, tire_stock, admin):
        with uow:
            record = uow.inventory.require(tire_stock.id, lock=True)
            for delta in (5, -3, -12):
                record_change(uow, record, quantity_change=delta, change_type="ADJUSTMENT", actor_id=admin.id)
            uow.commit()

        entries = _entries(db_session, tire_stock)
        for prior, current in zip(entries, entries[1:]):
            assert current.previous_quantity == prior.new_quantity
        assert entries[-1].new_quantity == tire_stock.quantity == 0

    def test_negative_result_rejected_without_writes(self, uow, db_session, tire_stock, admin):
        with pytest.raises(InsufficientStockError) as exc_info:
            with uow:
                record = uow.inventory.require(tire_stock.id, lock=True)
                record_change(uow, record, quantity_change=-11, change_type="SALE", actor_id=admin.id)
                uow.commit()

        assert exc_info.value.details["available"] == 10
        assert exc_info.value.details["requested"] == 11
        db_session.expire_all()
        assert tire_stock.quantity == 10
        assert len(_entries(db_session, tire_stock)) == 1

    def test_unknown_change_type_rejected(self, uow, tire_stock, admin):
        with pytest.raises(ValidationError):
            with uow:
                record = uow.inventory.require(tire_stock.id, lock=True)
                record_change(uow, record, quantity_change=1, change_type="GIFT", actor_id=admin.id)

    def test_non_integer_change_rejected(self, uow, tire_stock, admin):
        with pytest.raises(ValidationError):
            with uow:
                record = uow.inventory.require(tire_stock.id, lock=True)
                record_change(uow, record, quantity_change=1.5, change_type="ADJUSTMENT", actor_id=admin.id)

    def test_uncommitted_unit_is_discarded(self, uow, db_session, tire_stock, admin):
        with uow:
            record = uow.inventory.require(tire_stock.id, lock=True)
            record_change(uow, record, quantity_change=3, change_type="PURCHASE", actor_id=admin.id)

        db_session.expire_all()
        assert tire_stock.quantity == 10
        assert len(_entries(db_session, tire_stock)) == 1
