"""
Reconciliation tests: replay the ledger, detect drift, never correct it.
"""

import pytest

from stockledger.errors import IntegrityError, InventoryNotFoundError
from stockledger.models import InventoryHistoryEntry
from stockledger.services import inventory_service, reconciliation_service, sales_service


class TestValidateIntegrity:
    def test_clean_ledger_is_valid(self, uow, tire_stock, bale_stock, tire, main_store, cashier_actor, admin):
        sales_service.record_sale(
            uow, store_id=main_store.id, actor=cashier_actor, items=[{"product_id": tire.id, "quantity": 4}]
        )
        inventory_service.adjust_inventory(
            uow, inventory_id=bale_stock.id, delta=2, change_type="PURCHASE", actor_id=admin.id
        )

        reports = reconciliation_service.validate_integrity(uow)
        by_id = {r.inventory_id: r for r in reports}

        assert by_id[tire_stock.id].calculated_quantity == 6
        assert by_id[tire_stock.id].entry_count == 2
        assert by_id[bale_stock.id].calculated_quantity == 5
        assert all(r.is_valid and r.discrepancy == 0 for r in reports)

    def test_record_without_history_calculates_zero(self, uow, bale, branch_store, admin):
        record = inventory_service.allocate_inventory(
            uow, product_id=bale.id, store_id=branch_store.id, actor_id=admin.id
        )

        [report] = reconciliation_service.validate_integrity(uow, record.id)
        assert report.calculated_quantity == 0
        assert report.entry_count == 0
        assert report.is_valid

    def test_out_of_band_write_is_detected_not_corrected(self, db_session, uow, tire_stock):
        tire_stock.quantity = 13
        db_session.commit()

        [report] = reconciliation_service.validate_integrity(uow, tire_stock.id)
        assert report.is_valid is False
        assert report.current_quantity == 13
        assert report.calculated_quantity == 10
        assert report.discrepancy == 3

        db_session.expire_all()
        assert tire_stock.quantity == 13

    def test_chain_break_counted(self, db_session, uow, tire_stock, admin):
        db_session.add(InventoryHistoryEntry(
            inventory_id=tire_stock.id,
            change_type="ADJUSTMENT",
            quantity_change=1,
            previous_quantity=50,
            new_quantity=51,
            actor_id=admin.id,
        ))
        db_session.commit()

        [report] = reconciliation_service.validate_integrity(uow, tire_stock.id)
        assert report.chain_breaks == 1
        assert report.calculated_quantity == 11
        assert report.discrepancy == -1

    def test_unknown_inventory_id(self, uow):
        with pytest.raises(InventoryNotFoundError):
            reconciliation_service.validate_integrity(uow, 404)

    def test_report_names(self, uow, tire_stock):
        [report] = reconciliation_service.validate_integrity(uow, tire_stock.id)
        data = report.to_dict()
        assert data["product_name"] == "Bridgestone 205/55R16"
        assert data["store_name"] == "Main Street"


class TestAssertIntegrity:
    def test_raises_with_every_invalid_record(self, db_session, uow, tire_stock, bale_stock):
        tire_stock.quantity = 1
        bale_stock.quantity = 0
        db_session.commit()

        with pytest.raises(IntegrityError) as exc_info:
            reconciliation_service.assert_integrity(uow)
        invalid = exc_info.value.details["invalid"]
        assert {r["inventory_id"] for r in invalid} == {tire_stock.id, bale_stock.id}

    def test_passes_on_clean_ledger(self, uow, tire_stock):
        assert len(reconciliation_service.assert_integrity(uow)) == 1

    def test_summarize(self, db_session, uow, tire_stock, bale_stock):
        bale_stock.quantity = 5
        db_session.commit()

        summary = reconciliation_service.summarize(reconciliation_service.validate_integrity(uow))
        assert summary == {
            "checked": 2,
            "valid": 1,
            "invalid": 1,
            "total_discrepancy": 2,
            "records_with_chain_breaks": 0,
        }


def test_replay_empty():
    assert reconciliation_service.replay([]) == (0, 0)
