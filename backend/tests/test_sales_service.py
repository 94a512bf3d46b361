"""
Sales and void tests.

Verifies:
- A sale is all-or-nothing; one short item aborts the whole sale
- Each sale line writes one SALE entry linked to the sale
- Voiding restores stock exactly and can only happen once
- Cashiers void only their own store's recent sales
"""

from datetime import timedelta

import pytest

from stockledger.errors import (
    AuthorizationError,
    InsufficientStockError,
    NotFoundError,
    SaleAlreadyVoidedError,
    ValidationError,
    WindowExpiredError,
)
from stockledger.models import InventoryHistoryEntry, Sale, VoidedSale
from stockledger.services import reconciliation_service, sales_service


REASON = "Customer changed their mind"


def _sell(uow, store, actor, *items, **kwargs):
    return sales_service.record_sale(
        uow,
        store_id=store.id,
        actor=actor,
        items=[{"product_id": p.id, "quantity": q} for p, q in items],
        **kwargs,
    )


# =============================================================================
# RECORDING SALES
# =============================================================================


class TestRecordSale:
    def test_decrements_stock_and_prices_lines(self, db_session, uow, tire_stock, bale_stock, tire, bale,
                                               main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 2), (bale, 1))

        assert sale.status == "ACTIVE"
        assert tire_stock.quantity == 8
        assert bale_stock.quantity == 2
        # Tire at base price, bale at the store override
        assert sale.total_cents == 2 * 12000 + 45000
        assert [i.unit_price_cents for i in sale.items] == [12000, 45000]

        entries = db_session.query(InventoryHistoryEntry).filter_by(reference_type="SALE").all()
        assert len(entries) == 2
        assert {e.reference_id for e in entries} == {str(sale.id)}
        assert {i.history_entry_id for i in sale.items} == {e.id for e in entries}

    def test_explicit_price_wins(self, uow, tire_stock, tire, main_store, cashier_actor):
        sale = sales_service.record_sale(
            uow,
            store_id=main_store.id,
            actor=cashier_actor,
            items=[{"product_id": tire.id, "quantity": 1, "price_cents": 9999}],
            payment_method="CARD",
            customer={"name": "T. Moyo", "phone": "+263771000000"},
        )
        assert sale.total_cents == 9999
        assert sale.payment_method == "CARD"
        assert sale.customer_name == "T. Moyo"

    def test_oversell_aborts_whole_sale(self, db_session, uow, tire_stock, bale_stock, tire, bale,
                                        main_store, cashier_actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(uow, main_store, cashier_actor, (tire, 2), (bale, 5))

        details = exc_info.value.details
        assert details["store_id"] == main_store.id
        assert details["items"] == [{
            "product_id": bale.id,
            "product_name": "Mixed Summer Bale",
            "available": 3,
            "requested": 5,
        }]

        db_session.expire_all()
        assert tire_stock.quantity == 10
        assert bale_stock.quantity == 3
        assert db_session.query(Sale).count() == 0
        assert db_session.query(InventoryHistoryEntry).filter_by(change_type="SALE").count() == 0

    def test_repeated_product_lines_are_checked_together(self, uow, tire_stock, tire, main_store, cashier_actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(uow, main_store, cashier_actor, (tire, 6), (tire, 6))
        assert exc_info.value.details["items"][0]["requested"] == 12

    def test_product_not_stocked_counts_as_zero(self, uow, tire, branch_store, branch_cashier_actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(uow, branch_store, branch_cashier_actor, (tire, 1))
        assert exc_info.value.details["items"][0]["available"] == 0

    def test_unknown_product(self, uow, main_store, cashier_actor):
        with pytest.raises(NotFoundError):
            sales_service.record_sale(
                uow, store_id=main_store.id, actor=cashier_actor, items=[{"product_id": 999, "quantity": 1}]
            )

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": 1, "quantity": 0}],
        [{"product_id": 1, "quantity": -2}],
        [{"quantity": 1}],
        [{"product_id": 1, "quantity": 1, "price_cents": -5}],
    ])
    def test_invalid_items(self, uow, main_store, cashier_actor, items):
        with pytest.raises(ValidationError):
            sales_service.record_sale(uow, store_id=main_store.id, actor=cashier_actor, items=items)

    def test_unknown_payment_method(self, uow, tire_stock, tire, main_store, cashier_actor):
        with pytest.raises(ValidationError):
            _sell(uow, main_store, cashier_actor, (tire, 1), payment_method="CHEQUE")

    def test_cashier_cannot_sell_for_other_store(self, uow, tire_stock, tire, main_store, branch_cashier_actor):
        with pytest.raises(AuthorizationError):
            _sell(uow, main_store, branch_cashier_actor, (tire, 1))


# =============================================================================
# VOIDING SALES
# =============================================================================


class TestVoidSale:
    def test_void_restores_stock_and_keeps_ledger_valid(self, db_session, uow, tire_stock, bale_stock, tire,
                                                        bale, main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 3), (bale, 2))
        voided = sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=REASON)

        assert voided.status == "VOIDED"
        assert voided.voided_by_user_id == cashier_actor.user_id
        assert voided.void_reason == REASON
        assert tire_stock.quantity == 10
        assert bale_stock.quantity == 3

        returns = db_session.query(InventoryHistoryEntry).filter_by(reference_type="SALE_VOID").all()
        assert sorted(e.quantity_change for e in returns) == [2, 3]
        assert all(e.change_type == "RETURN" for e in returns)
        assert all(e.notes == f"Sale voided: {REASON}" for e in returns)

        audit = db_session.query(VoidedSale).filter_by(sale_id=sale.id).one()
        assert audit.original_total_cents == sale.total_cents

        reports = reconciliation_service.validate_integrity(uow)
        assert all(r.is_valid for r in reports)

    def test_second_void_fails(self, uow, tire_stock, tire, main_store, cashier_actor, manager_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=REASON)

        with pytest.raises(SaleAlreadyVoidedError):
            sales_service.void_sale(uow, sale_id=sale.id, actor=manager_actor, reason=REASON)
        assert tire_stock.quantity == 10

    @pytest.mark.parametrize("reason", [None, "", "too short", "         x         "])
    def test_reason_must_be_ten_characters(self, uow, tire_stock, tire, main_store, cashier_actor, reason):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        with pytest.raises(ValidationError):
            sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=reason)

    def test_reason_is_stripped(self, uow, tire_stock, tire, main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        voided = sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=f"   {REASON}   ")
        assert voided.void_reason == REASON

    def test_cashier_cannot_void_other_store(self, uow, tire_stock, tire, main_store, cashier_actor,
                                             branch_cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        with pytest.raises(AuthorizationError):
            sales_service.void_sale(uow, sale_id=sale.id, actor=branch_cashier_actor, reason=REASON)

    def test_cashier_window_expired(self, db_session, uow, tire_stock, tire, main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sale.created_at = sale.created_at - timedelta(hours=25)
        db_session.commit()

        with pytest.raises(WindowExpiredError):
            sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=REASON)

    def test_manager_may_void_old_sale(self, db_session, uow, tire_stock, tire, main_store, cashier_actor,
                                       manager_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sale.created_at = sale.created_at - timedelta(days=30)
        db_session.commit()

        voided = sales_service.void_sale(uow, sale_id=sale.id, actor=manager_actor, reason=REASON)
        assert voided.status == "VOIDED"

    def test_custom_window(self, db_session, uow, tire_stock, tire, main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sale.created_at = sale.created_at - timedelta(hours=2)
        db_session.commit()

        with pytest.raises(WindowExpiredError):
            sales_service.void_sale(
                uow, sale_id=sale.id, actor=cashier_actor, reason=REASON, window=timedelta(hours=1)
            )

    def test_unknown_sale(self, uow, cashier_actor):
        with pytest.raises(NotFoundError):
            sales_service.void_sale(uow, sale_id=12345, actor=cashier_actor, reason=REASON)


class TestVoidEligibility:
    def test_eligible(self, uow, tire_stock, tire, main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        result = sales_service.check_void_eligibility(uow, sale_id=sale.id, actor=cashier_actor)
        assert result == {"sale_id": sale.id, "can_be_voided": True, "reasons": [], "warnings": []}

    def test_reasons_listed_without_raising(self, db_session, uow, tire_stock, tire, main_store, cashier_actor,
                                            branch_cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sale.created_at = sale.created_at - timedelta(hours=48)
        db_session.commit()

        result = sales_service.check_void_eligibility(uow, sale_id=sale.id, actor=branch_cashier_actor)
        assert result["can_be_voided"] is False
        assert len(result["reasons"]) == 2

    def test_privileged_actor_gets_warning_for_old_sale(self, db_session, uow, tire_stock, tire, main_store,
                                                        cashier_actor, admin_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sale.created_at = sale.created_at - timedelta(hours=48)
        db_session.commit()

        result = sales_service.check_void_eligibility(uow, sale_id=sale.id, actor=admin_actor)
        assert result["can_be_voided"] is True
        assert result["warnings"] == ["Sale is older than the standard void window"]

    def test_voided_sale_not_eligible(self, uow, tire_stock, tire, main_store, cashier_actor):
        sale = _sell(uow, main_store, cashier_actor, (tire, 1))
        sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=REASON)

        result = sales_service.check_void_eligibility(uow, sale_id=sale.id, actor=cashier_actor)
        assert result["can_be_voided"] is False
        assert result["reasons"] == ["This sale has already been voided"]


class TestListVoidedSales:
    def test_summary_and_filters(self, uow, tire_stock, tire, main_store, cashier_actor, manager_actor):
        first = _sell(uow, main_store, cashier_actor, (tire, 1))
        second = _sell(uow, main_store, cashier_actor, (tire, 2))
        sales_service.void_sale(uow, sale_id=first.id, actor=cashier_actor, reason=REASON)
        sales_service.void_sale(uow, sale_id=second.id, actor=manager_actor, reason=REASON)

        result = sales_service.list_voided_sales(uow, store_id=main_store.id)
        assert result["total"] == 2
        assert result["summary"]["total_amount_voided_cents"] == 3 * 12000
        assert result["summary"]["average_void_amount_cents"] == 18000

        by_manager = sales_service.list_voided_sales(uow, actor_id=manager_actor.user_id)
        assert [v["sale_id"] for v in by_manager["voided_sales"]] == [second.id]

    def test_pagination(self, uow, tire_stock, tire, main_store, cashier_actor):
        for _ in range(3):
            sale = _sell(uow, main_store, cashier_actor, (tire, 1))
            sales_service.void_sale(uow, sale_id=sale.id, actor=cashier_actor, reason=REASON)

        page = sales_service.list_voided_sales(uow, page=2, limit=2)
        assert page["total"] == 3
        assert page["total_pages"] == 2
        assert len(page["voided_sales"]) == 1
