# backend/stockledger/routes/sales.py
"""
Sales API routes: record, fetch, void.
"""
from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth, require_role, request_uow
from ..errors import StockLedgerError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..models.sales import PAYMENT_CASH
from ..services import sales_service
from .common import date_arg, error_response, int_arg, internal_error, json_body, require_field


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _void_window() -> timedelta:
    return timedelta(hours=current_app.config.get("VOID_WINDOW_HOURS", 24))


@sales_bp.post("")
@require_auth
def record_sale():
    """
    Record a sale.

    Request body:
    {
        "store_id": int,
        "items": [{"product_id": int, "quantity": int, "price_cents": int (optional)}, ...],
        "payment_method": "CASH" | "CARD" | "MOBILE" (optional, default CASH),
        "customer": {"name": str, "email": str, "phone": str} (optional)
    }

    Returns:
        201: Sale recorded
        400: Invalid request
        403: Store outside the cashier's scope
        409: Insufficient stock (details.items lists every short product)
    """
    try:
        data = json_body()
        sale = sales_service.record_sale(
            request_uow(),
            store_id=require_field(data, "store_id"),
            actor=g.actor,
            items=data.get("items"),
            payment_method=data.get("payment_method") or PAYMENT_CASH,
            customer=data.get("customer"),
        )
        return jsonify(sale.to_dict()), 201
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("record sale")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    try:
        sale = sales_service.get_sale(request_uow(), sale_id)
        data = sale.to_dict()
        if sale.voided_record is not None:
            data["void"] = sale.voided_record.to_dict()
        return jsonify(data), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("load sale")


@sales_bp.get("/<int:sale_id>/void-eligibility")
@require_auth
def void_eligibility(sale_id: int):
    try:
        result = sales_service.check_void_eligibility(
            request_uow(), sale_id=sale_id, actor=g.actor, window=_void_window()
        )
        return jsonify(result), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("check void eligibility")


@sales_bp.post("/<int:sale_id>/void")
@require_auth
def void_sale(sale_id: int):
    """
    Void a sale and restore its stock.

    Request body:
    {
        "reason": str (at least 10 characters)
    }
    """
    try:
        data = json_body()
        sale = sales_service.void_sale(
            request_uow(),
            sale_id=sale_id,
            actor=g.actor,
            reason=data.get("reason"),
            window=_void_window(),
        )
        return jsonify(sale.to_dict()), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("void sale")


@sales_bp.get("/voided")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_voided_sales():
    try:
        result = sales_service.list_voided_sales(
            request_uow(),
            store_id=int_arg("store_id"),
            actor_id=int_arg("actor_id"),
            start=date_arg("start"),
            end=date_arg("end"),
            page=int_arg("page", 1),
            limit=int_arg("limit", 50),
        )
        return jsonify(result), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("list voided sales")
