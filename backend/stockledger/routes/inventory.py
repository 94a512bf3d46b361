# backend/stockledger/routes/inventory.py
"""
Inventory record API routes: allocation, adjustments, thresholds, history.
"""
from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_role, request_uow
from ..errors import StockLedgerError, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import inventory_service, reporting_service
from .common import (
    date_arg,
    error_response,
    int_arg,
    internal_error,
    json_body,
    require_field,
    str_list_arg,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_inventory():
    try:
        records = request_uow().inventory.list(
            store_id=int_arg("store_id"),
            product_id=int_arg("product_id"),
        )
        return jsonify({"inventory": [r.to_dict() for r in records]}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("list inventory")


@inventory_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def allocate_inventory():
    """
    Create the inventory record for a product in a store.

    Request body:
    {
        "product_id": int,
        "store_id": int,
        "initial_quantity": int (optional, default 0),
        "reorder_level": int (optional, default 10),
        "optimal_level": int (optional, default 50),
        "store_price_cents": int (optional)
    }
    """
    try:
        data = json_body()
        record = inventory_service.allocate_inventory(
            request_uow(),
            product_id=require_field(data, "product_id"),
            store_id=require_field(data, "store_id"),
            actor_id=g.actor.user_id,
            initial_quantity=data.get("initial_quantity", 0),
            reorder_level=data.get("reorder_level", inventory_service.DEFAULT_REORDER_LEVEL),
            optimal_level=data.get("optimal_level", inventory_service.DEFAULT_OPTIMAL_LEVEL),
            store_price_cents=data.get("store_price_cents"),
        )
        return jsonify(record.to_dict()), 201
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("allocate inventory")


@inventory_bp.get("/<int:inventory_id>")
@require_auth
def get_inventory(inventory_id: int):
    try:
        record = request_uow().inventory.require(inventory_id)
        return jsonify({**record.to_dict(), "needs_restock": record.needs_restock}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("load inventory")


@inventory_bp.post("/<int:inventory_id>/adjust")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def adjust_inventory(inventory_id: int):
    """
    Manual stock change.

    Request body:
    {
        "delta": int (non-zero),
        "change_type": "PURCHASE" | "RETURN" | "DAMAGE" | "ADJUSTMENT",
        "notes": str (optional),
        "reference_id": str (optional)
    }
    """
    try:
        data = json_body()
        record, entry = inventory_service.adjust_inventory(
            request_uow(),
            inventory_id=inventory_id,
            delta=require_field(data, "delta"),
            change_type=require_field(data, "change_type"),
            actor_id=g.actor.user_id,
            notes=data.get("notes"),
            reference_id=data.get("reference_id"),
        )
        return jsonify({"inventory": record.to_dict(), "history_entry": entry.to_dict()}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("adjust inventory")


@inventory_bp.post("/mutate")
@require_auth
@require_role(ROLE_ADMIN)
def mutate_stock():
    try:
        data = json_body()
        result = inventory_service.mutate_stock(
            request_uow(),
            product_id=require_field(data, "product_id"),
            store_id=require_field(data, "store_id"),
            quantity_delta=require_field(data, "quantity_delta"),
            change_type=require_field(data, "change_type"),
            actor_id=g.actor.user_id,
            reference_id=data.get("reference_id"),
            notes=data.get("notes"),
        )
        return jsonify({
            "inventory": result.record.to_dict(),
            "history_entry_id": result.history_entry_id,
        }), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("mutate stock")


@inventory_bp.post("/receive")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def receive_shipment():
    """
    Book a delivery into one store.

    Request body:
    {
        "store_id": int,
        "shipment_id": str (optional),
        "items": [{"product_id": int, "quantity": int}, ...]
    }
    """
    try:
        data = json_body()
        entries = inventory_service.receive_shipment(
            request_uow(),
            store_id=require_field(data, "store_id"),
            items=data.get("items") or [],
            actor_id=g.actor.user_id,
            shipment_id=data.get("shipment_id"),
        )
        return jsonify({"history_entries": [e.to_dict() for e in entries]}), 201
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("receive shipment")


@inventory_bp.put("/<int:inventory_id>/levels")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def set_reorder_levels(inventory_id: int):
    try:
        data = json_body()
        record = inventory_service.set_reorder_levels(
            request_uow(),
            inventory_id=inventory_id,
            reorder_level=require_field(data, "reorder_level"),
            optimal_level=require_field(data, "optimal_level"),
        )
        return jsonify(record.to_dict()), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("set reorder levels")


@inventory_bp.get("/<int:inventory_id>/history")
@require_auth
def inventory_history(inventory_id: int):
    """
    Paginated ledger for one record, newest first.

    Query params: page, limit, start, end (ISO-8601), change_type (repeatable or comma separated)
    """
    try:
        result = reporting_service.get_inventory_history(
            request_uow(),
            inventory_id=inventory_id,
            page=int_arg("page", 1),
            limit=int_arg("limit", 50),
            start=date_arg("start"),
            end=date_arg("end"),
            change_types=str_list_arg("change_type"),
        )
        return jsonify(result), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("load inventory history")


@inventory_bp.get("/restock")
@require_auth
def restock_candidates():
    try:
        candidates = inventory_service.get_restock_candidates(request_uow(), store_id=int_arg("store_id"))
        return jsonify({"items": candidates, "count": len(candidates)}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("list restock candidates")


@inventory_bp.get("/availability")
@require_auth
def check_availability():
    """Query params: product_id, store_id (required), quantity (default 1)"""
    try:
        product_id = int_arg("product_id")
        store_id = int_arg("store_id")
        if product_id is None or store_id is None:
            raise ValidationError("product_id and store_id are required")
        result = inventory_service.check_availability(
            request_uow(),
            product_id=product_id,
            store_id=store_id,
            quantity=int_arg("quantity", 1),
        )
        return jsonify(result), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("check availability")


@inventory_bp.get("/products/<int:product_id>")
@require_auth
def product_across_stores(product_id: int):
    try:
        return jsonify(inventory_service.get_product_inventory_across_stores(request_uow(), product_id)), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("load product inventory")
