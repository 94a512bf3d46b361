# backend/stockledger/routes/transfers.py
"""
Inter-store transfer API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role, request_uow
from ..errors import StockLedgerError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import transfer_service
from .common import error_response, int_arg, internal_error, json_body, require_field


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _request_fields(data: dict) -> dict:
    return {
        "product_id": require_field(data, "product_id"),
        "from_store_id": require_field(data, "from_store_id"),
        "to_store_id": require_field(data, "to_store_id"),
        "quantity": require_field(data, "quantity"),
        "reason": data.get("reason"),
        "notes": data.get("notes"),
    }


@transfers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def record_transfer():
    """
    Move stock between stores in one step.

    Request body:
    {
        "product_id": int,
        "from_store_id": int,
        "to_store_id": int,
        "quantity": int,
        "reason": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transfer completed
        400: Invalid request
        404: Unknown store, product or source inventory
        409: Same store or insufficient stock
    """
    try:
        transfer = transfer_service.record_transfer(
            request_uow(), actor=g.actor, **_request_fields(json_body())
        )
        return jsonify(transfer.to_dict()), 201
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("record transfer")


@transfers_bp.post("/initiate")
@require_auth
def initiate_transfer():
    try:
        transfer = transfer_service.initiate_transfer(
            request_uow(), actor=g.actor, **_request_fields(json_body())
        )
        return jsonify(transfer.to_dict()), 201
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("initiate transfer")


@transfers_bp.post("/<int:transfer_id>/complete")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def complete_transfer(transfer_id: int):
    try:
        transfer = transfer_service.complete_transfer(request_uow(), transfer_id=transfer_id, actor=g.actor)
        return jsonify(transfer.to_dict()), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("complete transfer")


@transfers_bp.post("/<int:transfer_id>/cancel")
@require_auth
def cancel_transfer(transfer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        transfer = transfer_service.cancel_transfer(
            request_uow(), transfer_id=transfer_id, actor=g.actor, reason=data.get("reason")
        )
        return jsonify(transfer.to_dict()), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel transfer")


@transfers_bp.post("/<int:transfer_id>/reject")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def reject_transfer(transfer_id: int):
    try:
        data = json_body()
        transfer = transfer_service.reject_transfer(
            request_uow(), transfer_id=transfer_id, actor=g.actor, reason=data.get("reason")
        )
        return jsonify(transfer.to_dict()), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("reject transfer")


@transfers_bp.get("/<int:transfer_id>")
@require_auth
def get_transfer(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer(request_uow(), transfer_id).to_dict()), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("load transfer")


@transfers_bp.get("")
@require_auth
def list_transfers():
    try:
        transfers = transfer_service.list_transfers(
            request_uow(),
            store_id=int_arg("store_id"),
            status=request.args.get("status") or None,
            limit=int_arg("limit", 200),
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("list transfers")
