# backend/stockledger/routes/reports.py
"""
Reporting API routes over the inventory ledger (read-only).
"""
from flask import Blueprint, Response, jsonify, request

from ..decorators import require_auth, require_role, request_uow
from ..errors import StockLedgerError, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import reconciliation_service, reporting_service
from .common import date_arg, error_response, int_arg, int_list_arg, internal_error, str_list_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-movement")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def stock_movement():
    """
    Movement per product and store over a period.

    Query params:
        start, end: ISO-8601 (required)
        store_id, product_id, change_type: repeatable or comma separated
    """
    try:
        start = date_arg("start")
        end = date_arg("end")
        if start is None or end is None:
            raise ValidationError("start and end are required")
        rows = reporting_service.get_stock_movement_report(
            request_uow(),
            start=start,
            end=end,
            store_ids=int_list_arg("store_id"),
            product_ids=int_list_arg("product_id"),
            change_types=str_list_arg("change_type"),
        )
        return jsonify({"rows": rows, "count": len(rows)}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("build stock movement report")


@reports_bp.get("/inventory/<int:inventory_id>/summary")
@require_auth
def inventory_summary(inventory_id: int):
    try:
        start = date_arg("start")
        end = date_arg("end")
        if start is None or end is None:
            raise ValidationError("start and end are required")
        return jsonify(reporting_service.get_inventory_change_summary(request_uow(), inventory_id, start, end)), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("build inventory summary")


@reports_bp.get("/reconciliation")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def reconciliation():
    try:
        reports = reconciliation_service.validate_integrity(request_uow(), int_arg("inventory_id"))
        return jsonify({
            "summary": reconciliation_service.summarize(reports),
            "records": [r.to_dict() for r in reports],
        }), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("reconcile inventory")


@reports_bp.get("/audit-trail")
@require_auth
def audit_trail():
    try:
        entries = reporting_service.get_audit_trail_by_reference(
            request_uow(),
            request.args.get("reference_type"),
            request.args.get("reference_id"),
        )
        return jsonify({"entries": entries}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("load audit trail")


@reports_bp.get("/inventory-history/export")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def export_history():
    """Flat ledger export. ?format=csv returns text/csv, JSON otherwise."""
    try:
        rows = reporting_service.export_inventory_history(
            request_uow(),
            inventory_id=int_arg("inventory_id"),
            start=date_arg("start"),
            end=date_arg("end"),
        )
        if request.args.get("format") == "csv":
            return Response(
                reporting_service.rows_to_csv(rows),
                mimetype="text/csv",
                headers={"Content-Disposition": "attachment; filename=inventory_history.csv"},
            )
        return jsonify({"rows": rows, "count": len(rows)}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("export inventory history")
