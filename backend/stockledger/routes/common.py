# Overview: Request parsing and error responses shared by the API blueprints.

from flask import current_app, jsonify, request

from ..errors import StockLedgerError, ValidationError
from ..time_utils import parse_iso_datetime


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_field(data: dict, name: str):
    if data.get(name) is None:
        raise ValidationError(f"Missing required field: {name}", {"field": name})
    return data[name]


def int_arg(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", {name: raw}) from None


def int_list_arg(name: str) -> list[int]:
    values = []
    for raw in request.args.getlist(name):
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                values.append(int(part))
            except ValueError:
                raise ValidationError(f"{name} must be a list of integers", {name: raw}) from None
    return values


def str_list_arg(name: str) -> list[str]:
    return [p.strip() for raw in request.args.getlist(name) for p in raw.split(",") if p.strip()]


def date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", {name: request.args.get(name)}) from None


def error_response(exc: StockLedgerError):
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "INTERNAL_ERROR", "message": f"Failed to {action}"}), 500
