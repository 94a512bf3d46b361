# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockledger/routes/auth.py
"""
Authentication API routes

- POST /login issues an access token and a refresh token
- POST /refresh exchanges a refresh token for a new pair (single use)
- POST /logout revokes the current access session and, when given, the
  refresh token chain
"""

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role, request_uow
from ..errors import StockLedgerError
from ..models.auth import ROLE_ADMIN
from ..services import auth_service, token_service
from .common import error_response, internal_error, json_body, require_field


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _access_ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("ACCESS_TOKEN_TTL_HOURS", 24))


def _refresh_ttl() -> timedelta:
    return timedelta(days=current_app.config.get("REFRESH_TOKEN_TTL_DAYS", 7))


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue tokens.

    Request body:
    {
        "email": str,
        "password": str
    }

    Returns user info, an access token (Authorization: Bearer) and a
    refresh token for POST /api/auth/refresh.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = auth_service.authenticate(
            request_uow(),
            data.get("email"),
            data.get("password"),
            access_ttl=_access_ttl(),
            refresh_ttl=_refresh_ttl(),
        )
        return jsonify({
            "user": result.user.to_dict(),
            "token": result.access_token,
            "refresh_token": result.refresh_token,
            "expires_in": int(_access_ttl().total_seconds()),
            "message": "Login successful",
        }), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("login user")


@auth_bp.post("/refresh")
def refresh_route():
    try:
        data = json_body()
        rotation = token_service.consume_refresh_token(
            request_uow(),
            require_field(data, "refresh_token"),
            refresh_ttl=_refresh_ttl(),
            access_ttl=_access_ttl(),
        )
        actor = rotation.user_context
        return jsonify({
            "token": rotation.access_token,
            "refresh_token": rotation.refresh_token,
            "expires_in": int(_access_ttl().total_seconds()),
            "user": {"id": actor.user_id, "role": actor.role, "store_id": actor.store_id},
        }), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("refresh token")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        data = request.get_json(silent=True) or {}
        token_service.logout(
            request_uow(),
            user_id=g.actor.user_id,
            access_token=g.access_token,
            refresh_token=data.get("refresh_token"),
        )

        return jsonify({"message": "Logged out"}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("logout user")


@auth_bp.get("/me")
@require_auth
def me_route():
    try:
        user = request_uow().catalog.get_user(g.actor.user_id)
        return jsonify({"user": user.to_dict()}), 200
    except Exception:
        return internal_error("load current user")


@auth_bp.get("/sessions")
@require_auth
def sessions_route():
    try:
        return jsonify({"sessions": token_service.list_user_tokens(request_uow(), g.actor.user_id)}), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("list sessions")


@auth_bp.post("/users/<int:user_id>/revoke-all")
@require_auth
@require_role(ROLE_ADMIN)
def revoke_all_route(user_id: int):
    try:
        result = token_service.revoke_all_user_tokens(request_uow(), user_id, reason="admin_revoke")
        return jsonify(result), 200
    except StockLedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("revoke user tokens")
