# Overview: Request decorators and per-request helpers for API routes.

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .services import session_service
from .services.unit_of_work import UnitOfWork


def request_uow() -> UnitOfWork:
    """The unit of work bound to this request's database session."""
    if "uow" not in g:
        g.uow = UnitOfWork(db.session)
    return g.uow


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid access token.

    Sets g.actor (ActorContext) and g.access_token. Returns 401 when the
    header is missing or the token is unknown, expired, revoked or belongs
    to a disabled user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "AUTHENTICATION_REQUIRED", "message": "Authentication required"}), 401

        actor = session_service.validate_session(request_uow(), token)
        if actor is None:
            return jsonify({"error": "INVALID_TOKEN", "message": "Invalid or expired token"}), 401

        g.actor = actor
        g.access_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require g.actor to hold one of roles. Use below @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "AUTHENTICATION_REQUIRED", "message": "Authentication required"}), 401
            if actor.role not in roles:
                return jsonify({
                    "error": "AUTHORIZATION_ERROR",
                    "message": "Insufficient role",
                    "details": {"required_roles": list(roles), "role": actor.role},
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
