# Overview: Service-layer operations for users and login; bcrypt password hashing.

"""
Authentication Service

- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS)
- Minimum 8 characters, at least one letter and one digit
- A successful login issues one access session and one refresh token in the
  same unit of work (see session_service.py and token_service.py)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta

import bcrypt

from ..errors import ConflictError, InvalidTokenError, ValidationError
from ..models import User
from ..models.auth import ROLES, ROLE_CASHIER
from ..time_utils import utcnow
from .session_service import ActorContext, actor_for, _create_session_inner
from .token_service import _issue_inner
from .unit_of_work import UnitOfWork


BCRYPT_ROUNDS = 12

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class LoginResult:
    user: User
    actor: ActorContext
    access_token: str
    refresh_token: str
    access_expires_at: datetime


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    uow: UnitOfWork,
    *,
    email: str,
    password: str,
    role: str = ROLE_CASHIER,
    store_id: int | None = None,
    first_name: str = "",
    last_name: str = "",
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises ValidationError for a malformed email, unknown role or weak
    password and ConflictError when the email is taken.
    """
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address", {"email": email})
    if role not in ROLES:
        raise ValidationError(f"Unknown role {role!r}", {"role": role, "allowed": list(ROLES)})

    password_hash = hash_password(password)

    with uow:
        if uow.catalog.find_user_by_email(email) is not None:
            raise ConflictError("Email already registered", {"email": email})
        if store_id is not None:
            uow.catalog.require_store(store_id)

        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
            role=role,
            store_id=store_id,
        )
        uow.session.add(user)
        uow.commit()
        return user


def authenticate(
    uow: UnitOfWork,
    email: str,
    password: str,
    *,
    access_ttl: timedelta | None = None,
    refresh_ttl: timedelta | None = None,
) -> LoginResult:
    """
    Verify credentials and issue an access session plus a refresh token.

    Every failure raises the same InvalidTokenError so callers cannot tell an
    unknown email from a wrong password.
    """
    if not email or not password:
        raise InvalidTokenError("Invalid credentials")

    with uow:
        user = uow.catalog.find_user_by_email(email)
        if user is None or not user.is_active:
            raise InvalidTokenError("Invalid credentials")
        if not verify_password(password, user.password_hash):
            raise InvalidTokenError("Invalid credentials")

        user.last_login_at = utcnow()
        access, access_plain = _create_session_inner(uow, user, access_ttl)
        _, refresh_plain = _issue_inner(uow, user.id, refresh_ttl)
        actor = actor_for(user)
        expires_at = access.expires_at

        uow.commit()
        return LoginResult(
            user=user,
            actor=actor,
            access_token=access_plain,
            refresh_token=refresh_plain,
            access_expires_at=expires_at,
        )
