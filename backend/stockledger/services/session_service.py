# Overview: Service-layer operations for access sessions; hashed opaque tokens with absolute expiry.

"""
Access Session Management

- Cryptographically secure random tokens (32 bytes, hex encoded)
- Only the SHA-256 hash is stored; the plaintext goes to the client once
- Absolute timeout (ACCESS_TOKEN_TTL, overridable per call from config)
- Revocable on logout or when the refresh chain is revoked
- validate_session() resolves a token to an ActorContext, the identity every
  Transaction Coordinator operation receives
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..errors import InvalidTokenError, NotFoundError
from ..models import SessionToken
from ..models.auth import PRIVILEGED_ROLES
from ..time_utils import utcnow
from .unit_of_work import UnitOfWork


ACCESS_TOKEN_TTL = timedelta(hours=24)


@dataclass(frozen=True)
class ActorContext:
    """Authenticated identity passed into service operations."""
    user_id: int
    role: str
    store_id: int | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def actor_for(user) -> ActorContext:
    return ActorContext(user_id=user.id, role=user.role, store_id=user.store_id)


def _create_session_inner(uow: UnitOfWork, user, ttl: timedelta | None = None) -> tuple[SessionToken, str]:
    plaintext = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext),
        created_at=now,
        last_used_at=now,
        expires_at=now + (ttl or ACCESS_TOKEN_TTL),
        is_revoked=False,
    )
    uow.tokens.add(session)
    return session, plaintext


def create_session(uow: UnitOfWork, user_id: int, *, ttl: timedelta | None = None) -> tuple[SessionToken, str]:
    """
    Create an access session for user_id.

    Returns (session_record, plaintext_token).
    """
    with uow:
        user = uow.catalog.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
        if not user.is_active:
            raise InvalidTokenError("User account is disabled")
        session, plaintext = _create_session_inner(uow, user, ttl)
        uow.commit()
        return session, plaintext


def validate_session(uow: UnitOfWork, token: str | None) -> ActorContext | None:
    """
    Return the ActorContext for a live token, or None.

    None covers unknown, expired and revoked tokens as well as disabled users;
    callers answer 401 without learning which.
    """
    if not token:
        return None

    session = uow.tokens.find_session_by_hash(hash_token(token))
    if session is None or session.is_revoked:
        return None

    now = utcnow()
    if now >= session.expires_at:
        return None

    user = session.user
    if user is None or not user.is_active:
        return None

    actor = actor_for(user)
    session.last_used_at = now
    uow.commit()
    return actor


def _revoke_session_inner(uow: UnitOfWork, token: str, reason: str) -> bool:
    session = uow.tokens.find_session_by_hash(hash_token(token))
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    return True


def revoke_session(uow: UnitOfWork, token: str, reason: str = "logout") -> bool:
    """Revoke an access session. Returns False when the token is unknown or already revoked."""
    with uow:
        revoked = _revoke_session_inner(uow, token, reason)
        if revoked:
            uow.commit()
        return revoked


def revoke_user_sessions(uow: UnitOfWork, user_id: int, reason: str) -> int:
    """Revoke every live access session of a user inside the caller's unit. No commit."""
    now = utcnow()
    sessions = uow.tokens.live_sessions_for_user(user_id)
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    return len(sessions)
