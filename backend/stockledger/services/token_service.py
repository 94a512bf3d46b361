# Overview: Refresh-token ledger; single-use tokens rotated on every consumption.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from ..errors import ConflictError, InvalidTokenError, NotFoundError
from ..models import RefreshToken, SessionToken
from ..time_utils import utcnow
from .session_service import (
    ActorContext,
    actor_for,
    generate_token,
    hash_token,
    _create_session_inner,
    _revoke_session_inner,
    revoke_user_sessions,
)
from .unit_of_work import UnitOfWork
"""
Refresh Token Invariants (authoritative)

- A refresh token is usable at most once. Consuming it revokes it and issues a
  successor in the same unit; the old row points forward via replaced_by_id.
- The revoke is a compare-and-set UPDATE (WHERE revoked = false). Two
  concurrent consumers of one token cannot both succeed: the loser's UPDATE
  matches no row and it gets InvalidTokenError.
- ROTATED and REVOKED are terminal. Presenting a spent token never revives it.
- Revoking a token revokes every token issued after it in its chain.
"""

logger = logging.getLogger(__name__)

REFRESH_TOKEN_TTL = timedelta(days=7)
EXPIRED_TOKEN_RETENTION = timedelta(days=7)


@dataclass
class TokenRotation:
    refresh_token: str
    access_token: str
    user_context: ActorContext
    refresh_record: RefreshToken
    access_record: SessionToken


def _issue_inner(uow: UnitOfWork, user_id: int, ttl: timedelta | None = None) -> tuple[RefreshToken, str]:
    plaintext = generate_token()
    now = utcnow()
    record = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(plaintext),
        created_at=now,
        expires_at=now + (ttl or REFRESH_TOKEN_TTL),
        revoked=False,
    )
    uow.tokens.add(record)
    return record, plaintext


def issue_refresh_token(uow: UnitOfWork, user_id: int, *, ttl: timedelta | None = None) -> tuple[RefreshToken, str]:
    """Issue a fresh refresh token. Returns (record, plaintext)."""
    with uow:
        if uow.catalog.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
        record, plaintext = _issue_inner(uow, user_id, ttl)
        uow.commit()
        return record, plaintext


def consume_refresh_token(
    uow: UnitOfWork,
    token: str | None,
    *,
    refresh_ttl: timedelta | None = None,
    access_ttl: timedelta | None = None,
) -> TokenRotation:
    """
    Exchange a refresh token for a new refresh token and a new access token.

    Raises InvalidTokenError for unknown, expired, already used or revoked
    tokens and for disabled or unverified accounts.
    """
    if not token:
        raise InvalidTokenError("Refresh token is required")

    with uow:
        record = uow.tokens.find_refresh_by_hash(hash_token(token))
        if record is None:
            raise InvalidTokenError("Token is invalid, revoked, or expired")

        if record.revoked:
            logger.warning(
                "Refresh token %s presented after revocation (state=%s, user=%s)",
                record.id, record.state, record.user_id,
            )
            raise InvalidTokenError("Token is invalid, revoked, or expired")

        now = utcnow()
        if record.expires_at <= now:
            raise InvalidTokenError("Token is invalid, revoked, or expired")

        user = record.user
        if user is None or not user.is_active:
            raise InvalidTokenError("User account is deactivated")
        if not user.is_verified:
            raise InvalidTokenError("User account is not verified")

        if not uow.tokens.revoke_refresh_if_active(record.id, revoked_at=now, reason="rotated"):
            logger.warning("Refresh token %s consumed concurrently; rejecting replay", record.id)
            raise InvalidTokenError("Token is invalid, revoked, or expired")

        successor, refresh_plain = _issue_inner(uow, user.id, refresh_ttl)
        uow.tokens.link_successor(record.id, successor.id)
        access_record, access_plain = _create_session_inner(uow, user, access_ttl)
        context = actor_for(user)

        uow.commit()
        return TokenRotation(
            refresh_token=refresh_plain,
            access_token=access_plain,
            user_context=context,
            refresh_record=successor,
            access_record=access_record,
        )


def _revoke_chain(uow: UnitOfWork, record: RefreshToken, reason: str) -> list[int]:
    """Follow replaced_by_id links from record, revoking every live token. No commit."""
    now = utcnow()
    revoked = []
    seen = set()
    current = record
    while current is not None and current.id not in seen:
        seen.add(current.id)
        if uow.tokens.revoke_refresh_if_active(current.id, revoked_at=now, reason=reason):
            revoked.append(current.id)
        next_id = current.replaced_by_id
        current = uow.tokens.get_refresh(next_id) if next_id is not None else None
    return revoked


def revoke_refresh_token(uow: UnitOfWork, token_id: int, reason: str = "revoked") -> list[int]:
    """
    Revoke a token and every successor issued from it.

    Returns the ids revoked by this call. Raises NotFoundError for unknown ids
    and ConflictError when the token itself is already revoked.
    """
    with uow:
        record = uow.tokens.get_refresh(token_id)
        if record is None:
            raise NotFoundError(f"Refresh token {token_id} not found", {"token_id": token_id})
        if record.revoked and record.replaced_by_id is None:
            raise ConflictError("Token is already revoked", {"token_id": token_id})

        revoked = _revoke_chain(uow, record, reason)
        if not revoked:
            raise ConflictError("Token chain is already revoked", {"token_id": token_id})

        uow.commit()
        return revoked


def logout(uow: UnitOfWork, *, user_id: int, access_token: str, refresh_token: str | None = None) -> dict:
    """
    End a login: revoke the access session and, when given, the refresh chain.

    Both are revoked in one unit or neither is. A refresh token belonging to another user, or one
    already revoked, is ignored.
    """
    with uow:
        session_revoked = _revoke_session_inner(uow, access_token, "logout")
        refresh_revoked = []
        if refresh_token:
            record = uow.tokens.find_refresh_by_hash(hash_token(refresh_token))
            if record is not None and record.user_id == user_id:
                refresh_revoked = _revoke_chain(uow, record, "logout")
        uow.commit()
        return {"session_revoked": session_revoked, "refresh_tokens_revoked": refresh_revoked}


def revoke_all_user_tokens(uow: UnitOfWork, user_id: int, reason: str = "revoke_all") -> dict:
    """Revoke every live refresh token and access session of a user."""
    with uow:
        if uow.catalog.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})

        now = utcnow()
        refresh_count = 0
        for record in uow.tokens.active_refresh_for_user(user_id, now):
            if uow.tokens.revoke_refresh_if_active(record.id, revoked_at=now, reason=reason):
                refresh_count += 1
        session_count = revoke_user_sessions(uow, user_id, reason)

        uow.commit()
        return {"refresh_tokens_revoked": refresh_count, "sessions_revoked": session_count}


def list_user_tokens(uow: UnitOfWork, user_id: int) -> list[dict]:
    """Unexpired refresh tokens of a user, newest first, any state."""
    return [t.to_dict() for t in uow.tokens.refresh_for_user(user_id, since=utcnow())]


def cleanup_expired_tokens(uow: UnitOfWork, retention: timedelta | None = None) -> int:
    """Delete refresh tokens that expired more than retention ago. Returns the count."""
    cutoff = utcnow() - (retention if retention is not None else EXPIRED_TOKEN_RETENTION)
    with uow:
        deleted = uow.tokens.delete_refresh_expired_before(cutoff)
        uow.commit()
    logger.info("Deleted %s refresh tokens expired before %s", deleted, cutoff.isoformat())
    return deleted
