from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_CASHIER = "CASHIER"
ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)

# Roles allowed to void any sale regardless of age or store
PRIVILEGED_ROLES = frozenset({ROLE_ADMIN, ROLE_MANAGER})


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(120), nullable=False, default="")
    last_name = db.Column(db.String(120), nullable=False, default="")
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER, index=True)

    # Home store; None for org-level admins
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "store_id": self.store_id,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "last_login_at": to_utc_z(self.last_login_at),
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Short-lived access token. Only the SHA-256 hash is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User")


class RefreshToken(db.Model):
    """
    Single-use refresh token.

    LIFECYCLE:
    - ACTIVE: not revoked, not expired
    - ROTATED: revoked and replaced_by_id points at the successor
    - REVOKED: revoked without a successor (logout, security response)
    Both ROTATED and REVOKED are terminal.
    """
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        db.Index("ix_refresh_tokens_user_revoked", "user_id", "revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    # Forward link to the token issued when this one was consumed
    replaced_by_id = db.Column(db.Integer, db.ForeignKey("refresh_tokens.id"), nullable=True)

    user = db.relationship("User")

    @property
    def state(self) -> str:
        if self.revoked:
            return "ROTATED" if self.replaced_by_id is not None else "REVOKED"
        return "ACTIVE"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "state": self.state,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "revoked_at": to_utc_z(self.revoked_at),
            "revoked_reason": self.revoked_reason,
            "replaced_by_id": self.replaced_by_id,
        }
