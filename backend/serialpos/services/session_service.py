# Overview: Session tokens and the authenticated caller context.

"""
Session Token Management Service

WHY: API callers are identified by opaque bearer tokens. The token resolves to
an AuthContext (id, name, role) which is all the sale/register services need
to know about the caller.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute expiry (SESSION_TOKEN_TTL_HOURS)
- Revocable
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import as_utc_naive, utcnow


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller: identity plus role."""
    id: int
    name: str
    role: str
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> "AuthContext":
        return cls(id=user.id, name=user.name, role=user.role, is_active=user.is_active)


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    auth: AuthContext


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int, ttl_hours: int | None = None) -> str:
    """Create a session and return the plaintext token (shown once)."""
    if ttl_hours is None:
        ttl_hours = current_app.config.get("SESSION_TOKEN_TTL_HOURS", 12)
    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
    )
    db.session.add(session)
    db.session.commit()
    return token


def validate_session(token: str) -> SessionContext | None:
    """Return the session context, or None for unknown/expired/revoked tokens."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None
    if as_utc_naive(session.expires_at) <= utcnow():
        return None

    user = db.session.get(User, session.user_id)
    if not user or not user.is_active:
        return None
    return SessionContext(user=user, session=session, auth=AuthContext.from_user(user))


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
