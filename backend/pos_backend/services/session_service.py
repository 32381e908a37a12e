# Overview: Service-layer operations for session tokens; resolves the acting user of a request.

"""
Session Token Management

Tokens are cryptographically secure, hashed in the database and
time-limited. Issuing credentials (login) happens outside this service; the
CLI and tests mint tokens with create_session().

- 32 random bytes per token (secrets.token_hex)
- SHA-256 hash stored, plaintext never persisted
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24h)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, default 2h)
- Revocable
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..permissions import Role
from ..time_utils import utcnow


@dataclass
class SessionContext:
    """Identity resolved for one request."""
    user: User
    session: SessionToken

    @property
    def actor_id(self) -> int:
        return self.user.id

    @property
    def role(self) -> Role:
        return self.user.role_enum


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"])


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_IDLE_TIMEOUT_HOURS"])


def generate_token() -> str:
    """64 hex characters (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 rather than bcrypt: tokens are already high-entropy, unlike
    passwords.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Returns (session_record, plaintext_token). Only the hash is stored.

    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is inactive")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    Returns None if the token is unknown, revoked, past its absolute expiry,
    idle for longer than the idle timeout, or belongs to an inactive user.
    Updates last_used_at on success.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    now = utcnow()
    if session.expires_at.replace(tzinfo=None) <= now:
        return None
    if session.last_used_at.replace(tzinfo=None) + _idle_timeout() <= now:
        return None

    user = session.user
    if not user or not user.is_active:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str) -> bool:
    """Revoke a token. Returns False if it was unknown or already revoked."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int) -> int:
    """Revoke every active token of a user (e.g. on deactivation). Returns the count."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for s in sessions:
        s.is_revoked = True
        s.revoked_at = now
    db.session.commit()
    return len(sessions)
