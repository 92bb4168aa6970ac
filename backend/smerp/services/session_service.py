# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management

Tokens are random, hashed in the database and time-limited.

- 32 random bytes, sent to the client as 64 hex characters
- Stored as SHA-256 hashes (tokens are high-entropy, bcrypt is unnecessary)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, 24h by default)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, 2h by default)
- Revocable on logout or when the user is deactivated
"""

import secrets
import hashlib
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from smerp.time_utils import utcnow
from .permission_service import get_user_permissions


@dataclass
class RequestContext:
    """
    Per-request identity, resolved once by require_auth and stored on flask.g.

    permissions maps resource -> granted actions. Admins get every action on
    every resource.
    """
    user: User
    session: SessionToken
    permissions: dict[str, set[str]] = field(default_factory=dict)

    @property
    def user_id(self) -> int:
        return self.user.id

    def can(self, resource: str, action: str) -> bool:
        if self.user.is_admin:
            return True
        return action in self.permissions.get(resource, set())


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    """64-character hex string from the OS CSPRNG. Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    plaintext_token = generate_token()

    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> RequestContext | None:
    """
    Validate session token and return the request context if valid.

    Returns None if the token is unknown, expired, revoked or idle too long,
    or if the user account has been deactivated. Idle and deactivated
    sessions are revoked on the spot.

    Updates last_used_at on successful validation.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return RequestContext(
        user=user,
        session=session,
        permissions=get_user_permissions(user.id),
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if an active session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions(*, retention_days: int = 30) -> int:
    """
    Delete expired or revoked sessions created more than retention_days ago.

    Returns count of sessions deleted. Run periodically
    (flask maintenance cleanup-sessions).
    """
    now = utcnow()
    cutoff = now - timedelta(days=retention_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
