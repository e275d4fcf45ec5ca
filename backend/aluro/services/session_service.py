# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service with Multi-Tenant Support

Tokens are random, hashed in the database, and time-limited.

MULTI-TENANT: A session carries the tenant it is working in (tenant_id).
It is chosen at login (explicit tenant_id or the user's first active
membership) and can only be changed through switch_tenant(), which
re-checks membership. validate_session() re-checks the membership on
every request so removing a team member takes effect immediately.

SECURITY FEATURES:
- 32 random bytes per token (secrets.token_hex)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout, tenant deactivation or membership removal
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Tenant, TenantUser, User
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


class SessionError(ValueError):
    """Session could not be created or switched."""


@dataclass
class SessionContext:
    """
    Session context returned by validate_session.

    tenant_id is None for a user with no store yet (just signed up or all
    memberships removed). role is the membership role in tenant_id; platform
    admins working in a tenant they are not a member of get role None.
    """
    user: User
    session: SessionToken
    tenant_id: int | None
    role: str | None


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used as the stored lookup key."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _active_membership(user_id: int, tenant_id: int) -> TenantUser | None:
    return (
        db.session.query(TenantUser)
        .join(Tenant, Tenant.id == TenantUser.tenant_id)
        .filter(
            TenantUser.user_id == user_id,
            TenantUser.tenant_id == tenant_id,
            TenantUser.is_active.is_(True),
            Tenant.is_active.is_(True),
        )
        .first()
    )


def default_tenant_id(user_id: int) -> int | None:
    """First active membership (oldest) of an active tenant."""
    membership = (
        db.session.query(TenantUser)
        .join(Tenant, Tenant.id == TenantUser.tenant_id)
        .filter(
            TenantUser.user_id == user_id,
            TenantUser.is_active.is_(True),
            Tenant.is_active.is_(True),
        )
        .order_by(TenantUser.id.asc())
        .first()
    )
    return membership.tenant_id if membership else None


def _resolve_tenant(user: User, tenant_id: int | None) -> int | None:
    if tenant_id is None:
        return default_tenant_id(user.id)

    if _active_membership(user.id, tenant_id):
        return tenant_id

    if user.is_platform_admin:
        tenant = db.session.get(Tenant, tenant_id)
        if tenant and tenant.is_active:
            return tenant_id

    raise SessionError("Store not found")


def create_session(
    user_id: int,
    tenant_id: int | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token.

    Returns (session_record, plaintext_token). Raises SessionError if the
    requested tenant is not available to the user.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise SessionError("User not found")

    resolved_tenant_id = _resolve_tenant(user, tenant_id)

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        tenant_id=resolved_tenant_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle, revoked, or the
    user is deactivated. If the session's tenant was deactivated or the
    membership removed, the tenant context is dropped (tenant_id None)
    rather than the session being revoked, so the user can still pick
    another store.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout", now)
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated", now)
        db.session.commit()
        return None

    role = None
    if session.tenant_id is not None:
        membership = _active_membership(user.id, session.tenant_id)
        if membership:
            role = membership.role
        elif not (user.is_platform_admin and session.tenant and session.tenant.is_active):
            session.tenant_id = None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        tenant_id=session.tenant_id,
        role=role,
    )


def switch_tenant(session: SessionToken, tenant_id: int) -> SessionToken:
    """Move an existing session into another tenant the user belongs to."""
    user = session.user
    session.tenant_id = _resolve_tenant(user, tenant_id)
    db.session.commit()
    return session


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", keep_session_id: int | None = None) -> int:
    """Revoke every active session of a user (except keep_session_id); returns the count."""
    now = utcnow()
    query = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False)
    if keep_session_id is not None:
        query = query.filter(SessionToken.id != keep_session_id)
    sessions = query.all()
    for session in sessions:
        _revoke(session, reason, now)
    db.session.commit()
    return len(sessions)


def revoke_tenant_sessions(tenant_id: int, reason: str = "Store deactivated", user_id: int | None = None) -> int:
    """Revoke every active session working inside tenant_id (optionally only one user's)."""
    now = utcnow()
    query = db.session.query(SessionToken).filter_by(tenant_id=tenant_id, is_revoked=False)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    sessions = query.all()
    for session in sessions:
        _revoke(session, reason, now)
    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions() -> int:
    """Delete expired or revoked sessions older than 30 days."""
    cutoff = utcnow() - timedelta(days=30)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
