"""
Team management: tenant members and invitations.

MULTI-TENANT: members and invitations are read through TenantDatabase /
tenant-filtered queries; an id from another tenant is "not found".

SECURITY:
- the last active owner can never be demoted, deactivated or removed
- only owners may grant the owner role
- invitation tokens are returned once and stored hashed
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import TenantInvitation, TenantUser, User
from ..permissions import INVITABLE_ROLES, ROLES
from ..time_utils import days_from_now, utcnow
from ..validation import ConflictError, FieldErrors, NotFoundError, ValidationError, is_valid_email, normalize_email
from .permission_service import PermissionDeniedError
from .session_service import generate_token, hash_token
from .tenant_database import TenantDatabase


def _invitation_expiry():
    return days_from_now(int(current_app.config.get("INVITATION_TTL_DAYS", 7)))


def accept_url(token: str) -> str:
    return f"{current_app.config['ADMIN_URL'].rstrip('/')}/accept-invitation/{token}"


# -- members --

def list_members(tenant_id: int, *, role: str | None = None, is_active: bool | None = None) -> dict:
    if role and role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    members = TenantDatabase(tenant_id).get_tenant_users(role=role, is_active=is_active)
    return {"items": [m.to_dict() for m in members], "count": len(members)}


def _member(tdb: TenantDatabase, member_id: int) -> TenantUser:
    member = tdb.get_tenant_user(member_id)
    if not member:
        raise NotFoundError("Team member not found")
    return member


def _active_owner_count(tdb: TenantDatabase) -> int:
    return tdb.query(TenantUser).filter(TenantUser.role == "owner", TenantUser.is_active.is_(True)).count()


def _guard_last_owner(tdb: TenantDatabase, member: TenantUser) -> None:
    if member.role == "owner" and member.is_active and _active_owner_count(tdb) <= 1:
        raise ConflictError("A store must keep at least one active owner")


def update_member_role(tenant_id: int, member_id: int, role: str, *, actor_role: str | None) -> dict:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    tdb = TenantDatabase(tenant_id)
    member = _member(tdb, member_id)

    if role == "owner" and actor_role != "owner":
        raise PermissionDeniedError("Only owners can grant the owner role")
    if member.role == "owner" and actor_role != "owner":
        raise PermissionDeniedError("Only owners can change another owner's role")
    if member.role == "owner" and role != "owner":
        _guard_last_owner(tdb, member)

    tdb.update_tenant_user(member.id, {"role": role})
    db.session.commit()
    current_app.logger.info("Tenant %s member %s role -> %s", tenant_id, member.user_id, role)
    return member.to_dict()


def set_member_active(tenant_id: int, member_id: int, is_active: bool, *, actor_role: str | None) -> dict:
    """Deactivation also ends the member's sessions in this store."""
    from . import session_service

    tdb = TenantDatabase(tenant_id)
    member = _member(tdb, member_id)
    if member.role == "owner" and actor_role != "owner":
        raise PermissionDeniedError("Only owners can change another owner")
    if not is_active:
        _guard_last_owner(tdb, member)

    tdb.update_tenant_user(member.id, {"is_active": bool(is_active)})
    db.session.commit()
    if not is_active:
        session_service.revoke_tenant_sessions(tenant_id, "Membership deactivated", user_id=member.user_id)
    return member.to_dict()


def remove_member(tenant_id: int, member_id: int, *, actor_role: str | None) -> None:
    tdb = TenantDatabase(tenant_id)
    member = _member(tdb, member_id)
    if member.role == "owner" and actor_role != "owner":
        raise PermissionDeniedError("Only owners can remove another owner")
    _guard_last_owner(tdb, member)

    user_id = member.user_id
    tdb.remove_tenant_user(member.id)
    db.session.commit()
    current_app.logger.info("Removed user %s from tenant %s", user_id, tenant_id)


# -- invitations --

def _invitations(tenant_id: int):
    return db.session.query(TenantInvitation).filter(TenantInvitation.tenant_id == tenant_id)


def _invitation(tenant_id: int, invitation_id: int) -> TenantInvitation:
    invitation = _invitations(tenant_id).filter(TenantInvitation.id == invitation_id).first()
    if not invitation:
        raise NotFoundError("Invitation not found")
    return invitation


def list_invitations(tenant_id: int, *, status: str | None = None) -> dict:
    query = _invitations(tenant_id)
    if status in ("accepted", "revoked"):
        query = query.filter(TenantInvitation.status == status)
    elif status in ("pending", "expired"):
        query = query.filter(TenantInvitation.status == "pending")
        query = query.filter(
            TenantInvitation.expires_at > utcnow() if status == "pending" else TenantInvitation.expires_at <= utcnow()
        )
    elif status:
        raise ValidationError("status must be one of: pending, accepted, revoked, expired")
    invitations = query.order_by(TenantInvitation.created_at.desc(), TenantInvitation.id.desc()).all()
    return {"items": [i.to_dict() for i in invitations], "count": len(invitations)}


def invite_member(tenant_id: int, email: str, role: str, *, invited_by: int | None) -> dict:
    """
    Create an invitation valid for INVITATION_TTL_DAYS.

    Returns the invitation plus its accept URL; no email is sent.
    """
    errors = FieldErrors()
    email = normalize_email(email)
    if not email:
        errors.add("email", "Email address is required")
    elif not is_valid_email(email):
        errors.add("email", "Please enter a valid email address")
    if not role:
        errors.add("role", "User role is required")
    elif role not in INVITABLE_ROLES:
        errors.add("role", f"Invalid role. Must be one of: {', '.join(INVITABLE_ROLES)}")
    errors.raise_if_any("Invalid invitation")

    tdb = TenantDatabase(tenant_id)
    existing_user = db.session.query(User).filter(User.email == email).first()
    member = tdb.get_tenant_user_by_user_id(existing_user.id) if existing_user else None
    # A deactivated member may be invited back; accepting reactivates them.
    if member and member.is_active:
        raise ConflictError("This user is already a member of the store")

    open_invitation = [i for i in _invitations(tenant_id).filter(TenantInvitation.email == email).all() if i.is_open]
    if open_invitation:
        raise ConflictError("Active invitation already exists for this email")

    token = generate_token()
    invitation = TenantInvitation(
        tenant_id=tenant_id,
        email=email,
        role=role,
        token_hash=hash_token(token),
        status="pending",
        invited_by=invited_by,
        expires_at=_invitation_expiry(),
    )
    db.session.add(invitation)
    db.session.commit()

    url = accept_url(token)
    current_app.logger.info("Invitation %s for %s to tenant %s: %s", invitation.id, email, tenant_id, url)
    return {"invitation": invitation.to_dict(), "token": token, "accept_url": url}


def resend_invitation(tenant_id: int, invitation_id: int) -> dict:
    """New token and expiry for a pending (possibly expired) invitation."""
    invitation = _invitation(tenant_id, invitation_id)
    if invitation.status != "pending":
        raise ConflictError(f"Invitation is already {invitation.status}")

    token = generate_token()
    invitation.token_hash = hash_token(token)
    invitation.expires_at = _invitation_expiry()
    db.session.commit()

    url = accept_url(token)
    current_app.logger.info("Resent invitation %s for tenant %s: %s", invitation.id, tenant_id, url)
    return {"invitation": invitation.to_dict(), "token": token, "accept_url": url}


def revoke_invitation(tenant_id: int, invitation_id: int) -> dict:
    invitation = _invitation(tenant_id, invitation_id)
    if invitation.status != "pending":
        raise ConflictError(f"Invitation is already {invitation.status}")
    invitation.status = "revoked"
    db.session.commit()
    return invitation.to_dict()


def get_invitation_by_token(token: str) -> TenantInvitation:
    invitation = (
        db.session.query(TenantInvitation)
        .filter(TenantInvitation.token_hash == hash_token(token or ""))
        .first()
    )
    if not invitation:
        raise NotFoundError("Invitation not found")
    return invitation


def describe_invitation(token: str) -> dict:
    """Public view of an invitation for the accept page."""
    invitation = get_invitation_by_token(token)
    data = invitation.to_dict()
    data["tenant_name"] = invitation.tenant.name if invitation.tenant else None
    return data


def accept_invitation(token: str, user: User) -> dict:
    """
    Accept as the signed-in user. The user's email must match the
    invitation; expired, revoked or used invitations are rejected.
    """
    invitation = get_invitation_by_token(token)
    if invitation.status != "pending":
        raise ConflictError(f"Invitation is already {invitation.status}")
    if invitation.is_expired:
        raise ValidationError("Invitation has expired")
    if normalize_email(user.email) != invitation.email:
        raise PermissionDeniedError("This invitation was sent to a different email address")
    if invitation.tenant is None or not invitation.tenant.is_active:
        raise NotFoundError("Store not found")

    tdb = TenantDatabase(invitation.tenant_id)
    now = utcnow()
    member = tdb.get_tenant_user_by_user_id(user.id)
    if member:
        if member.is_active:
            raise ConflictError("You are already a member of this store")
        tdb.update_tenant_user(member.id, {"is_active": True, "role": invitation.role, "accepted_at": now})
    else:
        member = tdb.invite_tenant_user(user.id, invitation.role, invited_by=invitation.invited_by, invited_at=invitation.created_at)
        member.accepted_at = now

    invitation.status = "accepted"
    invitation.accepted_at = now
    db.session.commit()
    current_app.logger.info("User %s joined tenant %s as %s", user.id, invitation.tenant_id, invitation.role)
    return {"membership": member.to_dict(), "tenant_id": invitation.tenant_id}
