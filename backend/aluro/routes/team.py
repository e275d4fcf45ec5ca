# Overview: Flask API routes for team members and invitations; parses input and returns JSON responses.

"""
Team routes.

MULTI-TENANT: members and invitations of g.tenant_id only. Accepting an
invitation is the one route that works without a store context, since the
invitee usually has none yet.

SECURITY:
- Read operations require VIEW_TEAM permission
- Invite/update/remove require MANAGE_TEAM permission
- Owner-level changes are checked against the caller's role in the service
"""
from flask import Blueprint, request, g

from ..services import team_service
from ..decorators import require_user, require_auth, require_permission
from ..validation import ValidationError
from . import bool_arg, json_body

team_bp = Blueprint("team", __name__, url_prefix="/api/team")


@team_bp.get("/members")
@require_auth
@require_permission("VIEW_TEAM")
def list_members():
    """Query params: role, is_active."""
    return team_service.list_members(g.tenant_id, role=request.args.get("role"), is_active=bool_arg("is_active"))


@team_bp.patch("/members/<int:member_id>")
@require_auth
@require_permission("MANAGE_TEAM")
def update_member(member_id: int):
    """Body: {"role": "..."} and/or {"is_active": bool}."""
    data = json_body()
    if "role" not in data and "is_active" not in data:
        raise ValidationError("Nothing to update: provide role or is_active")
    result = None
    if "role" in data:
        result = team_service.update_member_role(g.tenant_id, member_id, data["role"], actor_role=g.tenant_role)
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        result = team_service.set_member_active(g.tenant_id, member_id, data["is_active"], actor_role=g.tenant_role)
    return result


@team_bp.delete("/members/<int:member_id>")
@require_auth
@require_permission("MANAGE_TEAM")
def remove_member(member_id: int):
    team_service.remove_member(g.tenant_id, member_id, actor_role=g.tenant_role)
    return {"message": "Member removed"}


@team_bp.get("/invitations")
@require_auth
@require_permission("VIEW_TEAM")
def list_invitations():
    """Query params: status (pending|accepted|revoked|expired)."""
    return team_service.list_invitations(g.tenant_id, status=request.args.get("status"))


@team_bp.post("/invitations")
@require_auth
@require_permission("MANAGE_TEAM")
def invite_member():
    data = json_body()
    return team_service.invite_member(
        g.tenant_id, data.get("email"), data.get("role"), invited_by=g.current_user.id
    ), 201


@team_bp.post("/invitations/<int:invitation_id>/resend")
@require_auth
@require_permission("MANAGE_TEAM")
def resend_invitation(invitation_id: int):
    return team_service.resend_invitation(g.tenant_id, invitation_id)


@team_bp.delete("/invitations/<int:invitation_id>")
@require_auth
@require_permission("MANAGE_TEAM")
def revoke_invitation(invitation_id: int):
    return team_service.revoke_invitation(g.tenant_id, invitation_id)


@team_bp.get("/invitations/token/<token>")
def describe_invitation(token: str):
    """Public: store name, email and role shown on the accept page."""
    return team_service.describe_invitation(token)


@team_bp.post("/invitations/accept")
@require_user
def accept_invitation():
    """Body: {"token": "..."}; the signed-in user's email must match."""
    return team_service.accept_invitation(json_body().get("token") or "", g.current_user)
