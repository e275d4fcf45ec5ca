# Overview: Flask API routes for platform administrators; parses input and returns JSON responses.

"""
Platform admin routes: stores, billing plans and feature flags.

MULTI-TENANT: these routes work across every tenant and need no store
context.

SECURITY: every route requires a signed-in platform admin
(@require_user + @require_platform_admin); denials are logged.
"""
from flask import Blueprint, request

from ..services import billing_service, feature_flag_service, platform_service
from ..decorators import require_user, require_platform_admin
from ..validation import ValidationError
from . import bool_arg, json_body, page_args

platform_bp = Blueprint("platform", __name__, url_prefix="/api/platform")


# -- tenants --

@platform_bp.get("/tenants")
@require_user
@require_platform_admin
def list_tenants():
    """Query params: search, is_active, plan, page, per_page."""
    return platform_service.list_tenants(
        search=request.args.get("search"),
        is_active=bool_arg("is_active"),
        plan=request.args.get("plan"),
        **page_args(),
    )


@platform_bp.post("/tenants/<int:tenant_id>/activate")
@require_user
@require_platform_admin
def activate_tenant(tenant_id: int):
    return platform_service.set_active(tenant_id, True)


@platform_bp.post("/tenants/<int:tenant_id>/deactivate")
@require_user
@require_platform_admin
def deactivate_tenant(tenant_id: int):
    return platform_service.set_active(tenant_id, False)


# -- plans --

@platform_bp.get("/plans")
@require_user
@require_platform_admin
def list_plans():
    plans = billing_service.list_plans(include_inactive=True)
    return {"items": plans, "count": len(plans)}


@platform_bp.post("/plans")
@require_user
@require_platform_admin
def create_plan():
    return billing_service.create_plan(json_body()), 201


@platform_bp.put("/plans/<int:plan_id>")
@platform_bp.patch("/plans/<int:plan_id>")
@require_user
@require_platform_admin
def update_plan(plan_id: int):
    return billing_service.update_plan(plan_id, json_body())


@platform_bp.delete("/plans/<int:plan_id>")
@require_user
@require_platform_admin
def delete_plan(plan_id: int):
    billing_service.delete_plan(plan_id)
    return {"message": "Plan deleted"}


# -- feature flags --

@platform_bp.get("/feature-flags")
@require_user
@require_platform_admin
def list_feature_flags():
    flags = feature_flag_service.list_feature_flags(request.args.get("category"))
    return {"items": flags, "count": len(flags)}


@platform_bp.post("/feature-flags")
@require_user
@require_platform_admin
def create_feature_flag():
    return feature_flag_service.create_feature_flag(json_body()), 201


@platform_bp.post("/feature-flags/bulk")
@require_user
@require_platform_admin
def bulk_update_feature_flags():
    """Body: {"updates": [{"id": 1, "enabled": false}, ...]}"""
    flags = feature_flag_service.bulk_update_feature_flags(json_body().get("updates"))
    return {"items": flags, "count": len(flags)}


@platform_bp.patch("/feature-flags/<int:flag_id>")
@require_user
@require_platform_admin
def update_feature_flag(flag_id: int):
    data = json_body()
    if not data:
        raise ValidationError("Nothing to update")
    return feature_flag_service.update_feature_flag(flag_id, data)


@platform_bp.delete("/feature-flags/<int:flag_id>")
@require_user
@require_platform_admin
def delete_feature_flag(flag_id: int):
    feature_flag_service.delete_feature_flag(flag_id)
    return {"message": "Feature flag deleted"}
