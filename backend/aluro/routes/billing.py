# Overview: Flask API routes for plans, tenant billing and the Stripe webhook.

"""
Billing routes.

MULTI-TENANT: /current, /change-plan and /cancel act on g.tenant_id.

SECURITY:
- Viewing the plan requires VIEW_BILLING; changes require MANAGE_BILLING (owners)
- The webhook is unauthenticated and trusted only after Stripe signature
  verification
"""
from flask import Blueprint, request, g

from ..services import billing_service
from ..decorators import require_auth, require_permission
from . import json_body

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@billing_bp.get("/plans")
def list_plans():
    """Public: active plans for the pricing page."""
    plans = billing_service.list_plans()
    return {"items": plans, "count": len(plans)}


@billing_bp.get("/current")
@require_auth
@require_permission("VIEW_BILLING")
def current_billing():
    return billing_service.get_tenant_billing(g.tenant_id)


@billing_bp.post("/change-plan")
@require_auth
@require_permission("MANAGE_BILLING")
def change_plan():
    """Body: {"plan_code": "pro"}. Paid plans return a checkout_url."""
    return billing_service.change_plan(g.tenant_id, json_body().get("plan_code"))


@billing_bp.post("/cancel")
@require_auth
@require_permission("MANAGE_BILLING")
def cancel_subscription():
    return billing_service.cancel_subscription(g.tenant_id)


@billing_bp.post("/webhook")
def stripe_webhook():
    return billing_service.handle_webhook(request.get_data(), request.headers.get("Stripe-Signature"))
