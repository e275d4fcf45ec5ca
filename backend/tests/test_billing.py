# Overview: Pytest coverage for plans, plan changes and Stripe webhook handling.

import hashlib
import hmac
import json
import time

import pytest
import stripe
from aluro.extensions import db
from aluro.models import BillingPlan, Subscription, Tenant
from aluro.services import billing_service
from aluro.services.billing_service import BillingError
from aluro.validation import ConflictError, NotFoundError, ValidationError

from conftest import add_member, auth_headers, session_token


@pytest.fixture
def plans(db_session):
    billing_service.seed_default_plans()


@pytest.fixture
def stripe_calls(monkeypatch):
    """Record outgoing Stripe API calls instead of hitting the network."""
    calls = []

    def create_customer(**kwargs):
        calls.append(("customer", kwargs))
        return {"id": "cus_test_1"}

    def create_session(**kwargs):
        calls.append(("checkout", kwargs))
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    def modify_subscription(sub_id, **kwargs):
        calls.append(("modify", sub_id, kwargs))
        return {"id": sub_id, **kwargs}

    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)
    monkeypatch.setattr(stripe.Subscription, "modify", modify_subscription)
    return calls


def _subscribe(tenant, sub_id="sub_test_1", status="active"):
    tenant.stripe_customer_id = "cus_test_1"
    db.session.add(Subscription(tenant_id=tenant.id, plan_code="pro", status=status,
                                stripe_subscription_id=sub_id, stripe_customer_id="cus_test_1"))
    db.session.commit()


def _signed(payload: str, secret: str = "whsec_test_secret") -> str:
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestPlans:
    def test_seed_is_idempotent(self, db_session):
        assert billing_service.seed_default_plans() == 3
        assert billing_service.seed_default_plans() == 0
        assert [p["code"] for p in billing_service.list_plans()] == ["starter", "pro", "enterprise"]

    def test_create_plan(self, plans):
        plan = billing_service.create_plan({
            "code": " Growth ", "name": "Growth", "price_cents": 4900, "currency": "eur",
            "features": ["Everything", " "],
        })
        assert plan["code"] == "growth"
        assert plan["currency"] == "EUR"
        assert plan["features"] == ["Everything"]

    def test_duplicate_code(self, plans):
        with pytest.raises(ConflictError):
            billing_service.create_plan({"code": "pro", "name": "Pro again"})

    @pytest.mark.parametrize("payload", [
        {"code": "", "name": "Nameless"},
        {"code": "cheap", "name": "Cheap", "price_cents": -1},
        {"code": "weekly", "name": "Weekly", "interval": "week"},
    ])
    def test_invalid_plan(self, plans, payload):
        with pytest.raises(ValidationError):
            billing_service.create_plan(payload)

    def test_delete_unused_plan(self, plans):
        plan = billing_service.create_plan({"code": "temp", "name": "Temp"})
        billing_service.delete_plan(plan["id"])
        assert db.session.get(BillingPlan, plan["id"]) is None

    def test_delete_plan_in_use_deactivates(self, plans, tenant_a):
        starter = billing_service.get_plan_by_code("starter")
        billing_service.delete_plan(starter.id)
        assert db.session.get(BillingPlan, starter.id).is_active is False
        assert "starter" not in [p["code"] for p in billing_service.list_plans()]

    def test_public_plan_list(self, client, plans):
        resp = client.get("/api/billing/plans")
        assert resp.status_code == 200
        assert resp.json["count"] == 3


class TestChangePlan:
    def test_free_plan_applies_directly(self, plans, tenant_a, stripe_calls):
        tenant_a.plan = "pro"
        db.session.commit()
        result = billing_service.change_plan(tenant_a.id, "starter")
        assert result == {"plan_code": "starter", "checkout_required": False}
        assert db.session.get(Tenant, tenant_a.id).plan == "starter"
        assert stripe_calls == []

    def test_paid_plan_opens_checkout(self, plans, tenant_a, stripe_calls):
        result = billing_service.change_plan(tenant_a.id, "pro")
        assert result["checkout_required"] is True
        assert result["checkout_url"] == "https://checkout.stripe.test/cs_test_1"

        # The plan only changes once the webhook confirms checkout
        assert db.session.get(Tenant, tenant_a.id).plan == "starter"
        assert db.session.get(Tenant, tenant_a.id).stripe_customer_id == "cus_test_1"

        kinds = [call[0] for call in stripe_calls]
        assert kinds == ["customer", "checkout"]
        checkout = stripe_calls[1][1]
        assert checkout["line_items"] == [{"price": "price_pro_monthly", "quantity": 1}]
        assert checkout["metadata"] == {"tenant_id": str(tenant_a.id), "plan_code": "pro"}

    def test_existing_customer_reused(self, plans, tenant_a, stripe_calls):
        tenant_a.stripe_customer_id = "cus_existing"
        db.session.commit()
        billing_service.change_plan(tenant_a.id, "enterprise")
        assert [call[0] for call in stripe_calls] == ["checkout"]
        assert stripe_calls[0][1]["customer"] == "cus_existing"

    def test_unknown_plan(self, plans, tenant_a):
        with pytest.raises(NotFoundError):
            billing_service.change_plan(tenant_a.id, "platinum")

    def test_stripe_failure(self, plans, tenant_a, monkeypatch):
        def fail(**kwargs):
            raise stripe.StripeError("card network down")

        monkeypatch.setattr(stripe.Customer, "create", fail)
        with pytest.raises(BillingError) as exc:
            billing_service.change_plan(tenant_a.id, "pro")
        assert exc.value.status_code == 502

    def test_billing_not_configured(self, app, plans, tenant_a):
        app.config["STRIPE_SECRET_KEY"] = ""
        try:
            with pytest.raises(BillingError) as exc:
                billing_service.change_plan(tenant_a.id, "pro")
            assert exc.value.status_code == 503
        finally:
            app.config["STRIPE_SECRET_KEY"] = "sk_test_dummy"

    def test_change_plan_over_http(self, client, plans, headers_a, stripe_calls):
        resp = client.post("/api/billing/change-plan", json={"plan_code": "pro"}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["session_id"] == "cs_test_1"

        resp = client.get("/api/billing/current", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["plan_code"] == "starter"
        assert resp.json["has_billing_account"] is True

    def test_admin_cannot_change_plan(self, client, plans, tenant_a, stripe_calls):
        admin = add_member(tenant_a, "admin@acme.test", "admin")
        headers = auth_headers(session_token(admin, tenant_a))
        assert client.get("/api/billing/current", headers=headers).status_code == 200
        resp = client.post("/api/billing/change-plan", json={"plan_code": "pro"}, headers=headers)
        assert resp.status_code == 403
        assert stripe_calls == []


class TestCancel:
    def test_cancel_at_period_end(self, plans, tenant_a, stripe_calls):
        _subscribe(tenant_a)
        result = billing_service.cancel_subscription(tenant_a.id)
        assert result["cancel_at_period_end"] is True
        assert stripe_calls == [("modify", "sub_test_1", {"cancel_at_period_end": True})]

    def test_nothing_to_cancel(self, plans, tenant_a):
        with pytest.raises(NotFoundError):
            billing_service.cancel_subscription(tenant_a.id)

    def test_already_canceled(self, plans, tenant_a, stripe_calls):
        _subscribe(tenant_a, status="canceled")
        with pytest.raises(ConflictError):
            billing_service.cancel_subscription(tenant_a.id)
        assert stripe_calls == []


class TestWebhookEvents:
    def test_checkout_completed(self, plans, tenant_a):
        result = billing_service.process_event({
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {
                "customer": "cus_test_1",
                "subscription": "sub_test_1",
                "metadata": {"tenant_id": str(tenant_a.id), "plan_code": "pro"},
            }},
        })
        assert result == {"received": True, "handled": True}

        tenant = db.session.get(Tenant, tenant_a.id)
        assert tenant.plan == "pro"
        assert tenant.stripe_customer_id == "cus_test_1"
        sub = db.session.query(Subscription).filter_by(tenant_id=tenant_a.id).one()
        assert sub.status == "active"
        assert sub.stripe_subscription_id == "sub_test_1"
        assert sub.stripe_price_id == "price_pro_monthly"

    def test_invoice_failed_then_paid(self, plans, tenant_a):
        _subscribe(tenant_a)
        invoice = {"customer": "cus_test_1", "subscription": "sub_test_1"}

        billing_service.process_event({"type": "invoice.payment_failed", "data": {"object": invoice}})
        assert db.session.query(Subscription).one().status == "past_due"

        billing_service.process_event({"type": "invoice.payment_succeeded", "data": {"object": {
            **invoice,
            "lines": {"data": [{"period": {"start": 1767225600, "end": 1769904000}}]},
        }}})
        sub = db.session.query(Subscription).one()
        assert sub.status == "active"
        assert sub.current_period_end is not None

    def test_subscription_updated_switches_plan(self, plans, tenant_a):
        _subscribe(tenant_a)
        billing_service.process_event({"type": "customer.subscription.updated", "data": {"object": {
            "id": "sub_test_1",
            "customer": "cus_test_1",
            "status": "active",
            "cancel_at_period_end": False,
            "items": {"data": [{"price": {"id": "price_enterprise_monthly"}}]},
        }}})
        assert db.session.get(Tenant, tenant_a.id).plan == "enterprise"
        assert db.session.query(Subscription).one().plan_code == "enterprise"

    def test_unknown_price_maps_to_starter(self, plans, tenant_a):
        _subscribe(tenant_a)
        billing_service.process_event({"type": "customer.subscription.updated", "data": {"object": {
            "id": "sub_test_1",
            "status": "active",
            "items": {"data": [{"price": {"id": "price_mystery"}}]},
        }}})
        assert db.session.get(Tenant, tenant_a.id).plan == "starter"

    def test_subscription_deleted(self, plans, tenant_a):
        _subscribe(tenant_a)
        tenant_a.plan = "pro"
        db.session.commit()
        billing_service.process_event({"type": "customer.subscription.deleted", "data": {"object": {
            "id": "sub_test_1", "customer": "cus_test_1",
        }}})
        assert db.session.get(Tenant, tenant_a.id).plan == "starter"
        sub = db.session.query(Subscription).one()
        assert sub.status == "canceled"
        assert sub.canceled_at is not None

    def test_unhandled_event(self, plans):
        result = billing_service.process_event({"type": "customer.created", "data": {"object": {}}})
        assert result == {"received": True, "handled": False}

    def test_event_for_unknown_customer_ignored(self, plans, tenant_a):
        billing_service.process_event({"type": "invoice.payment_failed", "data": {"object": {
            "customer": "cus_nobody",
        }}})
        assert db.session.query(Subscription).count() == 0


class TestWebhookEndpoint:
    def test_signed_payload_is_processed(self, client, plans, tenant_a):
        payload = json.dumps({
            "id": "evt_2",
            "type": "checkout.session.completed",
            "data": {"object": {"metadata": {"tenant_id": str(tenant_a.id), "plan_code": "enterprise"}}},
        })
        resp = client.post("/api/billing/webhook", data=payload, content_type="application/json",
                           headers={"Stripe-Signature": _signed(payload)})
        assert resp.status_code == 200
        assert resp.json["handled"] is True
        assert db.session.get(Tenant, tenant_a.id).plan == "enterprise"

    def test_bad_signature_rejected(self, client, plans, tenant_a):
        payload = json.dumps({"type": "customer.subscription.deleted", "data": {"object": {}}})
        resp = client.post("/api/billing/webhook", data=payload, content_type="application/json",
                           headers={"Stripe-Signature": _signed(payload, secret="whsec_wrong")})
        assert resp.status_code == 400

    @pytest.mark.parametrize("payload", ["[]", "\"checkout\"", json.dumps({"type": "invoice.paid", "data": []})])
    def test_signed_payload_that_is_not_an_event(self, client, plans, payload):
        resp = client.post("/api/billing/webhook", data=payload, content_type="application/json",
                           headers={"Stripe-Signature": _signed(payload)})
        assert resp.status_code == 400

    def test_missing_signature_rejected(self, client, plans):
        resp = client.post("/api/billing/webhook", data="{}", content_type="application/json")
        assert resp.status_code == 400
