# Overview: Pytest coverage for discount codes and their evaluation.

from datetime import timedelta

import pytest
from aluro.extensions import db
from aluro.models import Discount
from aluro.services import discounts_service
from aluro.services.tenant_database import TenantDatabase
from aluro.time_utils import utcnow
from aluro.validation import ConflictError, ValidationError


def _evaluate(tenant, code, subtotal, shipping=0):
    return discounts_service.evaluate_discount(TenantDatabase(tenant.id), code, subtotal, shipping)


class TestDiscountRules:
    def test_code_uppercased(self, db_session, tenant_a):
        discount = discounts_service.create_discount(tenant_a.id, {"code": " summer ", "type": "percentage", "value": 1500})
        assert discount["code"] == "SUMMER"
        assert discount["usage_count"] == 0

    def test_code_with_space_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            discounts_service.create_discount(tenant_a.id, {"code": "TWO WORDS", "type": "fixed_amount", "value": 100})

    def test_duplicate_code(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {"code": "SAVE", "type": "fixed_amount", "value": 100})
        with pytest.raises(ConflictError):
            discounts_service.create_discount(tenant_a.id, {"code": "save", "type": "fixed_amount", "value": 200})

    def test_same_code_in_two_stores(self, db_session, tenant_a, tenant_b):
        discounts_service.create_discount(tenant_a.id, {"code": "SAVE", "type": "fixed_amount", "value": 100})
        discounts_service.create_discount(tenant_b.id, {"code": "SAVE", "type": "fixed_amount", "value": 100})

    @pytest.mark.parametrize("value", [0, 10001, None])
    def test_percentage_range(self, db_session, tenant_a, value):
        with pytest.raises(ValidationError):
            discounts_service.create_discount(tenant_a.id, {"code": "PCT", "type": "percentage", "value": value})

    def test_fixed_amount_must_be_positive(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            discounts_service.create_discount(tenant_a.id, {"code": "ZERO", "type": "fixed_amount", "value": 0})

    def test_free_shipping_value_forced_to_zero(self, db_session, tenant_a):
        discount = discounts_service.create_discount(tenant_a.id, {"code": "SHIP", "type": "free_shipping", "value": 999})
        assert discount["value"] == 0

    def test_unknown_type(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            discounts_service.create_discount(tenant_a.id, {"code": "BOGO", "type": "buy_one_get_one", "value": 1})

    def test_update_to_taken_code(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {"code": "ONE", "type": "fixed_amount", "value": 100})
        two = discounts_service.create_discount(tenant_a.id, {"code": "TWO", "type": "fixed_amount", "value": 100})
        with pytest.raises(ConflictError):
            discounts_service.update_discount(tenant_a.id, two["id"], {"code": "one"})


class TestEvaluateDiscount:
    def test_percentage(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {"code": "QUARTER", "type": "percentage", "value": 2500})
        result = _evaluate(tenant_a, "quarter", 4001)
        assert result["amount_cents"] == 1000
        assert result["free_shipping"] is False

    def test_fixed_amount_capped(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {"code": "FIVE", "type": "fixed_amount", "value": 500})
        assert _evaluate(tenant_a, "FIVE", 300)["amount_cents"] == 300
        assert _evaluate(tenant_a, "FIVE", 3000)["amount_cents"] == 500

    def test_free_shipping_amount(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {"code": "SHIP", "type": "free_shipping"})
        result = _evaluate(tenant_a, "SHIP", 3000, shipping=700)
        assert result["amount_cents"] == 700
        assert result["free_shipping"] is True

    def test_unknown_code(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "MISSING", 1000)

    def test_other_store_code_unknown(self, db_session, tenant_a, tenant_b):
        discounts_service.create_discount(tenant_b.id, {"code": "BETA", "type": "fixed_amount", "value": 100})
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "BETA", 1000)

    def test_inactive_code(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {
            "code": "OFF", "type": "fixed_amount", "value": 100, "is_active": False,
        })
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "OFF", 1000)

    def test_minimum_purchase(self, db_session, tenant_a):
        discounts_service.create_discount(tenant_a.id, {
            "code": "MIN", "type": "fixed_amount", "value": 100, "minimum_purchase_cents": 5000,
        })
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "MIN", 4999)
        assert _evaluate(tenant_a, "MIN", 5000)["amount_cents"] == 100

    def test_usage_limit(self, db_session, tenant_a):
        created = discounts_service.create_discount(tenant_a.id, {
            "code": "ONCE", "type": "fixed_amount", "value": 100, "usage_limit": 1,
        })
        db.session.get(Discount, created["id"]).usage_count = 1
        db_session.commit()
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "ONCE", 1000)

    def test_date_window(self, db_session, tenant_a):
        created = discounts_service.create_discount(tenant_a.id, {"code": "LATER", "type": "fixed_amount", "value": 100})
        discount = db.session.get(Discount, created["id"])
        discount.starts_at = utcnow() + timedelta(days=1)
        db_session.commit()
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "LATER", 1000)

        discount.starts_at = utcnow() - timedelta(days=2)
        discount.ends_at = utcnow() - timedelta(days=1)
        db_session.commit()
        with pytest.raises(ValidationError):
            _evaluate(tenant_a, "LATER", 1000)


class TestDiscountsApi:
    def test_crud_and_preview(self, client, headers_a):
        resp = client.post("/api/discounts", json={"code": "api10", "type": "percentage", "value": 1000},
                           headers=headers_a)
        assert resp.status_code == 201
        discount_id = resp.json["id"]

        resp = client.post("/api/discounts/preview", json={"code": "API10", "subtotal_cents": 5000},
                           headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["amount_cents"] == 500

        resp = client.get("/api/discounts?status=active", headers=headers_a)
        assert [d["code"] for d in resp.json["items"]] == ["API10"]

        assert client.delete(f"/api/discounts/{discount_id}", headers=headers_a).status_code == 200
        assert client.get(f"/api/discounts/{discount_id}", headers=headers_a).status_code == 404

    def test_duplicate_is_409(self, client, headers_a):
        body = {"code": "DUP", "type": "fixed_amount", "value": 100}
        assert client.post("/api/discounts", json=body, headers=headers_a).status_code == 201
        assert client.post("/api/discounts", json=body, headers=headers_a).status_code == 409

    def test_preview_invalid_code_is_400(self, client, headers_a):
        resp = client.post("/api/discounts/preview", json={"code": "NOPE", "subtotal_cents": 100}, headers=headers_a)
        assert resp.status_code == 400
