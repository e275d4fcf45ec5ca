# Overview: Pytest coverage for order placement, totals, stock and order edits.

import pytest
from aluro.extensions import db
from aluro.models import Customer, Discount, Product, ProductVariant
from aluro.services import discounts_service, orders_service, products_service, settings_service, variants_service
from aluro.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def mug(tenant_a):
    return products_service.create_product(tenant_a.id, {
        "name": "Coffee Mug", "sku": "MUG", "price_cents": 1200, "inventory_quantity": 10,
    })


@pytest.fixture
def lamp(tenant_a):
    return products_service.create_product(tenant_a.id, {
        "name": "Desk Lamp", "price_cents": 6000, "inventory_quantity": 5, "weight": 2,
    })


def _stock(product):
    return db.session.get(Product, product["id"]).inventory_quantity


def _place(tenant, *lines, **extra):
    payload = {"email": "buyer@example.test", "items": [
        {"product_id": product["id"], "quantity": quantity} for product, quantity in lines
    ]}
    payload.update(extra)
    return orders_service.create_order(tenant.id, payload)


class TestOrderNumbers:
    def test_sequential_per_tenant(self, db_session, tenant_a, tenant_b):
        assert orders_service.next_order_number(tenant_a.id) == "ORD-000001"
        assert orders_service.next_order_number(tenant_a.id) == "ORD-000002"
        assert orders_service.next_order_number(tenant_b.id) == "ORD-000001"

    def test_format(self):
        assert orders_service.format_order_number(42) == "ORD-000042"


class TestCreateOrder:
    def test_totals_and_stock(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 2))
        assert order["order_number"] == "ORD-000001"
        assert order["subtotal_cents"] == 2400
        assert order["shipping_cents"] == 0
        assert order["tax_cents"] == 0
        assert order["total_cents"] == 2400
        assert order["financial_status"] == "pending"
        assert order["fulfillment_status"] == "unfulfilled"
        assert order["line_items"][0]["sku"] == "MUG"
        assert _stock(mug) == 8

    def test_customer_created_and_counted(self, db_session, tenant_a, mug):
        _place(tenant_a, (mug, 1))
        _place(tenant_a, (mug, 1), email="Buyer@Example.test")

        customers = db_session.query(Customer).filter_by(tenant_id=tenant_a.id).all()
        assert len(customers) == 1
        assert customers[0].email == "buyer@example.test"
        assert customers[0].orders_count == 2
        assert customers[0].total_spent_cents == 2400

    def test_customer_or_email_required(self, db_session, tenant_a, mug):
        with pytest.raises(ValidationError):
            orders_service.create_order(tenant_a.id, {"items": [{"product_id": mug["id"], "quantity": 1}]})

    def test_empty_order_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            orders_service.create_order(tenant_a.id, {"email": "a@b.test", "items": []})

    @pytest.mark.parametrize("quantity", [0, -1, "2", True])
    def test_invalid_quantity(self, db_session, tenant_a, mug, quantity):
        with pytest.raises(ValidationError):
            _place(tenant_a, (mug, quantity))

    def test_insufficient_stock_changes_nothing(self, db_session, tenant_a, mug):
        with pytest.raises(ValidationError) as exc:
            _place(tenant_a, (mug, 11))
        assert "10 available" in str(exc.value)
        assert _stock(mug) == 10
        assert db_session.query(Customer).count() == 0

    def test_repeated_lines_share_stock(self, db_session, tenant_a, lamp):
        with pytest.raises(ValidationError) as exc:
            _place(tenant_a, (lamp, 3), (lamp, 3))
        assert "5 available" in str(exc.value)
        assert _stock(lamp) == 5

        order = _place(tenant_a, (lamp, 2), (lamp, 3))
        assert [li["quantity"] for li in order["line_items"]] == [5]
        assert order["subtotal_cents"] == 30000
        assert _stock(lamp) == 0

    def test_backorder_allows_overselling(self, db_session, tenant_a, mug):
        products_service.update_product(tenant_a.id, mug["id"], {"allow_backorder": True})
        _place(tenant_a, (mug, 12))
        assert _stock(mug) == -2

    def test_untracked_stock_untouched(self, db_session, tenant_a):
        ebook = products_service.create_product(tenant_a.id, {
            "name": "Ebook", "product_type": "digital", "price_cents": 900,
        })
        order = _place(tenant_a, (ebook, 3))
        assert order["subtotal_cents"] == 2700
        assert _stock(ebook) == 0

    def test_inactive_product_rejected(self, db_session, tenant_a, mug):
        products_service.update_product(tenant_a.id, mug["id"], {"is_active": False})
        with pytest.raises(ValidationError):
            _place(tenant_a, (mug, 1))

    def test_foreign_product_is_missing(self, db_session, tenant_a, tenant_b):
        foreign = products_service.create_product(tenant_b.id, {"name": "Beta Mug", "price_cents": 900})
        with pytest.raises(NotFoundError):
            _place(tenant_a, (foreign, 1))

    def test_paid_order_is_processed(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1), financial_status="paid")
        assert order["processed_at"] is not None

    def test_refunded_status_rejected_on_create(self, db_session, tenant_a, mug):
        with pytest.raises(ValidationError):
            _place(tenant_a, (mug, 1), financial_status="refunded")


class TestVariantOrders:
    @pytest.fixture
    def tee_variants(self, tenant_a):
        tee = products_service.create_product(tenant_a.id, {"name": "Tee", "sku": "TEE", "price_cents": 0})
        result = variants_service.generate_variants(
            tenant_a.id, tee["id"], [{"name": "Size", "values": ["S", "M"]}],
            defaults={"price_cents": 2000, "inventory_quantity": 3},
        )
        return tee, result["variants"]

    def test_variant_price_and_stock(self, db_session, tenant_a, tee_variants):
        tee, variants = tee_variants
        small = variants[0]
        order = orders_service.create_order(tenant_a.id, {
            "email": "buyer@example.test",
            "items": [{"product_id": tee["id"], "variant_id": small["id"], "quantity": 2}],
        })
        assert order["subtotal_cents"] == 4000
        assert order["line_items"][0]["variant_title"] == "S"
        assert order["line_items"][0]["sku"] == "TEE-S"
        assert db.session.get(ProductVariant, small["id"]).inventory_quantity == 1

    def test_variant_required(self, db_session, tenant_a, tee_variants):
        tee, _ = tee_variants
        with pytest.raises(ValidationError):
            _place(tenant_a, (tee, 1))


class TestTotals:
    def test_weight_based_shipping(self, db_session, tenant_a, mug):
        # 2 x 0.5 kg default weight: 500 + 1 kg x 200
        order = _place(tenant_a, (mug, 2), shipping_method_id="weight_based_default")
        assert order["shipping_cents"] == 700
        assert order["total_cents"] == 3100

    def test_free_shipping_over_threshold(self, db_session, tenant_a, lamp):
        order = _place(tenant_a, (lamp, 2), shipping_method_id="weight_based_default")
        assert order["subtotal_cents"] == 12000
        assert order["shipping_cents"] == 0

    def test_unknown_shipping_method(self, db_session, tenant_a, mug):
        with pytest.raises(ValidationError):
            _place(tenant_a, (mug, 1), shipping_method_id="express")

    def test_tax_after_discount(self, db_session, tenant_a, mug):
        settings_service.update_store_settings(tenant_a.id, {"settings": {"tax_rate_bps": 1000}})
        discounts_service.create_discount(tenant_a.id, {"code": "ten", "type": "percentage", "value": 1000})

        order = _place(tenant_a, (mug, 2), discount_code="TEN")
        assert order["discount_cents"] == 240
        assert order["tax_cents"] == 216
        assert order["total_cents"] == 2400 - 240 + 216
        assert order["discount_code"] == "TEN"
        assert db_session.query(Discount).filter_by(code="TEN").one().usage_count == 1

    def test_free_shipping_code(self, db_session, tenant_a, mug):
        settings_service.update_store_settings(tenant_a.id, {"settings": {"tax_rate_bps": 1000}})
        discounts_service.create_discount(tenant_a.id, {"code": "SHIPFREE", "type": "free_shipping"})

        order = _place(tenant_a, (mug, 2), shipping_method_id="weight_based_default", discount_code="shipfree")
        assert order["shipping_cents"] == 700
        assert order["discount_cents"] == 700
        # Tax is still charged on the full goods subtotal
        assert order["tax_cents"] == 240
        assert order["total_cents"] == 2400 + 240

    def test_fixed_discount_capped_at_subtotal(self, db_session, tenant_a, mug):
        discounts_service.create_discount(tenant_a.id, {"code": "BIG", "type": "fixed_amount", "value": 5000})
        order = _place(tenant_a, (mug, 1), discount_code="BIG")
        assert order["discount_cents"] == 1200
        assert order["total_cents"] == 0

    def test_invalid_code_rejects_order(self, db_session, tenant_a, mug):
        with pytest.raises(ValidationError):
            _place(tenant_a, (mug, 1), discount_code="NOPE")
        assert _stock(mug) == 10


class TestCancel:
    def test_cancel_restocks_once(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 3))
        cancelled = orders_service.cancel_order(tenant_a.id, order["id"], "Customer changed mind")
        assert cancelled["financial_status"] == "cancelled"
        assert cancelled["cancel_reason"] == "Customer changed mind"
        assert cancelled["cancelled_at"] is not None
        assert _stock(mug) == 10

        with pytest.raises(ConflictError):
            orders_service.cancel_order(tenant_a.id, order["id"])
        assert _stock(mug) == 10

    def test_cancel_reverts_customer_totals(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        orders_service.cancel_order(tenant_a.id, order["id"])
        customer = db_session.query(Customer).one()
        assert customer.orders_count == 0
        assert customer.total_spent_cents == 0

    def test_status_update_to_cancelled_restocks(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 4))
        orders_service.update_order(tenant_a.id, order["id"], {"financial_status": "cancelled"})
        assert _stock(mug) == 10

    def test_cancelled_order_cannot_be_paid(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        orders_service.cancel_order(tenant_a.id, order["id"])
        with pytest.raises(ConflictError):
            orders_service.update_order(tenant_a.id, order["id"], {"financial_status": "paid"})


class TestUpdateOrder:
    def test_status_timestamps(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        updated = orders_service.update_order(tenant_a.id, order["id"], {
            "financial_status": "paid", "fulfillment_status": "fulfilled", "notes": "  Leave at door ",
        })
        assert updated["processed_at"] is not None
        assert updated["fulfilled_at"] is not None
        assert updated["notes"] == "Leave at door"

    def test_unknown_field_rejected(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        with pytest.raises(ValidationError):
            orders_service.update_order(tenant_a.id, order["id"], {"total_cents": 1})

    def test_invalid_status(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        with pytest.raises(ValidationError):
            orders_service.update_order(tenant_a.id, order["id"], {"fulfillment_status": "lost"})


class TestLineItems:
    def test_add_line_item(self, db_session, tenant_a, mug, lamp):
        order = _place(tenant_a, (mug, 1))
        updated = orders_service.add_line_item(tenant_a.id, order["id"], {"product_id": lamp["id"], "quantity": 1})
        assert len(updated["line_items"]) == 2
        assert updated["subtotal_cents"] == 7200
        assert updated["total_cents"] == 7200
        assert _stock(lamp) == 4
        assert db_session.query(Customer).one().total_spent_cents == 7200

    def test_update_quantity_adjusts_stock(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 2))
        line_id = order["line_items"][0]["id"]

        updated = orders_service.update_line_item(tenant_a.id, order["id"], line_id, {"quantity": 5})
        assert updated["subtotal_cents"] == 6000
        assert _stock(mug) == 5

        orders_service.update_line_item(tenant_a.id, order["id"], line_id, {"quantity": 1})
        assert _stock(mug) == 9

    def test_percentage_code_follows_quantity_edits(self, db_session, tenant_a, mug):
        discounts_service.create_discount(tenant_a.id, {"code": "TEN", "type": "percentage", "value": 1000})
        order = _place(tenant_a, (mug, 1), discount_code="TEN")
        assert order["discount_cents"] == 120

        updated = orders_service.update_line_item(
            tenant_a.id, order["id"], order["line_items"][0]["id"], {"quantity": 4},
        )
        assert updated["subtotal_cents"] == 4800
        assert updated["discount_cents"] == 480
        assert updated["total_cents"] == 4320
        assert db_session.query(Customer).one().total_spent_cents == 4320

    def test_fixed_code_recovers_after_subtotal_drops(self, db_session, tenant_a, mug):
        discounts_service.create_discount(tenant_a.id, {"code": "FIVE", "type": "fixed_amount", "value": 2000})
        order = _place(tenant_a, (mug, 2), discount_code="FIVE")
        line_id = order["line_items"][0]["id"]

        updated = orders_service.update_line_item(tenant_a.id, order["id"], line_id, {"quantity": 1})
        assert updated["discount_cents"] == 1200

        updated = orders_service.update_line_item(tenant_a.id, order["id"], line_id, {"quantity": 3})
        assert updated["discount_cents"] == 2000
        assert updated["total_cents"] == 3600 - 2000

    def test_update_quantity_beyond_stock(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 2))
        with pytest.raises(ValidationError):
            orders_service.update_line_item(tenant_a.id, order["id"], order["line_items"][0]["id"], {"quantity": 20})

    def test_last_line_cannot_be_removed(self, db_session, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        with pytest.raises(ValidationError):
            orders_service.remove_line_item(tenant_a.id, order["id"], order["line_items"][0]["id"])

    def test_remove_line_restocks(self, db_session, tenant_a, mug, lamp):
        order = _place(tenant_a, (mug, 2), (lamp, 1))
        lamp_line = [li for li in order["line_items"] if li["product_id"] == lamp["id"]][0]

        updated = orders_service.remove_line_item(tenant_a.id, order["id"], lamp_line["id"])
        assert len(updated["line_items"]) == 1
        assert updated["total_cents"] == 2400
        assert _stock(lamp) == 5

    def test_cancelled_order_not_editable(self, db_session, tenant_a, mug, lamp):
        order = _place(tenant_a, (mug, 1))
        orders_service.cancel_order(tenant_a.id, order["id"])
        with pytest.raises(ConflictError):
            orders_service.add_line_item(tenant_a.id, order["id"], {"product_id": lamp["id"], "quantity": 1})


class TestOrderStats:
    def test_stats(self, db_session, tenant_a, mug):
        _place(tenant_a, (mug, 1), financial_status="paid")
        _place(tenant_a, (mug, 2), financial_status="paid")
        _place(tenant_a, (mug, 1))

        stats = orders_service.get_order_stats(tenant_a.id)
        assert stats["total"] == 3
        assert stats["financial_status"]["paid"] == 2
        assert stats["financial_status"]["pending"] == 1
        assert stats["revenue_cents"] == 3600
        assert stats["average_order_cents"] == 1800


class TestOrdersApi:
    def test_create_and_fetch(self, client, headers_a, mug):
        resp = client.post("/api/orders", json={
            "email": "buyer@example.test", "items": [{"product_id": mug["id"], "quantity": 1}],
        }, headers=headers_a)
        assert resp.status_code == 201
        order_id = resp.json["id"]

        resp = client.get(f"/api/orders/{order_id}", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["customer"]["email"] == "buyer@example.test"

    def test_stock_error_is_400(self, client, headers_a, mug):
        resp = client.post("/api/orders", json={
            "email": "buyer@example.test", "items": [{"product_id": mug["id"], "quantity": 50}],
        }, headers=headers_a)
        assert resp.status_code == 400

    def test_foreign_order_is_404(self, client, headers_b, tenant_a, mug):
        order = _place(tenant_a, (mug, 1))
        assert client.get(f"/api/orders/{order['id']}", headers=headers_b).status_code == 404
        assert client.post(f"/api/orders/{order['id']}/cancel", json={}, headers=headers_b).status_code == 404
