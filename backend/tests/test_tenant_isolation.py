# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

These tests create two stores with separate owners, then verify that:
1. Owner A cannot read/write data in store B
2. Passing a foreign category/customer id is rejected
3. Cross-tenant lookups answer "not found" (never revealing existence)
4. Security events are logged for cross-tenant access attempts
"""

import pytest
from aluro.extensions import db
from aluro.models import Category, Product, SecurityEvent
from aluro.services import customers_service, discounts_service, orders_service, products_service
from aluro.services.permission_service import persist_security_events
from aluro.services.session_service import SessionError, create_session, switch_tenant, validate_session
from aluro.services.tenant_database import TenantDatabase
from aluro.services.tenant_service import TenantAccessError, require_tenant_row

from conftest import add_member, session_token


@pytest.fixture
def product_a(tenant_a):
    return products_service.create_product(tenant_a.id, {"name": "Acme Mug", "price_cents": 1200, "inventory_quantity": 10})


@pytest.fixture
def product_b(tenant_b):
    return products_service.create_product(tenant_b.id, {"name": "Beta Mug", "price_cents": 900, "inventory_quantity": 4})


class TestTenantDatabase:
    """TenantDatabase only ever sees its own tenant's rows."""

    def test_requires_tenant_id(self, db_session):
        with pytest.raises(ValueError):
            TenantDatabase(None)

    def test_get_product_scoped(self, db_session, tenant_a, tenant_b, product_a, product_b):
        tdb_a = TenantDatabase(tenant_a.id)
        assert tdb_a.get_product(product_a["id"]).id == product_a["id"]
        assert tdb_a.get_product(product_b["id"]) is None

    def test_products_query_scoped(self, db_session, tenant_a, tenant_b, product_a, product_b):
        ids_a = {p.id for p in TenantDatabase(tenant_a.id).get_products()}
        ids_b = {p.id for p in TenantDatabase(tenant_b.id).get_products()}
        assert ids_a == {product_a["id"]}
        assert ids_b == {product_b["id"]}

    def test_insert_stamps_tenant_id(self, db_session, tenant_a, tenant_b):
        """A tenant_id smuggled in the data is overwritten by the scope."""
        category = TenantDatabase(tenant_a.id).create_category(
            {"name": "Sneaky", "slug": "sneaky", "tenant_id": tenant_b.id}
        )
        db_session.commit()
        assert category.tenant_id == tenant_a.id

    def test_update_cannot_move_row(self, db_session, tenant_a, tenant_b, product_a):
        tdb = TenantDatabase(tenant_a.id)
        tdb.update_product(product_a["id"], {"tenant_id": tenant_b.id, "name": "Renamed"})
        db_session.commit()
        product = db.session.get(Product, product_a["id"])
        assert product.tenant_id == tenant_a.id
        assert product.name == "Renamed"

    def test_delete_foreign_row_is_noop(self, db_session, tenant_a, product_b):
        assert TenantDatabase(tenant_a.id).delete_product(product_b["id"]) is False
        assert db.session.get(Product, product_b["id"]) is not None

    def test_same_slug_in_two_stores(self, db_session, tenant_a, tenant_b):
        """Slugs are unique per tenant, not globally."""
        a = products_service.create_product(tenant_a.id, {"name": "Same Name", "price_cents": 100})
        b = products_service.create_product(tenant_b.id, {"name": "Same Name", "price_cents": 100})
        assert a["slug"] == b["slug"] == "same-name"


class TestTenantDatabaseQueries:
    """Paging, low-stock and discount-code lookups on the scoped wrapper."""

    @pytest.fixture
    def twelve_products(self, tenant_a, tenant_b):
        products_service.create_product(tenant_b.id, {"name": "Foreign", "price_cents": 100})
        return [
            products_service.create_product(tenant_a.id, {"name": f"Item {n:02d}", "price_cents": 100})
            for n in range(12)
        ]

    def test_newest_first_with_limit(self, db_session, tenant_a, twelve_products):
        tdb = TenantDatabase(tenant_a.id)
        assert len(tdb.get_products()) == 12
        names = [p.name for p in tdb.get_products(limit=3)]
        assert names == ["Item 11", "Item 10", "Item 09"]

    def test_offset_alone_uses_page_of_ten(self, db_session, tenant_a, twelve_products):
        tdb = TenantDatabase(tenant_a.id)
        assert len(tdb.get_products(offset=0)) == 10
        assert [p.name for p in tdb.get_products(offset=10)] == ["Item 01", "Item 00"]
        assert [p.name for p in tdb.get_products(limit=2, offset=4)] == ["Item 07", "Item 06"]

    def test_untracked_and_digital_never_low(self, db_session, tenant_a):
        tdb = TenantDatabase(tenant_a.id)
        untracked = products_service.create_product(tenant_a.id, {
            "name": "Gift Wrap", "price_cents": 100, "track_inventory": False, "inventory_quantity": 0,
        })
        ebook = products_service.create_product(tenant_a.id, {
            "name": "Ebook", "product_type": "digital", "price_cents": 900,
        })
        assert tdb.is_product_low_stock(tdb.get_product(untracked["id"])) is False

        digital = tdb.get_product(ebook["id"])
        digital.track_inventory = True
        assert tdb.is_product_low_stock(digital) is False
        db_session.rollback()

        assert tdb.get_low_stock_products() == []

    def test_low_stock_threshold_and_order(self, db_session, tenant_a, tenant_b):
        tdb = TenantDatabase(tenant_a.id)
        for name, quantity in [("Four", 4), ("Five", 5), ("Zero", 0), ("Two", 2)]:
            products_service.create_product(tenant_a.id, {
                "name": name, "price_cents": 100, "inventory_quantity": quantity,
            })
        products_service.create_product(tenant_b.id, {"name": "Foreign", "price_cents": 100, "inventory_quantity": 1})

        assert tdb.get_low_stock_threshold() == 5
        assert [p.name for p in tdb.get_low_stock_products()] == ["Zero", "Two", "Four"]
        assert [p.name for p in tdb.get_low_stock_products(limit=1)] == ["Zero"]

        tdb.update_tenant_settings({**tdb.get_tenant_settings(), "low_stock_threshold": 3})
        db_session.commit()
        assert [p.name for p in tdb.get_low_stock_products()] == ["Zero", "Two"]

    def test_discount_code_lookup_ignores_case(self, db_session, tenant_a, tenant_b):
        discount = discounts_service.create_discount(tenant_a.id, {"code": "Summer10", "type": "percentage", "value": 1000})
        tdb = TenantDatabase(tenant_a.id)

        assert tdb.get_discount_by_code("summer10").id == discount["id"]
        assert tdb.get_discount_by_code(" SUMMER10 ").id == discount["id"]
        assert TenantDatabase(tenant_b.id).get_discount_by_code("SUMMER10") is None

        discounts_service.update_discount(tenant_a.id, discount["id"], {"is_active": False})
        assert tdb.get_discount_by_code("summer10") is None
        assert tdb.get_discount_by_code("summer10", active_only=False).id == discount["id"]


class TestRequireTenantRow:
    """Row ids from client input are validated against the tenant."""

    def test_own_row_passes(self, db_session, tenant_a):
        category = TenantDatabase(tenant_a.id).get_categories()[0]
        assert require_tenant_row(Category, category.id, tenant_a.id).id == category.id

    def test_foreign_row_rejected_and_logged(self, app, db_session, tenant_a, tenant_b):
        foreign = TenantDatabase(tenant_b.id).get_categories()[0]
        initial = db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count()

        with app.test_request_context():
            with pytest.raises(TenantAccessError) as exc:
                require_tenant_row(Category, foreign.id, tenant_a.id, label="Category")

        assert str(exc.value) == "Category not found"
        final = db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count()
        assert final == initial + 1

    def test_denial_does_not_commit_pending_work(self, app, db_session, tenant_a, tenant_b):
        foreign = TenantDatabase(tenant_b.id).get_categories()[0]
        initial = db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count()

        with app.test_request_context():
            db_session.add(Product(tenant_id=tenant_a.id, name="Half Done", slug="half-done", price_cents=100))
            with pytest.raises(TenantAccessError):
                require_tenant_row(Category, foreign.id, tenant_a.id)
            db_session.rollback()
            assert persist_security_events() == 1

        assert db_session.query(Product).filter_by(slug="half-done").count() == 0
        final = db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count()
        assert final == initial + 1

    def test_missing_row_rejected(self, db_session, tenant_a):
        with pytest.raises(TenantAccessError):
            require_tenant_row(Category, 999999, tenant_a.id)

    def test_product_with_foreign_category_rejected(self, app, db_session, tenant_a, tenant_b):
        foreign = TenantDatabase(tenant_b.id).get_categories()[0]
        with app.test_request_context():
            with pytest.raises(TenantAccessError):
                products_service.create_product(
                    tenant_a.id, {"name": "Mug", "price_cents": 500, "category_id": foreign.id}
                )

    def test_order_for_foreign_customer_rejected(self, app, db_session, tenant_a, tenant_b, product_a):
        customer_b = customers_service.create_customer(tenant_b.id, {"email": "buyer@beta.test"})
        with app.test_request_context():
            with pytest.raises(TenantAccessError):
                orders_service.create_order(tenant_a.id, {
                    "customer_id": customer_b["id"],
                    "items": [{"product_id": product_a["id"], "quantity": 1}],
                })


class TestSessionTenantContext:
    """Sessions carry one tenant at a time."""

    def test_session_defaults_to_first_store(self, db_session, owner_a, tenant_a):
        session, _ = create_session(user_id=owner_a.id)
        assert session.tenant_id == tenant_a.id

    def test_session_for_foreign_store_rejected(self, db_session, owner_a, tenant_a, tenant_b):
        with pytest.raises(SessionError):
            create_session(user_id=owner_a.id, tenant_id=tenant_b.id)

    def test_validate_session_returns_role(self, db_session, owner_a, tenant_a):
        _, token = create_session(user_id=owner_a.id, tenant_id=tenant_a.id)
        context = validate_session(token)
        assert context.tenant_id == tenant_a.id
        assert context.role == "owner"

    def test_switch_to_member_store(self, db_session, owner_a, tenant_a, tenant_b):
        helper = add_member(tenant_b, "helper@beta.test", "staff")
        helper_session, _ = create_session(user_id=helper.id)
        assert helper_session.tenant_id == tenant_b.id
        with pytest.raises(SessionError):
            switch_tenant(helper_session, tenant_a.id)

    def test_removed_membership_drops_tenant_context(self, db_session, tenant_a):
        staff = add_member(tenant_a, "staff@acme.test", "staff")
        token = session_token(staff, tenant_a)
        TenantDatabase(tenant_a.id).get_tenant_user_by_user_id(staff.id).is_active = False
        db_session.commit()

        context = validate_session(token)
        assert context is not None
        assert context.tenant_id is None


class TestCrossTenantApi:
    """HTTP layer answers 404 for another store's rows."""

    def test_read_foreign_product(self, client, headers_a, product_b):
        resp = client.get(f"/api/products/{product_b['id']}", headers=headers_a)
        assert resp.status_code == 404

    def test_update_foreign_product(self, client, headers_a, product_b):
        resp = client.put(f"/api/products/{product_b['id']}", json={"name": "Hijacked"}, headers=headers_a)
        assert resp.status_code == 404
        assert db.session.get(Product, product_b["id"]).name == "Beta Mug"

    def test_delete_foreign_product(self, client, headers_a, product_b):
        resp = client.delete(f"/api/products/{product_b['id']}", headers=headers_a)
        assert resp.status_code == 404
        assert db.session.get(Product, product_b["id"]) is not None

    def test_list_only_own_products(self, client, headers_a, product_a, product_b):
        resp = client.get("/api/products", headers=headers_a)
        assert resp.status_code == 200
        ids = [p["id"] for p in resp.json["items"]]
        assert ids == [product_a["id"]]

    def test_create_with_foreign_category(self, client, headers_a, tenant_b):
        foreign = TenantDatabase(tenant_b.id).get_categories()[0]
        resp = client.post("/api/products", json={
            "name": "Mug", "price_cents": 500, "category_id": foreign.id,
        }, headers=headers_a)
        assert resp.status_code == 404
        events = db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count()
        assert events == 1
        assert db.session.query(Product).filter_by(name="Mug").count() == 0

    def test_switch_to_foreign_store_denied(self, client, headers_a, tenant_b):
        resp = client.post("/api/auth/switch-tenant", json={"tenant_id": tenant_b.id}, headers=headers_a)
        assert resp.status_code == 404
        events = db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count()
        assert events >= 1

    def test_tenant_id_in_body_rejected(self, client, headers_a, tenant_a, tenant_b):
        resp = client.post("/api/products", json={
            "name": "Planted", "price_cents": 500, "tenant_id": tenant_b.id,
        }, headers=headers_a)
        # tenant_id is not writable
        assert resp.status_code == 400
        assert TenantDatabase(tenant_b.id).get_product_by_slug("planted") is None
