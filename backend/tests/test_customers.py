# Overview: Pytest coverage for tenant customers and checkout customer resolution.

import pytest
from aluro.extensions import db
from aluro.models import Customer
from aluro.services import customers_service, orders_service, products_service
from aluro.services.tenant_database import TenantDatabase
from aluro.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def jane(tenant_a):
    return customers_service.create_customer(tenant_a.id, {
        "email": " Jane@Example.test ", "first_name": "Jane", "last_name": "Doe", "tags": ["vip"],
    })


class TestCustomers:
    def test_email_normalized(self, jane):
        assert jane["email"] == "jane@example.test"
        assert jane["orders_count"] == 0
        assert jane["total_spent_cents"] == 0

    def test_email_required(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            customers_service.create_customer(tenant_a.id, {"first_name": "Nobody"})

    @pytest.mark.parametrize("payload", [
        {"email": "not-an-email"},
        {"email": "ok@example.test", "phone": "abc"},
        {"email": "ok@example.test", "tags": "vip"},
        {"email": "ok@example.test", "addresses": {"city": "Lyon"}},
    ])
    def test_invalid_fields(self, db_session, tenant_a, payload):
        with pytest.raises(ValidationError):
            customers_service.create_customer(tenant_a.id, payload)

    def test_duplicate_email(self, tenant_a, jane):
        with pytest.raises(ConflictError):
            customers_service.create_customer(tenant_a.id, {"email": "JANE@example.test"})

    def test_same_email_in_other_store(self, tenant_b, jane):
        other = customers_service.create_customer(tenant_b.id, {"email": "jane@example.test"})
        assert other["id"] != jane["id"]

    def test_update_to_taken_email(self, tenant_a, jane):
        john = customers_service.create_customer(tenant_a.id, {"email": "john@example.test"})
        with pytest.raises(ConflictError):
            customers_service.update_customer(tenant_a.id, john["id"], {"email": "jane@example.test"})
        # Keeping your own email is fine
        updated = customers_service.update_customer(tenant_a.id, jane["id"], {
            "email": "jane@example.test", "phone": "+1 (555) 010-2000",
        })
        assert updated["phone"] == "+1 (555) 010-2000"

    def test_search(self, tenant_a, jane):
        customers_service.create_customer(tenant_a.id, {"email": "john@example.test", "first_name": "John"})
        assert customers_service.list_customers(tenant_a.id, search="doe")["count"] == 1
        assert customers_service.list_customers(tenant_a.id, search="example")["count"] == 2

    def test_foreign_customer_is_missing(self, tenant_b, jane):
        with pytest.raises(NotFoundError):
            customers_service.get_customer(tenant_b.id, jane["id"])
        with pytest.raises(NotFoundError):
            customers_service.delete_customer(tenant_b.id, jane["id"])


class TestCustomerOrders:
    @pytest.fixture
    def mug(self, tenant_a):
        return products_service.create_product(tenant_a.id, {
            "name": "Coffee Mug", "price_cents": 1200, "inventory_quantity": 10,
        })

    def test_checkout_reuses_customer_and_updates_totals(self, tenant_a, jane, mug):
        order = orders_service.create_order(tenant_a.id, {
            "email": "JANE@example.test",
            "items": [{"product_id": mug["id"], "quantity": 2}],
        })
        assert order["customer_id"] == jane["id"]

        detail = customers_service.get_customer(tenant_a.id, jane["id"])
        assert detail["orders_count"] == 1
        assert detail["total_spent_cents"] == order["total_cents"]
        assert detail["last_order_at"] is not None
        assert [o["order_number"] for o in detail["orders"]] == ["ORD-000001"]

    def test_delete_keeps_orders(self, tenant_a, jane, mug):
        order = orders_service.create_order(tenant_a.id, {
            "customer_id": jane["id"],
            "items": [{"product_id": mug["id"], "quantity": 1}],
        })
        customers_service.delete_customer(tenant_a.id, jane["id"])

        kept = orders_service.get_order(tenant_a.id, order["id"])
        assert kept["customer_id"] is None
        assert kept["email"] == "jane@example.test"

    def test_find_or_create(self, db_session, tenant_a):
        tdb = TenantDatabase(tenant_a.id)
        first = customers_service.find_or_create_customer(tdb, " New@Example.test ", first_name="New")
        again = customers_service.find_or_create_customer(tdb, "new@example.test")
        db.session.commit()
        assert first.id == again.id
        assert db.session.query(Customer).filter_by(tenant_id=tenant_a.id).count() == 1

        with pytest.raises(ValidationError):
            customers_service.find_or_create_customer(tdb, "broken")


class TestCustomersApi:
    def test_crud(self, client, headers_a):
        resp = client.post("/api/customers", json={"email": "api@example.test", "first_name": "Api"},
                           headers=headers_a)
        assert resp.status_code == 201
        customer_id = resp.json["id"]

        assert client.post("/api/customers", json={"email": "api@example.test"}, headers=headers_a).status_code == 409

        resp = client.patch(f"/api/customers/{customer_id}", json={"last_name": "User"}, headers=headers_a)
        assert resp.json["last_name"] == "User"

        resp = client.get("/api/customers?search=api", headers=headers_a)
        assert resp.json["count"] == 1

        assert client.delete(f"/api/customers/{customer_id}", headers=headers_a).status_code == 200
        assert client.get(f"/api/customers/{customer_id}", headers=headers_a).status_code == 404

    def test_other_store_cannot_read(self, client, headers_b, jane):
        assert client.get(f"/api/customers/{jane['id']}", headers=headers_b).status_code == 404
