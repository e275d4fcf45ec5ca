# Overview: Pytest coverage for products, variants, categories and brands.

import pytest
from aluro.extensions import db
from aluro.models import CartItem, Product, ProductVariant
from aluro.services import categories_service, products_service, variants_service
from aluro.services.tenant_database import TenantDatabase
from aluro.slugs import check_slug_availability, clean_slug, generate_slug, suggest_unique_slug
from aluro.validation import ConflictError, NotFoundError, ValidationError


SIZE_COLOR = [
    {"name": "Size", "values": ["S", "M", "L"]},
    {"name": "Color", "values": ["Red", "Blue"]},
]


@pytest.fixture
def tee(tenant_a):
    return products_service.create_product(tenant_a.id, {
        "name": "Basic Tee", "sku": "TEE", "price_cents": 1500, "inventory_quantity": 20,
    })


class TestSlugs:
    def test_generate_slug_folds_accents(self):
        assert generate_slug("Café Crème Mug!") == "cafe-creme-mug"

    def test_generate_slug_collapses_separators(self):
        assert generate_slug("  Hello -- World  ") == "hello-world"

    def test_clean_slug_keeps_trailing_dash(self):
        assert clean_slug("My Slug-") == "myslug-"

    def test_suggest_unique_slug(self, db_session, tenant_a, tee):
        assert suggest_unique_slug(Product, tenant_a.id, "basic-tee") == "basic-tee-2"
        assert suggest_unique_slug(Product, tenant_a.id, "other") == "other"

    def test_check_availability(self, db_session, tenant_a, tee):
        assert check_slug_availability(Product, tenant_a.id, "basic-tee")["available"] is False
        assert check_slug_availability(Product, tenant_a.id, "basic-tee", exclude_id=tee["id"])["available"] is True
        assert check_slug_availability(Product, tenant_a.id, "!!!")["valid"] is False


class TestVariantCombinations:
    def test_cartesian_order(self):
        combos = variants_service.generate_variant_combinations(SIZE_COLOR)
        assert [c["title"] for c in combos] == [
            "S / Red", "S / Blue", "M / Red", "M / Blue", "L / Red", "L / Blue",
        ]
        assert combos[0]["option1"] == "S"
        assert combos[0]["option2"] == "Red"
        assert combos[0]["option3"] is None

    def test_blank_and_duplicate_values_dropped(self):
        combos = variants_service.generate_variant_combinations([
            {"name": "Size", "values": ["S", " S ", "", "M"]},
        ])
        assert [c["title"] for c in combos] == ["S", "M"]

    def test_options_without_values_ignored(self):
        combos = variants_service.generate_variant_combinations([
            {"name": "Size", "values": ["S"]},
            {"name": "Material", "values": []},
        ])
        assert len(combos) == 1

    def test_empty_options(self):
        assert variants_service.generate_variant_combinations([]) == []
        assert variants_service.generate_variant_combinations(None) == []

    def test_too_many_options(self):
        options = [{"name": f"Opt{i}", "values": ["a"]} for i in range(4)]
        with pytest.raises(ValidationError):
            variants_service.normalize_options(options)

    def test_duplicate_option_names(self):
        with pytest.raises(ValidationError):
            variants_service.normalize_options([
                {"name": "Size", "values": ["S"]},
                {"name": "size", "values": ["M"]},
            ])

    def test_combination_cap(self, app):
        options = [
            {"name": "A", "values": [str(i) for i in range(10)]},
            {"name": "B", "values": [str(i) for i in range(11)]},
        ]
        with app.app_context():
            with pytest.raises(ValidationError):
                variants_service.generate_variant_combinations(options)

    def test_build_variant_sku(self):
        assert variants_service.build_variant_sku("TEE", ["S", "Navy Blue"]) == "TEE-S-NAVY-BLUE"
        assert variants_service.build_variant_sku(None, ["S"]) is None


class TestGenerateVariants:
    def test_creates_variants_and_converts_product(self, db_session, tenant_a, tee):
        result = variants_service.generate_variants(
            tenant_a.id, tee["id"], SIZE_COLOR, defaults={"price_cents": 1800, "inventory_quantity": 3},
        )
        assert result["created"] == 6
        product = db.session.get(Product, tee["id"])
        assert product.product_type == "variable"
        assert product.price_cents == 0
        assert product.inventory_quantity == 0
        skus = {v["sku"] for v in result["variants"]}
        assert "TEE-S-RED" in skus
        assert all(v["price_cents"] == 1800 for v in result["variants"])

    def test_regenerate_keeps_existing_and_prunes(self, db_session, tenant_a, tee):
        variants_service.generate_variants(tenant_a.id, tee["id"], SIZE_COLOR)
        result = variants_service.generate_variants(
            tenant_a.id, tee["id"], [{"name": "Size", "values": ["S", "M", "L"]}, {"name": "Color", "values": ["Red"]}],
            prune=True,
        )
        assert result["created"] == 0
        assert result["kept"] == 3
        assert result["deactivated"] == 3

    def test_digital_products_rejected(self, db_session, tenant_a):
        ebook = products_service.create_product(tenant_a.id, {
            "name": "Ebook", "product_type": "digital", "price_cents": 900,
        })
        with pytest.raises(ValidationError):
            variants_service.generate_variants(tenant_a.id, ebook["id"], SIZE_COLOR)

    def test_price_range(self, db_session, tenant_a, tee):
        variants_service.generate_variants(tenant_a.id, tee["id"], [{"name": "Size", "values": ["S", "L"]}])
        variants = TenantDatabase(tenant_a.id).get_product_variants(tee["id"])
        variants_service.update_variant(tenant_a.id, tee["id"], variants[1].id, {"price_cents": 2500})
        variants_service.update_variant(tenant_a.id, tee["id"], variants[0].id, {"price_cents": 2000})

        product = products_service.get_product(tenant_a.id, tee["id"])
        assert product["price_range"] == {"min": 2000, "max": 2500}
        assert product["price_display"] == "$20.00 - $25.00"

    def test_variant_sku_conflict(self, db_session, tenant_a, tee):
        variants_service.generate_variants(tenant_a.id, tee["id"], [{"name": "Size", "values": ["S"]}])
        with pytest.raises(ConflictError):
            variants_service.create_variant(tenant_a.id, tee["id"], {"price_cents": 100, "sku": "TEE"})

    def test_variants_need_variable_product(self, db_session, tenant_a, tee):
        with pytest.raises(ValidationError):
            variants_service.create_variant(tenant_a.id, tee["id"], {"price_cents": 100, "title": "One"})

    def test_variant_of_other_product(self, db_session, tenant_a, tee):
        other = products_service.create_product(tenant_a.id, {"name": "Hoodie", "price_cents": 4000})
        result = variants_service.generate_variants(tenant_a.id, tee["id"], [{"name": "Size", "values": ["S"]}])
        variant_id = result["variants"][0]["id"]
        with pytest.raises(NotFoundError):
            variants_service.update_variant(tenant_a.id, other["id"], variant_id, {"price_cents": 200})

    def test_generate_via_api(self, client, headers_a, tee):
        resp = client.post(f"/api/products/{tee['id']}/variants/generate", json={
            "options": SIZE_COLOR, "defaults": {"price_cents": 1500},
        }, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["created"] == 6

        resp = client.post("/api/products/variants/preview", json={"options": SIZE_COLOR}, headers=headers_a)
        assert resp.status_code == 200


class TestLegacyVariants:
    def test_parse_formats(self):
        assert variants_service.parse_legacy_variants('[{"title": "S"}]') == [{"title": "S"}]
        assert variants_service.parse_legacy_variants({"a": {"title": "S"}}) == [{"title": "S"}]
        assert variants_service.parse_legacy_variants("not json") == []
        assert variants_service.parse_legacy_variants(None) == []

    def test_migrate(self, db_session, tenant_a, tee):
        product = db.session.get(Product, tee["id"])
        product.legacy_variants = [
            {"title": "Small", "option1": "S", "price": "12.50", "stock_quantity": 4},
            {"title": "Large", "option1": "L", "price": 15},
        ]
        db_session.commit()

        result = variants_service.migrate_legacy_variants(tenant_a.id)
        assert result["migrated"] == 1
        variants = TenantDatabase(tenant_a.id).get_product_variants(tee["id"])
        by_title = {v.title: v for v in variants}
        assert by_title["Small"].price_cents == 1250
        assert by_title["Small"].inventory_quantity == 4
        assert by_title["Large"].price_cents == 1500
        assert db.session.get(Product, tee["id"]).legacy_variants is None

    def test_migrate_renames_taken_skus(self, db_session, tenant_a, tee):
        hoodie = products_service.create_product(tenant_a.id, {"name": "Hoodie", "price_cents": 4000})
        db.session.get(Product, tee["id"]).legacy_variants = [{"title": "One", "sku": "LEG-1", "price": 10}]
        db.session.get(Product, hoodie["id"]).legacy_variants = [
            {"title": "One", "sku": "LEG-1", "price": 10},
            {"title": "Two", "sku": "TEE", "price": 10},
        ]
        db_session.commit()

        result = variants_service.migrate_legacy_variants(tenant_a.id)
        assert result["migrated"] == 2

        skus = sorted(v.sku for v in db_session.query(ProductVariant).filter_by(tenant_id=tenant_a.id))
        assert skus == ["LEG-1", "LEG-1-2", "TEE-2"]


class TestProducts:
    def test_create_generates_slug(self, db_session, tenant_a):
        product = products_service.create_product(tenant_a.id, {"name": "Coffee Mug", "price_cents": 1200})
        assert product["slug"] == "coffee-mug"
        assert product["product_type"] == "single"

    def test_price_required_for_single(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            products_service.create_product(tenant_a.id, {"name": "Priceless"})

    def test_variable_product_price_zeroed(self, db_session, tenant_a):
        product = products_service.create_product(tenant_a.id, {
            "name": "Variable", "product_type": "variable", "price_cents": 999, "inventory_quantity": 8,
        })
        assert product["price_cents"] == 0
        assert product["inventory_quantity"] == 0

    def test_digital_product_not_tracked(self, db_session, tenant_a):
        product = products_service.create_product(tenant_a.id, {
            "name": "Ebook", "product_type": "digital", "price_cents": 900, "track_inventory": True,
        })
        assert product["track_inventory"] is False
        assert product["inventory"]["status"] == "digital"

    def test_negative_price_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            products_service.create_product(tenant_a.id, {"name": "Bad", "price_cents": -1})

    def test_duplicate_slug_and_sku(self, db_session, tenant_a, tee):
        with pytest.raises(ConflictError):
            products_service.create_product(tenant_a.id, {"name": "Other", "slug": "basic-tee", "price_cents": 100})
        with pytest.raises(ConflictError):
            products_service.create_product(tenant_a.id, {"name": "Other", "sku": "TEE", "price_cents": 100})

    def test_unknown_field_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            products_service.create_product(tenant_a.id, {"name": "X", "price_cents": 100, "usage_count": 3})

    def test_update_keeps_slug(self, db_session, tenant_a, tee):
        updated = products_service.update_product(tenant_a.id, tee["id"], {"name": "Premium Tee"})
        assert updated["name"] == "Premium Tee"
        assert updated["slug"] == "basic-tee"

    def test_list_filters_and_pagination(self, db_session, tenant_a, tee):
        products_service.create_product(tenant_a.id, {"name": "Hidden", "price_cents": 100, "is_active": False})
        assert products_service.list_products(tenant_a.id)["count"] == 2
        assert products_service.list_products(tenant_a.id, status="active")["count"] == 1
        page = products_service.list_products(tenant_a.id, page=1, per_page=1)
        assert len(page["items"]) == 1
        assert page["pagination"]["total"] == 2
        with pytest.raises(ValidationError):
            products_service.list_products(tenant_a.id, status="archived")

    def test_search(self, db_session, tenant_a, tee):
        assert products_service.list_products(tenant_a.id, search="basic")["count"] == 1
        assert products_service.list_products(tenant_a.id, search="nothing")["count"] == 0

    def test_stats_and_low_stock(self, db_session, tenant_a, tee):
        products_service.create_product(tenant_a.id, {"name": "Low", "price_cents": 100, "inventory_quantity": 2})
        products_service.create_product(tenant_a.id, {"name": "Out", "price_cents": 100, "inventory_quantity": 0})
        products_service.create_product(tenant_a.id, {
            "name": "Untracked", "price_cents": 100, "inventory_quantity": 0, "track_inventory": False,
        })

        stats = products_service.get_product_stats(tenant_a.id)
        assert stats["total"] == 4
        assert stats["low_stock"] == 1
        assert stats["out_of_stock"] == 1
        assert stats["low_stock_threshold"] == 5

        low = products_service.list_low_stock(tenant_a.id)
        assert [p["name"] for p in low["items"]] == ["Out", "Low"]

    def test_low_stock_threshold_from_settings(self, db_session, tenant_a, tee):
        tenant_a.settings = dict(tenant_a.settings or {}, low_stock_threshold=50)
        db_session.commit()
        assert [p["name"] for p in products_service.list_low_stock(tenant_a.id)["items"]] == ["Basic Tee"]

    def test_delete_removes_cart_lines(self, db_session, tenant_a, tee):
        TenantDatabase(tenant_a.id).add_to_cart(tee["id"], 1, session_id="guest-session-0001")
        db_session.commit()

        products_service.delete_product(tenant_a.id, tee["id"])
        assert db.session.get(Product, tee["id"]) is None
        assert db_session.query(CartItem).count() == 0

    def test_delete_removes_variants(self, db_session, tenant_a, tee):
        variants_service.generate_variants(tenant_a.id, tee["id"], SIZE_COLOR)
        products_service.delete_product(tenant_a.id, tee["id"])
        assert db_session.query(ProductVariant).count() == 0

    def test_api_crud(self, client, headers_a):
        resp = client.post("/api/products", json={"name": "Api Mug", "price_cents": 1000}, headers=headers_a)
        assert resp.status_code == 201
        product_id = resp.json["id"]

        resp = client.patch(f"/api/products/{product_id}", json={"price_cents": 1100}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["price_cents"] == 1100

        resp = client.get("/api/products/check-slug?slug=api-mug", headers=headers_a)
        assert resp.json["available"] is False

        assert client.delete(f"/api/products/{product_id}", headers=headers_a).status_code == 200
        assert client.get(f"/api/products/{product_id}", headers=headers_a).status_code == 404

    def test_api_validation_error_shape(self, client, headers_a):
        resp = client.post("/api/products", json={"name": "No price"}, headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["errors"][0]["field"] == "price_cents"


class TestCategories:
    def test_default_categories_created_with_store(self, db_session, tenant_a):
        slugs = [c["slug"] for c in categories_service.list_categories(tenant_a.id)["items"]]
        assert slugs == ["electronics", "clothing", "home-garden"]

    def test_create_with_slug_and_count(self, db_session, tenant_a):
        category = categories_service.create_category(tenant_a.id, {"name": "Kitchen & Dining"})
        assert category["slug"] == "kitchen-dining"
        products_service.create_product(tenant_a.id, {"name": "Pan", "price_cents": 100, "category_id": category["id"]})
        assert categories_service.get_category(tenant_a.id, category["id"])["product_count"] == 1

    def test_duplicate_slug(self, db_session, tenant_a):
        with pytest.raises(ConflictError):
            categories_service.create_category(tenant_a.id, {"name": "Other", "slug": "clothing"})

    def test_parent_cycle_rejected(self, db_session, tenant_a):
        parent = categories_service.create_category(tenant_a.id, {"name": "Parent"})
        child = categories_service.create_category(tenant_a.id, {"name": "Child", "parent_id": parent["id"]})
        with pytest.raises(ValidationError):
            categories_service.update_category(tenant_a.id, parent["id"], {"parent_id": child["id"]})

    def test_delete_detaches_products_and_children(self, db_session, tenant_a):
        parent = categories_service.create_category(tenant_a.id, {"name": "Parent"})
        child = categories_service.create_category(tenant_a.id, {"name": "Child", "parent_id": parent["id"]})
        product = products_service.create_product(tenant_a.id, {
            "name": "Thing", "price_cents": 100, "category_id": parent["id"],
        })

        categories_service.delete_category(tenant_a.id, parent["id"])
        assert categories_service.get_category(tenant_a.id, child["id"])["parent_id"] is None
        assert products_service.get_product(tenant_a.id, product["id"])["category_id"] is None

    def test_reorder(self, db_session, tenant_a):
        items = categories_service.list_categories(tenant_a.id)["items"]
        reversed_order = [{"id": c["id"], "sort_order": i} for i, c in enumerate(reversed(items))]
        result = categories_service.reorder_categories(tenant_a.id, reversed_order)
        assert [c["slug"] for c in result["items"]] == ["home-garden", "clothing", "electronics"]

    def test_reorder_foreign_category(self, db_session, tenant_a, tenant_b):
        foreign = categories_service.list_categories(tenant_b.id)["items"][0]
        with pytest.raises(NotFoundError):
            categories_service.reorder_categories(tenant_a.id, [{"id": foreign["id"], "sort_order": 1}])


class TestBrands:
    def test_brand_crud(self, db_session, tenant_a):
        brand = categories_service.create_brand(tenant_a.id, {"name": "Acme Works", "website_url": "https://acme.test"})
        assert brand["slug"] == "acme-works"
        products_service.create_product(tenant_a.id, {"name": "Anvil", "price_cents": 100, "brand_id": brand["id"]})
        assert categories_service.get_brand(tenant_a.id, brand["id"])["product_count"] == 1

        categories_service.delete_brand(tenant_a.id, brand["id"])
        with pytest.raises(NotFoundError):
            categories_service.get_brand(tenant_a.id, brand["id"])

    def test_invalid_website(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            categories_service.create_brand(tenant_a.id, {"name": "Bad", "website_url": "not a url"})
