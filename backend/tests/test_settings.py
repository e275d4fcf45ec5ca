# Overview: Pytest coverage for store, theme, payment, shipping, plugin and domain settings.

import pytest
from aluro.services import feature_flag_service, settings_service, shipping_service
from aluro.validation import ConflictError, ValidationError

STRIPE_KEYS = {"publishable_key": "pk_test_51Abc", "secret_key": "sk_test_secretvalue1234"}


def _fields(exc):
    return {e["field"] for e in exc.value.errors}


class TestStoreSettings:
    def test_defaults(self, db_session, tenant_a):
        data = settings_service.get_store_settings(tenant_a.id)
        assert data["name"] == "Acme Store"
        assert data["settings"]["currency"] == "USD"
        assert data["settings"]["low_stock_threshold"] == 5
        assert data["currency_symbol"] == "$"

    def test_partial_update_merges_settings(self, db_session, tenant_a):
        settings_service.update_store_settings(tenant_a.id, {"settings": {"currency": "EUR"}})
        data = settings_service.update_store_settings(tenant_a.id, {
            "name": "  Acme Europe ", "settings": {"tax_rate_bps": 2100},
        })
        assert data["name"] == "Acme Europe"
        assert data["settings"]["currency"] == "EUR"
        assert data["settings"]["tax_rate_bps"] == 2100
        assert data["currency_symbol"] == "€"

    def test_all_errors_reported_together(self, db_session, tenant_a):
        with pytest.raises(ValidationError) as exc:
            settings_service.update_store_settings(tenant_a.id, {
                "name": "A",
                "contact_email": "not-an-email",
                "settings": {"currency": "XYZ", "tax_rate_bps": 10001, "shipping_enabled": "yes", "color": 1},
            })
        assert _fields(exc) == {
            "name", "contact_email", "settings.currency", "settings.tax_rate_bps",
            "settings.shipping_enabled", "settings.color",
        }

    def test_failed_update_changes_nothing(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_store_settings(tenant_a.id, {"name": "Renamed", "country": "ZZ"})
        assert settings_service.get_store_settings(tenant_a.id)["name"] == "Acme Store"

    def test_api_reports_field_errors(self, client, headers_a):
        resp = client.put("/api/settings/store", json={"settings": {"weight_unit": "stone"}}, headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["errors"][0]["field"] == "settings.weight_unit"


class TestThemeSettings:
    def test_defaults_and_update(self, db_session, tenant_a):
        assert settings_service.get_theme_settings(tenant_a.id)["store_theme"] == "default"
        theme = settings_service.update_theme_settings(tenant_a.id, {
            "store_theme": "violet", "primary_color": "#7c3aed",
        })
        assert theme["store_theme"] == "violet"
        assert theme["primary_color"] == "#7c3aed"
        assert theme["accent_color"] == "#3b82f6"

    def test_invalid_values(self, db_session, tenant_a):
        with pytest.raises(ValidationError) as exc:
            settings_service.update_theme_settings(tenant_a.id, {
                "admin_theme": "neon", "text_color": "black", "logo_url": "ftp://x", "font": "Arial",
            })
        assert _fields(exc) == {"admin_theme", "text_color", "logo_url", "font"}

    def test_hero_background_follows_type(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_theme_settings(tenant_a.id, {"hero_background_value": "https://img.test/a.png"})
        theme = settings_service.update_theme_settings(tenant_a.id, {
            "hero_background_type": "image", "hero_background_value": "https://img.test/a.png",
        })
        assert theme["hero_background_type"] == "image"


class TestPaymentMethods:
    def test_defaults(self, db_session, tenant_a):
        methods = {m["id"]: m for m in settings_service.get_payment_methods(tenant_a.id)}
        assert set(methods) == {"cash_on_delivery", "stripe", "tilopay", "bank_transfer", "mobile_bank_transfer"}
        assert methods["cash_on_delivery"]["enabled"] is True
        assert methods["stripe"]["enabled"] is False

    def test_mask_secret(self):
        assert settings_service.mask_secret("sk_test_secretvalue1234") == "sk_test_****1234"
        assert settings_service.mask_secret("whsec_abcdef9876") == "whsec_****9876"
        assert settings_service.mask_secret(None) is None

    def test_secrets_masked_and_preserved(self, db_session, tenant_a):
        methods = settings_service.update_payment_methods(tenant_a.id, [
            {"id": "cash_on_delivery", "enabled": True},
            {"id": "stripe", "enabled": True, "keys": STRIPE_KEYS},
        ])
        stripe_method = [m for m in methods if m["id"] == "stripe"][0]
        assert stripe_method["keys"]["secret_key"] == "sk_test_****1234"
        assert stripe_method["keys"]["publishable_key"] == "pk_test_51Abc"

        # Saving the masked value back keeps the real secret
        settings_service.update_payment_methods(tenant_a.id, [
            {"id": "stripe", "enabled": True, "keys": dict(STRIPE_KEYS, secret_key="sk_test_****1234")},
        ])
        stored = {m["id"]: m for m in settings_service._stored_methods(tenant_a.id)}
        assert stored["stripe"]["keys"]["secret_key"] == "sk_test_secretvalue1234"

        checkout = settings_service.checkout_payment_methods(tenant_a.id)
        assert [m["id"] for m in checkout] == ["stripe"]
        assert checkout[0]["publishable_key"] == "pk_test_51Abc"
        assert "keys" not in checkout[0]

    @pytest.mark.parametrize("keys,problem", [
        ({}, "required"),
        ({"publishable_key": "pk_live_1", "secret_key": "sk_test_1"}, "same mode"),
        ({"publishable_key": "abc", "secret_key": "sk_test_1"}, "pk_test_"),
    ])
    def test_stripe_key_rules(self, db_session, tenant_a, keys, problem):
        with pytest.raises(ValidationError) as exc:
            settings_service.update_payment_methods(tenant_a.id, [{"id": "stripe", "enabled": True, "keys": keys}])
        assert problem in str(exc.value)

    def test_bank_transfer_needs_details(self, db_session, tenant_a):
        with pytest.raises(ValidationError) as exc:
            settings_service.update_payment_methods(tenant_a.id, [{"id": "bank_transfer", "enabled": True}])
        assert _fields(exc) == {"bank_transfer_details"}

    def test_one_method_must_stay_enabled(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_payment_methods(tenant_a.id, [{"id": "cash_on_delivery", "enabled": False}])

    def test_platform_disabled_method(self, db_session, tenant_a):
        feature_flag_service.seed_feature_flags()
        flags = {f["feature_key"]: f for f in feature_flag_service.list_feature_flags()}
        feature_flag_service.update_feature_flag(flags["tilopay"]["id"], {"enabled": False})

        ids = [m["id"] for m in settings_service.get_payment_methods(tenant_a.id)]
        assert "tilopay" not in ids
        with pytest.raises(ValidationError):
            settings_service.update_payment_methods(tenant_a.id, [
                {"id": "tilopay", "enabled": True, "keys": {"publishable_key": "x" * 12, "secret_key": "y" * 12}},
            ])

    def test_api_roundtrip(self, client, headers_a):
        resp = client.put("/api/settings/payments", json={"payment_methods": [
            {"id": "mobile_bank_transfer", "enabled": True, "bank_details": {"phone_number": "+50688887777"}},
        ]}, headers=headers_a)
        assert resp.status_code == 200

        resp = client.get("/api/storefront/acme")
        assert [m["id"] for m in resp.json["payment_methods"]] == ["mobile_bank_transfer"]


class TestShippingSettings:
    def test_defaults(self, db_session, tenant_a):
        data = shipping_service.get_shipping_methods(tenant_a.id)
        assert data["is_default"] is True
        assert data["shipping_methods"][0]["id"] == "weight_based_default"

    def test_save_and_quote(self, db_session, tenant_a):
        shipping_service.save_shipping_methods(tenant_a.id, [
            {"id": "flat", "name": "Flat", "type": "flat_rate", "config": {"base_rate_cents": 900}},
            {"id": "pickup", "name": "Pickup", "type": "free",
             "shipping_zones": {"allowed_countries": ["cr"]}},
            {"id": "off", "name": "Disabled", "type": "flat_rate", "enabled": False},
        ])
        data = shipping_service.get_shipping_methods(tenant_a.id)
        assert data["is_default"] is False
        assert data["shipping_methods"][1]["shipping_zones"]["allowed_countries"] == ["CR"]

        items = [{"price_cents": 1000, "quantity": 1, "weight": 1}]
        quote = shipping_service.calculate_shipping(items, data["shipping_methods"], {"country": "US"})
        assert [m["id"] for m in quote["available_methods"]] == ["flat"]

        quote = shipping_service.calculate_shipping(items, data["shipping_methods"], {"country": "CR"})
        assert quote["recommended_method_id"] == "pickup"

    def test_weight_limit(self):
        methods = shipping_service.default_shipping_methods()
        heavy = [{"price_cents": 100, "quantity": 1, "weight": 31}]
        assert shipping_service.calculate_shipping(heavy, methods)["available_methods"] == []

    def test_restricted_state(self):
        method = {"shipping_zones": {"restricted_states": {"US": ["HI", "AK"]}}}
        assert shipping_service.is_method_available(method, {"country": "us", "state": "hi"}) is False
        assert shipping_service.is_method_available(method, {"country": "US", "state": "CA"}) is True

    @pytest.mark.parametrize("methods", [
        "nope",
        [{"id": "bad id", "name": "X", "type": "free"}],
        [{"id": "a", "name": "X", "type": "teleport"}],
        [{"id": "a", "name": "X", "type": "flat_rate", "config": {"base_rate_cents": 9.5}}],
        [{"id": "a", "name": "X", "type": "free"}, {"id": "a", "name": "Y", "type": "free"}],
    ])
    def test_invalid_methods(self, db_session, tenant_a, methods):
        with pytest.raises(ValidationError):
            shipping_service.save_shipping_methods(tenant_a.id, methods)


class TestPlugins:
    def test_defaults(self, db_session, tenant_a):
        plugins = settings_service.get_plugins(tenant_a.id)
        assert plugins["google_analytics"] == {"enabled": False, "tracking_id": None}

    def test_enable_with_validation(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_plugins(tenant_a.id, {"google_analytics": {"enabled": True, "tracking_id": "bogus"}})

        plugins = settings_service.update_plugins(tenant_a.id, {
            "google_analytics": {"enabled": True, "tracking_id": "G-ABC1234"},
        })
        assert plugins["google_analytics"]["enabled"] is True

    def test_mailchimp_key_masked_and_kept(self, db_session, tenant_a):
        plugins = settings_service.update_plugins(tenant_a.id, {
            "mailchimp": {"enabled": True, "api_key": "abcdef-us21", "list_id": "L1"},
        })
        assert plugins["mailchimp"]["api_key"] == "****us21"

        settings_service.update_plugins(tenant_a.id, {"mailchimp": {"api_key": "****us21", "list_id": "L2"}})
        stored = settings_service._tenant(tenant_a.id).settings["plugins"]["mailchimp"]
        assert stored["api_key"] == "abcdef-us21"
        assert stored["list_id"] == "L2"

    def test_unknown_plugin(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_plugins(tenant_a.id, {"myspace": {"enabled": True}})


class TestDomain:
    def test_set_and_clear(self, db_session, tenant_a):
        data = settings_service.update_domain(tenant_a.id, "https://Shop.Example.com/")
        assert data["domain"] == "shop.example.com"
        assert data["store_url"] == "https://shop.example.com"

        data = settings_service.update_domain(tenant_a.id, "")
        assert data["domain"] is None

    def test_invalid_domain(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_domain(tenant_a.id, "not a domain")

    def test_platform_domain_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            settings_service.update_domain(tenant_a.id, "acme.aluro.shop")

    def test_domain_in_use(self, db_session, tenant_a, tenant_b):
        settings_service.update_domain(tenant_b.id, "beta.example.com")
        with pytest.raises(ConflictError):
            settings_service.update_domain(tenant_a.id, "beta.example.com")
