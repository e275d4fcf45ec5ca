# Overview: Pytest coverage for the flask CLI bootstrap and management commands.

import pytest
from aluro.models import BillingPlan, PlatformFeatureFlag, Tenant, User

from conftest import PASSWORD


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


def test_system_init_is_repeatable(runner, db_session):
    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0
    assert "Billing plans: 3 added" in result.output
    assert db_session.query(BillingPlan).count() == 3
    assert db_session.query(PlatformFeatureFlag).count() == 5

    result = runner.invoke(args=["system", "init"])
    assert "Billing plans: 0 added" in result.output
    assert "Feature flags: 0 added" in result.output


def test_create_platform_admin_promotes_existing(runner, db_session, owner_a):
    result = runner.invoke(args=["users", "create-platform-admin", "--email", owner_a.email, "--password", PASSWORD])
    assert result.exit_code == 0
    assert "Promoted" in result.output
    assert db_session.get(User, owner_a.id).is_platform_admin is True


def test_create_user_rejects_weak_password(runner, db_session):
    result = runner.invoke(args=["users", "create", "--email", "weak@shop.test", "--password", "short"])
    assert result.exit_code == 1
    assert "FAIL" in result.output
    assert db_session.query(User).count() == 0


def test_create_and_list_tenants(runner, db_session, owner_a):
    result = runner.invoke(args=[
        "tenants", "create", "--owner-email", owner_a.email, "--name", "CLI Shop", "--subdomain", "cli-shop",
    ])
    assert result.exit_code == 0
    assert "Created store: CLI Shop" in result.output
    assert db_session.query(Tenant).filter_by(subdomain="cli-shop").one().owner_id == owner_a.id

    result = runner.invoke(args=["tenants", "list"])
    assert "cli-shop" in result.output
    assert "Total: 1 stores" in result.output


def test_create_tenant_unknown_owner(runner, db_session):
    result = runner.invoke(args=[
        "tenants", "create", "--owner-email", "ghost@shop.test", "--name", "Ghost", "--subdomain", "ghost",
    ])
    assert result.exit_code == 1
    assert "No user with email" in result.output


def test_plans_list(runner, db_session):
    assert "No plans found" in runner.invoke(args=["plans", "list"]).output
    runner.invoke(args=["plans", "seed"])
    output = runner.invoke(args=["plans", "list"]).output
    assert "price_pro_monthly" in output
    assert "29.00 USD/month" in output
