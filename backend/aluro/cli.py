# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/aluro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent: create tables, seed billing plans and payment feature flags.
# - python -m flask system cleanup-sessions
#   Delete expired/revoked sessions older than 30 days.
#
# Store (tenant) management:
# - python -m flask tenants list
#   List every store with plan, owner and status.
# - python -m flask tenants create --owner-email owner@shop.test --name "My Shop" --subdomain my-shop
#   Create a store for an existing user.
#
# Users:
# - python -m flask users create --email owner@shop.test --password "Password123!" [--name "Jane"]
#   Create a platform account.
# - python -m flask users create-platform-admin --email admin@aluro.local --password "Password123!"
#   Create (or promote) a platform administrator.
#
# Billing plans:
# - python -m flask plans seed
#   Insert the default starter/pro/enterprise plans when missing.
# - python -m flask plans list
#
# Catalog maintenance:
# - python -m flask catalog migrate-variants [--tenant-id 1]
#   Move legacy embedded variants into the product_variants table.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant, User
from .services import billing_service, feature_flag_service, session_service, tenant_service, variants_service
from .services.auth_service import PasswordValidationError, create_user, get_user_by_email
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the platform: tables, default billing plans and payment
    feature flags. Safe to run repeatedly.
    """
    click.echo("START Initializing Aluro platform...")

    db.create_all()
    click.echo("PASS Database tables ready")

    plans = billing_service.seed_default_plans()
    click.echo(f"PASS Billing plans: {plans} added")

    flags = feature_flag_service.seed_feature_flags()
    click.echo(f"PASS Feature flags: {flags} added")

    click.echo("\nDONE Platform initialized. Create an admin with: flask users create-platform-admin")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired or revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} old sessions")


@click.group('tenants')
def tenants_group():
    """Store (tenant) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all stores."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()
    if not tenants:
        click.echo("No stores found.")
        return

    click.echo(f"\n{'ID':<5} {'Subdomain':<24} {'Name':<28} {'Plan':<12} {'Owner':<6} {'Active':<6}")
    click.echo("-" * 86)
    for tenant in tenants:
        click.echo(
            f"{tenant.id:<5} {tenant.subdomain:<24} {tenant.name[:27]:<28} {tenant.plan:<12} "
            f"{str(tenant.owner_id or '-'):<6} {'yes' if tenant.is_active else 'no':<6}"
        )
    click.echo(f"\nTotal: {len(tenants)} stores")


@tenants_group.command('create')
@click.option('--owner-email', required=True, help='Email of an existing user who will own the store')
@click.option('--name', required=True, help='Store name')
@click.option('--subdomain', required=True, help='Store subdomain')
@with_appcontext
def create_tenant(owner_email, name, subdomain):
    """Create a store with its owner membership and default categories."""
    owner = get_user_by_email(owner_email)
    if not owner:
        click.echo(f"FAIL No user with email {owner_email}")
        raise SystemExit(1)
    try:
        tenant, created = tenant_service.create_tenant(owner=owner, name=name, subdomain=subdomain)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if created:
        click.echo(f"PASS Created store: {tenant.name} (ID: {tenant.id}, subdomain: {tenant.subdomain})")
    else:
        click.echo(f"WARN  {owner.email} already owns store {tenant.subdomain} (ID: {tenant.id})")


@click.group('users')
def users_group():
    """User management commands."""


def _create_account(email, password, name, platform_admin):
    try:
        return create_user(email=email, password=password, full_name=name, is_platform_admin=platform_admin)
    except (ValidationError, ConflictError, PasswordValidationError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        raise SystemExit(1)


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Full name')
@with_appcontext
def create_user_command(email, password, name):
    """Create a platform account."""
    user = _create_account(email, password, name, False)
    click.echo(f"PASS Created user: {user.email} (ID: {user.id})")


@users_group.command('create-platform-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Full name')
@with_appcontext
def create_platform_admin(email, password, name):
    """Create a platform administrator, or promote an existing account."""
    existing = get_user_by_email(email)
    if existing:
        existing.is_platform_admin = True
        db.session.commit()
        click.echo(f"PASS Promoted {existing.email} to platform admin")
        return
    user = _create_account(email, password, name, True)
    click.echo(f"PASS Created platform admin: {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    for user in users:
        flags = []
        if user.is_platform_admin:
            flags.append("platform-admin")
        if not user.is_active:
            flags.append("inactive")
        click.echo(f"{user.id:<5} {user.email:<40} {', '.join(flags)}")
    click.echo(f"\nTotal: {len(users)} users")


@click.group('plans')
def plans_group():
    """Billing plan commands."""


@plans_group.command('seed')
@with_appcontext
def seed_plans():
    """Insert the default plans when missing."""
    added = billing_service.seed_default_plans()
    click.echo(f"PASS {added} plans added")


@plans_group.command('list')
@with_appcontext
def list_plans():
    """List all plans, including inactive ones."""
    plans = billing_service.list_plans(include_inactive=True)
    if not plans:
        click.echo("No plans found. Run: flask plans seed")
        return
    for plan in plans:
        status = "active" if plan["is_active"] else "inactive"
        click.echo(
            f"{plan['code']:<14} {plan['name']:<16} {plan['price_cents'] / 100:>8.2f} {plan['currency']}/"
            f"{plan['interval']:<6} {plan['stripe_price_id'] or '-':<28} {status}"
        )


@click.group('catalog')
def catalog_group():
    """Catalog maintenance commands."""


@catalog_group.command('migrate-variants')
@click.option('--tenant-id', type=int, default=None, help='Only migrate this store')
@with_appcontext
def migrate_variants(tenant_id):
    """Move legacy embedded variants into product_variants."""
    result = variants_service.migrate_legacy_variants(tenant_id)
    created = sum(r["variants_created"] for r in result["results"])
    click.echo(f"PASS Migrated {created} variants from {result['migrated']} products")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(plans_group)
    app.cli.add_command(catalog_group)
