# backend/aluro/__init__.py
import logging

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .validation import ConflictError, NotFoundError, ValidationError


def _register_error_handlers(app: Flask) -> None:
    """
    Map service exceptions to JSON responses.

    Every handled service error rolls the session back first: a service may
    have flushed rows (e.g. a checkout customer) before failing.
    Access denials then write back the security events the rollback discarded.
    """
    from .services.billing_service import BillingError
    from .services.auth_service import PasswordValidationError
    from .services.permission_service import PermissionDeniedError, persist_security_events
    from .services.session_service import SessionError
    from .services.tenant_service import TenantAccessError

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), 400

    @app.errorhandler(PasswordValidationError)
    def handle_password_error(e):
        db.session.rollback()
        return jsonify({"error": str(e), "errors": [{"field": "password", "message": str(e)}]}), 400

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(TenantAccessError)
    def handle_tenant_access(e):
        db.session.rollback()
        persist_security_events()
        return jsonify({"error": str(e) or "Not found"}), 404

    @app.errorhandler(SessionError)
    def handle_session_error(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(PermissionDeniedError)
    def handle_permission_denied(e):
        db.session.rollback()
        persist_security_events()
        return jsonify({"error": "Permission denied", "message": str(e)}), 403

    @app.errorhandler(BillingError)
    def handle_billing_error(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.tenants import tenants_bp
    from .routes.products import products_bp
    from .routes.categories import categories_bp, brands_bp
    from .routes.customers import customers_bp
    from .routes.orders import orders_bp
    from .routes.discounts import discounts_bp
    from .routes.settings import settings_bp
    from .routes.team import team_bp
    from .routes.billing import billing_bp
    from .routes.platform import platform_bp
    from .routes.storefront import storefront_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(tenants_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(brands_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(platform_bp)
    app.register_blueprint(storefront_bp)

    _register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Cart-Session"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
