# backend/aluro/routes/system.py
"""
System health and version endpoints.

/health checks the database and reports latency; /version reports the
running build for deployment debugging.
"""

import os
import time

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SessionToken, Tenant, User
from ..time_utils import utcnow

APP_VERSION = "0.1.0"

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity and basic table access."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "tenants": db.session.query(Tenant).count(),
            "users": db.session.query(User).count(),
            "active_sessions": db.session.query(SessionToken).filter(
                SessionToken.is_revoked.is_(False),
                SessionToken.expires_at > utcnow(),
            ).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database},
    }
    return body, 200 if healthy else 503


@system_bp.get("/version")
def version():
    return {
        "name": current_app.config.get("PLATFORM_NAME", "Aluro"),
        "version": os.environ.get("APP_VERSION", APP_VERSION),
        "environment": current_app.config.get("ENV"),
        "git_sha": os.environ.get("GIT_SHA"),
    }
