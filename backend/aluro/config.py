# backend/aluro/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///aluro.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    ENV = os.environ.get("ENV", "development")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Platform identity, used for store URLs and invitation links
    PLATFORM_NAME = os.environ.get("PLATFORM_NAME", "Aluro")
    PLATFORM_DOMAIN = os.environ.get("PLATFORM_DOMAIN", "localhost:3000")
    PRODUCTION_DOMAIN = os.environ.get("PRODUCTION_DOMAIN", "aluro.shop")
    ADMIN_URL = os.environ.get("ADMIN_URL", "http://localhost:3000")

    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
        ).split(",")
        if o.strip()
    ]

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)
    INVITATION_TTL_DAYS = _int_env("INVITATION_TTL_DAYS", 7)
    MAX_VARIANT_COMBINATIONS = _int_env("MAX_VARIANT_COMBINATIONS", 100)
    DEFAULT_LOW_STOCK_THRESHOLD = _int_env("DEFAULT_LOW_STOCK_THRESHOLD", 5)

    # Stripe (billing). Empty keys disable paid checkout.
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    BILLING_SUCCESS_URL = os.environ.get(
        "BILLING_SUCCESS_URL", "http://localhost:3000/admin/billing?success=true"
    )
    BILLING_CANCEL_URL = os.environ.get(
        "BILLING_CANCEL_URL", "http://localhost:3000/admin/billing?canceled=true"
    )
