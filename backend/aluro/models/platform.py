from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PlatformFeatureFlag(db.Model):
    """
    Platform-wide switch, managed by platform admins.

    Payment method flags (category "payment_methods") use the method id as
    feature_key; a disabled flag hides the method from every tenant.
    """
    __tablename__ = "platform_feature_flags"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    feature_key = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    category = db.Column(db.String(32), nullable=False, default="general")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "feature_key": self.feature_key,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "category": self.category,
            "updated_at": to_utc_z(self.updated_at),
        }
