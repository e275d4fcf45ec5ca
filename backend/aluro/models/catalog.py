from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_TYPES = ("single", "variable", "digital")


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "slug", name="uq_categories_tenant_slug"),
        db.Index("ix_categories_tenant_sort", "tenant_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    seo_title = db.Column(db.String(255), nullable=True)
    seo_description = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "image_url": self.image_url,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "slug", name="uq_brands_tenant_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    logo_url = db.Column(db.String(500), nullable=True)
    website_url = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

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
            "tenant_id": self.tenant_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "logo_url": self.logo_url,
            "website_url": self.website_url,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog product.

    product_type:
    - single: price and stock live on the product row
    - variable: price and stock live on ProductVariant rows; the product
      row keeps price_cents=0 and inventory_quantity=0
    - digital: never tracks inventory nor allows backorder

    options holds the variant option definitions used to generate
    variants: [{"name": "Size", "values": ["S", "M"]}, ...].
    legacy_variants is the old embedded-JSON variant list, kept only until
    `flask catalog migrate-variants` moves it into product_variants.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "slug", name="uq_products_tenant_slug"),
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    short_description = db.Column(db.String(500), nullable=True)
    product_type = db.Column(db.String(16), nullable=False, default="single")
    sku = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    compare_price_cents = db.Column(db.Integer, nullable=True)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    track_inventory = db.Column(db.Boolean, nullable=False, default=True)
    inventory_quantity = db.Column(db.Integer, nullable=False, default=0)
    allow_backorder = db.Column(db.Boolean, nullable=False, default=False)

    # Kilograms
    weight = db.Column(db.Float, nullable=True)
    dimensions = db.Column(db.JSON, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)

    tags = db.Column(db.JSON, nullable=True)
    images = db.Column(db.JSON, nullable=True)
    options = db.Column(db.JSON, nullable=True)
    legacy_variants = db.Column(db.JSON, nullable=True)

    seo_title = db.Column(db.String(255), nullable=True)
    seo_description = db.Column(db.String(500), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    variants = db.relationship(
        "ProductVariant",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductVariant.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r} tenant_id={self.tenant_id}>"

    @property
    def active_variants(self) -> list:
        return [v for v in self.variants if v.is_active]

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "short_description": self.short_description,
            "product_type": self.product_type,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "compare_price_cents": self.compare_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "track_inventory": self.track_inventory,
            "inventory_quantity": self.inventory_quantity,
            "allow_backorder": self.allow_backorder,
            "weight": self.weight,
            "dimensions": self.dimensions,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "tags": self.tags or [],
            "images": self.images or [],
            "options": self.options or [],
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    """One purchasable combination of a variable product's option values."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_product_variants_tenant_sku"),
        db.Index("ix_product_variants_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    option1 = db.Column(db.String(100), nullable=True)
    option2 = db.Column(db.String(100), nullable=True)
    option3 = db.Column(db.String(100), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    compare_price_cents = db.Column(db.Integer, nullable=True)
    cost_price_cents = db.Column(db.Integer, nullable=True)
    inventory_quantity = db.Column(db.Integer, nullable=False, default=0)
    weight = db.Column(db.Float, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def option_values(self) -> tuple:
        return tuple(v for v in (self.option1, self.option2, self.option3) if v is not None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "title": self.title,
            "option1": self.option1,
            "option2": self.option2,
            "option3": self.option3,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "compare_price_cents": self.compare_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "inventory_quantity": self.inventory_quantity,
            "weight": self.weight,
            "image_url": self.image_url,
            "position": self.position,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
