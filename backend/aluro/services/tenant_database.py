# Overview: Tenant-scoped data access; every query is filtered by the tenant it was built for.

"""
TenantDatabase: per-table data access bound to one tenant.

SECURITY INVARIANTS:
1. Every read adds `tenant_id == self.tenant_id`
2. Every insert stamps tenant_id; callers cannot override it
3. Updates never change id / tenant_id
4. A row id from another tenant behaves exactly like a missing id
   (get -> None, update -> None, delete -> False)

No caching. Writes are flushed, not committed: callers own the
transaction (services commit once per operation).

USAGE:
    tdb = TenantDatabase(g.tenant_id)
    products = tdb.get_products(is_active=True, search="mug", limit=20)
    tdb.update_product(product_id, {"name": "New name"})
    db.session.commit()
"""

from __future__ import annotations

from flask import current_app, has_app_context
from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import (
    Brand,
    CartItem,
    Category,
    Customer,
    Discount,
    Order,
    OrderLineItem,
    Product,
    ProductVariant,
    Subscription,
    Tenant,
    TenantPaymentSettings,
    TenantShippingSettings,
    TenantUser,
)

# Page size used when only an offset is supplied
DEFAULT_PAGE_SIZE = 10

DEFAULT_LOW_STOCK_THRESHOLD = 5
LOW_STOCK_LIST_LIMIT = 50

_PROTECTED_FIELDS = {"id", "tenant_id", "created_at", "updated_at", "version_id"}


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class TenantDatabase:
    def __init__(self, tenant_id: int):
        if tenant_id is None:
            raise ValueError("TenantDatabase requires a tenant_id")
        self.tenant_id = tenant_id

    # -- generic helpers --

    def query(self, model):
        """Base query for a tenant-owned model."""
        return db.session.query(model).filter(model.tenant_id == self.tenant_id)

    def _get(self, model, row_id):
        if row_id is None:
            return None
        return self.query(model).filter(model.id == row_id).first()

    @staticmethod
    def _clean(model, data: dict | None) -> dict:
        columns = {c.key for c in model.__mapper__.columns}
        return {
            k: v for k, v in (data or {}).items()
            if k in columns and k not in _PROTECTED_FIELDS
        }

    def _insert(self, model, data: dict | None):
        row = model(**self._clean(model, data))
        row.tenant_id = self.tenant_id
        db.session.add(row)
        db.session.flush()
        return row

    def _update(self, model, row_id, data: dict | None):
        row = self._get(model, row_id)
        if row is None:
            return None
        for key, value in self._clean(model, data).items():
            setattr(row, key, value)
        db.session.flush()
        return row

    def _delete(self, model, row_id) -> bool:
        row = self._get(model, row_id)
        if row is None:
            return False
        db.session.delete(row)
        db.session.flush()
        return True

    @staticmethod
    def _page(query, limit: int | None, offset: int | None):
        if offset is not None:
            return query.offset(offset).limit(limit or DEFAULT_PAGE_SIZE)
        if limit is not None:
            return query.limit(limit)
        return query

    # -- tenant --

    def get_tenant(self) -> Tenant | None:
        return db.session.get(Tenant, self.tenant_id)

    def get_tenant_settings(self) -> dict:
        tenant = self.get_tenant()
        return dict(tenant.settings or {}) if tenant else {}

    def update_tenant_settings(self, settings: dict) -> Tenant | None:
        """Replace the settings document (callers merge first if needed)."""
        tenant = self.get_tenant()
        if tenant is None:
            return None
        tenant.settings = dict(settings or {})
        db.session.flush()
        return tenant

    # -- products --

    def products_query(
        self,
        *,
        category_id: int | None = None,
        brand_id: int | None = None,
        is_active: bool | None = None,
        is_featured: bool | None = None,
        product_type: str | None = None,
        search: str | None = None,
    ):
        query = self.query(Product)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if brand_id is not None:
            query = query.filter(Product.brand_id == brand_id)
        if is_active is not None:
            query = query.filter(Product.is_active.is_(is_active))
        if is_featured is not None:
            query = query.filter(Product.is_featured.is_(is_featured))
        if product_type:
            query = query.filter(Product.product_type == product_type)
        if search:
            pattern = _like(search.strip())
            query = query.filter(or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.description.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
            ))
        return query.order_by(Product.created_at.desc(), Product.id.desc())

    def get_products(self, *, limit: int | None = None, offset: int | None = None, **filters) -> list[Product]:
        return self._page(self.products_query(**filters), limit, offset).all()

    def get_product(self, product_id: int) -> Product | None:
        return self._get(Product, product_id)

    def get_product_by_slug(self, slug: str) -> Product | None:
        return self.query(Product).filter(Product.slug == slug).first()

    def get_product_by_sku(self, sku: str) -> Product | None:
        return self.query(Product).filter(Product.sku == sku).first()

    def create_product(self, data: dict) -> Product:
        return self._insert(Product, data)

    def update_product(self, product_id: int, data: dict) -> Product | None:
        return self._update(Product, product_id, data)

    def delete_product(self, product_id: int) -> bool:
        return self._delete(Product, product_id)

    # -- product variants --

    def get_product_variants(self, product_id: int, active_only: bool = True) -> list[ProductVariant]:
        query = self.query(ProductVariant).filter(ProductVariant.product_id == product_id)
        if active_only:
            query = query.filter(ProductVariant.is_active.is_(True))
        return query.order_by(ProductVariant.title.asc(), ProductVariant.id.asc()).all()

    def get_product_variant(self, variant_id: int) -> ProductVariant | None:
        return self._get(ProductVariant, variant_id)

    def get_variant_by_sku(self, sku: str) -> ProductVariant | None:
        return self.query(ProductVariant).filter(ProductVariant.sku == sku).first()

    def create_product_variant(self, data: dict) -> ProductVariant:
        return self._insert(ProductVariant, data)

    def update_product_variant(self, variant_id: int, data: dict) -> ProductVariant | None:
        return self._update(ProductVariant, variant_id, data)

    def delete_product_variant(self, variant_id: int) -> bool:
        return self._delete(ProductVariant, variant_id)

    # -- categories --

    def get_categories(self, is_active: bool | None = None, search: str | None = None) -> list[Category]:
        query = self.query(Category)
        if is_active is not None:
            query = query.filter(Category.is_active.is_(is_active))
        if search:
            query = query.filter(Category.name.ilike(_like(search.strip()), escape="\\"))
        return query.order_by(Category.sort_order.asc(), Category.name.asc()).all()

    def get_category(self, category_id: int) -> Category | None:
        return self._get(Category, category_id)

    def get_category_by_slug(self, slug: str) -> Category | None:
        return self.query(Category).filter(Category.slug == slug).first()

    def create_category(self, data: dict) -> Category:
        return self._insert(Category, data)

    def update_category(self, category_id: int, data: dict) -> Category | None:
        return self._update(Category, category_id, data)

    def delete_category(self, category_id: int) -> bool:
        return self._delete(Category, category_id)

    # -- brands --

    def get_brands(self, is_active: bool | None = None, search: str | None = None) -> list[Brand]:
        query = self.query(Brand)
        if is_active is not None:
            query = query.filter(Brand.is_active.is_(is_active))
        if search:
            query = query.filter(Brand.name.ilike(_like(search.strip()), escape="\\"))
        return query.order_by(Brand.name.asc()).all()

    def get_brand(self, brand_id: int) -> Brand | None:
        return self._get(Brand, brand_id)

    def get_brand_by_slug(self, slug: str) -> Brand | None:
        return self.query(Brand).filter(Brand.slug == slug).first()

    def create_brand(self, data: dict) -> Brand:
        return self._insert(Brand, data)

    def update_brand(self, brand_id: int, data: dict) -> Brand | None:
        return self._update(Brand, brand_id, data)

    def delete_brand(self, brand_id: int) -> bool:
        return self._delete(Brand, brand_id)

    # -- orders --

    def orders_query(
        self,
        *,
        customer_id: int | None = None,
        financial_status: str | None = None,
        fulfillment_status: str | None = None,
        search: str | None = None,
    ):
        query = self.query(Order)
        if customer_id is not None:
            query = query.filter(Order.customer_id == customer_id)
        if financial_status:
            query = query.filter(Order.financial_status == financial_status)
        if fulfillment_status:
            query = query.filter(Order.fulfillment_status == fulfillment_status)
        if search:
            pattern = _like(search.strip())
            query = query.filter(or_(
                Order.order_number.ilike(pattern, escape="\\"),
                Order.email.ilike(pattern, escape="\\"),
            ))
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    def get_orders(self, *, limit: int | None = None, offset: int | None = None, **filters) -> list[Order]:
        return self._page(self.orders_query(**filters), limit, offset).all()

    def get_order(self, order_id: int) -> Order | None:
        return self._get(Order, order_id)

    def get_order_by_number(self, order_number: str) -> Order | None:
        return self.query(Order).filter(Order.order_number == order_number).first()

    def create_order(self, data: dict) -> Order:
        return self._insert(Order, data)

    def update_order(self, order_id: int, data: dict) -> Order | None:
        return self._update(Order, order_id, data)

    # -- order line items --

    def get_order_line_items(self, order_id: int) -> list[OrderLineItem]:
        return (
            self.query(OrderLineItem)
            .filter(OrderLineItem.order_id == order_id)
            .order_by(OrderLineItem.id.asc())
            .all()
        )

    def get_order_line_item(self, line_item_id: int) -> OrderLineItem | None:
        return self._get(OrderLineItem, line_item_id)

    def create_order_line_item(self, data: dict) -> OrderLineItem:
        return self._insert(OrderLineItem, data)

    def update_order_line_item(self, line_item_id: int, data: dict) -> OrderLineItem | None:
        return self._update(OrderLineItem, line_item_id, data)

    def delete_order_line_item(self, line_item_id: int) -> bool:
        return self._delete(OrderLineItem, line_item_id)

    # -- customers --

    def customers_query(self, *, search: str | None = None):
        query = self.query(Customer)
        if search:
            pattern = _like(search.strip())
            query = query.filter(or_(
                Customer.email.ilike(pattern, escape="\\"),
                Customer.first_name.ilike(pattern, escape="\\"),
                Customer.last_name.ilike(pattern, escape="\\"),
            ))
        return query.order_by(Customer.created_at.desc(), Customer.id.desc())

    def get_customers(self, *, search: str | None = None, limit: int | None = None, offset: int | None = None) -> list[Customer]:
        return self._page(self.customers_query(search=search), limit, offset).all()

    def get_customer(self, customer_id: int) -> Customer | None:
        return self._get(Customer, customer_id)

    def get_customer_by_email(self, email: str) -> Customer | None:
        return self.query(Customer).filter(func.lower(Customer.email) == (email or "").strip().lower()).first()

    def create_customer(self, data: dict) -> Customer:
        return self._insert(Customer, data)

    def update_customer(self, customer_id: int, data: dict) -> Customer | None:
        return self._update(Customer, customer_id, data)

    def delete_customer(self, customer_id: int) -> bool:
        return self._delete(Customer, customer_id)

    # -- cart --

    def _cart_query(self, user_id: int | None, session_id: str | None):
        if user_id is None and not session_id:
            raise ValueError("Cart owner required (user_id or session_id)")
        query = self.query(CartItem)
        if user_id is not None:
            return query.filter(CartItem.user_id == user_id)
        return query.filter(CartItem.session_id == session_id)

    def get_cart_items(self, *, user_id: int | None = None, session_id: str | None = None) -> list[CartItem]:
        return self._cart_query(user_id, session_id).order_by(CartItem.id.asc()).all()

    def get_cart_item(self, item_id: int, *, user_id: int | None = None, session_id: str | None = None) -> CartItem | None:
        return self._cart_query(user_id, session_id).filter(CartItem.id == item_id).first()

    def add_to_cart(
        self,
        product_id: int,
        quantity: int = 1,
        variant_id: int | None = None,
        *,
        user_id: int | None = None,
        session_id: str | None = None,
        properties: dict | None = None,
    ) -> CartItem:
        """Upsert by (owner, product, variant): an existing line grows by quantity."""
        existing = self._cart_query(user_id, session_id).filter(
            CartItem.product_id == product_id,
            CartItem.product_variant_id == variant_id if variant_id is not None else CartItem.product_variant_id.is_(None),
        ).first()
        if existing:
            existing.quantity += quantity
            if properties is not None:
                existing.properties = properties
            db.session.flush()
            return existing
        return self._insert(CartItem, {
            "user_id": user_id,
            "session_id": None if user_id is not None else session_id,
            "product_id": product_id,
            "product_variant_id": variant_id,
            "quantity": quantity,
            "properties": properties,
        })

    def update_cart_item(self, item_id: int, quantity: int, **owner) -> CartItem | None:
        item = self.get_cart_item(item_id, **owner)
        if item is None:
            return None
        item.quantity = quantity
        db.session.flush()
        return item

    def remove_from_cart(self, item_id: int, **owner) -> bool:
        item = self.get_cart_item(item_id, **owner)
        if item is None:
            return False
        db.session.delete(item)
        db.session.flush()
        return True

    def clear_cart(self, *, user_id: int | None = None, session_id: str | None = None) -> int:
        items = self.get_cart_items(user_id=user_id, session_id=session_id)
        for item in items:
            db.session.delete(item)
        db.session.flush()
        return len(items)

    # -- discounts --

    def discounts_query(
        self,
        *,
        is_active: bool | None = None,
        type: str | None = None,
        search: str | None = None,
    ):
        query = self.query(Discount)
        if is_active is not None:
            query = query.filter(Discount.is_active.is_(is_active))
        if type:
            query = query.filter(Discount.type == type)
        if search:
            pattern = _like(search.strip())
            query = query.filter(or_(
                Discount.code.ilike(pattern, escape="\\"),
                Discount.title.ilike(pattern, escape="\\"),
            ))
        return query.order_by(Discount.created_at.desc(), Discount.id.desc())

    def get_discounts(self, *, limit: int | None = None, offset: int | None = None, **filters) -> list[Discount]:
        return self._page(self.discounts_query(**filters), limit, offset).all()

    def get_discount(self, discount_id: int) -> Discount | None:
        return self._get(Discount, discount_id)

    def get_discount_by_code(self, code: str, active_only: bool = True) -> Discount | None:
        query = self.query(Discount).filter(Discount.code == (code or "").strip().upper())
        if active_only:
            query = query.filter(Discount.is_active.is_(True))
        return query.first()

    def create_discount(self, data: dict) -> Discount:
        return self._insert(Discount, data)

    def update_discount(self, discount_id: int, data: dict) -> Discount | None:
        return self._update(Discount, discount_id, data)

    def delete_discount(self, discount_id: int) -> bool:
        return self._delete(Discount, discount_id)

    # -- tenant users --

    def get_tenant_users(
        self,
        *,
        is_active: bool | None = None,
        role: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[TenantUser]:
        query = self.query(TenantUser)
        if is_active is not None:
            query = query.filter(TenantUser.is_active.is_(is_active))
        if role:
            query = query.filter(TenantUser.role == role)
        query = query.order_by(TenantUser.created_at.asc(), TenantUser.id.asc())
        return self._page(query, limit, offset).all()

    def get_tenant_user(self, tenant_user_id: int) -> TenantUser | None:
        return self._get(TenantUser, tenant_user_id)

    def get_tenant_user_by_user_id(self, user_id: int) -> TenantUser | None:
        return self.query(TenantUser).filter(TenantUser.user_id == user_id).first()

    def invite_tenant_user(self, user_id: int, role: str, invited_by: int | None = None, invited_at=None) -> TenantUser:
        return self._insert(TenantUser, {
            "user_id": user_id,
            "role": role,
            "is_active": True,
            "invited_by": invited_by,
            "invited_at": invited_at,
        })

    def update_tenant_user(self, tenant_user_id: int, data: dict) -> TenantUser | None:
        data = {k: v for k, v in (data or {}).items() if k != "user_id"}
        return self._update(TenantUser, tenant_user_id, data)

    def remove_tenant_user(self, tenant_user_id: int) -> bool:
        return self._delete(TenantUser, tenant_user_id)

    # -- shipping / payment settings and subscription --

    def get_shipping_settings(self) -> TenantShippingSettings | None:
        return self.query(TenantShippingSettings).first()

    def save_shipping_settings(self, methods: list[dict]) -> TenantShippingSettings:
        row = self.get_shipping_settings()
        if row is None:
            return self._insert(TenantShippingSettings, {"shipping_methods": methods})
        row.shipping_methods = methods
        db.session.flush()
        return row

    def get_payment_settings(self) -> TenantPaymentSettings | None:
        return self.query(TenantPaymentSettings).first()

    def save_payment_settings(self, methods: list[dict]) -> TenantPaymentSettings:
        row = self.get_payment_settings()
        if row is None:
            return self._insert(TenantPaymentSettings, {"payment_methods": methods})
        row.payment_methods = methods
        db.session.flush()
        return row

    def get_subscription(self) -> Subscription | None:
        return self.query(Subscription).first()

    # -- stock --

    def get_low_stock_threshold(self) -> int:
        value = self.get_tenant_settings().get("low_stock_threshold")
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        if has_app_context():
            return int(current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD))
        return DEFAULT_LOW_STOCK_THRESHOLD

    def stock_expression(self):
        """
        (subquery, expression) giving the sellable stock of a product:
        the sum of active variant stock for variable products, the product
        row's own quantity otherwise. Outer-join the subquery on product id.
        """
        variant_stock = (
            db.session.query(
                ProductVariant.product_id.label("product_id"),
                func.sum(ProductVariant.inventory_quantity).label("quantity"),
            )
            .filter(
                ProductVariant.tenant_id == self.tenant_id,
                ProductVariant.is_active.is_(True),
            )
            .group_by(ProductVariant.product_id)
            .subquery()
        )
        expression = case(
            (Product.product_type == "variable", func.coalesce(variant_stock.c.quantity, 0)),
            else_=Product.inventory_quantity,
        )
        return variant_stock, expression

    def product_stock(self, product: Product) -> int:
        if product.product_type == "variable":
            return sum(v.inventory_quantity for v in product.variants if v.is_active)
        return product.inventory_quantity

    def is_product_low_stock(self, product: Product, threshold: int | None = None) -> bool:
        """Only tracked, physical products can be low on stock."""
        if not product.track_inventory or product.product_type == "digital":
            return False
        if threshold is None:
            threshold = self.get_low_stock_threshold()
        return self.product_stock(product) < threshold

    def get_low_stock_products(self, limit: int = LOW_STOCK_LIST_LIMIT) -> list[Product]:
        threshold = self.get_low_stock_threshold()
        variant_stock, stock = self.stock_expression()
        return (
            self.query(Product)
            .outerjoin(variant_stock, variant_stock.c.product_id == Product.id)
            .filter(
                Product.track_inventory.is_(True),
                Product.is_active.is_(True),
                Product.product_type != "digital",
                stock < threshold,
            )
            .order_by(stock.asc(), Product.id.asc())
            .limit(limit)
            .all()
        )
