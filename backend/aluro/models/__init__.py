from .auth import User, SessionToken
from .security import SecurityEvent
from .tenancy import Tenant, TenantUser, TenantInvitation, TenantShippingSettings, TenantPaymentSettings
from .catalog import Category, Brand, Product, ProductVariant, PRODUCT_TYPES
from .customers import Customer
from .orders import Order, OrderLineItem, OrderSequence, FINANCIAL_STATUSES, FULFILLMENT_STATUSES
from .promotions import Discount, DISCOUNT_TYPES
from .carts import CartItem
from .billing import BillingPlan, Subscription
from .platform import PlatformFeatureFlag

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'Tenant', 'TenantUser', 'TenantInvitation', 'TenantShippingSettings', 'TenantPaymentSettings',
    'Category', 'Brand', 'Product', 'ProductVariant', 'PRODUCT_TYPES',
    'Customer',
    'Order', 'OrderLineItem', 'OrderSequence', 'FINANCIAL_STATUSES', 'FULFILLMENT_STATUSES',
    'Discount', 'DISCOUNT_TYPES',
    'CartItem',
    'BillingPlan', 'Subscription',
    'PlatformFeatureFlag',
]
