# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)


class PermissionCategory:
    """Permission categories for grouping in the team settings screen."""
    CATALOG = "CATALOG"
    ORDERS = "ORDERS"
    CUSTOMERS = "CUSTOMERS"
    MARKETING = "MARKETING"
    SETTINGS = "SETTINGS"
    TEAM = "TEAM"
    BILLING = "BILLING"


CATALOG_PERMISSIONS = [
    ("VIEW_CATALOG", "View Catalog", "View products, variants, categories and brands", PermissionCategory.CATALOG),
    ("MANAGE_CATALOG", "Manage Catalog", "Create, edit and delete products, variants, categories and brands", PermissionCategory.CATALOG),
]

ORDER_PERMISSIONS = [
    ("VIEW_ORDERS", "View Orders", "View orders and order statistics", PermissionCategory.ORDERS),
    ("MANAGE_ORDERS", "Manage Orders", "Create, edit and cancel orders", PermissionCategory.ORDERS),
]

CUSTOMER_PERMISSIONS = [
    ("VIEW_CUSTOMERS", "View Customers", "View customer records", PermissionCategory.CUSTOMERS),
    ("MANAGE_CUSTOMERS", "Manage Customers", "Create, edit and delete customers", PermissionCategory.CUSTOMERS),
]

MARKETING_PERMISSIONS = [
    ("VIEW_DISCOUNTS", "View Discounts", "View discount codes", PermissionCategory.MARKETING),
    ("MANAGE_DISCOUNTS", "Manage Discounts", "Create, edit and delete discount codes", PermissionCategory.MARKETING),
]

SETTINGS_PERMISSIONS = [
    ("VIEW_SETTINGS", "View Settings", "View store, theme, payment and shipping settings", PermissionCategory.SETTINGS),
    ("MANAGE_SETTINGS", "Manage Settings", "Change store, theme, payment and shipping settings", PermissionCategory.SETTINGS),
    ("DELETE_STORE", "Delete Store", "Deactivate the whole store", PermissionCategory.SETTINGS),
]

TEAM_PERMISSIONS = [
    ("VIEW_TEAM", "View Team", "View team members and invitations", PermissionCategory.TEAM),
    ("MANAGE_TEAM", "Manage Team", "Invite, update and remove team members", PermissionCategory.TEAM),
]

BILLING_PERMISSIONS = [
    ("VIEW_BILLING", "View Billing", "View current plan and subscription", PermissionCategory.BILLING),
    ("MANAGE_BILLING", "Manage Billing", "Change plan and cancel subscription", PermissionCategory.BILLING),
]

PERMISSION_DEFINITIONS = (
    CATALOG_PERMISSIONS
    + ORDER_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + MARKETING_PERMISSIONS
    + SETTINGS_PERMISSIONS
    + TEAM_PERMISSIONS
    + BILLING_PERMISSIONS
)
