"""Staff roles and the permission codes granted to them by default."""

OWNER = 'OWNER'
MANAGER = 'MANAGER'
CASHIER = 'CASHIER'
BARISTA = 'BARISTA'
CHEF = 'CHEF'
SERVER = 'SERVER'
CLEANER = 'CLEANER'

ROLE_CHOICES = [
    (OWNER, 'Owner'),
    (MANAGER, 'Manager'),
    (CASHIER, 'Cashier'),
    (BARISTA, 'Barista'),
    (CHEF, 'Chef'),
    (SERVER, 'Server'),
    (CLEANER, 'Cleaner'),
]

MANAGEMENT_ROLES = [OWNER, MANAGER]


class Permissions:
    # Staff
    MANAGE_EMPLOYEES = 'manage_employees'
    VIEW_EMPLOYEES = 'view_employees'
    APPROVE_TIMESHEETS = 'approve_timesheets'

    # Orders
    CREATE_ORDERS = 'create_orders'
    VIEW_ORDERS = 'view_orders'
    UPDATE_ORDER_STATUS = 'update_order_status'
    CANCEL_ORDERS = 'cancel_orders'
    APPLY_DISCOUNTS = 'apply_discounts'

    # Payments
    PROCESS_PAYMENTS = 'process_payments'
    REFUND_PAYMENTS = 'refund_payments'
    MANAGE_CREDIT = 'manage_credit'

    # Menu
    MANAGE_MENU = 'manage_menu'

    # Inventory
    MANAGE_INVENTORY = 'manage_inventory'
    VIEW_INVENTORY = 'view_inventory'
    STOCK_ADJUSTMENTS = 'stock_adjustments'

    # Loyalty
    MANAGE_LOYALTY = 'manage_loyalty'

    # Reports
    VIEW_ANALYTICS = 'view_analytics'
    EXPORT_REPORTS = 'export_reports'

    # Settings
    MANAGE_CAFE_SETTINGS = 'manage_cafe_settings'
    MANAGE_COUNTERS = 'manage_counters'


# Default permissions for each role
DEFAULT_PERMISSIONS = {
    OWNER: ['all'],
    MANAGER: [
        Permissions.MANAGE_EMPLOYEES, Permissions.VIEW_EMPLOYEES, Permissions.APPROVE_TIMESHEETS,
        Permissions.CREATE_ORDERS, Permissions.VIEW_ORDERS, Permissions.UPDATE_ORDER_STATUS,
        Permissions.CANCEL_ORDERS, Permissions.APPLY_DISCOUNTS,
        Permissions.PROCESS_PAYMENTS, Permissions.REFUND_PAYMENTS, Permissions.MANAGE_CREDIT,
        Permissions.MANAGE_MENU,
        Permissions.MANAGE_INVENTORY, Permissions.VIEW_INVENTORY, Permissions.STOCK_ADJUSTMENTS,
        Permissions.MANAGE_LOYALTY,
        Permissions.VIEW_ANALYTICS, Permissions.EXPORT_REPORTS,
        Permissions.MANAGE_CAFE_SETTINGS, Permissions.MANAGE_COUNTERS,
    ],
    CASHIER: [
        Permissions.CREATE_ORDERS, Permissions.VIEW_ORDERS, Permissions.UPDATE_ORDER_STATUS,
        Permissions.APPLY_DISCOUNTS, Permissions.PROCESS_PAYMENTS, Permissions.VIEW_INVENTORY,
    ],
    BARISTA: [
        Permissions.VIEW_ORDERS, Permissions.UPDATE_ORDER_STATUS, Permissions.VIEW_INVENTORY,
    ],
    CHEF: [
        Permissions.VIEW_ORDERS, Permissions.UPDATE_ORDER_STATUS,
        Permissions.VIEW_INVENTORY, Permissions.STOCK_ADJUSTMENTS,
    ],
    SERVER: [
        Permissions.CREATE_ORDERS, Permissions.VIEW_ORDERS, Permissions.UPDATE_ORDER_STATUS,
    ],
    CLEANER: [],
}
