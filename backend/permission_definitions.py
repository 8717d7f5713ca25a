# backend/permission_definitions.py

"""
Canonical permission catalog and default role mappings used for seeding.
"""

from typing import Dict, List

GUARD = "web"
ADMIN_ROLE = "Admin"

DEFAULT_ROLES: List[Dict[str, object]] = [
    {"name": "Admin", "description": "admin can access all data...", "is_active": True},
    {"name": "Owner", "description": "Staff of shop", "is_active": True},
    {"name": "staff", "description": "staff has specific access...", "is_active": True},
    {"name": "Customer", "description": None, "is_active": True},
]

_PERMISSION_NAMES = [
    'products-index', 'products-add', 'products-edit', 'products-delete',
    'purchases-index', 'purchases-add', 'purchases-edit', 'purchases-delete',
    'sales-index', 'sales-add', 'sales-edit', 'sales-delete',
    'returns-index', 'returns-add', 'returns-edit', 'returns-delete',
    'transfers-index', 'transfers-add', 'transfers-edit', 'transfers-delete',
    'quotes-index', 'quotes-add', 'quotes-edit', 'quotes-delete',
    'customers-index', 'customers-add', 'customers-edit', 'customers-delete',
    'suppliers-index', 'suppliers-add', 'suppliers-edit', 'suppliers-delete',
    'product-report', 'purchase-report', 'sale-report', 'customer-report', 'customer-group-report', 'due-report',
    'payment-report', 'warehouse-stock-report', 'product-qty-alert', 'supplier-report',
    'profit-loss', 'best-seller', 'daily-sale', 'monthly-sale', 'daily-purchase', 'monthly-purchase',
    'audit-logs-index', 'audit-logs-export', 'user-report', 'warehouse-report',
    'product-expiry-report', 'sale-report-chart', 'dso-report', 'supplier-due-report',
    'biller-report', 'sidebar_reports', 'packing_slip_challan',
    'users-index', 'users-create', 'users-update', 'users-delete',
    'expenses-index', 'expenses-create', 'expenses-update', 'expenses-delete',
    'general_setting', 'mail_setting', 'pos_setting', 'hrm_setting', 'sms_setting', 'create_sms',
    'payment_gateway_setting', 'barcode_setting', 'language_setting', 'reward_point_setting',
    'purchase-return-index', 'purchase-return-create', 'purchase-return-update', 'purchase-return-delete',
    'account-index', 'balance-sheet', 'account-statement', 'account-selection',
    'department', 'attendance', 'payroll',
    'employees-index', 'employees-create', 'employees-update', 'employees-delete',
    'stock_count', 'adjustment', 'empty_database',
    'customer_group', 'gift_card', 'coupon', 'holiday',
    'warehouse', 'warehouses-index', 'billers-index',
    'customer-groups-index', 'customer-groups-create', 'customer-groups-update', 'customer-groups-delete',
    'customer-groups-import', 'customer-groups-export',
    'designations', 'shift', 'overtime', 'leave-type', 'leave', 'hrm-panel',
    'sale-payment-index', 'sale-payment-create', 'sale-payment-update', 'sale-payment-delete',
    'all_notification', 'product_history', 'custom_field',
    'incomes-index', 'incomes-create', 'incomes-update', 'incomes-delete',
    'invoice_setting', 'invoice_create_edit_delete', 'handle_discount',
    'purchases-import', 'sales-import', 'customers-import', 'billers-import',
    'role_permission', 'cart-product-update',
    'today_sale', 'today_profit',
]

# Order-preserving, first occurrence wins
PERMISSION_NAMES: List[str] = list(dict.fromkeys(_PERMISSION_NAMES))

BASIC_PERMISSION_NAMES: List[str] = [
    'products-index', 'products-add', 'products-edit', 'products-delete',
    'purchases-index', 'purchases-add', 'purchases-edit', 'purchases-delete',
    'sales-index', 'sales-add', 'sales-edit', 'sales-delete',
    'returns-index', 'returns-add', 'returns-edit', 'returns-delete',
    'customers-index', 'customers-add', 'customers-edit', 'customers-delete',
    'suppliers-index', 'suppliers-add', 'suppliers-edit', 'suppliers-delete',
    'product-report', 'purchase-report', 'sale-report', 'customer-report', 'customer-group-report', 'due-report',
    'payment-report', 'warehouse-stock-report', 'product-qty-alert', 'supplier-report',
    'profit-loss', 'best-seller', 'daily-sale', 'monthly-sale', 'daily-purchase', 'monthly-purchase',
    'audit-logs-index', 'audit-logs-export', 'user-report', 'warehouse-report',
    'product-expiry-report', 'sale-report-chart', 'dso-report', 'supplier-due-report',
    'biller-report', 'general_setting', 'mail_setting', 'pos_setting',
    'users-index', 'users-create', 'users-update', 'users-delete',
    'warehouses-index', 'billers-index', 'expenses-index', 'incomes-index',
    'today_sale', 'today_profit', 'sidebar_reports', 'packing_slip_challan',
]


def all_permissions() -> List[Dict[str, str]]:
    """Every canonical permission with the default guard, in catalog order"""
    return [{"name": name, "guard_name": GUARD} for name in PERMISSION_NAMES]


def admin_mappings() -> List[Dict[str, str]]:
    """Full access: every catalog permission for the Admin role (single-tenant)"""
    return [{"permission": name, "role": ADMIN_ROLE} for name in PERMISSION_NAMES]


def basic_mappings() -> List[Dict[str, str]]:
    """Restricted default access for the Admin role (multi-tenant)"""
    return [{"permission": name, "role": ADMIN_ROLE} for name in BASIC_PERMISSION_NAMES]
