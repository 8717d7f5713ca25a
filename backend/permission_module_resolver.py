# backend/permission_module_resolver.py

"""
Permission Module Resolver

Maps a permission name to the module tag it is grouped under in the
role/permission screens and stored on the permission row at seed time.

Resolution order:
1) Report permissions → "reports"
2) First MODULE_MAP entry (declared order) whose prefix or exact list matches
3) "other"

MODULE_MAP order is part of the contract: reordering it reclassifies
existing permissions.
"""

from typing import Dict, Iterable, List, Tuple

REPORTS_MODULE = "reports"
OTHER_MODULE = "other"

REPORT_PERMISSIONS = frozenset([
    'product-report', 'purchase-report', 'sale-report', 'customer-report', 'customer-group-report',
    'due-report', 'payment-report', 'warehouse-stock-report', 'product-qty-alert', 'supplier-report',
    'profit-loss', 'best-seller', 'daily-sale', 'monthly-sale', 'daily-purchase', 'monthly-purchase',
    'audit-logs-index', 'audit-logs-export', 'user-report', 'warehouse-report', 'yearly_report',
    'product-expiry-report', 'sale-report-chart', 'dso-report', 'supplier-due-report',
    'biller-report', 'sidebar_reports', 'packing_slip_challan',
])

# (module, prefixes, exact names)
MODULE_MAP: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("products", ("products-",), ()),
    ("purchases", ("purchases-", "purchase-return-", "purchase-payment-"), ("purchase_export",)),
    ("sales", ("sales-", "sale-payment-"), ("sale_export", "sale-agents")),
    ("returns", ("returns-",), ()),
    ("transfers", ("transfers-",), ()),
    ("quotations", ("quotes-",), ()),
    ("customers", ("customers-",), ()),
    ("customer_groups", ("customer-groups-",), ("customer_group",)),
    ("suppliers", ("suppliers-",), ()),
    ("taxes", ("taxes-",), ()),
    ("units", ("units-",), ()),
    ("categories", ("categories-",), ("category",)),
    ("brands", ("brands-",), ()),
    ("warehouses", ("warehouses-",), ("warehouse",)),
    ("billers", ("billers-",), ()),
    ("users", ("users-",), ()),
    ("expenses", ("expenses-",), ()),
    ("incomes", ("incomes-",), ()),
    ("accounts", ("account-",), ("account-index", "balance-sheet", "account-statement", "account-selection")),
    ("hrm", ("employees-",), (
        "department", "attendance", "payroll", "designations", "shift", "overtime",
        "leave-type", "leave", "hrm-panel",
    )),
    ("settings", (), (
        "general_setting", "mail_setting", "pos_setting", "hrm_setting", "sms_setting", "create_sms",
        "payment_gateway_setting", "barcode_setting", "language_setting", "reward_point_setting",
    )),
    ("dashboard", (), ("today_sale", "today_profit", "revenue_profit_summary", "cash_flow", "monthly_summary")),
    ("sidebar", (), (
        "sidebar_product", "sidebar_purchase", "sidebar_sale", "sidebar_quotation", "sidebar_transfer",
        "sidebar_expense", "sidebar_income", "sidebar_accounting", "sidebar_hrm", "sidebar_people",
        "sidebar_settings",
    )),
)


def resolve(permission_name: str) -> str:
    """Return the module tag for a permission name. Never fails."""
    if permission_name in REPORT_PERMISSIONS:
        return REPORTS_MODULE

    for module, prefixes, exact in MODULE_MAP:
        if permission_name.startswith(prefixes) or permission_name in exact:
            return module

    return OTHER_MODULE


def module_tags() -> List[str]:
    """All module tags in display order"""
    return [module for module, _, _ in MODULE_MAP] + [REPORTS_MODULE, OTHER_MODULE]


def group_by_module(permission_names: Iterable[str]) -> Dict[str, List[str]]:
    """
    Group permission names by module for the role/permission screens.

    Modules appear in display order and only when non-empty; names keep
    their input order.
    """
    buckets: Dict[str, List[str]] = {tag: [] for tag in module_tags()}
    for name in permission_names:
        buckets[resolve(name)].append(name)
    return {tag: names for tag, names in buckets.items() if names}
