"""
App settings for finance_core.

Projects override any key through ``settings.FINANCE_CORE``; missing keys
fall back to the defaults below.
"""
from copy import deepcopy
from decimal import Decimal

from django.conf import settings

DEFAULTS = {
    # Entries whose |debit - credit| reaches this are rejected
    "BALANCE_TOLERANCE": Decimal("0.01"),
    # Chart of accounts codes used by the posting rules
    "ACCOUNT_CODES": {
        "cash": "1101",
        "petty_cash": "1102",
        "bank": "1111",
        "receivable": "1120",
        "inventory": "1130",
        "vat_input": "1150",
        "payable": "2110",
        "vat_output": "2130",
        "withholding_payable": "2132",
        "sales": "4100",
        "stock_adjustment": "5100",
        "general_expense": "6900",
    },
    # expense category -> expense account code (unknown categories use general_expense)
    "EXPENSE_ACCOUNTS": {
        "salary": "6100",
        "staff_welfare": "6150",
        "rent": "6200",
        "warehouse_rent": "6210",
        "office_rent": "6220",
        "utilities": "6300",
        "electricity": "6310",
        "water": "6320",
        "office_supplies": "6400",
        "fuel": "6500",
        "delivery_sales": "6510",
        "loading_sales": "6520",
        "marketing_advertising": "6600",
        "legal_professional": "6700",
        "bpom_ski_fees": "6710",
        "bank_charges": "7100",
        "interest_expense": "7200",
        "duty_customs": "5200",
        "freight_import": "5300",
        "clearing_forwarding": "5400",
        "port_charges": "5400",
        "container_handling": "5400",
        "transport_import": "5400",
        "loading_import": "5400",
        "other_import": "5400",
        "ppn_import": "1150",
        "pph_import": "2132",
    },
    # Bank line <-> cash movement matching policy.
    # The cutoffs were carried over from the previous system as-is;
    # product owners have not yet confirmed them.
    "MATCH_POLICY": {
        "amount_tolerance": Decimal("10000"),
        "date_window_days": 7,
        # (max absolute difference, points); first band that fits wins.
        # 0.99 is "less than one unit" at cent precision
        "amount_tiers": [
            (Decimal("0.99"), 60),
            (Decimal("100"), 50),
            (Decimal("1000"), 35),
        ],
        "amount_fallback_points": 20,
        # (max days apart, points)
        "date_tiers": [
            (0, 30),
            (1, 25),
            (3, 15),
        ],
        "date_fallback_points": 5,
        "bank_account_bonus": 10,
        "matched_threshold": 85,
        "review_threshold": 70,
        "review_status": "needs_review",
    },
    # Collaborators
    "ACTOR_READ_ONLY_GROUP": "viewer",
    "NOTIFIER": "finance_core.tasks.deliver_notification",
    "DOCUMENT_UPLOAD_DIR": "documents",
}


def finance_setting(name):
    """Return a FINANCE_CORE setting, falling back to the default.

    Dict-valued settings are merged one level deep so a project can override
    a single threshold without restating the whole policy.
    """
    user_settings = getattr(settings, "FINANCE_CORE", {}) or {}
    default = deepcopy(DEFAULTS.get(name))
    if name not in user_settings:
        return default
    value = user_settings[name]
    if isinstance(default, dict) and isinstance(value, dict):
        default.update(value)
        return default
    return value


def account_code(key):
    return finance_setting("ACCOUNT_CODES")[key]
