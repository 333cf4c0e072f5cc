import logging

from django.db import transaction

from ..models import Account

logger = logging.getLogger(__name__)

# (code, name, type, parent code)
DEFAULT_CHART = [
    ("1000", "Assets", "asset", None),
    ("1100", "Cash and bank", "asset", "1000"),
    ("1101", "Cash on hand", "asset", "1100"),
    ("1102", "Petty cash", "asset", "1100"),
    ("1110", "Bank", "asset", "1100"),
    ("1111", "Bank - operating", "asset", "1110"),
    ("1120", "Accounts receivable", "asset", "1000"),
    ("1130", "Inventory", "asset", "1000"),
    ("1150", "VAT input (PPN masukan)", "asset", "1000"),
    ("2000", "Liabilities", "liability", None),
    ("2110", "Accounts payable", "liability", "2000"),
    ("2130", "VAT output (PPN keluaran)", "liability", "2000"),
    ("2132", "Withholding tax payable (PPh)", "liability", "2000"),
    ("3000", "Equity", "equity", None),
    ("3100", "Owner capital", "equity", "3000"),
    ("4000", "Revenue", "revenue", None),
    ("4100", "Sales", "revenue", "4000"),
    ("5000", "Cost of goods", "expense", None),
    ("5100", "Stock adjustments", "expense", "5000"),
    ("5200", "Import duty", "expense", "5000"),
    ("5300", "Import freight", "expense", "5000"),
    ("5400", "Other import costs", "expense", "5000"),
    ("6000", "Operating expenses", "expense", None),
    ("6100", "Salaries", "expense", "6000"),
    ("6150", "Staff welfare", "expense", "6000"),
    ("6200", "Rent", "expense", "6000"),
    ("6210", "Warehouse rent", "expense", "6200"),
    ("6220", "Office rent", "expense", "6200"),
    ("6300", "Utilities", "expense", "6000"),
    ("6310", "Electricity", "expense", "6300"),
    ("6320", "Water", "expense", "6300"),
    ("6400", "Office supplies", "expense", "6000"),
    ("6500", "Fuel", "expense", "6000"),
    ("6510", "Delivery (sales)", "expense", "6000"),
    ("6520", "Loading (sales)", "expense", "6000"),
    ("6600", "Marketing and advertising", "expense", "6000"),
    ("6700", "Legal and professional", "expense", "6000"),
    ("6710", "BPOM / SKI fees", "expense", "6700"),
    ("6900", "General expenses", "expense", "6000"),
    ("7000", "Financial expenses", "expense", None),
    ("7100", "Bank charges", "expense", "7000"),
    ("7200", "Interest expense", "expense", "7000"),
]


def seed_chart_of_accounts(chart=None):
    """
    Create any missing accounts of the default chart.
    Existing codes are left untouched; returns the number created.
    """
    created = 0
    with transaction.atomic():
        for code, name, account_type, parent_code in chart or DEFAULT_CHART:
            if Account.objects.filter(code=code).exists():
                continue
            parent = Account.objects.get(code=parent_code) if parent_code else None
            Account(code=code, name=name, account_type=account_type, parent=parent).save()
            created += 1
    logger.info("Seeded %s chart-of-accounts entries", created)
    return created
