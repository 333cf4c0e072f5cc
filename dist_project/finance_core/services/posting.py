"""
Posting rules: how each source document turns into journal lines.

Every rule builds signed lines (positive = debit) and hands them to
services.ledger.post_journal_entry, which owns balancing and persistence.
"""
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..conf import account_code, finance_setting
from ..models import CashMovement, PurchaseInvoice, SalesInvoice
from .ledger import post_journal_entry, void_journal_entry

logger = logging.getLogger(__name__)

# CashMovement.kind -> JournalEntry.source_module
SOURCE_MODULE_FOR_KIND = {
    "expense": "expenses",
    "petty_cash": "petty_cash",
    "receipt": "receipts",
    "payment": "payments",
    "fund_transfer": "fund_transfers",
}


# ----------------------------
# Account resolution
# ----------------------------
def _bank_ledger_code(bank_account):
    """
    Ledger code that represents a BankAccount in the chart of accounts.
    Banks without an explicit ledger account post to the default bank code.
    """
    if bank_account is not None and bank_account.ledger_account_id:
        return bank_account.ledger_account.code
    return account_code("bank")


def _money_account(movement):
    """Where the money physically left from / arrived in."""
    if movement.kind == "petty_cash":
        return account_code("petty_cash")
    if movement.channel == "cash":
        return account_code("cash")
    return _bank_ledger_code(movement.bank_account)


def expense_account_code(category):
    # Unknown categories land on general expense
    return finance_setting("EXPENSE_ACCOUNTS").get(category, account_code("general_expense"))


def cash_movement_lines(movement):
    amount = movement.amount
    label = movement.description or movement.category or movement.kind

    if movement.kind in ("expense", "petty_cash"):
        return [
            {"account": expense_account_code(movement.category), "amount": amount,
             "description": label, "supplier": movement.supplier_id},
            {"account": _money_account(movement), "amount": -amount, "description": label},
        ]

    if movement.kind == "receipt":
        return [
            {"account": _money_account(movement), "amount": amount, "description": label},
            {"account": account_code("receivable"), "amount": -amount,
             "description": label, "customer": movement.customer_id},
        ]

    if movement.kind == "payment":
        return [
            {"account": account_code("payable"), "amount": amount,
             "description": label, "supplier": movement.supplier_id},
            {"account": _money_account(movement), "amount": -amount, "description": label},
        ]

    if movement.kind == "fund_transfer":
        # No destination bank means a petty cash top-up
        if movement.to_bank_account_id:
            destination = _bank_ledger_code(movement.to_bank_account)
        else:
            destination = account_code("petty_cash")
        return [
            {"account": destination, "amount": amount, "description": label},
            {"account": _money_account(movement), "amount": -amount, "description": label},
        ]

    raise ValidationError(f"No posting rule for cash movement kind {movement.kind!r}.")


# ----------------------------
# Cash movements
# ----------------------------
def post_cash_movement(movement: CashMovement, user=None):
    """Post a cash movement and link the entry back to it."""
    entry = post_journal_entry(
        source_module=SOURCE_MODULE_FOR_KIND[movement.kind],
        reference_id=movement.pk,
        entry_date=movement.movement_date,
        lines=cash_movement_lines(movement),
        description=movement.description,
        reference_number=movement.voucher_number,
        user=user,
    )
    if movement.journal_entry_id != entry.pk:
        CashMovement.objects.filter(pk=movement.pk).update(journal_entry=entry)
        movement.journal_entry = entry
    return entry


def repost_cash_movement(movement: CashMovement, user=None):
    """
    Replace the ledger entry of an edited or moved cash movement.
    The old entry is voided and a fresh one posted in the same transaction.
    """
    with transaction.atomic():
        old_entry_id = movement.journal_entry_id
        if old_entry_id:
            CashMovement.objects.filter(pk=movement.pk).update(journal_entry=None)
            movement.journal_entry = None
            void_journal_entry(old_entry_id, user=user, reason=f"repost {movement.voucher_number}")
        return post_cash_movement(movement, user=user)


# ----------------------------
# Invoices
# ----------------------------
def post_sales_invoice(invoice: SalesInvoice, user=None):
    """Dr receivable / Cr sales / Cr VAT output."""
    if invoice.total_amount <= 0:
        raise ValidationError("Invoice total must be > 0 to post revenue JE")
    lines = [
        {"account": account_code("receivable"), "amount": invoice.total_amount,
         "description": f"AR for invoice {invoice.invoice_number}",
         "customer": invoice.customer_id},
        {"account": account_code("sales"), "amount": -invoice.subtotal,
         "description": f"Revenue: invoice {invoice.invoice_number}",
         "customer": invoice.customer_id},
    ]
    if invoice.tax_amount:
        lines.append({"account": account_code("vat_output"), "amount": -invoice.tax_amount,
                      "description": f"VAT output: invoice {invoice.invoice_number}"})

    with transaction.atomic():
        entry = post_journal_entry(
            source_module="sales",
            reference_id=invoice.pk,
            entry_date=invoice.invoice_date,
            lines=lines,
            description=f"Invoice {invoice.invoice_number}",
            reference_number=invoice.invoice_number,
            user=user,
        )
        SalesInvoice.objects.filter(pk=invoice.pk).update(journal_entry=entry, is_draft=False)
        invoice.journal_entry = entry
        invoice.is_draft = False
    return entry


def post_purchase_invoice(invoice: PurchaseInvoice, user=None):
    """Dr inventory / Dr VAT input / Cr payable."""
    if invoice.total_amount <= 0:
        raise ValidationError("Purchase invoice total must be > 0 to post")
    lines = [
        {"account": account_code("inventory"), "amount": invoice.subtotal,
         "description": f"Goods: purchase {invoice.invoice_number}",
         "supplier": invoice.supplier_id},
    ]
    if invoice.tax_amount:
        lines.append({"account": account_code("vat_input"), "amount": invoice.tax_amount,
                      "description": f"VAT input: purchase {invoice.invoice_number}"})
    lines.append({"account": account_code("payable"), "amount": -invoice.total_amount,
                  "description": f"AP for purchase {invoice.invoice_number}",
                  "supplier": invoice.supplier_id})

    with transaction.atomic():
        entry = post_journal_entry(
            source_module="purchases",
            reference_id=invoice.pk,
            entry_date=invoice.invoice_date,
            lines=lines,
            description=f"Purchase {invoice.invoice_number}",
            reference_number=invoice.invoice_number,
            user=user,
        )
        PurchaseInvoice.objects.filter(pk=invoice.pk).update(journal_entry=entry)
        invoice.journal_entry = entry
    return entry


# ----------------------------
# Inventory
# ----------------------------
def post_stock_adjustment(movement, unit_cost, user=None):
    """
    Value a stock adjustment or rejection at landed cost per unit.
    Gains: Dr inventory / Cr stock adjustment. Losses the other way round.
    Returns None when there is nothing to value.
    """
    value = (abs(movement.quantity_change) * Decimal(unit_cost)).quantize(Decimal("0.01"))
    if value == 0:
        return None
    sign = 1 if movement.quantity_change > 0 else -1
    entry = post_journal_entry(
        source_module="inventory",
        reference_id=movement.pk,
        entry_date=timezone.localdate(movement.created_at),
        lines=[
            {"account": account_code("inventory"), "amount": sign * value,
             "batch": movement.batch_id, "description": movement.notes},
            {"account": account_code("stock_adjustment"), "amount": -sign * value,
             "batch": movement.batch_id, "description": movement.notes},
        ],
        description=f"Stock {movement.movement_type} {movement.quantity_change:+}",
        user=user,
    )
    logger.info("Posted stock %s of batch %s at %s", movement.movement_type,
                movement.batch_id, value)
    return entry
