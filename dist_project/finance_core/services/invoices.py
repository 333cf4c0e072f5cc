import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models, transaction

from ..collaborators import ensure_writable
from ..exceptions import NotFoundError
from ..models import CashMovement, PaymentAllocation, SalesInvoice

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _paid_amount(invoice_id):
    paid = PaymentAllocation.objects.filter(invoice_id=invoice_id).aggregate(
        total=models.Sum("amount"))["total"]
    return paid or ZERO


def get_invoice_balance(invoice_id):
    """
    Total, paid and outstanding amount of a sales invoice.
    Paid is read from PaymentAllocation only.
    """
    try:
        invoice = SalesInvoice.objects.get(pk=invoice_id)
    except SalesInvoice.DoesNotExist:
        raise NotFoundError(f"Invoice {invoice_id} does not exist.")
    paid = _paid_amount(invoice.pk)
    return {
        "total_amount": invoice.total_amount,
        "paid_amount": paid,
        "balance_amount": invoice.total_amount - paid,
    }


def allocate_receipt(receipt_id, allocations, user=None):
    """
    Apply a receipt voucher to one or more invoices.

    ``allocations`` is a list of {"invoice_id", "amount"}. Either every
    allocation is recorded or none: the total may not exceed what is left of
    the receipt, and no invoice may be paid beyond its balance.
    """
    ensure_writable()
    if not allocations:
        raise ValidationError("Nothing to allocate.")

    with transaction.atomic():
        try:
            receipt = CashMovement.objects.select_for_update().get(pk=receipt_id)
        except CashMovement.DoesNotExist:
            raise NotFoundError(f"Receipt {receipt_id} does not exist.")
        if receipt.kind != "receipt":
            raise ValidationError("Only receipt vouchers can settle invoices.")

        # Group requested amounts per invoice
        requested = {}
        for item in allocations:
            amount = Decimal(str(item["amount"]))
            if amount <= 0:
                raise ValidationError("Allocated amount must be positive.")
            requested[item["invoice_id"]] = requested.get(item["invoice_id"], ZERO) + amount

        already = receipt.allocations.aggregate(total=models.Sum("amount"))["total"] or ZERO
        if already + sum(requested.values(), ZERO) > receipt.amount:
            raise ValidationError(
                f"Allocations exceed receipt {receipt.voucher_number}: "
                f"{receipt.amount - already} left to allocate.")

        created = []
        for invoice_id, amount in requested.items():
            try:
                invoice = SalesInvoice.objects.select_for_update().get(pk=invoice_id)
            except SalesInvoice.DoesNotExist:
                raise NotFoundError(f"Invoice {invoice_id} does not exist.")
            if invoice.is_draft:
                raise ValidationError(f"Invoice {invoice.invoice_number} is still a draft.")
            balance = invoice.total_amount - _paid_amount(invoice.pk)
            if amount > balance:
                raise ValidationError(
                    f"Invoice {invoice.invoice_number} has only {balance} outstanding.")
            if PaymentAllocation.objects.filter(receipt=receipt, invoice=invoice).exists():
                raise ValidationError(
                    f"{receipt.voucher_number} is already allocated to {invoice.invoice_number}.")
            allocation = PaymentAllocation(receipt=receipt, invoice=invoice, amount=amount)
            allocation.save()
            created.append(allocation)

    logger.info("Allocated %s over %s invoice(s) from %s",
                sum((a.amount for a in created), ZERO), len(created), receipt.voucher_number)
    return created
