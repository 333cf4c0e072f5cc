from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from .cash import CashMovement
from .inventory import ImportContainer
from .journal import JournalEntry
from .party import Customer, Supplier
from .sales import SalesOrder


# ---------- Sales invoices ----------
class SalesInvoice(models.Model):
    invoice_number = models.CharField(max_length=50, unique=True)
    customer = models.ForeignKey(
        Customer, on_delete=models.PROTECT, related_name="invoices")
    sales_order = models.ForeignKey(
        SalesOrder, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="invoices",
    )
    invoice_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    total_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=0, editable=False)
    is_draft = models.BooleanField(default=True)
    journal_entry = models.OneToOneField(
        JournalEntry, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="sales_invoice",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["invoice_date", "invoice_number"]

    def __str__(self):
        return f"{self.invoice_number} {self.total_amount}"

    def save(self, *args, **kwargs):
        self.total_amount = (self.subtotal or 0) + (self.tax_amount or 0)
        self.full_clean()
        return super().save(*args, **kwargs)


# ---------- Purchase invoices ----------
class PurchaseInvoice(models.Model):
    invoice_number = models.CharField(max_length=50)
    supplier = models.ForeignKey(
        Supplier, on_delete=models.PROTECT, related_name="purchase_invoices")
    container = models.ForeignKey(
        ImportContainer, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="purchase_invoices",
    )
    invoice_date = models.DateField()
    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    total_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=0, editable=False)
    journal_entry = models.OneToOneField(
        JournalEntry, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="purchase_invoice",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            # supplier numbering is only unique per supplier
            models.UniqueConstraint(
                fields=["supplier", "invoice_number"], name="uq_purchase_invoice_number"),
        ]

    def __str__(self):
        return f"{self.invoice_number} {self.total_amount}"

    def save(self, *args, **kwargs):
        self.total_amount = (self.subtotal or 0) + (self.tax_amount or 0)
        self.full_clean()
        return super().save(*args, **kwargs)


# ---------- Payment allocations ----------
class PaymentAllocation(models.Model):
    """
    How much of a receipt voucher settles which sales invoice.
    This is the only table invoice balances are computed from.
    """

    receipt = models.ForeignKey(
        CashMovement, on_delete=models.CASCADE, related_name="allocations")
    # deletion of allocated invoices is refused by a pre_delete signal
    invoice = models.ForeignKey(
        SalesInvoice, on_delete=models.CASCADE, related_name="allocations")
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            # Prevent duplicate application of the same receipt to the same invoice
            models.UniqueConstraint(
                fields=["receipt", "invoice"], name="uq_allocation_receipt_invoice"),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="allocation_amount_positive",
            ),
        ]

    def __str__(self):
        return f"{self.receipt.voucher_number} -> {self.invoice.invoice_number}: {self.amount}"

    def clean(self):
        if self.receipt_id and self.receipt.kind != "receipt":
            raise ValidationError("Only receipt vouchers can settle invoices.")
        if self.receipt_id and self.invoice_id and self.receipt.customer_id != self.invoice.customer_id:
            raise ValidationError("Receipt and invoice must belong to the same customer.")
        if self.amount is not None and self.amount <= Decimal("0"):
            raise ValidationError("Allocated amount must be positive.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
