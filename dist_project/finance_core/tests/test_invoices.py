import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from ..exceptions import NotFoundError
from ..models import PaymentAllocation, PurchaseInvoice, SalesInvoice
from ..services.cash import delete_cash_movement, record_cash_movement
from ..services.chart import seed_chart_of_accounts
from ..services.invoices import allocate_receipt, get_invoice_balance
from ..services.ledger import account_balance
from ..services.posting import post_purchase_invoice, post_sales_invoice
from .factories import make_bank, make_customer, make_supplier

D = datetime.date(2026, 4, 1)


class InvoiceBalanceTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()
        self.bank = make_bank()
        self.customer = make_customer()
        self.invoice = self.make_invoice("INV-001", "1000000", "110000")
        self.receipt = self.make_receipt("700000")

    def make_invoice(self, number, subtotal, tax="0"):
        invoice = SalesInvoice.objects.create(
            invoice_number=number, customer=self.customer, invoice_date=D,
            subtotal=Decimal(subtotal), tax_amount=Decimal(tax),
        )
        post_sales_invoice(invoice)
        return invoice

    def make_receipt(self, amount, customer=None):
        return record_cash_movement(
            kind="receipt", bank_account=self.bank, movement_date=D,
            amount=Decimal(amount), customer=customer or self.customer,
        )

    def test_posting_books_receivable_revenue_and_vat(self):
        self.assertFalse(self.invoice.is_draft)
        self.assertEqual(self.invoice.total_amount, Decimal("1110000"))
        self.assertEqual(account_balance("4100"), Decimal("1000000.00"))
        self.assertEqual(account_balance("2130"), Decimal("110000.00"))

    def test_unpaid_invoice(self):
        balance = get_invoice_balance(self.invoice.pk)
        self.assertEqual(balance, {
            "total_amount": Decimal("1110000.00"),
            "paid_amount": Decimal("0.00"),
            "balance_amount": Decimal("1110000.00"),
        })

    def test_balance_reads_allocations(self):
        allocate_receipt(self.receipt.pk, [{"invoice_id": self.invoice.pk, "amount": "400000"}])
        second = self.make_receipt("300000")
        allocate_receipt(second.pk, [{"invoice_id": self.invoice.pk, "amount": "300000"}])

        balance = get_invoice_balance(self.invoice.pk)
        self.assertEqual(balance["paid_amount"], Decimal("700000.00"))
        self.assertEqual(balance["balance_amount"], Decimal("410000.00"))

    def test_receipt_cannot_be_over_allocated(self):
        other = self.make_invoice("INV-002", "500000")
        with self.assertRaises(ValidationError):
            allocate_receipt(self.receipt.pk, [
                {"invoice_id": self.invoice.pk, "amount": "500000"},
                {"invoice_id": other.pk, "amount": "300000"},
            ])
        # all or nothing
        self.assertFalse(PaymentAllocation.objects.exists())

    def test_invoice_cannot_be_over_paid(self):
        small = self.make_invoice("INV-003", "100000")
        with self.assertRaises(ValidationError):
            allocate_receipt(self.receipt.pk, [{"invoice_id": small.pk, "amount": "100001"}])

    def test_other_customers_receipt_is_refused(self):
        stranger = self.make_receipt("100000", customer=make_customer("C-002", "Other"))
        with self.assertRaises(ValidationError):
            allocate_receipt(stranger.pk, [{"invoice_id": self.invoice.pk, "amount": "100000"}])

    def test_allocated_receipt_and_invoice_cannot_be_deleted(self):
        allocate_receipt(self.receipt.pk, [{"invoice_id": self.invoice.pk, "amount": "100000"}])
        with self.assertRaises(ValidationError):
            delete_cash_movement(self.receipt.pk)
        with self.assertRaises(ValidationError):
            SalesInvoice.objects.get(pk=self.invoice.pk).delete()

    def test_unknown_invoice(self):
        with self.assertRaises(NotFoundError):
            get_invoice_balance(424242)


class PurchaseInvoiceTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()

    def test_purchase_posts_inventory_vat_and_payable(self):
        invoice = PurchaseInvoice.objects.create(
            invoice_number="PI-77", supplier=make_supplier(), invoice_date=D,
            subtotal=Decimal("2000000"), tax_amount=Decimal("220000"),
        )
        entry = post_purchase_invoice(invoice)

        self.assertEqual(entry.total_debit, Decimal("2220000.00"))
        self.assertEqual(account_balance("2110"), Decimal("2220000.00"))
        self.assertEqual(account_balance("1150"), Decimal("220000.00"))
