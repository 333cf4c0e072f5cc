import datetime
import json
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from ..models import SalesInvoice
from ..services.chart import seed_chart_of_accounts
from ..services.posting import post_sales_invoice
from .factories import make_batch, make_container, make_customer, make_product


class FinanceViewTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()
        self.user = get_user_model().objects.create_user("finance", password="secret")
        self.client.force_login(self.user)

    def test_anonymous_is_forbidden(self):
        self.client.logout()
        response = self.client.post(reverse("finance_core:auto-match"))
        self.assertEqual(response.status_code, 403)
        self.assertFalse(response.json()["ok"])

    def test_auto_match_returns_counts(self):
        response = self.client.post(reverse("finance_core:auto-match"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "ok": True, "matched_count": 0, "suggested_count": 0, "skipped_count": 0,
        })

    def test_auto_match_is_post_only(self):
        response = self.client.get(reverse("finance_core:auto-match"))
        self.assertEqual(response.status_code, 405)

    def test_invoice_balance(self):
        invoice = SalesInvoice.objects.create(
            invoice_number="INV-9", customer=make_customer(), invoice_date=datetime.date(2026, 5, 2),
            subtotal=Decimal("250000"),
        )
        post_sales_invoice(invoice)

        response = self.client.get(reverse("finance_core:invoice-balance", args=[invoice.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["balance_amount"], "250000.00")

    def test_missing_invoice_is_404(self):
        response = self.client.get(reverse("finance_core:invoice-balance", args=[999]))
        self.assertEqual(response.status_code, 404)

    def test_reallocate_container(self):
        container = make_container(freight_charges="300")
        batch = make_batch(make_product(), "B-1", price="1", quantity="10", container=container)

        response = self.client.post(reverse("finance_core:container-reallocate", args=[container.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["allocations"], {str(batch.pk): "300.00"})

    def test_adjust_stock(self):
        batch = make_batch(make_product(), "B-1", stock="20")
        url = reverse("finance_core:batch-adjust-stock", args=[batch.pk])

        response = self.client.post(url, data=json.dumps({"delta": "-5", "notes": "count"}),
                                    content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["new_stock"]), Decimal("15"))

        response = self.client.post(url, data={"delta": "-50"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Cannot apply", response.json()["error"])

    def test_adjust_stock_needs_a_number(self):
        batch = make_batch(make_product(), "B-1", stock="20")
        url = reverse("finance_core:batch-adjust-stock", args=[batch.pk])
        response = self.client.post(url, data={"delta": "lots"})
        self.assertEqual(response.status_code, 400)
