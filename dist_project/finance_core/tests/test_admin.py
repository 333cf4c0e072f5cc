import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from ..models import BankStatementLine, Batch, ImportContainer, StockReservation
from ..services.cash import record_cash_movement
from ..services.chart import seed_chart_of_accounts
from ..services.reconciliation import import_bank_statement
from ..services.reservations import reserve_stock_for_order
from .factories import (make_bank, make_batch, make_container, make_customer,
                        make_order, make_product)


class AdminTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()
        self.admin = get_user_model().objects.create_superuser("admin", "admin@example.com", "x")
        self.client.force_login(self.admin)

    def test_changelists_render(self):
        for name in ("account", "journalentry", "cashmovement", "batch", "importcontainer",
                     "salesorder", "stockreservation", "bankstatementline", "auditlog",
                     "stockmovement", "salesinvoice"):
            response = self.client.get(reverse(f"admin:finance_core_{name}_changelist"))
            self.assertEqual(response.status_code, 200, name)

    def test_reallocate_action(self):
        container = make_container(freight_charges="500")
        batch = make_batch(make_product(), "B-1", price="5", quantity="10", container=container)
        # drift the derived value, the action rebuilds it
        Batch.objects.filter(pk=batch.pk).update(allocated_cost=Decimal("1"))

        self.client.post(reverse("admin:finance_core_importcontainer_changelist"), {
            "action": "reallocate_containers",
            "_selected_action": [container.pk],
        })
        batch.refresh_from_db()
        self.assertEqual(batch.allocated_cost, Decimal("500.00"))
        self.assertTrue(ImportContainer.objects.filter(pk=container.pk).exists())

    def test_auto_match_and_confirm_actions(self):
        bank = make_bank()
        record_cash_movement(
            kind="expense", channel="bank", bank_account=bank,
            movement_date=datetime.date(2026, 6, 1), amount=Decimal("99000"), category="fuel",
        )
        upload = import_bank_statement(bank.pk, [
            {"transaction_date": datetime.date(2026, 6, 5), "debit_amount": "99000"},
        ])
        line = upload.lines.get()
        url = reverse("admin:finance_core_bankstatementline_changelist")

        self.client.post(url, {"action": "auto_match_lines", "_selected_action": [line.pk]})
        line.refresh_from_db()
        self.assertEqual(line.reconciliation_status, "needs_review")

        self.client.post(url, {"action": "confirm_matches", "_selected_action": [line.pk]})
        self.assertEqual(BankStatementLine.objects.get(pk=line.pk).reconciliation_status, "matched")

    def test_release_action(self):
        product = make_product()
        make_batch(product, "B-1", stock="10")
        order = make_order(make_customer(), lines=[(product, "4")])
        reserve_stock_for_order(order.pk)
        reservation = StockReservation.objects.get()

        self.client.post(reverse("admin:finance_core_stockreservation_changelist"), {
            "action": "release_reservations",
            "_selected_action": [reservation.pk],
        })
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, "released")
