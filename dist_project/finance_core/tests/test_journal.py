import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.test import TestCase

from ..exceptions import (AlreadyPostedDifferentPayload, ConsistencyError,
                          NotFoundError, UnbalancedJournalError)
from ..models import Account, AuditLog, JournalEntry, JournalLine
from ..services.chart import seed_chart_of_accounts
from ..services.ledger import (account_balance, add_entry_line,
                               find_ledger_inconsistencies, post_journal_entry,
                               recompute_entry_totals, remove_entry_line,
                               replace_entry_lines, update_entry_line,
                               void_journal_entry)

D = datetime.date(2026, 1, 15)


""" Success tests """
class JournalPostingTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()

    def post_sale(self, reference_id="INV-1", amount="100.00"):
        return post_journal_entry(
            "sales", reference_id, D,
            [{"account": "1120", "amount": Decimal(amount)},
             {"account": "4100", "amount": -Decimal(amount)}],
        )

    """ Test Balanced Entry """
    def test_balanced_entry_posts_with_totals(self):
        entry = self.post_sale()

        entry.refresh_from_db()
        self.assertTrue(entry.is_posted)
        self.assertEqual(entry.total_debit, Decimal("100.00"))
        self.assertEqual(entry.total_credit, Decimal("100.00"))
        self.assertEqual(entry.lines.count(), 2)
        self.assertTrue(entry.entry_number.startswith("JE2601-"))
        self.assertEqual(entry.posting_fingerprint, entry.fingerprint())

    def test_explicit_debit_credit_columns_are_accepted(self):
        entry = post_journal_entry(
            "manual", None, D,
            [{"account": "6900", "debit": "40.00"},
             {"account": "1101", "credit": "40.00"}],
        )
        self.assertEqual(entry.total_debit, Decimal("40.00"))
        self.assertIsNone(entry.reference_id)

    """ Test for Idempotency
          Posting the same document with the same lines returns the first entry.
    """
    def test_repost_with_same_lines_returns_existing_entry(self):
        first = self.post_sale()
        second = self.post_sale()

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(JournalEntry.objects.count(), 1)
        self.assertEqual(JournalLine.objects.count(), 2)

    def test_repost_with_different_lines_is_refused(self):
        self.post_sale()
        with self.assertRaises(AlreadyPostedDifferentPayload):
            self.post_sale(amount="120.00")
        self.assertEqual(JournalEntry.objects.count(), 1)

    def test_account_balance_follows_normal_balance(self):
        self.post_sale(amount="100.00")
        self.post_sale(reference_id="INV-2", amount="50.00")

        self.assertEqual(account_balance("1120"), Decimal("150.00"))
        self.assertEqual(account_balance("4100"), Decimal("150.00"))
        self.assertEqual(account_balance("1120", as_of=D - datetime.timedelta(days=1)),
                         Decimal("0.00"))


""" Failure tests """
class JournalRejectionTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()

    def test_unbalanced_entry_writes_nothing(self):
        with self.assertRaises(UnbalancedJournalError):
            post_journal_entry(
                "manual", "X-1", D,
                [{"account": "1101", "amount": "100.00"},
                 {"account": "4100", "amount": "-99.00"}],
            )
        self.assertFalse(JournalEntry.objects.exists())
        self.assertFalse(JournalLine.objects.exists())

    def test_unbalanced_is_a_consistency_error(self):
        self.assertTrue(issubclass(UnbalancedJournalError, ConsistencyError))

    def test_empty_lines_are_refused(self):
        with self.assertRaises(ValidationError):
            post_journal_entry("manual", "X-2", D, [])

    def test_zero_amount_line_is_refused(self):
        with self.assertRaises(ValidationError):
            post_journal_entry(
                "manual", "X-3", D,
                [{"account": "1101", "amount": "0"},
                 {"account": "4100", "amount": "0"}],
            )

    def test_unknown_account_is_refused(self):
        with self.assertRaises(ValidationError):
            post_journal_entry(
                "manual", "X-4", D,
                [{"account": "9999", "amount": "10"},
                 {"account": "4100", "amount": "-10"}],
            )

    def test_inactive_account_is_refused(self):
        Account.objects.get(code="6900").deactivate()
        with self.assertRaises(ValidationError):
            post_journal_entry(
                "manual", "X-5", D,
                [{"account": "6900", "amount": "10"},
                 {"account": "1101", "amount": "-10"}],
            )

    def test_database_refuses_unbalanced_totals(self):
        entry = post_journal_entry(
            "manual", "X-6", D,
            [{"account": "1101", "amount": "10"}, {"account": "4100", "amount": "-10"}],
        )
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                JournalEntry.objects.filter(pk=entry.pk).update(total_debit=Decimal("11.00"))

    def test_accounts_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            Account.objects.get(code="6900").delete()


""" Line amendments, recompute and void """
class JournalAmendmentTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()
        self.entry = post_journal_entry(
            "manual", "ADJ-1", D,
            [{"account": "6900", "amount": "100.00"},
             {"account": "1101", "amount": "-100.00"}],
        )

    def test_update_of_one_side_alone_is_rolled_back(self):
        line = self.entry.lines.get(account__code="6900")
        with self.assertRaises(UnbalancedJournalError):
            update_entry_line(line.pk, amount="120.00")

        line.refresh_from_db()
        self.entry.refresh_from_db()
        self.assertEqual(line.debit, Decimal("100.00"))
        self.assertEqual(self.entry.total_debit, Decimal("100.00"))

    def test_reclassifying_a_line_keeps_entry_balanced(self):
        line = self.entry.lines.get(account__code="6900")
        update_entry_line(line.pk, account="6400", description="stationery")

        line.refresh_from_db()
        self.entry.refresh_from_db()
        self.assertEqual(line.account.code, "6400")
        self.assertEqual(self.entry.total_debit, Decimal("100.00"))
        self.assertEqual(self.entry.posting_fingerprint, self.entry.fingerprint())
        self.assertTrue(AuditLog.objects.filter(action="update_line").exists())

    def test_unsupported_line_field_is_refused(self):
        line = self.entry.lines.first()
        with self.assertRaises(ValidationError):
            update_entry_line(line.pk, line_number=7)

    def test_replace_lines_keeps_totals_in_sync(self):
        # splitting the expense over two accounts
        entry = replace_entry_lines(self.entry.pk, [
            {"account": "6900", "amount": "70.00"},
            {"account": "6400", "amount": "30.00"},
            {"account": "1101", "amount": "-100.00"},
        ])
        self.assertEqual(entry.lines.count(), 3)
        self.assertEqual(entry.total_debit, Decimal("100.00"))
        self.assertEqual(entry.total_credit, Decimal("100.00"))
        self.assertEqual(entry.posting_fingerprint, entry.fingerprint())
        self.assertTrue(AuditLog.objects.filter(action="replace_lines").exists())

    def test_adding_an_unbalancing_line_is_refused(self):
        with self.assertRaises(UnbalancedJournalError):
            add_entry_line(self.entry.pk, {"account": "6400", "amount": "30.00"})
        self.assertEqual(self.entry.lines.count(), 2)

    def test_removing_a_line_that_unbalances_is_refused(self):
        line = self.entry.lines.get(account__code="1101")
        with self.assertRaises(UnbalancedJournalError):
            remove_entry_line(line.pk)
        self.assertTrue(JournalLine.objects.filter(pk=line.pk).exists())

    def test_replace_with_unbalanced_lines_is_refused(self):
        with self.assertRaises(UnbalancedJournalError):
            replace_entry_lines(self.entry.pk, [
                {"account": "6900", "amount": "70.00"},
                {"account": "1101", "amount": "-100.00"},
            ])
        self.assertEqual(self.entry.lines.count(), 2)

    def test_recompute_restores_drifted_totals(self):
        # same amount on both sides, but stale
        JournalEntry.objects.filter(pk=self.entry.pk).update(
            total_debit=Decimal("5.00"), total_credit=Decimal("5.00"))
        self.assertTrue(any(p["problem"] == "totals_out_of_sync"
                            for p in find_ledger_inconsistencies()))

        entry = recompute_entry_totals(self.entry.pk)
        self.assertEqual(entry.total_debit, Decimal("100.00"))
        self.assertEqual(find_ledger_inconsistencies(), [])

    def test_recompute_of_missing_entry(self):
        with self.assertRaises(NotFoundError):
            recompute_entry_totals(999999)

    def test_void_removes_entry_and_lines(self):
        void_journal_entry(self.entry.pk, reason="duplicate")

        self.assertFalse(JournalEntry.objects.filter(pk=self.entry.pk).exists())
        self.assertFalse(JournalLine.objects.filter(entry_id=self.entry.pk).exists())
        log = AuditLog.objects.get(action="void")
        self.assertEqual(log.changes["reason"], "duplicate")

    def test_lines_cannot_be_deleted_directly(self):
        with self.assertRaises(ValidationError):
            self.entry.lines.first().delete()
