import hashlib
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import BankStatementLineQuerySet
from .cash import BankAccount, CashMovement
from .journal import JournalEntry

RECONCILIATION_STATUS = [
    ("unmatched", "Unmatched"),
    ("suggested", "Suggested"),
    ("needs_review", "Needs review"),
    ("matched", "Matched"),
]


# ---------- Bank statements ----------
class BankStatementUpload(models.Model):
    """One imported statement file (the file itself lives in document storage)."""

    bank_account = models.ForeignKey(
        BankAccount, on_delete=models.PROTECT, related_name="statement_uploads")
    file_url = models.URLField(max_length=500, null=True, blank=True)
    period_start = models.DateField(null=True, blank=True)
    period_end = models.DateField(null=True, blank=True)
    # lines already on file from an earlier import
    skipped_duplicates = models.PositiveIntegerField(default=0)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.bank_account} {self.period_start} - {self.period_end}"


class BankStatementLine(models.Model):
    """
    One line as the bank reported it.
    debit_amount = money leaving the account, credit_amount = money arriving.
    A line points at no more than one internal record.
    """

    upload = models.ForeignKey(
        BankStatementUpload, null=True, blank=True,
        on_delete=models.CASCADE, related_name="lines",
    )
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True,
        on_delete=models.PROTECT, related_name="statement_lines",
    )
    transaction_date = models.DateField()
    description = models.TextField(null=True, blank=True)
    reference = models.CharField(max_length=200, null=True, blank=True)
    debit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    credit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    # sha256 of bank account, date, amounts and description; one line per bank transaction
    transaction_hash = models.CharField(max_length=64, null=True, blank=True, editable=False)

    reconciliation_status = models.CharField(
        max_length=20, choices=RECONCILIATION_STATUS, default="unmatched")
    # Match targets (mutually exclusive)
    matched_cash_movement = models.OneToOneField(
        CashMovement, null=True, blank=True,
        on_delete=models.PROTECT, related_name="matched_bank_line",
    )
    matched_journal_entry = models.ForeignKey(
        JournalEntry, null=True, blank=True,
        on_delete=models.PROTECT, related_name="matched_bank_lines",
    )
    match_score = models.PositiveSmallIntegerField(null=True, blank=True)
    matched_at = models.DateTimeField(null=True, blank=True)
    matched_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+",
    )
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = BankStatementLineQuerySet.as_manager()

    class Meta:
        ordering = ["-transaction_date", "-id"]
        indexes = [
            models.Index(fields=["reconciliation_status", "transaction_date"], name="bsl_status_date_idx"),
            models.Index(fields=["bank_account", "transaction_date"], name="bsl_bank_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit_amount__gte=0) & models.Q(credit_amount__gte=0),
                name="bsl_non_negative_amounts",
            ),
            models.UniqueConstraint(fields=["transaction_hash"], name="bsl_unique_transaction_hash"),
            models.CheckConstraint(
                condition=~(models.Q(debit_amount__gt=0) & models.Q(credit_amount__gt=0)),
                name="bsl_single_side",
            ),
            # never two targets at once
            models.CheckConstraint(
                condition=(
                    models.Q(matched_cash_movement__isnull=True) |
                    models.Q(matched_journal_entry__isnull=True)
                ),
                name="bsl_single_match_target",
            ),
            # unmatched <=> no target
            models.CheckConstraint(
                condition=(
                    models.Q(
                        reconciliation_status="unmatched",
                        matched_cash_movement__isnull=True,
                        matched_journal_entry__isnull=True,
                    ) |
                    (
                        ~models.Q(reconciliation_status="unmatched") &
                        (
                            models.Q(matched_cash_movement__isnull=False) |
                            models.Q(matched_journal_entry__isnull=False)
                        )
                    )
                ),
                name="bsl_status_matches_target",
            ),
        ]

    def __str__(self):
        return f"{self.transaction_date} D:{self.debit_amount} C:{self.credit_amount} [{self.reconciliation_status}]"

    @property
    def amount(self):
        return self.debit_amount or self.credit_amount

    # money left the account -> compare with outflows
    @property
    def is_outflow(self):
        return self.debit_amount > 0

    @property
    def has_match_target(self):
        return bool(self.matched_cash_movement_id or self.matched_journal_entry_id)

    def compute_transaction_hash(self):
        cent = Decimal("0.01")
        parts = [
            str(self.bank_account_id or ""),
            self.transaction_date.isoformat(),
            str(Decimal(self.debit_amount).quantize(cent)),
            str(Decimal(self.credit_amount).quantize(cent)),
            " ".join((self.description or "").split()).lower(),
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()

    def clean(self):
        if self.matched_cash_movement_id and self.matched_journal_entry_id:
            raise ValidationError("A bank line can match only one record.")
        if self.debit_amount == 0 and self.credit_amount == 0:
            raise ValidationError("A bank line needs a debit or a credit amount.")
