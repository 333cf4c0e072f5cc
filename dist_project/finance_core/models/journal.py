import hashlib
import json
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import JournalEntryQuerySet
from .account import Account

SOURCE_MODULES = [
    ("manual", "Manual journal"),
    ("purchases", "Purchases"),
    ("sales", "Sales"),
    ("expenses", "Expenses"),
    ("petty_cash", "Petty cash"),
    ("receipts", "Receipt vouchers"),
    ("payments", "Payment vouchers"),
    ("fund_transfers", "Fund transfers"),
    ("inventory", "Inventory"),
]

# Largest |debit - credit| an entry may carry (rounding slack)
BALANCE_TOLERANCE = Decimal("0.01")


# ---------- Journal (Header) & JournalLine ----------
class JournalEntry(models.Model):  # Represents one accounting transaction
    """
    Header of a balanced double-entry record.

    total_debit / total_credit are a cached aggregate of the lines.
    Only services.ledger.recompute_entry_totals() may change them after
    creation; save() on an existing row keeps the stored values.
    """

    # e.g. JE2601-000042, assigned right after insert
    entry_number = models.CharField(
        max_length=30, unique=True, null=True, blank=True)
    entry_date = models.DateField()
    # Which module produced the entry and for which document
    source_module = models.CharField(
        max_length=20, choices=SOURCE_MODULES, default="manual")
    reference_id = models.CharField(max_length=64, null=True, blank=True)
    reference_number = models.CharField(max_length=100, null=True, blank=True)
    description = models.TextField(null=True, blank=True)

    # Derived totals
    total_debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=0, editable=False)
    total_credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=0, editable=False)

    is_posted = models.BooleanField(default=False)
    posted_at = models.DateTimeField(null=True, blank=True)
    # Fingerprint-based idempotency (safe to post twice if nothing has changed)
    posting_fingerprint = models.CharField(max_length=64, null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="journal_entries",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = JournalEntryQuerySet.as_manager()

    class Meta:
        verbose_name_plural = "journal entries"
        indexes = [
            models.Index(fields=["entry_date"], name="je_entry_date_idx"),
            models.Index(fields=["source_module", "reference_id"], name="je_source_ref_idx"),
        ]
        constraints = [
            # The database refuses any write that leaves an entry unbalanced
            models.CheckConstraint(
                condition=(
                    models.Q(total_debit__lt=models.F("total_credit") + BALANCE_TOLERANCE) &
                    models.Q(total_credit__lt=models.F("total_debit") + BALANCE_TOLERANCE)
                ),
                name="je_debit_equals_credit",
            ),
            # One entry per source document
            models.UniqueConstraint(
                fields=["source_module", "reference_id"],
                condition=models.Q(reference_id__isnull=False),
                name="uq_je_source_reference",
            ),
        ]

    def __str__(self):
        return f"{self.entry_number or self.pk} {self.entry_date} [{self.source_module}]"

    # Aggregate all debit and credit amounts across entry's lines
    def compute_totals(self):
        """Return debits, credits sums for lines"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    # True if double-entry rule holds: total debits = total credits
    def is_balanced(self):
        debit, credit = self.compute_totals()
        return abs(debit - credit) < BALANCE_TOLERANCE

    @staticmethod
    def build_fingerprint(entry_date, lines):
        """Deterministic hash of what matters for posting.

        ``lines`` is an iterable of (account_id, debit, credit) in line order.
        Same lines in the same order always produce the same hash,
        so a repeated post of an unchanged document can be recognised.
        """
        payload = {
            "date": entry_date.isoformat(),
            "lines": [
                {"acct": account_id, "debit": f"{Decimal(debit):.2f}", "credit": f"{Decimal(credit):.2f}"}
                for account_id, debit, credit in lines
            ],
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        return hashlib.sha256(raw.encode()).hexdigest()

    def fingerprint(self):
        lines = self.lines.order_by("line_number", "id").values_list(
            "account_id", "debit", "credit")
        return self.build_fingerprint(self.entry_date, lines)

    def save(self, *args, **kwargs):
        if self.pk:  # Does this row already exist in DB?
            orig = (
                JournalEntry.objects.filter(pk=self.pk)
                .values("total_debit", "total_credit", "is_posted")
                .first()
            )
            if orig is not None:
                # Totals belong to the recompute operation, not to callers
                self.total_debit = orig["total_debit"]
                self.total_credit = orig["total_credit"]
                if orig["is_posted"] and not self.is_posted:
                    raise ValidationError("Cannot unpost a posted journal")
        super().save(*args, **kwargs)


class JournalLine(models.Model):  # Stores Lines ( credits / debits )
    """
    Each line belongs to exactly one journal entry and one GL account.
    Optional customer / supplier / batch references act as reporting dimensions.
    Lines are written through services.ledger so entry totals stay in sync.
    """

    entry = models.ForeignKey(
        JournalEntry, on_delete=models.CASCADE, related_name="lines")
    line_number = models.PositiveIntegerField(default=1)
    # Can't delete account if lines exist → PROTECT
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    description = models.CharField(max_length=400, null=True, blank=True)
    debit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    # Dimensions
    customer = models.ForeignKey(
        "Customer", null=True, blank=True, on_delete=models.SET_NULL)
    supplier = models.ForeignKey(
        "Supplier", null=True, blank=True, on_delete=models.SET_NULL)
    batch = models.ForeignKey(
        "Batch", null=True, blank=True, on_delete=models.SET_NULL)

    class Meta:
        ordering = ["entry_id", "line_number", "id"]
        indexes = [
            models.Index(fields=["account"], name="jl_account_idx"),
            models.Index(fields=["entry", "line_number"], name="jl_entry_line_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jl_non_negative_amounts",
            ),
            # exactly one side carries the amount
            models.CheckConstraint(
                condition=(
                    (models.Q(debit__gt=0) & models.Q(credit=0)) |
                    (models.Q(debit=0) & models.Q(credit__gt=0))
                ),
                name="jl_debit_xor_credit",
            ),
        ]

    def __str__(self):
        return f"{self.entry_id} | {self.account.code} {self.account.name} | D:{self.debit} C:{self.credit}"

    def clean(self):
        if self.debit < 0 or self.credit < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if (self.debit > 0) and (self.credit > 0):
            raise ValidationError(
                "JournalLine should not have both debit and credit > 0")
        if (self.debit == 0) and (self.credit == 0):
            raise ValidationError(
                "JournalLine requires a non-0 amount on either debit or credit")
        if self.account_id and not self.account.is_active:
            raise ValidationError(
                f"Account {self.account.code} is inactive and cannot be posted to.")

    @property
    def signed_amount(self):
        # positive = debit, negative = credit
        return self.debit - self.credit

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "Remove journal lines through the ledger services so totals are recomputed.")
