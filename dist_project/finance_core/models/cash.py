from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction

from ..managers import CashMovementQuerySet
from .account import Account
from .inventory import ROLLED_UP_COST_FIELDS, ImportContainer
from .journal import JournalEntry
from .party import Customer, Supplier
from .sales import DeliveryChallan

MOVEMENT_KINDS = [
    ("expense", "Expense (tracker)"),
    ("petty_cash", "Petty cash expense"),
    ("receipt", "Receipt voucher"),
    ("payment", "Payment voucher"),
    ("fund_transfer", "Fund transfer"),
]

CHANNELS = [
    ("bank", "Bank"),
    ("cash", "Cash"),
]

DIRECTIONS = [
    ("outflow", "Outflow"),
    ("inflow", "Inflow"),
]

KIND_DIRECTION = {
    "expense": "outflow",
    "petty_cash": "outflow",
    "payment": "outflow",
    "fund_transfer": "outflow",
    "receipt": "inflow",
}

VOUCHER_PREFIX = {
    "expense": "EXP",
    "petty_cash": "PC",
    "receipt": "RV",
    "payment": "PV",
    "fund_transfer": "FT",
}

# Categories that are import costs and therefore must name their container
IMPORT_CATEGORIES = frozenset({
    "duty_customs", "ppn_import", "pph_import", "freight_import",
    "clearing_forwarding", "port_charges", "container_handling",
    "transport_import", "loading_import", "bpom_ski_fees", "other_import",
})

# Kinds that spend against an expense category
EXPENSE_KINDS = frozenset({"expense", "petty_cash"})


# ---------- Banking ----------
class BankAccount(models.Model):  # Represents bank account company maintains
    name = models.CharField(max_length=200, unique=True)  # e.g. "BCA IDR"
    account_number = models.CharField(max_length=50, null=True, blank=True)
    # The chart-of-accounts entry this bank posts to
    ledger_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT,
        related_name="bank_accounts",
    )
    is_active = models.BooleanField(default=True)

    def __str__(self):
        if self.account_number:
            return f"{self.name} ({self.account_number})"
        return self.name

    def clean(self):
        if self.ledger_account_id and self.ledger_account.account_type != "asset":
            raise ValidationError("A bank account must post to an asset account.")


# ---------- Cash movements ----------
class CashMovement(models.Model):
    """
    Every recorded movement of money, whatever screen it came from.

    ``kind`` says what the movement is, ``channel`` whether it went through
    the bank or through cash. An expense lives either in the expense tracker
    (kind=expense) or in petty cash (kind=petty_cash), never both; moving it
    flips the kind in place (services.cash.move_cash_movement).
    """

    kind = models.CharField(max_length=20, choices=MOVEMENT_KINDS)
    channel = models.CharField(max_length=10, choices=CHANNELS, default="bank")
    direction = models.CharField(
        max_length=10, choices=DIRECTIONS, editable=False)
    voucher_number = models.CharField(
        max_length=40, unique=True, null=True, blank=True)
    movement_date = models.DateField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    category = models.CharField(max_length=50, null=True, blank=True)
    description = models.TextField(null=True, blank=True)

    # Source bank (outflows, transfers) or receiving bank (receipts)
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT,
        related_name="cash_movements",
    )
    # Fund transfer destination; empty means "into petty cash"
    to_bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT,
        related_name="incoming_transfers",
    )
    container = models.ForeignKey(
        ImportContainer, null=True, blank=True, on_delete=models.PROTECT,
        related_name="cash_movements",
    )
    delivery_challan = models.ForeignKey(
        DeliveryChallan, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="cash_movements",
    )
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT)
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.PROTECT)

    # Ledger link, set by services.posting
    journal_entry = models.OneToOneField(
        JournalEntry, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="cash_movement",
    )
    attachment_url = models.URLField(max_length=500, null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="cash_movements",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CashMovementQuerySet.as_manager()

    class Meta:
        ordering = ["-movement_date", "-id"]
        indexes = [
            models.Index(fields=["kind", "movement_date"], name="cash_kind_date_idx"),
            models.Index(fields=["channel", "direction", "movement_date"], name="cash_channel_dir_date_idx"),
            models.Index(fields=["container", "category"], name="cash_container_category_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="cash_movement_amount_positive",
            ),
            # petty cash is by definition cash
            models.CheckConstraint(
                condition=~models.Q(kind="petty_cash", channel="bank"),
                name="petty_cash_is_cash_channel",
            ),
        ]

    def __str__(self):
        return f"{self.voucher_number or self.pk} {self.kind} {self.amount}"

    @property
    def is_import_cost(self):
        return self.category in IMPORT_CATEGORIES

    def clean(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError("Amount must be greater than zero.")

        if self.kind in EXPENSE_KINDS and not self.category:
            raise ValidationError("Expenses need a category.")

        # Import costs must point at the container they belong to
        if self.category in IMPORT_CATEGORIES and not self.container_id:
            raise ValidationError(
                "Import expenses must be linked to an import container.")

        if self.kind == "petty_cash" and self.channel != "cash":
            raise ValidationError("Petty cash movements are always cash.")

        if self.kind == "fund_transfer":
            if self.to_bank_account_id and self.to_bank_account_id == self.bank_account_id:
                raise ValidationError("Cannot transfer funds to the same account.")
            if self.channel == "cash" and not self.to_bank_account_id:
                raise ValidationError("A cash transfer needs a destination bank account.")
        elif self.to_bank_account_id:
            raise ValidationError("Only fund transfers have a destination account.")

        if self.kind == "receipt" and not self.customer_id:
            raise ValidationError("Receipt vouchers need a customer.")
        if self.kind == "payment" and not self.supplier_id:
            raise ValidationError("Payment vouchers need a supplier.")

    def _rollup_targets(self, orig):
        """Containers whose rolled-up cost fields depend on this row."""
        targets = set()
        if self.category in ROLLED_UP_COST_FIELDS and self.container_id:
            targets.add(self.container_id)
        if orig and orig["category"] in ROLLED_UP_COST_FIELDS and orig["container_id"]:
            targets.add(orig["container_id"])
        return targets

    def save(self, *args, **kwargs):
        from ..services.allocation import rollup_container_cash_costs

        self.direction = KIND_DIRECTION[self.kind]
        self.full_clean()
        with transaction.atomic():
            orig = None
            if self.pk:
                orig = (
                    CashMovement.objects.filter(pk=self.pk)
                    .values("category", "container_id", "amount").first()
                )
            creating = orig is None
            super().save(*args, **kwargs)
            if creating and not self.voucher_number:
                self.voucher_number = self.build_voucher_number()
                CashMovement.objects.filter(pk=self.pk).update(
                    voucher_number=self.voucher_number)
            for container_id in sorted(self._rollup_targets(orig)):
                rollup_container_cash_costs(container_id)

    def build_voucher_number(self):
        return f"{VOUCHER_PREFIX[self.kind]}{self.movement_date:%y%m}-{self.pk:06d}"

    def signed_amount(self):
        # bank-statement orientation: outflows negative
        return self.amount if self.direction == "inflow" else -self.amount
