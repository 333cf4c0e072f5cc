from django.core.exceptions import ValidationError
from django.db import models

from ..managers import AccountQuerySet

ACCOUNT_TYPES = [
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("revenue", "Revenue"),
    ("expense", "Expense"),
]

NORMAL_BALANCE = [
    ("debit", "Debit"),
    ("credit", "Credit"),
]

# Increases to assets and expenses are debits, everything else credits
DEFAULT_NORMAL_BALANCE = {
    "asset": "debit",
    "expense": "debit",
    "liability": "credit",
    "equity": "credit",
    "revenue": "credit",
}


# ---------- Chart of Accounts ----------
class Account(models.Model):
    """
    One ledger account.
    Codes follow a hierarchical prefix convention:
    1xxx assets, 2xxx liabilities, 3xxx equity, 4xxx revenue, 5xxx-7xxx costs.
    Accounts are never deleted, only deactivated.
    """

    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    account_type = models.CharField(max_length=20, choices=ACCOUNT_TYPES)
    normal_balance = models.CharField(
        max_length=6, choices=NORMAL_BALANCE, blank=True)
    # Optional roll-up parent (e.g. 1111 BCA -> 1110 Bank)
    parent = models.ForeignKey(
        "self", null=True, blank=True,
        on_delete=models.PROTECT, related_name="children",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = AccountQuerySet.as_manager()

    class Meta:
        ordering = ["code"]
        indexes = [models.Index(fields=["account_type", "is_active"], name="account_type_active_idx")]

    def __str__(self):
        return f"{self.code} {self.name}"

    def clean(self):
        # parent must share the code prefix
        if self.parent_id and not self.code.startswith(self.parent.code[:1]):
            raise ValidationError(
                "Child account code must share its parent's top-level prefix.")

    def save(self, *args, **kwargs):
        if not self.normal_balance:
            self.normal_balance = DEFAULT_NORMAL_BALANCE[self.account_type]
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "Accounts are never deleted; deactivate the account instead.")

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=["is_active"])
