from django.db import models


# -----------------------------------------
# QuerySet helpers shared by the finance models
# -----------------------------------------
class AccountQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def by_code(self, code):
        return self.get(code=code)


class JournalEntryQuerySet(models.QuerySet):
    def posted(self):
        return self.filter(is_posted=True)

    def for_source(self, source_module, reference_id):
        return self.filter(
            source_module=source_module, reference_id=str(reference_id))

    # Entries whose stored totals disagree
    # (should always be empty thanks to the check constraint)
    def unbalanced(self, tolerance):
        diff = models.F("total_debit") - models.F("total_credit")
        return self.filter(
            models.Q(total_debit__gte=models.F("total_credit") + tolerance) |
            models.Q(total_credit__gte=models.F("total_debit") + tolerance)
        ).annotate(difference=diff)


class BatchQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    # Batches with something left to reserve
    def with_free_stock(self):
        return self.filter(current_stock__gt=models.F("reserved_stock"))


class ReservationQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status="active")

    # Live reserved quantity, the single source of truth for Batch.reserved_stock
    def reserved_quantity(self):
        total = self.active().aggregate(total=models.Sum("quantity"))["total"]
        return total or 0


class CashMovementQuerySet(models.QuerySet):
    def bank_channel(self):
        return self.filter(channel="bank")

    def outflows(self):
        return self.filter(direction="outflow")

    def inflows(self):
        return self.filter(direction="inflow")

    # Movements no bank line has claimed yet
    def unclaimed(self):
        return self.filter(matched_bank_line__isnull=True)


class BankStatementLineQuerySet(models.QuerySet):
    # Lines still waiting for a match; all target references empty
    def unmatched(self):
        return self.filter(
            reconciliation_status="unmatched",
            matched_cash_movement__isnull=True,
            matched_journal_entry__isnull=True,
        )
