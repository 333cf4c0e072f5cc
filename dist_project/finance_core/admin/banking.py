from django.contrib import admin

from finance_core.models import (BankAccount, BankStatementLine,
                                 BankStatementUpload, CashMovement)

from .actions import auto_match_lines, confirm_matches, reject_matches


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ("name", "account_number", "ledger_account", "is_active")
    search_fields = ("name", "account_number")


@admin.register(CashMovement)
class CashMovementAdmin(admin.ModelAdmin):
    list_display = ("voucher_number", "kind", "channel", "movement_date", "amount",
                    "category", "bank_account", "container")
    list_filter = ("kind", "channel", "direction", "category")
    search_fields = ("voucher_number", "description")
    date_hierarchy = "movement_date"

    # Recorded through services.cash so the ledger entry follows
    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(BankStatementUpload)
class BankStatementUploadAdmin(admin.ModelAdmin):
    list_display = ("bank_account", "period_start", "period_end", "skipped_duplicates",
                    "uploaded_by", "created_at")
    readonly_fields = ("file_url", "skipped_duplicates", "uploaded_by")


@admin.register(BankStatementLine)
class BankStatementLineAdmin(admin.ModelAdmin):
    list_display = ("transaction_date", "bank_account", "debit_amount", "credit_amount",
                    "reconciliation_status", "matched_cash_movement", "match_score")
    list_filter = ("reconciliation_status", "bank_account")
    search_fields = ("description", "reference")
    readonly_fields = ("reconciliation_status", "matched_cash_movement",
                       "matched_journal_entry", "match_score", "matched_at", "matched_by")
    actions = [auto_match_lines, confirm_matches, reject_matches]
