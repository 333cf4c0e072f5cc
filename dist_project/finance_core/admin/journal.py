from decimal import Decimal

from django.contrib import admin
from django.db.models import Prefetch
from django.utils.html import format_html

from finance_core.models import JournalEntry, JournalLine

from .inlines import JournalLineInline


# Register `JournalEntry` model
@admin.register(JournalEntry)
class JournalEntryAdmin(admin.ModelAdmin):
    """Entries are created by services.ledger; the admin is a viewer."""

    list_display = (
        "entry_number",
        "entry_date",
        "source_module",
        "reference_number",
        "is_posted",
        "created_by",
        "balanced",
    )
    list_filter = ("source_module", "is_posted", "entry_date")
    search_fields = ("entry_number", "reference_number", "reference_id", "description")
    readonly_fields = (
        "entry_number", "entry_date", "source_module", "reference_id",
        "reference_number", "total_debit", "total_credit", "is_posted",
        "posted_at", "posting_fingerprint", "created_by",
    )
    inlines = [JournalLineInline]

    # Fetch lines and their accounts in one go
    def get_queryset(self, request):
        qs = super().get_queryset(request)
        journalline_qs = JournalLine.objects.select_related("account")
        return qs.select_related("created_by").prefetch_related(
            Prefetch("lines", queryset=journalline_qs)
        )

    """ Computed column for balance check """
    def balanced(self, obj):
        return format_html(
            "<b>{}</b> / <small>{}</small>",
            obj.total_debit or Decimal("0.00"),
            obj.total_credit or Decimal("0.00"),
        )

    balanced.short_description = "Debits / Credits"

    def has_add_permission(self, request):
        return False

    # void goes through services.ledger.void_journal_entry
    def has_delete_permission(self, request, obj=None):
        return False
