from django.contrib import admin

from finance_core.models import PaymentAllocation, PurchaseInvoice, SalesInvoice


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    fk_name = "invoice"
    extra = 0
    can_delete = False
    readonly_fields = ("receipt", "amount", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SalesInvoice)
class SalesInvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "customer", "invoice_date", "total_amount",
                    "is_draft", "journal_entry")
    list_filter = ("is_draft",)
    search_fields = ("invoice_number", "customer__name")
    readonly_fields = ("total_amount", "journal_entry")
    inlines = [PaymentAllocationInline]


@admin.register(PurchaseInvoice)
class PurchaseInvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "supplier", "container", "invoice_date",
                    "total_amount", "journal_entry")
    search_fields = ("invoice_number", "supplier__name")
    readonly_fields = ("total_amount", "journal_entry")
