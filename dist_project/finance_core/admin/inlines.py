from django.contrib import admin

from finance_core.models import JournalLine, SalesOrderItem, StockReservation


# Lines are written through services.ledger, the inline only shows them
class JournalLineInline(admin.TabularInline):
    model = JournalLine
    extra = 0
    can_delete = False
    fields = ("line_number", "account", "description", "debit", "credit",
              "customer", "supplier", "batch")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


class SalesOrderItemInline(admin.TabularInline):
    model = SalesOrderItem
    extra = 1
    readonly_fields = ("delivered_quantity",)


class StockReservationInline(admin.TabularInline):
    model = StockReservation
    extra = 0
    can_delete = False
    fields = ("order_item", "batch", "quantity", "status", "release_reason",
              "released_at", "restored_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False
