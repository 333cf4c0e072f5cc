from django.contrib import admin

from finance_core.models import (DeliveryChallan, SalesOrder,
                                 StockReservation)

from .actions import release_reservations
from .inlines import SalesOrderItemInline, StockReservationInline


@admin.register(SalesOrder)
class SalesOrderAdmin(admin.ModelAdmin):
    list_display = ("so_number", "customer", "order_date", "status", "created_by")
    list_filter = ("status",)
    search_fields = ("so_number", "customer__name")
    readonly_fields = ("status",)
    inlines = [SalesOrderItemInline, StockReservationInline]


@admin.register(StockReservation)
class StockReservationAdmin(admin.ModelAdmin):
    list_display = ("order", "batch", "quantity", "status", "created_at", "released_at")
    list_filter = ("status",)
    search_fields = ("order__so_number", "batch__batch_number")
    actions = [release_reservations]

    # reservations change state only through services.reservations
    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DeliveryChallan)
class DeliveryChallanAdmin(admin.ModelAdmin):
    list_display = ("challan_number", "sales_order", "challan_date")
    search_fields = ("challan_number",)
