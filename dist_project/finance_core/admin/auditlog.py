from django.contrib import admin

from finance_core.models import AuditLog, StockMovement

from .ReadOnly import ReadOnlyAdmin


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "user", "action", "object_type", "object_id")
    search_fields = ("object_type", "object_id", "action")
    date_hierarchy = "created_at"


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "batch", "movement_type", "quantity_change",
                    "resulting_stock", "reference_id", "created_by")
    search_fields = ("batch__batch_number", "reference_id")
