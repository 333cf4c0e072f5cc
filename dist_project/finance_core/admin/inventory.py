from django.contrib import admin

from finance_core.models import Batch, ImportContainer, Product

from .actions import reallocate_containers


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "unit", "total_stock", "is_active")
    search_fields = ("code", "name")
    readonly_fields = ("total_stock",)


class BatchInline(admin.TabularInline):
    model = Batch
    extra = 0
    fields = ("batch_number", "product", "import_price", "import_quantity",
              "allocated_cost", "final_landed_cost", "landed_cost_per_unit")
    readonly_fields = ("allocated_cost", "final_landed_cost", "landed_cost_per_unit")
    show_change_link = True


@admin.register(ImportContainer)
class ImportContainerAdmin(admin.ModelAdmin):
    list_display = ("container_ref", "supplier", "arrival_date", "status",
                    "total_allocable_cost")
    list_filter = ("status",)
    search_fields = ("container_ref",)
    readonly_fields = ("bpom_ski_fees", "other_import_costs", "total_allocable_cost")
    inlines = [BatchInline]
    actions = [reallocate_containers]


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = ("batch_number", "product", "container", "current_stock",
                    "reserved_stock", "landed_cost_per_unit", "expiry_date", "is_active")
    list_filter = ("is_active", "product")
    search_fields = ("batch_number", "product__code", "container__container_ref")
    readonly_fields = ("allocated_cost", "final_landed_cost", "landed_cost_per_unit",
                       "reserved_stock")

    # after creation, stock moves only through services.stock
    def get_readonly_fields(self, request, obj=None):
        fields = list(self.readonly_fields)
        if obj is not None:
            fields.append("current_stock")
        return fields
