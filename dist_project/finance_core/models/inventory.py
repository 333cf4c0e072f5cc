from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction

from ..managers import BatchQuerySet
from .party import Supplier

CONTAINER_STATUS = [
    ("draft", "Draft"),
    ("in_transit", "In transit"),
    ("arrived", "Arrived"),
    ("closed", "Closed"),
]

# Cost fields that become part of inventory landed cost
ALLOCABLE_COST_FIELDS = (
    "freight_charges",
    "clearing_forwarding",
    "port_charges",
    "container_handling",
    "transportation",
    "loading_import",
    "bpom_ski_fees",
    "other_import_costs",
)

# Tax-only fields: tracked on the container, never allocated to batches
# (duty BM, recoverable import VAT, import withholding tax)
TAX_COST_FIELDS = ("duty_bm", "ppn_import", "pph_import")

COST_FIELDS = TAX_COST_FIELDS + ALLOCABLE_COST_FIELDS

# Container fields fed by linked cash movements of the same category
ROLLED_UP_COST_FIELDS = {
    "other_import": "other_import_costs",
    "bpom_ski_fees": "bpom_ski_fees",
}

MOVEMENT_TYPES = [
    ("opening", "Opening balance"),
    ("purchase", "Purchase / import receipt"),
    ("sale", "Sale"),
    ("delivery", "Delivery challan"),
    ("return", "Customer return"),
    ("rejection", "Stock rejection"),
    ("adjustment", "Manual adjustment"),
]


def money_field(**kwargs):
    return models.DecimalField(max_digits=18, decimal_places=2, default=0, **kwargs)


def qty_field(**kwargs):
    return models.DecimalField(max_digits=18, decimal_places=3, default=0, **kwargs)


# ---------- Products ----------
class Product(models.Model):
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    unit = models.CharField(max_length=20, default="kg")
    # Sum of batch current_stock, maintained by services.stock
    total_stock = qty_field(editable=False)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.code} {self.name}"


# ---------- Import containers ----------
class ImportContainer(models.Model):
    """
    One import shipment. Its non-tax costs are spread over the batches that
    arrived in it (see services.allocation).
    """

    container_ref = models.CharField(max_length=100, unique=True)
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.SET_NULL)
    arrival_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=CONTAINER_STATUS, default="draft")

    # Tax items
    duty_bm = money_field()
    ppn_import = money_field()
    pph_import = money_field()
    # Logistics / clearance items
    freight_charges = money_field()
    clearing_forwarding = money_field()
    port_charges = money_field()
    container_handling = money_field()
    transportation = money_field()
    loading_import = money_field()
    # Rolled up from linked cash movements, never typed in
    bpom_ski_fees = money_field(editable=False)
    other_import_costs = money_field(editable=False)

    # Derived: sum of ALLOCABLE_COST_FIELDS
    total_allocable_cost = money_field(editable=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-arrival_date", "container_ref"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(duty_bm__gte=0) & models.Q(ppn_import__gte=0) &
                    models.Q(pph_import__gte=0) & models.Q(freight_charges__gte=0) &
                    models.Q(clearing_forwarding__gte=0) & models.Q(port_charges__gte=0) &
                    models.Q(container_handling__gte=0) & models.Q(transportation__gte=0) &
                    models.Q(loading_import__gte=0)
                ),
                name="container_costs_non_negative",
            ),
        ]

    def __str__(self):
        return self.container_ref

    def compute_allocable_cost(self):
        return sum(
            (getattr(self, f) or Decimal("0") for f in ALLOCABLE_COST_FIELDS),
            Decimal("0"),
        )

    @property
    def total_tax_cost(self):
        return sum(
            (getattr(self, f) or Decimal("0") for f in TAX_COST_FIELDS),
            Decimal("0"),
        )

    def save(self, *args, **kwargs):
        # lazy import to avoid circular import at module load time
        from ..services.allocation import reallocate_container_costs

        with transaction.atomic():
            costs_changed = True
            if self.pk:
                orig = (
                    ImportContainer.objects.select_for_update()
                    .filter(pk=self.pk).values(*COST_FIELDS).first()
                )
                if orig is not None:
                    # rolled-up fields are owned by the cash movement rollup
                    for field in ROLLED_UP_COST_FIELDS.values():
                        setattr(self, field, orig[field])
                    costs_changed = any(
                        orig[f] != getattr(self, f) for f in COST_FIELDS)
            self.total_allocable_cost = self.compute_allocable_cost()
            if kwargs.get("update_fields") is not None:
                kwargs["update_fields"] = set(kwargs["update_fields"]) | {
                    "total_allocable_cost"}
            self.full_clean()
            super().save(*args, **kwargs)
            # Any change to a cost field re-spreads costs over the batches
            if costs_changed:
                reallocate_container_costs(self.pk)


# ---------- Batches ----------
class Batch(models.Model):
    """
    One lot of a product. Physical stock and reserved stock are tracked here;
    landed cost fields are written only by the cost allocator.
    """

    batch_number = models.CharField(max_length=100, unique=True)
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="batches")
    container = models.ForeignKey(
        ImportContainer, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="batches",
    )
    import_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)

    # Purchase side
    import_price = models.DecimalField(
        max_digits=18, decimal_places=4, default=0)  # per unit
    import_quantity = qty_field()
    # Charges booked directly against this batch (totals, not per unit)
    duty_charges = money_field()
    freight_charges = money_field()
    other_charges = money_field()

    # Derived by the cost allocator
    allocated_cost = money_field(editable=False)
    final_landed_cost = money_field(editable=False)
    landed_cost_per_unit = models.DecimalField(
        max_digits=18, decimal_places=4, default=0, editable=False)

    # Stock, changed only through services.stock / services.reservations
    current_stock = qty_field()
    reserved_stock = qty_field(editable=False)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = BatchQuerySet.as_manager()

    class Meta:
        verbose_name_plural = "batches"
        ordering = ["import_date", "created_at", "id"]
        indexes = [
            models.Index(fields=["product", "is_active"], name="batch_product_active_idx"),
            models.Index(fields=["container"], name="batch_container_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_stock__gte=0),
                name="batch_stock_non_negative",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(reserved_stock__gte=0) &
                    models.Q(reserved_stock__lte=models.F("current_stock"))
                ),
                name="batch_reserved_within_stock",
            ),
            models.CheckConstraint(
                condition=models.Q(import_quantity__gte=0) & models.Q(import_price__gte=0),
                name="batch_import_values_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.batch_number} ({self.product.code})"

    @property
    def batch_value(self):
        return (self.import_price * self.import_quantity).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def own_charges(self):
        return self.duty_charges + self.freight_charges + self.other_charges

    @property
    def free_stock(self):
        return self.current_stock - self.reserved_stock

    def clean(self):
        if self.expiry_date and self.import_date and self.expiry_date < self.import_date:
            raise ValidationError("Expiry date cannot be before import date.")

    def _reset_standalone_cost(self):
        # Batches outside a container carry no allocated share
        landed = self.batch_value + self.own_charges
        self.allocated_cost = Decimal("0.00")
        self.final_landed_cost = landed
        self.landed_cost_per_unit = (
            (landed / self.import_quantity).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
            if self.import_quantity else Decimal("0")
        )

    def save(self, *args, **kwargs):
        from ..services.allocation import reallocate_container_costs

        with transaction.atomic():
            affected = set()
            if self.pk:
                orig = (
                    Batch.objects.select_for_update().filter(pk=self.pk)
                    .values(
                        "container_id", "import_price", "import_quantity",
                        "duty_charges", "freight_charges", "other_charges",
                        "allocated_cost", "final_landed_cost",
                        "landed_cost_per_unit", "current_stock", "reserved_stock",
                    ).first()
                )
            else:
                orig = None

            if orig is None:
                # New batch: opening stock may be given, nothing is reserved yet
                self.reserved_stock = Decimal("0")
                self.allocated_cost = Decimal("0")
                if self.container_id:
                    affected.add(self.container_id)
            else:
                # Stock is owned by the stock/reservation services
                self.current_stock = orig["current_stock"]
                self.reserved_stock = orig["reserved_stock"]
                for f in ("allocated_cost", "final_landed_cost", "landed_cost_per_unit"):
                    setattr(self, f, orig[f])
                cost_inputs_changed = any(
                    orig[f] != getattr(self, f)
                    for f in ("import_price", "import_quantity", "duty_charges",
                              "freight_charges", "other_charges")
                )
                if orig["container_id"] != self.container_id:
                    # old and new container both need a fresh split
                    affected.update(
                        c for c in (orig["container_id"], self.container_id) if c)
                elif cost_inputs_changed and self.container_id:
                    affected.add(self.container_id)

            if not self.container_id:
                self._reset_standalone_cost()

            self.full_clean()
            super().save(*args, **kwargs)
            for container_id in sorted(affected):
                reallocate_container_costs(container_id)


class StockMovement(models.Model):
    """Immutable record of every change to a batch's physical stock."""

    batch = models.ForeignKey(
        Batch, on_delete=models.PROTECT, related_name="movements")
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPES)
    # signed: + stock in, - stock out
    quantity_change = models.DecimalField(max_digits=18, decimal_places=3)
    resulting_stock = models.DecimalField(max_digits=18, decimal_places=3)
    reference_id = models.CharField(max_length=64, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [models.Index(fields=["batch", "created_at"], name="stockmove_batch_created_idx")]

    def __str__(self):
        return f"{self.batch.batch_number} {self.movement_type} {self.quantity_change:+}"

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("Stock movements are immutable.")
        return super().save(*args, **kwargs)
