from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import ReservationQuerySet
from .inventory import Batch, Product
from .party import Customer

SALES_ORDER_STATUS = [
    ("pending", "Pending"),
    ("approved", "Approved"),
    ("stock_reserved", "Stock reserved"),
    ("shortage", "Shortage"),
    ("partial", "Partially delivered"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
    ("closed", "Closed"),
]

RESERVATION_STATUS = [
    ("active", "Active"),
    ("released", "Released"),
    ("cancelled", "Cancelled"),
]


# ---------- Sales orders ----------
class SalesOrder(models.Model):
    so_number = models.CharField(max_length=50, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT)
    order_date = models.DateField()
    status = models.CharField(
        max_length=20, choices=SALES_ORDER_STATUS, default="pending")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="sales_orders",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-order_date", "so_number"]

    def __str__(self):
        return f"{self.so_number} [{self.status}]"


class SalesOrderItem(models.Model):
    order = models.ForeignKey(
        SalesOrder, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    quantity = models.DecimalField(max_digits=18, decimal_places=3)
    unit_price = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    # raised only by services.reservations.deliver_against_reservation()
    delivered_quantity = models.DecimalField(max_digits=18, decimal_places=3, default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="so_item_quantity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(delivered_quantity__gte=0) & models.Q(delivered_quantity__lte=models.F("quantity")),
                name="so_item_delivered_within_ordered",
            ),
        ]

    def __str__(self):
        return f"{self.order.so_number} / {self.product.code} x {self.quantity}"

    def reserved_quantity(self):
        return self.reservations.reserved_quantity()

    def open_quantity(self):
        """Ordered but neither shipped nor held by an active reservation."""
        return self.quantity - self.delivered_quantity - self.reserved_quantity()


class StockReservation(models.Model):
    """
    A claim on part of a batch for one sales order line.
    active -> released | cancelled is one-way; only
    services.reservations.restore_reservation() brings one back.
    """

    order = models.ForeignKey(
        SalesOrder, on_delete=models.CASCADE, related_name="reservations")
    order_item = models.ForeignKey(
        SalesOrderItem, on_delete=models.CASCADE, related_name="reservations")
    batch = models.ForeignKey(
        Batch, on_delete=models.PROTECT, related_name="reservations")
    quantity = models.DecimalField(max_digits=18, decimal_places=3)
    status = models.CharField(
        max_length=20, choices=RESERVATION_STATUS, default="active")

    release_reason = models.CharField(max_length=200, null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+",
    )
    restored_at = models.DateTimeField(null=True, blank=True)
    restored_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ReservationQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["batch", "status"], name="reservation_batch_status_idx"),
            models.Index(fields=["order", "status"], name="reservation_order_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="reservation_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.order.so_number} <- {self.batch.batch_number} x {self.quantity} [{self.status}]"

    def clean(self):
        if self.order_item_id and self.order_item.order_id != self.order_id:
            raise ValidationError("Reservation item must belong to the reservation's order.")
        if self.batch_id and self.order_item_id and self.batch.product_id != self.order_item.product_id:
            raise ValidationError("Reserved batch must be of the ordered product.")


# ---------- Delivery challans ----------
class DeliveryChallan(models.Model):
    challan_number = models.CharField(max_length=50, unique=True)
    sales_order = models.ForeignKey(
        SalesOrder, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="challans",
    )
    challan_date = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.challan_number
