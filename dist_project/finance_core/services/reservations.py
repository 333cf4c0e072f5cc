"""
Reservation manager.

A reservation claims part of a batch for one sales order line.
Batch.reserved_stock is always rebuilt as the live sum of the batch's active
reservations (recompute_reserved_stock), never incremented or decremented
by callers.
"""
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models.functions import Coalesce
from django.utils import timezone

from ..collaborators import ensure_writable, notify, resolve_actor
from ..exceptions import (ConcurrencyConflict, ConsistencyError,
                          InsufficientStockError, NotFoundError)
from ..models import Batch, SalesOrder, SalesOrderItem, StockReservation
from .audit_helper import log_action
from .stock import QTY, adjust_batch_stock

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
# Orders in these states no longer take reservations
CLOSED_ORDER_STATUSES = {"delivered", "cancelled", "closed"}


def _user_or_none(user):
    return user if user is not None and user.pk else None


def _lock(model, pk, label):
    try:
        return model.objects.select_for_update().get(pk=pk)
    except model.DoesNotExist:
        raise NotFoundError(f"{label} {pk} does not exist.")


def _quantity(value):
    qty = Decimal(str(value))
    if qty <= 0:
        raise ValidationError("Quantity must be greater than zero.")
    return qty


def _lock_order_of(reservation_id):
    """Lock the reservation's order before anything else, same as reserve_stock()."""
    try:
        order_id = StockReservation.objects.values_list("order_id", flat=True).get(pk=reservation_id)
    except StockReservation.DoesNotExist:
        raise NotFoundError(f"Reservation {reservation_id} does not exist.")
    return _lock(SalesOrder, order_id, "Sales order")


def _delivery_status(order):
    """delivered once every line has shipped in full, partial once anything has."""
    items = list(order.items.values_list("quantity", "delivered_quantity"))
    if items and all(delivered >= quantity for quantity, delivered in items):
        return "delivered"
    if any(delivered > 0 for _, delivered in items):
        return "partial"
    return None


# ----------------------------
# Derived reserved stock
# ----------------------------
def recompute_reserved_stock(batch_id):
    """Rebuild Batch.reserved_stock from active reservations, inside the database."""
    active_sum = models.Subquery(
        StockReservation.objects.filter(batch=models.OuterRef("pk"), status="active")
        .order_by()
        .values("batch")
        .annotate(total=models.Sum("quantity"))
        .values("total")
    )
    try:
        with transaction.atomic():
            Batch.objects.filter(pk=batch_id).update(
                reserved_stock=Coalesce(active_sum, models.Value(ZERO), output_field=QTY))
    except IntegrityError as exc:
        raise InsufficientStockError(
            f"Active reservations exceed the stock of batch {batch_id}.") from exc
    return Batch.objects.values_list("reserved_stock", flat=True).get(pk=batch_id)


def _refresh_order_after_release(order):
    # an order that lost its last active reservation goes back to approved
    if order.status == "stock_reserved" and not order.reservations.active().exists():
        order.status = "approved"
        order.save(update_fields=["status", "updated_at"])


# ----------------------------
# Reserve
# ----------------------------
def _item_for(order, batch, order_item_id):
    items = SalesOrderItem.objects.select_for_update().filter(order=order)
    if order_item_id is not None:
        try:
            item = items.get(pk=order_item_id)
        except SalesOrderItem.DoesNotExist:
            raise ValidationError(f"Item {order_item_id} is not part of order {order.so_number}.")
        if item.product_id != batch.product_id:
            raise ValidationError("Reserved batch must be of the ordered product.")
        return item
    item = items.filter(product_id=batch.product_id).order_by("id").first()
    if item is None:
        raise ValidationError(
            f"Order {order.so_number} has no line for product {batch.product.code}.")
    return item


def reserve_stock(batch_id, order_id, qty, order_item_id=None, user=None):
    """
    Reserve ``qty`` of a batch for a sales order line.

    Raises InsufficientStockError when the batch has less free stock
    (current - reserved) than requested, and ConsistencyError when the line
    would end up reserving more than was ordered.
    """
    ensure_writable()
    qty = _quantity(qty)
    user = resolve_actor(user)

    with transaction.atomic():
        order = _lock(SalesOrder, order_id, "Sales order")
        batch = _lock(Batch, batch_id, "Batch")
        if order.status in CLOSED_ORDER_STATUSES:
            raise ValidationError(f"Order {order.so_number} is {order.status}.")
        if not batch.is_active:
            raise ValidationError(f"Batch {batch.batch_number} is inactive.")
        if batch.expiry_date and batch.expiry_date < timezone.localdate():
            raise ValidationError(f"Batch {batch.batch_number} has expired.")

        item = _item_for(order, batch, order_item_id)
        already = item.reserved_quantity()
        if already + item.delivered_quantity + qty > item.quantity:
            raise ConsistencyError(
                f"Reserving {qty} would exceed the ordered {item.quantity} "
                f"({already} already reserved, {item.delivered_quantity} delivered).")

        free = batch.current_stock - batch.reserved_stock
        if qty > free:
            raise InsufficientStockError(
                f"Batch {batch.batch_number} has {free} free, {qty} requested.")

        reservation = StockReservation(order=order, order_item=item, batch=batch, quantity=qty)
        reservation.full_clean()
        reservation.save()
        recompute_reserved_stock(batch.pk)

    logger.info("Reserved %s of batch %s for %s", qty, batch.batch_number, order.so_number)
    return reservation


def reserve_stock_for_order(order_id, user=None):
    """
    Reserve every open line of an order first-in first-out over active,
    unexpired batches. The order ends in stock_reserved, or shortage when
    some quantity could not be covered (the order's creator is notified).
    """
    ensure_writable()
    user = resolve_actor(user)
    today = timezone.localdate()

    with transaction.atomic():
        order = _lock(SalesOrder, order_id, "Sales order")
        if order.status in CLOSED_ORDER_STATUSES:
            raise ValidationError(f"Order {order.so_number} is {order.status}.")

        reservation_ids = []
        shortages = {}
        for item in order.items.order_by("id"):
            remaining = item.open_quantity()
            if remaining <= 0:
                continue
            batches = (
                Batch.objects.active().with_free_stock()
                .filter(product_id=item.product_id)
                .filter(models.Q(expiry_date__isnull=True) | models.Q(expiry_date__gte=today))
                .order_by(models.F("import_date").asc(nulls_last=True), "created_at", "id")
                .select_for_update()
            )
            for batch in batches:
                take = min(remaining, batch.current_stock - batch.reserved_stock)
                if take <= 0:
                    continue
                reservation = reserve_stock(
                    batch.pk, order.pk, take, order_item_id=item.pk, user=user)
                reservation_ids.append(reservation.pk)
                remaining -= take
                if remaining <= 0:
                    break
            if remaining > 0:
                shortages[item.pk] = remaining

        if shortages:
            order.status = "shortage"
        else:
            order.status = _delivery_status(order) or "stock_reserved"
        order.save(update_fields=["status", "updated_at"])

        if shortages:
            logger.warning("Order %s short on %s line(s)", order.so_number, len(shortages))
            notify(order.created_by_id, "stock_shortage", {
                "order_id": order.pk,
                "so_number": order.so_number,
                "shortages": {str(k): str(v) for k, v in shortages.items()},
            })

    return {"status": order.status, "reservations": reservation_ids, "shortages": shortages}


# ----------------------------
# Release
# ----------------------------
def _close_reservation(reservation, status, reason, user):
    """active -> released/cancelled, guarded so a second caller loses."""
    updated = StockReservation.objects.filter(pk=reservation.pk, status="active").update(
        status=status,
        release_reason=reason,
        released_at=timezone.now(),
        released_by=_user_or_none(user),
    )
    if not updated:
        raise ConcurrencyConflict(f"Reservation {reservation.pk} is no longer active.")


def release_reservation(reservation_id, reason, user=None):
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        order = _lock_order_of(reservation_id)
        reservation = _lock(StockReservation, reservation_id, "Reservation")
        if reservation.status != "active":
            raise ConcurrencyConflict(
                f"Reservation {reservation.pk} is already {reservation.status}.")
        _close_reservation(reservation, "released", reason, user)
        recompute_reserved_stock(reservation.batch_id)
        _refresh_order_after_release(order)
        reservation.refresh_from_db()

    logger.info("Released reservation %s (%s)", reservation.pk, reason)
    return reservation


def cancel_sales_order(order_id, reason, user=None):
    """Cancel an order and every reservation it still holds."""
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        order = _lock(SalesOrder, order_id, "Sales order")
        if order.status == "cancelled":
            raise ConcurrencyConflict(f"Order {order.so_number} is already cancelled.")
        if order.status in CLOSED_ORDER_STATUSES:
            raise ValidationError(f"Order {order.so_number} is {order.status}.")

        reservations = list(order.reservations.active().select_for_update())
        for reservation in reservations:
            _close_reservation(reservation, "cancelled", reason, user)
        for batch_id in sorted({r.batch_id for r in reservations}):
            recompute_reserved_stock(batch_id)

        order.status = "cancelled"
        order.save(update_fields=["status", "updated_at"])

    logger.info("Cancelled order %s, %s reservation(s) released", order.so_number,
                len(reservations))
    return order


def deliver_against_reservation(reservation_id, qty, challan_id=None, user=None):
    """
    Ship ``qty`` out of a reservation: the claim shrinks (or is released
    when fully delivered), the batch's physical stock goes down and the
    order line's delivered quantity goes up. The order becomes delivered
    once every line has shipped in full, partial before that.
    Returns (reservation, stock_movement_id).
    """
    ensure_writable()
    qty = _quantity(qty)
    user = resolve_actor(user)

    with transaction.atomic():
        order = _lock_order_of(reservation_id)
        reservation = _lock(StockReservation, reservation_id, "Reservation")
        if reservation.status != "active":
            raise ConcurrencyConflict(
                f"Reservation {reservation.pk} is already {reservation.status}.")
        if qty > reservation.quantity:
            raise ValidationError(
                f"Cannot deliver {qty}: only {reservation.quantity} reserved.")

        if qty == reservation.quantity:
            _close_reservation(reservation, "released", "delivered", user)
        else:
            StockReservation.objects.filter(pk=reservation.pk).update(
                quantity=models.F("quantity") - qty)
        # lower the claim first so the stock guard sees the freed quantity
        recompute_reserved_stock(reservation.batch_id)
        _, movement_id = adjust_batch_stock(
            reservation.batch_id, -qty, "delivery",
            reference_id=challan_id or order.pk,
            notes=f"Delivery for {order.so_number}",
            user=user,
        )
        try:
            with transaction.atomic():
                SalesOrderItem.objects.filter(pk=reservation.order_item_id).update(
                    delivered_quantity=models.F("delivered_quantity") + qty)
        except IntegrityError as exc:
            raise ConsistencyError(
                f"Delivering {qty} would exceed the ordered quantity on {order.so_number}.") from exc

        order.status = _delivery_status(order)
        order.save(update_fields=["status", "updated_at"])
        reservation.refresh_from_db()

    logger.info("Delivered %s against reservation %s (%s now %s)", qty, reservation.pk,
                order.so_number, order.status)
    return reservation, movement_id


# ----------------------------
# Restore (administrative)
# ----------------------------
def restore_reservation(reservation_id, user=None, reason=""):
    """
    Bring a released or cancelled reservation back to active and put the
    owning order back to stock_reserved (partial when part of it has
    shipped). Only allowed when the batch still has the stock free and the
    order line would not end up holding more than is left to ship. Audited.
    """
    ensure_writable()
    user = resolve_actor(user)

    with transaction.atomic():
        order = _lock_order_of(reservation_id)
        reservation = _lock(StockReservation, reservation_id, "Reservation")
        if reservation.status == "active":
            raise ValidationError(f"Reservation {reservation.pk} is already active.")
        if order.status in CLOSED_ORDER_STATUSES:
            raise ValidationError(f"Order {order.so_number} is {order.status}.")
        batch = _lock(Batch, reservation.batch_id, "Batch")

        free = batch.current_stock - batch.reserved_stock
        if reservation.quantity > free:
            raise InsufficientStockError(
                f"Batch {batch.batch_number} has {free} free, "
                f"{reservation.quantity} needed to restore.")
        item = SalesOrderItem.objects.select_for_update().get(pk=reservation.order_item_id)
        if reservation.quantity > item.open_quantity():
            raise ConsistencyError(
                f"Restoring would exceed the ordered {item.quantity} on {order.so_number} "
                f"({item.delivered_quantity} already delivered).")

        previous = {
            "status": reservation.status,
            "release_reason": reservation.release_reason,
            "order_status": order.status,
        }
        StockReservation.objects.filter(pk=reservation.pk).update(
            status="active",
            release_reason=None,
            restored_at=timezone.now(),
            restored_by=_user_or_none(user),
        )
        recompute_reserved_stock(batch.pk)

        order.status = "partial" if _delivery_status(order) else "stock_reserved"
        order.save(update_fields=["status", "updated_at"])
        reservation.refresh_from_db()
        log_action(
            action="restore", instance=reservation, user=user,
            changes={"before": previous, "reason": reason},
        )

    logger.info("Restored reservation %s on order %s", reservation.pk, order.so_number)
    return reservation
