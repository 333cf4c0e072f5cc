import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models.functions import Coalesce

from ..collaborators import ensure_writable, resolve_actor
from ..exceptions import NegativeStockError, NotFoundError
from ..models import Batch, Product, StockMovement
from ..models.inventory import MOVEMENT_TYPES

logger = logging.getLogger(__name__)

QTY = models.DecimalField(max_digits=18, decimal_places=3)
MOVEMENT_TYPE_KEYS = {key for key, _ in MOVEMENT_TYPES}
# Movement types that change the value of inventory on the books
VALUED_MOVEMENT_TYPES = {"adjustment", "rejection"}


def recompute_product_stock(product_id):
    """Product.total_stock = sum of its batches' current stock, computed in the DB."""
    batch_sum = models.Subquery(
        Batch.objects.filter(product=models.OuterRef("pk"))
        .order_by()
        .values("product")
        .annotate(total=models.Sum("current_stock"))
        .values("total")
    )
    Product.objects.filter(pk=product_id).update(
        total_stock=Coalesce(batch_sum, models.Value(Decimal("0")), output_field=QTY))


def adjust_batch_stock(batch_id, delta, tx_type, reference_id=None, notes=None,
                       user=None, post_to_ledger=False):
    """
    Atomically add ``delta`` (signed) to a batch's physical stock.

    The new value is computed by the database in a single UPDATE, guarded so
    stock never drops below zero or below what is already reserved.
    Every change leaves an immutable StockMovement behind.
    Returns (new_stock, movement_id).
    """
    ensure_writable()
    delta = Decimal(str(delta))
    if delta == 0:
        raise ValidationError("Stock adjustment must not be zero.")
    if tx_type not in MOVEMENT_TYPE_KEYS:
        raise ValidationError(f"Unknown stock movement type {tx_type!r}.")
    user = resolve_actor(user)

    with transaction.atomic():
        rows = Batch.objects.filter(pk=batch_id)
        if delta < 0:
            # reserved goods cannot be taken out by an adjustment
            rows = rows.filter(current_stock__gte=models.F("reserved_stock") - delta)
        try:
            with transaction.atomic():
                updated = rows.update(current_stock=models.F("current_stock") + delta)
        except IntegrityError as exc:
            raise NegativeStockError(
                f"Adjustment of {delta} rejected for batch {batch_id}.") from exc

        if not updated:
            batch = Batch.objects.filter(pk=batch_id).values(
                "current_stock", "reserved_stock").first()
            if batch is None:
                raise NotFoundError(f"Batch {batch_id} does not exist.")
            raise NegativeStockError(
                f"Cannot apply {delta} to batch {batch_id}: stock {batch['current_stock']}, "
                f"reserved {batch['reserved_stock']}.")

        batch = Batch.objects.get(pk=batch_id)
        movement = StockMovement.objects.create(
            batch=batch,
            product_id=batch.product_id,
            movement_type=tx_type,
            quantity_change=delta,
            resulting_stock=batch.current_stock,
            reference_id=str(reference_id) if reference_id is not None else None,
            notes=notes,
            created_by=user if user is not None and user.pk else None,
        )
        recompute_product_stock(batch.product_id)

        if post_to_ledger and tx_type in VALUED_MOVEMENT_TYPES:
            from .posting import post_stock_adjustment
            post_stock_adjustment(movement, batch.landed_cost_per_unit, user=user)

    logger.info("Batch %s stock %+f (%s) -> %s", batch.batch_number, delta, tx_type,
                batch.current_stock)
    return batch.current_stock, movement.pk
