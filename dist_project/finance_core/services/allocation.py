import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from django.db import models, transaction

from ..exceptions import NotFoundError
from ..models import Batch, CashMovement, ImportContainer
from ..models.inventory import ROLLED_UP_COST_FIELDS

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
UNIT = Decimal("0.0001")


def _lock_container(container_id):
    try:
        return ImportContainer.objects.select_for_update().get(pk=container_id)
    except ImportContainer.DoesNotExist:
        raise NotFoundError(f"Import container {container_id} does not exist.")


def _per_unit(landed, quantity):
    if not quantity:
        return Decimal("0")
    return (landed / quantity).quantize(UNIT, rounding=ROUND_HALF_UP)


def split_allocable_cost(total, batch_values):
    """
    Split ``total`` over batches proportionally to their value.

    ``batch_values`` is a list of (batch_id, value). Every exact share is
    cut down to cents, then the cents left over are handed out one at a
    time by largest cut-off fraction (ties: larger value, then higher id).
    Shares are never negative and always add up to ``total`` exactly.
    Returns {batch_id: share}; all zero when the batches carry no value.
    """
    total_value = sum((value for _, value in batch_values), ZERO)
    if total_value == 0:
        return {batch_id: ZERO for batch_id, _ in batch_values}

    shares = {}
    fractions = []
    for batch_id, value in batch_values:
        exact = total * value / total_value
        floored = exact.quantize(CENT, rounding=ROUND_DOWN)
        shares[batch_id] = floored
        fractions.append((exact - floored, value, batch_id))

    leftover_cents = int((total - sum(shares.values(), ZERO)) / CENT)
    fractions.sort(reverse=True)
    for _, _, batch_id in fractions[:leftover_cents]:
        shares[batch_id] += CENT
    return shares


def reallocate_container_costs(container_id):
    """
    Spread a container's allocable cost over its batches and refresh
    each batch's landed cost. Runs inside the caller's transaction.
    """
    with transaction.atomic():
        container = _lock_container(container_id)

        # The container total is derived, keep it in step with its fields
        total = container.compute_allocable_cost()
        if total != container.total_allocable_cost:
            ImportContainer.objects.filter(pk=container.pk).update(total_allocable_cost=total)

        batches = list(
            Batch.objects.select_for_update()
            .filter(container_id=container.pk).order_by("id")
        )
        shares = split_allocable_cost(total, [(b.pk, b.batch_value) for b in batches])

        for batch in batches:
            allocated = shares[batch.pk]
            landed = batch.batch_value + allocated + batch.own_charges
            Batch.objects.filter(pk=batch.pk).update(
                allocated_cost=allocated,
                final_landed_cost=landed,
                landed_cost_per_unit=_per_unit(landed, batch.import_quantity),
            )

    logger.info("Reallocated %s over %s batches of container %s",
                total, len(batches), container.container_ref)
    return shares


def rollup_container_cash_costs(container_id):
    """
    Sum linked cash movements of the rolled-up categories into the
    container's own cost fields, then reallocate.
    """
    with transaction.atomic():
        container = _lock_container(container_id)
        sums = dict(
            CashMovement.objects
            .filter(container_id=container.pk, category__in=ROLLED_UP_COST_FIELDS)
            .order_by()
            .values_list("category")
            .annotate(total=models.Sum("amount"))
        )
        values = {
            field: sums.get(category) or ZERO
            for category, field in ROLLED_UP_COST_FIELDS.items()
        }
        for field, value in values.items():
            setattr(container, field, value)
        ImportContainer.objects.filter(pk=container.pk).update(
            total_allocable_cost=container.compute_allocable_cost(), **values)
        logger.info("Rolled up cash costs into container %s: %s",
                    container.container_ref, values)
        return reallocate_container_costs(container.pk)
