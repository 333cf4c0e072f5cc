from django.core.exceptions import ValidationError
from django.db.models.signals import post_delete, pre_delete
from django.dispatch import receiver

from .models import (Account, BankStatementLine, Batch, CashMovement,
                     PaymentAllocation, SalesInvoice, StockMovement)
from .models.inventory import ROLLED_UP_COST_FIELDS

"""Block deletion of accounts; the chart is only ever deactivated."""


# pre_delete fires for instance and queryset deletes alike
@receiver(pre_delete, sender=Account)
def prevent_delete_account(sender, instance, **kwargs):
    raise ValidationError(
        f"Account {instance.code} cannot be deleted; deactivate it instead.")


"""Stock movements are the audit trail of physical stock."""


@receiver(pre_delete, sender=StockMovement)
def prevent_delete_stock_movement(sender, instance, **kwargs):
    raise ValidationError("Stock movements are immutable and cannot be deleted.")


"""Block invoice deletion if any payments are allocated."""


@receiver(pre_delete, sender=SalesInvoice)
def prevent_delete_invoice_with_payments(sender, instance, **kwargs):
    if PaymentAllocation.objects.filter(invoice=instance).exists():
        raise ValidationError("Cannot delete invoice with allocated payments.")


"""Reconciled or pending bank lines stay; deleting their upload is blocked too."""


@receiver(pre_delete, sender=BankStatementLine)
def prevent_delete_reconciled_bank_line(sender, instance, **kwargs):
    if BankStatementLine.objects.filter(pk=instance.pk).exclude(
            reconciliation_status="unmatched").exists():
        raise ValidationError(
            f"Bank line {instance.pk} is {instance.reconciliation_status}; unmatch it before deleting.")


"""
    Keep derived container / product figures right when rows disappear.
    Runs inside the deleting transaction, so a failure rolls the delete back.
"""


@receiver(post_delete, sender=Batch)
def batch_deleted(sender, instance, **kwargs):
    from .services.allocation import reallocate_container_costs
    from .services.stock import recompute_product_stock

    if instance.container_id:
        reallocate_container_costs(instance.container_id)
    recompute_product_stock(instance.product_id)


@receiver(post_delete, sender=CashMovement)
def cash_movement_deleted(sender, instance, **kwargs):
    from .services.allocation import rollup_container_cash_costs

    if instance.container_id and instance.category in ROLLED_UP_COST_FIELDS:
        rollup_container_cash_costs(instance.container_id)
