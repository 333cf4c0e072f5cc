"""Small builders shared by the finance_core tests."""
import datetime
from decimal import Decimal

from ..models import (BankAccount, Batch, Customer, ImportContainer, Product,
                      SalesOrder, SalesOrderItem, Supplier)


def make_product(code="GEL-01", name="Gelatin"):
    return Product.objects.create(code=code, name=name)


def make_batch(product, number, stock="0", price="0", quantity="0", container=None,
               import_date=None, **extra):
    return Batch.objects.create(
        batch_number=number,
        product=product,
        container=container,
        import_date=import_date or datetime.date(2026, 1, 1),
        import_price=Decimal(price),
        import_quantity=Decimal(quantity),
        current_stock=Decimal(stock),
        **extra,
    )


def make_container(ref="CONT-001", **costs):
    return ImportContainer.objects.create(
        container_ref=ref, **{k: Decimal(v) for k, v in costs.items()})


def make_customer(code="C-001", name="PT Pelanggan"):
    return Customer.objects.create(code=code, name=name)


def make_supplier(code="S-001", name="Supplier Co"):
    return Supplier.objects.create(code=code, name=name)


def make_order(customer, number="SO-001", status="approved", lines=(), created_by=None):
    """``lines`` is a list of (product, quantity)."""
    order = SalesOrder.objects.create(
        so_number=number, customer=customer, order_date=datetime.date(2026, 1, 10),
        status=status, created_by=created_by,
    )
    for product, quantity in lines:
        SalesOrderItem.objects.create(order=order, product=product, quantity=Decimal(quantity))
    return order


def make_bank(name="BCA IDR"):
    return BankAccount.objects.create(name=name, account_number="0123456789")
