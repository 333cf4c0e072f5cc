from .account import Account
from .auditlog import AuditLog
from .banking import BankStatementLine, BankStatementUpload
from .cash import BankAccount, CashMovement
from .inventory import Batch, ImportContainer, Product, StockMovement
from .invoice import PaymentAllocation, PurchaseInvoice, SalesInvoice
from .journal import JournalEntry, JournalLine
from .party import Customer, Supplier
from .sales import (DeliveryChallan, SalesOrder, SalesOrderItem,
                    StockReservation)

__all__ = [
    "Account",
    "AuditLog",
    "BankAccount",
    "BankStatementLine",
    "BankStatementUpload",
    "Batch",
    "CashMovement",
    "Customer",
    "DeliveryChallan",
    "ImportContainer",
    "JournalEntry",
    "JournalLine",
    "PaymentAllocation",
    "Product",
    "PurchaseInvoice",
    "SalesInvoice",
    "SalesOrder",
    "SalesOrderItem",
    "StockMovement",
    "StockReservation",
    "Supplier",
]
