from .account import AccountAdmin, CustomerAdmin, SupplierAdmin
from .actions import (auto_match_lines, confirm_matches, reallocate_containers,
                      reject_matches, release_reservations)
from .auditlog import AuditLogAdmin, StockMovementAdmin
from .banking import (BankAccountAdmin, BankStatementLineAdmin,
                      BankStatementUploadAdmin, CashMovementAdmin)
from .inlines import (JournalLineInline, SalesOrderItemInline,
                      StockReservationInline)
from .inventory import BatchAdmin, ImportContainerAdmin, ProductAdmin
from .invoice import PurchaseInvoiceAdmin, SalesInvoiceAdmin
from .journal import JournalEntryAdmin
from .sales import (DeliveryChallanAdmin, SalesOrderAdmin,
                    StockReservationAdmin)
