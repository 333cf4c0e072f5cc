from django.urls import path

from . import views

app_name = "finance_core"

urlpatterns = [
    path("reconciliation/auto-match/", views.auto_match_view, name="auto-match"),
    path("invoices/<int:invoice_id>/balance/", views.invoice_balance_view,
         name="invoice-balance"),
    path("containers/<int:container_id>/reallocate/", views.reallocate_container_view,
         name="container-reallocate"),
    path("batches/<int:batch_id>/adjust-stock/", views.adjust_stock_view,
         name="batch-adjust-stock"),
]
