import django.db.models.deletion
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=20, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("account_type", models.CharField(choices=[("asset", "Asset"), ("liability", "Liability"), ("equity", "Equity"), ("revenue", "Revenue"), ("expense", "Expense")], max_length=20)),
                ("normal_balance", models.CharField(blank=True, choices=[("debit", "Debit"), ("credit", "Credit")], max_length=6)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="finance_core.account")),
            ],
            options={
                "ordering": ["code"],
                "indexes": [models.Index(fields=["account_type", "is_active"], name="account_type_active_idx")],
            },
        ),
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=30, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Supplier",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=30, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("unit", models.CharField(default="kg", max_length=20)),
                ("total_stock", models.DecimalField(decimal_places=3, default=0, editable=False, max_digits=18)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="ImportContainer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("container_ref", models.CharField(max_length=100, unique=True)),
                ("arrival_date", models.DateField(blank=True, null=True)),
                ("status", models.CharField(choices=[("draft", "Draft"), ("in_transit", "In transit"), ("arrived", "Arrived"), ("closed", "Closed")], default="draft", max_length=20)),
                ("duty_bm", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("ppn_import", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("pph_import", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("freight_charges", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("clearing_forwarding", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("port_charges", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("container_handling", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("transportation", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("loading_import", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("bpom_ski_fees", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("other_import_costs", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("total_allocable_cost", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("supplier", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="finance_core.supplier")),
            ],
            options={
                "ordering": ["-arrival_date", "container_ref"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("duty_bm__gte", 0), ("ppn_import__gte", 0), ("pph_import__gte", 0),
                            ("freight_charges__gte", 0), ("clearing_forwarding__gte", 0),
                            ("port_charges__gte", 0), ("container_handling__gte", 0),
                            ("transportation__gte", 0), ("loading_import__gte", 0),
                        ),
                        name="container_costs_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("batch_number", models.CharField(max_length=100, unique=True)),
                ("import_date", models.DateField(blank=True, null=True)),
                ("expiry_date", models.DateField(blank=True, null=True)),
                ("import_price", models.DecimalField(decimal_places=4, default=0, max_digits=18)),
                ("import_quantity", models.DecimalField(decimal_places=3, default=0, max_digits=18)),
                ("duty_charges", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("freight_charges", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("other_charges", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("allocated_cost", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("final_landed_cost", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("landed_cost_per_unit", models.DecimalField(decimal_places=4, default=0, editable=False, max_digits=18)),
                ("current_stock", models.DecimalField(decimal_places=3, default=0, max_digits=18)),
                ("reserved_stock", models.DecimalField(decimal_places=3, default=0, editable=False, max_digits=18)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("container", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="batches", to="finance_core.importcontainer")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="batches", to="finance_core.product")),
            ],
            options={
                "verbose_name_plural": "batches",
                "ordering": ["import_date", "created_at", "id"],
                "indexes": [
                    models.Index(fields=["product", "is_active"], name="batch_product_active_idx"),
                    models.Index(fields=["container"], name="batch_container_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("current_stock__gte", 0)), name="batch_stock_non_negative"),
                    models.CheckConstraint(
                        condition=models.Q(("reserved_stock__gte", 0), ("reserved_stock__lte", models.F("current_stock"))),
                        name="batch_reserved_within_stock",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("import_quantity__gte", 0), ("import_price__gte", 0)),
                        name="batch_import_values_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("movement_type", models.CharField(choices=[("opening", "Opening balance"), ("purchase", "Purchase / import receipt"), ("sale", "Sale"), ("delivery", "Delivery challan"), ("return", "Customer return"), ("rejection", "Stock rejection"), ("adjustment", "Manual adjustment")], max_length=20)),
                ("quantity_change", models.DecimalField(decimal_places=3, max_digits=18)),
                ("resulting_stock", models.DecimalField(decimal_places=3, max_digits=18)),
                ("reference_id", models.CharField(blank=True, max_length=64, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="finance_core.batch")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="finance_core.product")),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [models.Index(fields=["batch", "created_at"], name="stockmove_batch_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("entry_number", models.CharField(blank=True, max_length=30, null=True, unique=True)),
                ("entry_date", models.DateField()),
                ("source_module", models.CharField(choices=[("manual", "Manual journal"), ("purchases", "Purchases"), ("sales", "Sales"), ("expenses", "Expenses"), ("petty_cash", "Petty cash"), ("receipts", "Receipt vouchers"), ("payments", "Payment vouchers"), ("fund_transfers", "Fund transfers"), ("inventory", "Inventory")], default="manual", max_length=20)),
                ("reference_id", models.CharField(blank=True, max_length=64, null=True)),
                ("reference_number", models.CharField(blank=True, max_length=100, null=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("total_debit", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("total_credit", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("is_posted", models.BooleanField(default=False)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("posting_fingerprint", models.CharField(blank=True, max_length=64, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="journal_entries", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "journal entries",
                "indexes": [
                    models.Index(fields=["entry_date"], name="je_entry_date_idx"),
                    models.Index(fields=["source_module", "reference_id"], name="je_source_ref_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("total_debit__lt", models.F("total_credit") + Decimal("0.01")),
                            ("total_credit__lt", models.F("total_debit") + Decimal("0.01")),
                        ),
                        name="je_debit_equals_credit",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("reference_id__isnull", False)),
                        fields=("source_module", "reference_id"),
                        name="uq_je_source_reference",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveIntegerField(default=1)),
                ("description", models.CharField(blank=True, max_length=400, null=True)),
                ("debit", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="finance_core.account")),
                ("batch", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="finance_core.batch")),
                ("customer", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="finance_core.customer")),
                ("entry", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="finance_core.journalentry")),
                ("supplier", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="finance_core.supplier")),
            ],
            options={
                "ordering": ["entry_id", "line_number", "id"],
                "indexes": [
                    models.Index(fields=["account"], name="jl_account_idx"),
                    models.Index(fields=["entry", "line_number"], name="jl_entry_line_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="jl_non_negative_amounts"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("debit__gt", 0), ("credit", 0)),
                            models.Q(("debit", 0), ("credit__gt", 0)),
                            _connector="OR",
                        ),
                        name="jl_debit_xor_credit",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SalesOrder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("so_number", models.CharField(max_length=50, unique=True)),
                ("order_date", models.DateField()),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("stock_reserved", "Stock reserved"), ("shortage", "Shortage"), ("partial", "Partially delivered"), ("delivered", "Delivered"), ("cancelled", "Cancelled"), ("closed", "Closed")], default="pending", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sales_orders", to=settings.AUTH_USER_MODEL)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="finance_core.customer")),
            ],
            options={
                "ordering": ["-order_date", "so_number"],
            },
        ),
        migrations.CreateModel(
            name="SalesOrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=3, max_digits=18)),
                ("unit_price", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("delivered_quantity", models.DecimalField(decimal_places=3, default=0, max_digits=18)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="finance_core.salesorder")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="finance_core.product")),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="so_item_quantity_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("delivered_quantity__gte", 0), ("delivered_quantity__lte", models.F("quantity"))),
                        name="so_item_delivered_within_ordered",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockReservation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=3, max_digits=18)),
                ("status", models.CharField(choices=[("active", "Active"), ("released", "Released"), ("cancelled", "Cancelled")], default="active", max_length=20)),
                ("release_reason", models.CharField(blank=True, max_length=200, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("restored_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="reservations", to="finance_core.batch")),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="reservations", to="finance_core.salesorder")),
                ("order_item", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="reservations", to="finance_core.salesorderitem")),
                ("released_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("restored_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["batch", "status"], name="reservation_batch_status_idx"),
                    models.Index(fields=["order", "status"], name="reservation_order_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="reservation_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeliveryChallan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("challan_number", models.CharField(max_length=50, unique=True)),
                ("challan_date", models.DateField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("sales_order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="challans", to="finance_core.salesorder")),
            ],
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200, unique=True)),
                ("account_number", models.CharField(blank=True, max_length=50, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("ledger_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="bank_accounts", to="finance_core.account")),
            ],
        ),
        migrations.CreateModel(
            name="CashMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kind", models.CharField(choices=[("expense", "Expense (tracker)"), ("petty_cash", "Petty cash expense"), ("receipt", "Receipt voucher"), ("payment", "Payment voucher"), ("fund_transfer", "Fund transfer")], max_length=20)),
                ("channel", models.CharField(choices=[("bank", "Bank"), ("cash", "Cash")], default="bank", max_length=10)),
                ("direction", models.CharField(choices=[("outflow", "Outflow"), ("inflow", "Inflow")], editable=False, max_length=10)),
                ("voucher_number", models.CharField(blank=True, max_length=40, null=True, unique=True)),
                ("movement_date", models.DateField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("category", models.CharField(blank=True, max_length=50, null=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("attachment_url", models.URLField(blank=True, max_length=500, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("bank_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="cash_movements", to="finance_core.bankaccount")),
                ("container", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="cash_movements", to="finance_core.importcontainer")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="cash_movements", to=settings.AUTH_USER_MODEL)),
                ("customer", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="finance_core.customer")),
                ("delivery_challan", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="cash_movements", to="finance_core.deliverychallan")),
                ("journal_entry", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="cash_movement", to="finance_core.journalentry")),
                ("supplier", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="finance_core.supplier")),
                ("to_bank_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="incoming_transfers", to="finance_core.bankaccount")),
            ],
            options={
                "ordering": ["-movement_date", "-id"],
                "indexes": [
                    models.Index(fields=["kind", "movement_date"], name="cash_kind_date_idx"),
                    models.Index(fields=["channel", "direction", "movement_date"], name="cash_channel_dir_date_idx"),
                    models.Index(fields=["container", "category"], name="cash_container_category_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="cash_movement_amount_positive"),
                    models.CheckConstraint(
                        condition=models.Q(models.Q(("channel", "bank"), ("kind", "petty_cash")), _negated=True),
                        name="petty_cash_is_cash_channel",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BankStatementUpload",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("file_url", models.URLField(blank=True, max_length=500, null=True)),
                ("period_start", models.DateField(blank=True, null=True)),
                ("period_end", models.DateField(blank=True, null=True)),
                ("skipped_duplicates", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("bank_account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="statement_uploads", to="finance_core.bankaccount")),
                ("uploaded_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="BankStatementLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_date", models.DateField()),
                ("description", models.TextField(blank=True, null=True)),
                ("reference", models.CharField(blank=True, max_length=200, null=True)),
                ("debit_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("credit_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("transaction_hash", models.CharField(blank=True, editable=False, max_length=64, null=True)),
                ("reconciliation_status", models.CharField(choices=[("unmatched", "Unmatched"), ("suggested", "Suggested"), ("needs_review", "Needs review"), ("matched", "Matched")], default="unmatched", max_length=20)),
                ("match_score", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("matched_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("bank_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="statement_lines", to="finance_core.bankaccount")),
                ("matched_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("matched_cash_movement", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="matched_bank_line", to="finance_core.cashmovement")),
                ("matched_journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="matched_bank_lines", to="finance_core.journalentry")),
                ("upload", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="finance_core.bankstatementupload")),
            ],
            options={
                "ordering": ["-transaction_date", "-id"],
                "indexes": [
                    models.Index(fields=["reconciliation_status", "transaction_date"], name="bsl_status_date_idx"),
                    models.Index(fields=["bank_account", "transaction_date"], name="bsl_bank_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit_amount__gte", 0), ("credit_amount__gte", 0)), name="bsl_non_negative_amounts"),
                    models.UniqueConstraint(fields=("transaction_hash",), name="bsl_unique_transaction_hash"),
                    models.CheckConstraint(
                        condition=models.Q(models.Q(("debit_amount__gt", 0), ("credit_amount__gt", 0)), _negated=True),
                        name="bsl_single_side",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("matched_cash_movement__isnull", True),
                            ("matched_journal_entry__isnull", True),
                            _connector="OR",
                        ),
                        name="bsl_single_match_target",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("matched_cash_movement__isnull", True),
                                ("matched_journal_entry__isnull", True),
                                ("reconciliation_status", "unmatched"),
                            ),
                            models.Q(
                                models.Q(("reconciliation_status", "unmatched"), _negated=True),
                                models.Q(
                                    ("matched_cash_movement__isnull", False),
                                    ("matched_journal_entry__isnull", False),
                                    _connector="OR",
                                ),
                            ),
                            _connector="OR",
                        ),
                        name="bsl_status_matches_target",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SalesInvoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(max_length=50, unique=True)),
                ("invoice_date", models.DateField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("subtotal", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("is_draft", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="invoices", to="finance_core.customer")),
                ("journal_entry", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sales_invoice", to="finance_core.journalentry")),
                ("sales_order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="invoices", to="finance_core.salesorder")),
            ],
            options={
                "ordering": ["invoice_date", "invoice_number"],
            },
        ),
        migrations.CreateModel(
            name="PurchaseInvoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(max_length=50)),
                ("invoice_date", models.DateField()),
                ("subtotal", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("container", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="purchase_invoices", to="finance_core.importcontainer")),
                ("journal_entry", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="purchase_invoice", to="finance_core.journalentry")),
                ("supplier", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="purchase_invoices", to="finance_core.supplier")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("supplier", "invoice_number"), name="uq_purchase_invoice_number"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAllocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="allocations", to="finance_core.salesinvoice")),
                ("receipt", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="allocations", to="finance_core.cashmovement")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("receipt", "invoice"), name="uq_allocation_receipt_invoice"),
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="allocation_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=50)),
                ("object_type", models.CharField(max_length=100)),
                ("object_id", models.CharField(max_length=100)),
                ("changes", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["object_type", "object_id"], name="audit_object_idx"),
                    models.Index(fields=["created_at"], name="audit_created_idx"),
                ],
            },
        ),
    ]
