from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Firm",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200, unique=True)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("gstin", models.CharField(blank=True, default="", max_length=20)),
                ("state", models.CharField(blank=True, default="", max_length=100)),
                ("state_code", models.CharField(blank=True, default="", max_length=4)),
                ("gst_enabled", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("bank_name", models.CharField(max_length=120)),
                ("account_number", models.CharField(max_length=34)),
                ("ifsc_code", models.CharField(blank=True, default="", max_length=11)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_accounts",
                        to="ledger_core.firm",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Party",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("gstin", models.CharField(default="UNREGISTERED", max_length=20)),
                ("contact", models.CharField(blank=True, default="", max_length=64)),
                ("state", models.CharField(blank=True, default="", max_length=100)),
                ("state_code", models.CharField(blank=True, default="", max_length=4)),
                ("address", models.TextField(blank=True, default="")),
                ("pin", models.CharField(blank=True, default="", max_length=12)),
                ("pan", models.CharField(blank=True, default="", max_length=16)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="parties",
                        to="ledger_core.firm",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "parties",
                "constraints": [
                    models.UniqueConstraint(fields=("firm", "name"), name="uq_firm_party_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SequenceCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("financial_year", models.CharField(max_length=7)),
                ("voucher_type", models.CharField(max_length=16)),
                ("last_number", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sequence_counters",
                        to="ledger_core.firm",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("firm", "financial_year", "voucher_type"),
                        name="uq_firm_fy_voucher_type",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="VoucherIdCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("last_id", models.PositiveBigIntegerField(default=0)),
                (
                    "firm",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="voucher_id_counter",
                        to="ledger_core.firm",
                    ),
                ),
            ],
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
                (
                    "firm",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="ledger_core.firm",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["firm", "user"], name="audit_firm_user_idx"),
                    models.Index(fields=["firm", "created_at"], name="audit_firm_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("part_no", models.CharField(blank=True, default="", max_length=80)),
                ("oem", models.CharField(blank=True, default="", max_length=120)),
                ("hsn", models.CharField(max_length=16)),
                ("uom", models.CharField(default="PCS", max_length=16)),
                ("gst_rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("qty", models.DecimalField(decimal_places=3, default=Decimal("0.000"), max_digits=14)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("mrp", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stock_items",
                        to="ledger_core.firm",
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["firm", "name"], name="stock_firm_name_idx"),
                    models.Index(fields=["firm", "hsn"], name="stock_firm_hsn_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("firm", "name"), name="uq_firm_stock_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockBatch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("label", models.CharField(blank=True, max_length=80, null=True)),
                ("qty", models.DecimalField(decimal_places=3, default=Decimal("0.000"), max_digits=14)),
                ("uom", models.CharField(default="PCS", max_length=16)),
                ("rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("gst_rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("expiry", models.DateField(blank=True, null=True)),
                ("mrp", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                (
                    "stock",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="batches",
                        to="ledger_core.stockitem",
                    ),
                ),
            ],
            options={
                "ordering": ("id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("qty__gte", 0)),
                        name="stock_batch_qty_non_negative",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("label__isnull", False)),
                        fields=("stock", "label"),
                        name="uq_stock_batch_label",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("label__isnull", True)),
                        fields=("stock",),
                        name="uq_stock_default_batch",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Bill",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("bill_no", models.CharField(max_length=32)),
                ("bill_date", models.DateField()),
                (
                    "bill_kind",
                    models.CharField(
                        choices=[("SALES", "Sales"), ("PURCHASE", "Purchase")],
                        default="SALES",
                        max_length=10,
                    ),
                ),
                (
                    "supply_type",
                    models.CharField(
                        choices=[("intra-state", "Intra-state"), ("inter-state", "Inter-state")],
                        default="intra-state",
                        max_length=16,
                    ),
                ),
                ("voucher_id", models.BigIntegerField()),
                ("party_name", models.CharField(max_length=200)),
                ("party_gstin", models.CharField(default="UNREGISTERED", max_length=20)),
                ("party_state", models.CharField(blank=True, default="", max_length=100)),
                ("party_state_code", models.CharField(blank=True, default="", max_length=4)),
                ("party_address", models.TextField(blank=True, default="")),
                ("party_pin", models.CharField(blank=True, default="", max_length=12)),
                ("gross_total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("net_total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("round_off", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("cgst", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("sgst", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("igst", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("other_charges", models.JSONField(blank=True, default=list)),
                ("reference_no", models.CharField(blank=True, default="", max_length=64)),
                ("vehicle_no", models.CharField(blank=True, default="", max_length=64)),
                ("dispatch_through", models.CharField(blank=True, default="", max_length=64)),
                ("narration", models.TextField(blank=True, default="")),
                ("reverse_charge", models.BooleanField(default=False)),
                (
                    "status",
                    models.CharField(
                        choices=[("ACTIVE", "Active"), ("CANCELLED", "Cancelled")],
                        default="ACTIVE",
                        max_length=10,
                    ),
                ),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("consignee_name", models.CharField(blank=True, default="", max_length=200)),
                ("consignee_gstin", models.CharField(blank=True, default="", max_length=20)),
                ("consignee_address", models.TextField(blank=True, default="")),
                ("consignee_state", models.CharField(blank=True, default="", max_length=100)),
                ("consignee_state_code", models.CharField(blank=True, default="", max_length=4)),
                ("consignee_pin", models.CharField(blank=True, default="", max_length=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bills",
                        to="ledger_core.firm",
                    ),
                ),
                (
                    "party",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bills",
                        to="ledger_core.party",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["firm", "bill_date"], name="bill_firm_date_idx"),
                    models.Index(fields=["firm", "status"], name="bill_firm_status_idx"),
                    models.Index(fields=["firm", "party"], name="bill_firm_party_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("firm", "bill_no"), name="uq_firm_bill_no"),
                    models.UniqueConstraint(fields=("firm", "voucher_id"), name="uq_firm_bill_voucher"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "movement_type",
                    models.CharField(
                        choices=[
                            ("SALE", "Sale"),
                            ("PURCHASE", "Purchase"),
                            ("RECEIPT", "Receipt"),
                            ("TRANSFER", "Transfer"),
                            ("ADJUSTMENT", "Adjustment"),
                            ("OPENING", "Opening"),
                        ],
                        max_length=12,
                    ),
                ),
                ("bill_no", models.CharField(blank=True, default="", max_length=32)),
                ("movement_date", models.DateField()),
                ("party_name", models.CharField(blank=True, default="", max_length=200)),
                ("item_name", models.CharField(max_length=200)),
                ("narration", models.TextField(blank=True, default="")),
                ("batch_label", models.CharField(blank=True, max_length=80, null=True)),
                ("hsn", models.CharField(blank=True, default="", max_length=16)),
                ("qty", models.DecimalField(decimal_places=3, max_digits=14)),
                ("is_outward", models.BooleanField(default=False)),
                ("uom", models.CharField(default="PCS", max_length=16)),
                ("rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("gst_rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "bill",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="ledger_core.bill",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stock_movements",
                        to="ledger_core.firm",
                    ),
                ),
                (
                    "stock",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="ledger_core.stockitem",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["firm", "stock"], name="move_firm_stock_idx"),
                    models.Index(fields=["firm", "bill"], name="move_firm_bill_idx"),
                    models.Index(fields=["firm", "movement_type"], name="move_firm_type_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("qty__gt", 0)),
                        name="stock_movement_qty_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("voucher_id", models.BigIntegerField()),
                (
                    "voucher_type",
                    models.CharField(
                        choices=[
                            ("SALES", "Sales"),
                            ("PURCHASE", "Purchase"),
                            ("PAYMENT", "Payment"),
                            ("RECEIPT", "Receipt"),
                            ("JOURNAL", "Journal"),
                        ],
                        max_length=10,
                    ),
                ),
                ("voucher_no", models.CharField(max_length=32)),
                ("account_head", models.CharField(max_length=200)),
                ("account_type", models.CharField(default="GENERAL", max_length=32)),
                ("debit_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("narration", models.TextField(blank=True, default="")),
                ("tax_type", models.CharField(blank=True, default="", max_length=8)),
                ("tax_rate", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("transaction_date", models.DateField()),
                ("is_reversal", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "bill",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="ledger_core.bill",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "firm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ledger_entries",
                        to="ledger_core.firm",
                    ),
                ),
                (
                    "party",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="ledger_core.party",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "ledger entries",
                "indexes": [
                    models.Index(fields=["firm", "voucher_id"], name="le_firm_voucher_idx"),
                    models.Index(fields=["firm", "account_head"], name="le_firm_head_idx"),
                    models.Index(fields=["firm", "transaction_date"], name="le_firm_date_idx"),
                    models.Index(fields=["firm", "party"], name="le_firm_party_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("debit_amount__gte", 0), ("credit_amount__gte", 0)),
                        name="ledger_entry_amounts_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("debit_amount__gt", 0), ("credit_amount__gt", 0), _negated=True),
                        name="ledger_entry_single_sided",
                    ),
                ],
            },
        ),
    ]
