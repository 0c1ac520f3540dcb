from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .firm import Firm, Party

BILL_SALES = "SALES"
BILL_PURCHASE = "PURCHASE"

BILL_KIND_CHOICES = [
    (BILL_SALES, "Sales"),
    (BILL_PURCHASE, "Purchase"),
]

STATUS_ACTIVE = "ACTIVE"
STATUS_CANCELLED = "CANCELLED"

BILL_STATUS_CHOICES = [
    (STATUS_ACTIVE, "Active"),
    (STATUS_CANCELLED, "Cancelled"),
]

INTRA_STATE = "intra-state"
INTER_STATE = "inter-state"

SUPPLY_TYPE_CHOICES = [
    (INTRA_STATE, "Intra-state"),
    (INTER_STATE, "Inter-state"),
]


# ---------- Bills ----------
# Header of a sales or purchase document; lines live in StockMovement
class Bill(models.Model):
    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="bills")
    # issued once by the sequence generator, never changed
    bill_no = models.CharField(max_length=32)
    bill_date = models.DateField()
    bill_kind = models.CharField(max_length=10, choices=BILL_KIND_CHOICES, default=BILL_SALES)
    supply_type = models.CharField(max_length=16, choices=SUPPLY_TYPE_CHOICES, default=INTRA_STATE)
    # TransactionGroup.logical_id of this bill's ledger lines
    voucher_id = models.BigIntegerField()

    party = models.ForeignKey(
        Party,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="bills",
    )
    # party snapshot as printed on the bill
    party_name = models.CharField(max_length=200)
    party_gstin = models.CharField(max_length=20, default="UNREGISTERED")
    party_state = models.CharField(max_length=100, blank=True, default="")
    party_state_code = models.CharField(max_length=4, blank=True, default="")
    party_address = models.TextField(blank=True, default="")
    party_pin = models.CharField(max_length=12, blank=True, default="")

    gross_total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    net_total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    round_off = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    cgst = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    sgst = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    igst = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # [{"type", "amount", "gstRate", "hsnSac"}] with amounts as strings
    other_charges = models.JSONField(default=list, blank=True)

    reference_no = models.CharField(max_length=64, blank=True, default="")
    vehicle_no = models.CharField(max_length=64, blank=True, default="")
    dispatch_through = models.CharField(max_length=64, blank=True, default="")
    narration = models.TextField(blank=True, default="")
    reverse_charge = models.BooleanField(default=False)

    status = models.CharField(max_length=10, choices=BILL_STATUS_CHOICES, default=STATUS_ACTIVE)
    cancellation_reason = models.TextField(blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )

    consignee_name = models.CharField(max_length=200, blank=True, default="")
    consignee_gstin = models.CharField(max_length=20, blank=True, default="")
    consignee_address = models.TextField(blank=True, default="")
    consignee_state = models.CharField(max_length=100, blank=True, default="")
    consignee_state_code = models.CharField(max_length=4, blank=True, default="")
    consignee_pin = models.CharField(max_length=12, blank=True, default="")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["firm", "bill_date"], name="bill_firm_date_idx"),
            models.Index(fields=["firm", "status"], name="bill_firm_status_idx"),
            models.Index(fields=["firm", "party"], name="bill_firm_party_idx"),
        ]
        constraints = [
            # Within one firm, each bill number must be unique
            models.UniqueConstraint(fields=["firm", "bill_no"], name="uq_firm_bill_no"),
            models.UniqueConstraint(fields=["firm", "voucher_id"], name="uq_firm_bill_voucher"),
        ]

    def __str__(self):
        return f"{self.bill_kind} bill {self.bill_no}"

    @property
    def is_cancelled(self):
        return self.status == STATUS_CANCELLED

    @property
    def group(self):
        from ..groups import TransactionGroup

        return TransactionGroup(kind=self.bill_kind, logical_id=self.voucher_id)

    def as_result(self):
        return {"bill_id": self.pk, "bill_no": self.bill_no, "success": True}

    def clean(self):
        """Keep the bill number fixed and CANCELLED terminal in all code paths."""
        if self.party_id and self.party.firm_id != self.firm_id:
            raise ValidationError("Party must belong to the same firm as the bill.")
        if not self.pk:
            return
        orig = Bill.objects.filter(pk=self.pk).values("bill_no", "status", "firm_id").first()
        if orig is None:
            return
        if orig["bill_no"] != self.bill_no:
            raise ValidationError("Bill number cannot be changed.")
        if orig["firm_id"] != self.firm_id:
            raise ValidationError("Bill cannot be moved to another firm.")
        if orig["status"] == STATUS_CANCELLED:
            raise ValidationError(f"Bill {self.bill_no} is cancelled and cannot be modified.")

    def save(self, *args, **kwargs):
        self.full_clean()  # will trigger clean()
        return super().save(*args, **kwargs)
