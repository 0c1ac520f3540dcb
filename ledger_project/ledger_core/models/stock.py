from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import models
from django.db.models import Q, Sum

from ..managers import TenantManager
from .firm import Firm

TWOPLACES = Decimal("0.01")

MOVEMENT_SALE = "SALE"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_RECEIPT = "RECEIPT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_OPENING = "OPENING"

MOVEMENT_TYPE_CHOICES = [
    (MOVEMENT_SALE, "Sale"),
    (MOVEMENT_PURCHASE, "Purchase"),
    (MOVEMENT_RECEIPT, "Receipt"),
    (MOVEMENT_TRANSFER, "Transfer"),
    (MOVEMENT_ADJUSTMENT, "Adjustment"),
    (MOVEMENT_OPENING, "Opening"),
]


def batch_label_q(label):
    """Filter matching one batch label; None is the default (unlabelled) batch."""
    if label is None:
        return Q(label__isnull=True)
    return Q(label=label)


# ---------- Stock items ----------
class StockItem(models.Model):
    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="stock_items")
    name = models.CharField(max_length=200)
    part_no = models.CharField(max_length=80, blank=True, default="")
    oem = models.CharField(max_length=120, blank=True, default="")
    hsn = models.CharField(max_length=16)
    uom = models.CharField(max_length=16, default="PCS")
    gst_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    rate = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # aggregates over batches; only recompute_aggregates() writes these
    qty = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0.000"))
    total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    mrp = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["firm", "name"], name="stock_firm_name_idx"),
            models.Index(fields=["firm", "hsn"], name="stock_firm_hsn_idx"),
        ]
        constraints = [
            # create-or-merge keys on the item name
            models.UniqueConstraint(fields=["firm", "name"], name="uq_firm_stock_name"),
        ]

    def __str__(self):
        return f"{self.name} ({self.qty} {self.uom})"

    def recompute_aggregates(self, user=None, save=True):
        """Resync qty/total from the persisted batches."""
        agg = self.batches.aggregate(total_qty=Sum("qty"))
        self.qty = agg["total_qty"] or Decimal("0")
        self.total = (Decimal(self.qty) * Decimal(self.rate)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        if user is not None:
            self.updated_by = user
        if save:
            self.save(update_fields=["qty", "total", "rate", "updated_by", "updated_at"])
        return self


class StockBatch(models.Model):
    stock = models.ForeignKey(StockItem, on_delete=models.CASCADE, related_name="batches")
    # null label is the item's single default batch
    label = models.CharField(max_length=80, null=True, blank=True)
    qty = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0.000"))
    uom = models.CharField(max_length=16, default="PCS")
    rate = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    gst_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    expiry = models.DateField(null=True, blank=True)
    mrp = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)

    class Meta:
        # batch index == position in this ordering
        ordering = ("id",)
        constraints = [
            models.CheckConstraint(condition=Q(qty__gte=0), name="stock_batch_qty_non_negative"),
            models.UniqueConstraint(
                fields=["stock", "label"],
                condition=Q(label__isnull=False),
                name="uq_stock_batch_label",
            ),
            models.UniqueConstraint(
                fields=["stock"],
                condition=Q(label__isnull=True),
                name="uq_stock_default_batch",
            ),
        ]

    @property
    def display_label(self):
        return self.label or "(No Batch)"

    def __str__(self):
        return f"{self.stock.name} / {self.display_label}: {self.qty}"


# ---------- Stock movements ("StockReg") ----------
class StockMovement(models.Model):
    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="stock_movements")
    movement_type = models.CharField(max_length=12, choices=MOVEMENT_TYPE_CHOICES)
    stock = models.ForeignKey(StockItem, on_delete=models.PROTECT, related_name="movements")
    bill = models.ForeignKey(
        "ledger_core.Bill",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="movements",
    )
    bill_no = models.CharField(max_length=32, blank=True, default="")
    movement_date = models.DateField()
    party_name = models.CharField(max_length=200, blank=True, default="")
    item_name = models.CharField(max_length=200)
    narration = models.TextField(blank=True, default="")
    batch_label = models.CharField(max_length=80, null=True, blank=True)
    hsn = models.CharField(max_length=16, blank=True, default="")
    # always positive; direction is carried by is_outward
    qty = models.DecimalField(max_digits=14, decimal_places=3)
    is_outward = models.BooleanField(default=False)
    uom = models.CharField(max_length=16, default="PCS")
    rate = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    gst_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["firm", "stock"], name="move_firm_stock_idx"),
            models.Index(fields=["firm", "bill"], name="move_firm_bill_idx"),
            models.Index(fields=["firm", "movement_type"], name="move_firm_type_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(qty__gt=0), name="stock_movement_qty_positive"),
        ]

    def __str__(self):
        sign = "-" if self.is_outward else "+"
        return f"{self.movement_type} {self.item_name} {sign}{self.qty}"
