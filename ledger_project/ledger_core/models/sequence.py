from django.db import models

from .firm import Firm


# ---------- Number series ----------
class SequenceCounter(models.Model):
    """Last number issued per (firm, financial year, voucher type)."""

    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="sequence_counters")
    financial_year = models.CharField(max_length=7)  # "2025-26"
    voucher_type = models.CharField(max_length=16)
    last_number = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["firm", "financial_year", "voucher_type"],
                name="uq_firm_fy_voucher_type",
            ),
        ]

    def __str__(self):
        return f"{self.voucher_type} {self.financial_year}: {self.last_number}"


class VoucherIdCounter(models.Model):
    """Last transaction-group id handed out for a firm."""

    firm = models.OneToOneField(Firm, on_delete=models.CASCADE, related_name="voucher_id_counter")
    last_id = models.PositiveBigIntegerField(default=0)

    def __str__(self):
        return f"{self.firm}: {self.last_id}"
