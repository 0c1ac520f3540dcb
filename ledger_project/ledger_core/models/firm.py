from django.db import models
from ..managers import TenantManager


# ---------- Tenant ----------
class Firm(models.Model):
    name = models.CharField(max_length=200, unique=True)
    slug = models.SlugField(max_length=80, unique=True)
    gstin = models.CharField(max_length=20, blank=True, default="")
    state = models.CharField(max_length=100, blank=True, default="")
    # two-digit GST state code, compared with party.state_code
    state_code = models.CharField(max_length=4, blank=True, default="")
    # firm-level GST switch; when off, bills carry no tax
    gst_enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


# ---------- Parties (customers / suppliers) ----------
class Party(models.Model):
    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="parties")
    name = models.CharField(max_length=200)
    gstin = models.CharField(max_length=20, default="UNREGISTERED")
    contact = models.CharField(max_length=64, blank=True, default="")
    state = models.CharField(max_length=100, blank=True, default="")
    state_code = models.CharField(max_length=4, blank=True, default="")
    address = models.TextField(blank=True, default="")
    pin = models.CharField(max_length=12, blank=True, default="")
    pan = models.CharField(max_length=16, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        verbose_name_plural = "parties"
        constraints = [
            # party names double as ledger account heads, so one per firm
            models.UniqueConstraint(fields=["firm", "name"], name="uq_firm_party_name"),
        ]

    def __str__(self):
        return self.name


# ---------- Bank accounts ----------
class BankAccount(models.Model):
    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="bank_accounts")
    bank_name = models.CharField(max_length=120)
    account_number = models.CharField(max_length=34)
    ifsc_code = models.CharField(max_length=11, blank=True, default="")
    is_active = models.BooleanField(default=True)

    objects = TenantManager()

    @property
    def display_name(self):
        # "HDFC Bank - 5012XXXX"; used as the ledger account head
        return f"{self.bank_name} - {self.account_number[:4]}XXXX"

    def __str__(self):
        return self.display_name
