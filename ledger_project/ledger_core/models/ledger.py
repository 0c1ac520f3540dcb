from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from ..managers import TenantManager
from .firm import Firm, Party

VOUCHER_SALES = "SALES"
VOUCHER_PURCHASE = "PURCHASE"
VOUCHER_PAYMENT = "PAYMENT"
VOUCHER_RECEIPT = "RECEIPT"
VOUCHER_JOURNAL = "JOURNAL"

VOUCHER_TYPE_CHOICES = [
    (VOUCHER_SALES, "Sales"),
    (VOUCHER_PURCHASE, "Purchase"),
    (VOUCHER_PAYMENT, "Payment"),
    (VOUCHER_RECEIPT, "Receipt"),
    (VOUCHER_JOURNAL, "Journal"),
]


class AccountType:
    # account_type is free text; these are the values the core posts
    DEBTOR = "DEBTOR"
    CREDITOR = "CREDITOR"
    CASH = "CASH"
    BANK = "BANK"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    LIABILITY = "LIABILITY"
    ASSET = "ASSET"
    GENERAL = "GENERAL"


# ---------- Ledger entries ----------
class LedgerEntry(models.Model):
    firm = models.ForeignKey(Firm, on_delete=models.CASCADE, related_name="ledger_entries")
    # groups the lines of one logical transaction; see groups.TransactionGroup
    voucher_id = models.BigIntegerField()
    voucher_type = models.CharField(max_length=10, choices=VOUCHER_TYPE_CHOICES)
    voucher_no = models.CharField(max_length=32)
    account_head = models.CharField(max_length=200)
    account_type = models.CharField(max_length=32, default=AccountType.GENERAL)
    debit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    narration = models.TextField(blank=True, default="")
    bill = models.ForeignKey(
        "ledger_core.Bill",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    party = models.ForeignKey(
        Party,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    tax_type = models.CharField(max_length=8, blank=True, default="")  # CGST / SGST / IGST
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    transaction_date = models.DateField()
    # mirrored line written when a group is retired
    is_reversal = models.BooleanField(default=False)
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
        verbose_name_plural = "ledger entries"
        indexes = [
            models.Index(fields=["firm", "voucher_id"], name="le_firm_voucher_idx"),
            models.Index(fields=["firm", "account_head"], name="le_firm_head_idx"),
            models.Index(fields=["firm", "transaction_date"], name="le_firm_date_idx"),
            models.Index(fields=["firm", "party"], name="le_firm_party_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(debit_amount__gte=0) & Q(credit_amount__gte=0),
                name="ledger_entry_amounts_non_negative",
            ),
            # a line is either a debit or a credit, never both
            models.CheckConstraint(
                condition=~(Q(debit_amount__gt=0) & Q(credit_amount__gt=0)),
                name="ledger_entry_single_sided",
            ),
        ]

    def __str__(self):
        side = f"Dr {self.debit_amount}" if self.debit_amount else f"Cr {self.credit_amount}"
        return f"{self.voucher_no} {self.account_head} {side}"
