from dataclasses import dataclass

from .models.ledger import VOUCHER_TYPE_CHOICES

GROUP_KINDS = frozenset(code for code, _ in VOUCHER_TYPE_CHOICES)


@dataclass(frozen=True)
class TransactionGroup:
    """
    Key shared by every ledger line of one logical transaction.

    `logical_id` is unique per firm across all kinds (bills, vouchers and
    journals draw from the same counter); `kind` says which document the
    lines belong to, so a SALES id is never looked up as a JOURNAL one.
    """

    kind: str
    logical_id: int

    def __post_init__(self):
        if self.kind not in GROUP_KINDS:
            raise ValueError(f"Unknown transaction group kind: {self.kind!r}")

    def entries(self, firm):
        from .models import LedgerEntry

        return LedgerEntry.objects.for_firm(firm).filter(
            voucher_type=self.kind, voucher_id=self.logical_id
        )

    def __str__(self):
        return f"{self.kind}#{self.logical_id}"
