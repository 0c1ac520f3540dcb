import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.core.exceptions import PermissionDenied, ValidationError
from django.db.models import Q

from ..conf import balance_tolerance, cancellation_mode
from ..exceptions import GroupRetiredError, UnbalancedJournalError
from ..groups import TransactionGroup
from ..models import AccountType, LedgerEntry
from .totals import ZERO, BillTotals, OtherCharge

logger = logging.getLogger(__name__)

REVERSAL_PREFIX = "REVERSAL: "

BANK_MARKERS = ("cheque", "neft", "rtgs", "upi")


@dataclass
class PostingLine:
    account_head: str
    account_type: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    narration: str = ""
    party: object = None
    tax_type: str = ""
    tax_rate: Decimal | None = None

    @property
    def is_empty(self):
        return not self.debit and not self.credit


@dataclass
class PostedGroup:
    group: TransactionGroup
    voucher_no: str
    entries: list = field(default_factory=list)

    @property
    def voucher_id(self):
        return self.group.logical_id


def _money_fmt(value):
    return f"₹{value:,.2f}"


def assert_balanced(lines, *, label="Journal entry"):
    debits = sum((line.debit for line in lines), ZERO)
    credits = sum((line.credit for line in lines), ZERO)
    if abs(debits - credits) > balance_tolerance():
        raise UnbalancedJournalError(
            f"{label} must be balanced. Debits: {_money_fmt(debits)}, Credits: {_money_fmt(credits)}"
        )
    return debits, credits


# ----------------------------
# Line builders
# ----------------------------
def _tax_lines(totals: BillTotals, *, suffix, debit_side, account_type, narration):
    lines = []
    for tax_type, amount in (("CGST", totals.cgst), ("SGST", totals.sgst), ("IGST", totals.igst)):
        if not amount:
            continue
        lines.append(
            PostingLine(
                account_head=f"{tax_type} {suffix}",
                account_type=account_type,
                debit=amount if debit_side else ZERO,
                credit=ZERO if debit_side else amount,
                narration=narration,
                tax_type=tax_type,
            )
        )
    return lines


def _round_off_line(round_off, *, narration, party_debited):
    # party_debited: the party line is a debit (sales), so a positive
    # round-off is a credit here; purchases mirror it
    if not round_off:
        return []
    positive_side = abs(round_off)
    credit = (round_off > 0) == party_debited
    return [
        PostingLine(
            account_head="Round Off",
            account_type=AccountType.EXPENSE,
            debit=ZERO if credit else positive_side,
            credit=positive_side if credit else ZERO,
            narration=narration,
        )
    ]


def build_sales_lines(*, party_name, party, bill_no, totals: BillTotals, other_charges, reverse_charge=False):
    """
    Sales bill posting, in order: party debit, output tax credits,
    round-off, other charges, then Sales for the taxable item value.
    """
    narration = f"Sales Bill No: {bill_no}"
    lines = [
        PostingLine(party_name, AccountType.DEBTOR, debit=totals.net_total, narration=narration, party=party),
    ]
    if not reverse_charge:
        lines += _tax_lines(totals, suffix="Payable", debit_side=False,
                            account_type=AccountType.LIABILITY, narration=narration)
    lines += _round_off_line(totals.posting_round_off, narration=narration, party_debited=True)
    for charge in other_charges:
        charge = charge if isinstance(charge, OtherCharge) else OtherCharge.from_payload(charge)
        if charge.amount:
            lines.append(PostingLine(charge.account_head, AccountType.INCOME,
                                     credit=charge.amount, narration=narration))
    lines.append(PostingLine("Sales", AccountType.INCOME, credit=totals.items_total, narration=narration))
    return [line for line in lines if not line.is_empty]


def build_purchase_lines(*, party_name, party, bill_no, totals: BillTotals, other_charges, reverse_charge=False):
    """Mirror of the sales posting: expenses and input tax debited, supplier credited."""
    narration = f"Purchase Bill No: {bill_no}"
    lines = [PostingLine("Purchase", AccountType.EXPENSE, debit=totals.items_total, narration=narration)]
    for charge in other_charges:
        charge = charge if isinstance(charge, OtherCharge) else OtherCharge.from_payload(charge)
        if charge.amount:
            lines.append(PostingLine(charge.account_head, AccountType.EXPENSE,
                                     debit=charge.amount, narration=narration))
    if not reverse_charge:
        lines += _tax_lines(totals, suffix="Input", debit_side=True,
                            account_type=AccountType.ASSET, narration=narration)
    lines += _round_off_line(totals.posting_round_off, narration=narration, party_debited=False)
    lines.append(
        PostingLine(party_name, AccountType.CREDITOR, credit=totals.net_total, narration=narration, party=party)
    )
    return [line for line in lines if not line.is_empty]


def resolve_payment_account(payment_mode, bank_account=None):
    """Map free-text payment mode (and optional bank account) to (head, type)."""
    mode = (payment_mode or "").strip()
    lowered = mode.lower()
    account_type = AccountType.CASH
    if "bank" in lowered or any(marker in lowered for marker in BANK_MARKERS):
        account_type = AccountType.BANK
    elif "cash" in lowered:
        account_type = AccountType.CASH

    if account_type == AccountType.BANK and bank_account is not None:
        return bank_account.display_name, account_type
    return mode or "Cash", account_type


def payment_mode_label(account_head):
    head = (account_head or "").lower()
    if "cheque" in head:
        return "Cheque"
    if "neft" in head:
        return "NEFT"
    if "rtgs" in head:
        return "RTGS"
    if "upi" in head:
        return "UPI"
    if "bank" in head or " - " in head:
        return "Bank Transfer"
    return "Cash"


def build_voucher_lines(*, voucher_type, party, amount, payment_mode, bank_account=None, narration=""):
    """Two-line payment/receipt posting against the resolved cash or bank head."""
    head, head_type = resolve_payment_account(payment_mode, bank_account)
    cash_side = PostingLine(head, head_type, narration=narration)
    if voucher_type == "RECEIPT":
        cash_side.debit = amount
        party_side = PostingLine(party.name, AccountType.DEBTOR, credit=amount, narration=narration, party=party)
        return [cash_side, party_side]
    cash_side.credit = amount
    party_side = PostingLine(party.name, AccountType.CREDITOR, debit=amount, narration=narration, party=party)
    return [party_side, cash_side]


# ----------------------------
# Persistence
# ----------------------------
def write_group(firm, group: TransactionGroup, *, voucher_no, lines, transaction_date, bill=None, user=None):
    """Bulk insert one balanced group; nothing is written when it does not balance."""
    assert_balanced(lines, label=f"{group.kind.title()} {voucher_no}")
    entries = [
        LedgerEntry(
            firm=firm,
            voucher_id=group.logical_id,
            voucher_type=group.kind,
            voucher_no=voucher_no,
            account_head=line.account_head,
            account_type=line.account_type or AccountType.GENERAL,
            debit_amount=line.debit,
            credit_amount=line.credit,
            narration=line.narration,
            bill=bill,
            party=line.party,
            tax_type=line.tax_type,
            tax_rate=line.tax_rate,
            transaction_date=transaction_date,
            created_by=user,
        )
        for line in lines
    ]
    LedgerEntry.objects.bulk_create(entries)
    return PostedGroup(group=group, voucher_no=voucher_no, entries=entries)


def find_group(firm, voucher_id, kinds) -> TransactionGroup:
    """
    Look up an existing group of one of `kinds` by its voucher id, scoped
    to `firm`. Another firm's group raises PermissionDenied.
    """
    try:
        voucher_id = int(voucher_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid voucher id: {voucher_id!r}")
    kind = (
        LedgerEntry.objects.for_firm(firm)
        .filter(voucher_id=voucher_id, voucher_type__in=kinds)
        .values_list("voucher_type", flat=True)
        .first()
    )
    if kind is None:
        if LedgerEntry.objects.filter(voucher_id=voucher_id, voucher_type__in=kinds).exclude(firm=firm).exists():
            raise PermissionDenied(f"Voucher {voucher_id} does not belong to your firm")
        raise LedgerEntry.DoesNotExist(f"Voucher {voucher_id} not found")
    return TransactionGroup(kind=kind, logical_id=voucher_id)


def delete_group(firm, group: TransactionGroup):
    deleted, _ = group.entries(firm).delete()
    return deleted


def live_entries(firm, kinds):
    """Original lines of `kinds` whose group has not been reversed."""
    reversed_ids = (
        LedgerEntry.objects.for_firm(firm)
        .filter(voucher_type__in=kinds, is_reversal=True)
        .values("voucher_id")
    )
    return (
        LedgerEntry.objects.for_firm(firm)
        .filter(voucher_type__in=kinds, is_reversal=False)
        .exclude(voucher_id__in=reversed_ids)
    )


def search_groups(entries, search):
    """Keep whole groups with a line whose voucher_no or narration contains `search`."""
    search = (search or "").strip()
    if not search:
        return entries
    matching = entries.filter(Q(voucher_no__icontains=search) | Q(narration__icontains=search))
    return entries.filter(voucher_id__in=matching.values("voucher_id"))


def is_retired(firm, group: TransactionGroup):
    return group.entries(firm).filter(is_reversal=True).exists()


def retire_group(firm, group: TransactionGroup, *, user=None, transaction_date=None, mode=None):
    """
    Take a whole group off the books.

    In "reverse" mode every original line gets a mirrored line (debit and
    credit swapped) so the group nets to zero and history stays; in
    "delete" mode the lines are removed.
    """
    mode = mode or cancellation_mode()
    if is_retired(firm, group):
        raise GroupRetiredError(f"{group.kind.title()} {group.logical_id} has already been reversed")

    if mode == "delete":
        deleted = delete_group(firm, group)
        logger.info("Deleted %s ledger lines of %s (firm=%s)", deleted, group, firm.pk)
        return []

    originals = list(group.entries(firm).order_by("id"))
    reversals = [
        LedgerEntry(
            firm=firm,
            voucher_id=entry.voucher_id,
            voucher_type=entry.voucher_type,
            voucher_no=entry.voucher_no,
            account_head=entry.account_head,
            account_type=entry.account_type,
            debit_amount=entry.credit_amount,
            credit_amount=entry.debit_amount,
            narration=f"{REVERSAL_PREFIX}{entry.narration}",
            bill_id=entry.bill_id,
            party_id=entry.party_id,
            tax_type=entry.tax_type,
            tax_rate=entry.tax_rate,
            transaction_date=transaction_date or entry.transaction_date,
            is_reversal=True,
            created_by=user,
        )
        for entry in originals
    ]
    LedgerEntry.objects.bulk_create(reversals)
    logger.info("Reversed %s ledger lines of %s (firm=%s)", len(reversals), group, firm.pk)
    return reversals
