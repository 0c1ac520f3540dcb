import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Sum

from ..exceptions import GroupRetiredError, ImmutableNumberError
from ..models import BankAccount, LedgerEntry, Party
from ..models.ledger import VOUCHER_PAYMENT, VOUCHER_RECEIPT
from .audit_helper import log_action
from .posting import (build_voucher_lines, delete_group, find_group,
                      is_retired, live_entries, payment_mode_label,
                      retire_group, search_groups, write_group)
from .sequence import allocate_group, next_number
from .totals import ZERO, money, to_decimal
from .validation import as_date, paginate

logger = logging.getLogger(__name__)

VOUCHER_TYPES = (VOUCHER_PAYMENT, VOUCHER_RECEIPT)


def _default_narration(voucher_type, party_name, voucher_no):
    if voucher_type == VOUCHER_RECEIPT:
        return f"Receipt from {party_name} - {voucher_no}"
    return f"Payment to {party_name} - {voucher_no}"


def _validated(firm, *, voucher_type, party_id, amount, transaction_date, bank_account_id):
    """Check a voucher request; returns (type, party, amount, date, bank_account)."""
    voucher_type = (voucher_type or "").upper()
    if voucher_type not in VOUCHER_TYPES:
        raise ValidationError("voucher_type must be PAYMENT or RECEIPT")
    if party_id in (None, ""):
        raise ValidationError("party_id is required")
    amount = money(to_decimal(amount, "amount"))
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    party = Party.objects.get_for_firm(firm, party_id)
    bank_account = None
    if bank_account_id not in (None, ""):
        bank_account = BankAccount.objects.get_for_firm(firm, bank_account_id)
    transaction_date = as_date(transaction_date, "transaction_date", default_today=True)
    return voucher_type, party, amount, transaction_date, bank_account


def create_voucher(
    firm,
    *,
    voucher_type,
    party_id,
    amount,
    payment_mode="Cash",
    narration="",
    transaction_date=None,
    bank_account_id=None,
    user=None,
):
    """Post a PAYMENT or RECEIPT voucher as a two-line group."""
    voucher_type, party, amount, transaction_date, bank_account = _validated(
        firm,
        voucher_type=voucher_type,
        party_id=party_id,
        amount=amount,
        transaction_date=transaction_date,
        bank_account_id=bank_account_id,
    )

    with transaction.atomic():
        voucher_no = next_number(firm, voucher_type)
        group = allocate_group(firm, voucher_type)
        lines = build_voucher_lines(
            voucher_type=voucher_type,
            party=party,
            amount=amount,
            payment_mode=payment_mode,
            bank_account=bank_account,
            narration=narration or _default_narration(voucher_type, party.name, voucher_no),
        )
        posted = write_group(firm, group, voucher_no=voucher_no, lines=lines,
                             transaction_date=transaction_date, user=user)
        log_action(action="create", firm=firm, user=user, object_type="Voucher", object_id=voucher_no,
                   changes={"voucher_type": voucher_type, "party": party.name, "amount": str(amount)})

    logger.info("Posted %s %s for firm=%s amount=%s", voucher_type, voucher_no, firm.pk, amount)
    return posted


def update_voucher(
    firm,
    voucher_id,
    *,
    party_id,
    amount,
    payment_mode="Cash",
    narration="",
    transaction_date=None,
    bank_account_id=None,
    voucher_type=None,
    voucher_no=None,
    user=None,
):
    """
    Re-post an existing voucher under its original number and group.
    The voucher type selects the number series, so it cannot change either.
    """
    with transaction.atomic():
        group = find_group(firm, voucher_id, VOUCHER_TYPES)
        if is_retired(firm, group):
            raise GroupRetiredError(f"Voucher {voucher_id} has been reversed and cannot be updated")
        if voucher_type and voucher_type.upper() != group.kind:
            raise ImmutableNumberError(
                f"Voucher type cannot be changed from {group.kind} to {voucher_type.upper()}"
            )
        current_no = group.entries(firm).values_list("voucher_no", flat=True).first()
        if voucher_no and voucher_no != current_no:
            raise ImmutableNumberError("Voucher number cannot be changed")

        kind, party, amount, transaction_date, bank_account = _validated(
            firm,
            voucher_type=group.kind,
            party_id=party_id,
            amount=amount,
            transaction_date=transaction_date,
            bank_account_id=bank_account_id,
        )
        delete_group(firm, group)
        lines = build_voucher_lines(
            voucher_type=kind,
            party=party,
            amount=amount,
            payment_mode=payment_mode,
            bank_account=bank_account,
            narration=narration or _default_narration(kind, party.name, current_no),
        )
        posted = write_group(firm, group, voucher_no=current_no, lines=lines,
                             transaction_date=transaction_date, user=user)
        log_action(action="update", firm=firm, user=user, object_type="Voucher", object_id=current_no,
                   changes={"party": party.name, "amount": str(amount)})

    logger.info("Updated %s %s for firm=%s", kind, current_no, firm.pk)
    return posted


def delete_voucher(firm, voucher_id, *, user=None):
    with transaction.atomic():
        group = find_group(firm, voucher_id, VOUCHER_TYPES)
        voucher_no = group.entries(firm).values_list("voucher_no", flat=True).first()
        retire_group(firm, group, user=user)
        log_action(action="delete", firm=firm, user=user, object_type="Voucher", object_id=voucher_no)
    return group


def get_voucher(firm, voucher_id):
    """One voucher as a flat dict, with its ledger lines."""
    group = find_group(firm, voucher_id, VOUCHER_TYPES)
    entries = list(group.entries(firm).order_by("id"))
    originals = [entry for entry in entries if not entry.is_reversal]
    party_line = next((entry for entry in originals if entry.party_id), None)
    cash_line = next((entry for entry in originals if not entry.party_id), None)
    return {
        "voucher_id": group.logical_id,
        "voucher_type": group.kind,
        "voucher_no": originals[0].voucher_no if originals else entries[0].voucher_no,
        "transaction_date": originals[0].transaction_date if originals else None,
        "party_id": party_line.party_id if party_line else None,
        "party_name": party_line.account_head if party_line else "",
        "amount": (party_line.debit_amount or party_line.credit_amount) if party_line else ZERO,
        "account_head": cash_line.account_head if cash_line else "",
        "payment_mode": payment_mode_label(cash_line.account_head if cash_line else ""),
        "narration": originals[0].narration if originals else "",
        "reversed": any(entry.is_reversal for entry in entries),
        "entries": entries,
    }


def list_vouchers(
    firm,
    *,
    voucher_type=None,
    start=None,
    end=None,
    party_id=None,
    search="",
    page=1,
    limit=10,
):
    """
    Live payments and receipts, one row per voucher, newest first.

    Filters by type, date range, party and a voucher_no/narration search.
    Each row carries the amount, the party and the cash or bank head with
    its payment mode label.
    """
    kinds = VOUCHER_TYPES
    if voucher_type:
        voucher_type = voucher_type.upper()
        if voucher_type not in VOUCHER_TYPES:
            raise ValidationError("voucher_type must be PAYMENT or RECEIPT")
        kinds = (voucher_type,)

    qs = live_entries(firm, kinds)
    if start:
        qs = qs.filter(transaction_date__gte=as_date(start, "start"))
    if end:
        qs = qs.filter(transaction_date__lte=as_date(end, "end"))
    if party_id not in (None, ""):
        party = Party.objects.get_for_firm(firm, party_id)
        qs = qs.filter(voucher_id__in=qs.filter(party=party).values("voucher_id"))
    qs = search_groups(qs, search)

    groups = (
        qs.values("voucher_id", "voucher_no", "voucher_type", "transaction_date")
        .annotate(amount=Sum("debit_amount"))
        .order_by("-transaction_date", "-voucher_id")
    )
    result = paginate(groups, page, limit)

    ids = [row["voucher_id"] for row in result["rows"]]
    details = {}
    for line in live_entries(firm, kinds).filter(voucher_id__in=ids).order_by("id"):
        info = details.setdefault(line.voucher_id, {"party_id": None, "party_name": "", "account_head": "",
                                                    "narration": line.narration})
        if line.party_id:
            info["party_id"], info["party_name"] = line.party_id, line.account_head
        else:
            info["account_head"] = line.account_head
    for row in result["rows"]:
        row.update(details.get(row["voucher_id"], {}))
        row["payment_mode"] = payment_mode_label(row.get("account_head"))
    return result


def vouchers_for_party(firm, party_id):
    """Every payment and receipt line posted against one party, reversals included."""
    party = Party.objects.get_for_firm(firm, party_id)
    return (
        LedgerEntry.objects.for_firm(firm)
        .filter(party=party, voucher_type__in=VOUCHER_TYPES)
        .order_by("-transaction_date", "-created_at", "-id")
    )


def vouchers_summary(firm, *, start=None, end=None):
    """Count and total of live (unreversed) payments and receipts per type."""
    qs = live_entries(firm, VOUCHER_TYPES)
    if start:
        qs = qs.filter(transaction_date__gte=start)
    if end:
        qs = qs.filter(transaction_date__lte=end)
    rows = (
        qs.values("voucher_type")
        .annotate(count=Count("voucher_id", distinct=True), total=Sum("debit_amount"))
        .order_by("voucher_type")
    )
    summary = {kind: {"count": 0, "total": ZERO} for kind in VOUCHER_TYPES}
    for row in rows:
        summary[row["voucher_type"]] = {"count": row["count"], "total": row["total"] or ZERO}
    return summary
