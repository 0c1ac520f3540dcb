"""
Read-only aggregation over ledger entries.

Every figure is computed from the current rows; reversal lines are ordinary
entries here, so a reversed group contributes zero.
"""
from django.db.models import Count, DecimalField, Max, Sum, Value
from django.db.models.functions import Coalesce

from ..conf import balance_tolerance, get_setting
from ..models import AccountType, LedgerEntry, Party, StockMovement
from ..models.bill import STATUS_ACTIVE
from ..models.stock import MOVEMENT_SALE
from .totals import ZERO


def _money_sum(field_name):
    return Coalesce(
        Sum(field_name),
        Value(ZERO),
        output_field=DecimalField(max_digits=18, decimal_places=2),
    )


def _balance_row(total_debit, total_credit):
    balance = total_debit - total_credit
    return {
        "total_debit": total_debit,
        "total_credit": total_credit,
        "balance": balance,
        "balance_type": "Dr" if balance >= 0 else "Cr",
        "balance_amount": abs(balance),
    }


def get_account_balance(firm, account_head, as_of=None):
    qs = LedgerEntry.objects.for_firm(firm).filter(account_head=account_head)
    if as_of:
        qs = qs.filter(transaction_date__lte=as_of)
    agg = qs.aggregate(debit=_money_sum("debit_amount"), credit=_money_sum("credit_amount"))
    return _balance_row(agg["debit"], agg["credit"])


def get_trial_balance(firm, from_date, to_date):
    """
    One row per account head used between from_date and to_date, carrying
    its balance as of to_date in the debit or credit column. A single
    grouped query; heads active in the period come from a subquery.
    """
    active_heads = (
        LedgerEntry.objects.for_firm(firm)
        .filter(transaction_date__gte=from_date, transaction_date__lte=to_date)
        .values("account_head")
    )
    rows = (
        LedgerEntry.objects.for_firm(firm)
        .filter(account_head__in=active_heads, transaction_date__lte=to_date)
        .values("account_head")
        .annotate(
            head_type=Max("account_type"),
            total_debit=_money_sum("debit_amount"),
            total_credit=_money_sum("credit_amount"),
        )
        .order_by("head_type", "account_head")
    )
    result = []
    for row in rows:
        balance = row["total_debit"] - row["total_credit"]
        result.append({
            "account_head": row["account_head"],
            "account_type": row["head_type"],
            "debit": balance if balance > 0 else ZERO,
            "credit": -balance if balance < 0 else ZERO,
        })
    return result


def trial_balance_totals(rows):
    return {
        "debit": sum((row["debit"] for row in rows), ZERO),
        "credit": sum((row["credit"] for row in rows), ZERO),
    }


def get_ledger_accounts(firm):
    """Chart of accounts: debit, credit and balance per (head, type)."""
    rows = (
        LedgerEntry.objects.for_firm(firm)
        .values("account_head", "account_type")
        .annotate(total_debit=_money_sum("debit_amount"), total_credit=_money_sum("credit_amount"))
        .order_by("account_head", "account_type")
    )
    return [
        {"account_head": row["account_head"], "account_type": row["account_type"],
         **_balance_row(row["total_debit"], row["total_credit"])}
        for row in rows
    ]


def get_account_type_summaries(firm):
    rows = (
        LedgerEntry.objects.for_firm(firm)
        .values("account_type")
        .annotate(
            account_count=Count("account_head", distinct=True),
            total_debit=_money_sum("debit_amount"),
            total_credit=_money_sum("credit_amount"),
        )
        .order_by("account_type")
    )
    return [
        {"account_type": row["account_type"], "account_count": row["account_count"],
         **_balance_row(row["total_debit"], row["total_credit"])}
        for row in rows
    ]


def get_account_statement(firm, account_head, start=None, end=None):
    """Entries of one head in date order, each with the running balance."""
    opening = ZERO
    qs = LedgerEntry.objects.for_firm(firm).filter(account_head=account_head)
    if start:
        before = qs.filter(transaction_date__lt=start).aggregate(
            debit=_money_sum("debit_amount"), credit=_money_sum("credit_amount")
        )
        opening = before["debit"] - before["credit"]
        qs = qs.filter(transaction_date__gte=start)
    if end:
        qs = qs.filter(transaction_date__lte=end)

    running = opening
    lines = []
    for entry in qs.order_by("transaction_date", "id"):
        running += entry.debit_amount - entry.credit_amount
        lines.append({
            "transaction_date": entry.transaction_date,
            "voucher_type": entry.voucher_type,
            "voucher_no": entry.voucher_no,
            "narration": entry.narration,
            "debit": entry.debit_amount,
            "credit": entry.credit_amount,
            "balance": running,
        })
    return {"account_head": account_head, "opening_balance": opening, "closing_balance": running, "lines": lines}


def get_party_balance(firm, party_id):
    """Receivable position of a party: its DEBTOR lines only."""
    party = Party.objects.get_for_firm(firm, party_id)
    agg = (
        LedgerEntry.objects.for_firm(firm)
        .filter(party=party, account_type=AccountType.DEBTOR)
        .aggregate(debit=_money_sum("debit_amount"), credit=_money_sum("credit_amount"))
    )
    return {"party_id": party.pk, "party_name": party.name, **_balance_row(agg["debit"], agg["credit"])}


def get_account_suggestions(firm, prefix, limit=None):
    limit = limit or get_setting("SUGGESTION_LIMIT")
    prefix = (prefix or "").strip()
    if not prefix:
        return []
    return list(
        LedgerEntry.objects.for_firm(firm)
        .filter(account_head__istartswith=prefix)
        .values_list("account_head", flat=True)
        .distinct()
        .order_by("account_head")[:limit]
    )


def get_party_item_history(firm, party_id, limit=50):
    """Items sold to a party on its active bills, newest first."""
    party = Party.objects.get_for_firm(firm, party_id)
    return list(
        StockMovement.objects.for_firm(firm)
        .filter(movement_type=MOVEMENT_SALE, bill__party=party, bill__status=STATUS_ACTIVE)
        .order_by("-movement_date", "-id")
        .values("bill_no", "movement_date", "item_name", "batch_label", "qty", "uom", "rate", "discount", "total")[:limit]
    )


def group_totals(firm, voucher_id):
    """Debit and credit sums of one transaction group."""
    agg = (
        LedgerEntry.objects.for_firm(firm)
        .filter(voucher_id=voucher_id)
        .aggregate(debit=_money_sum("debit_amount"), credit=_money_sum("credit_amount"))
    )
    return agg["debit"], agg["credit"]


def unbalanced_groups(firm, tolerance=None):
    """voucher_ids whose lines do not net to zero; empty on healthy books."""
    tolerance = balance_tolerance() if tolerance is None else tolerance
    rows = (
        LedgerEntry.objects.for_firm(firm)
        .values("voucher_id")
        .annotate(total_debit=_money_sum("debit_amount"), total_credit=_money_sum("credit_amount"))
        .order_by("voucher_id")
    )
    return [
        row["voucher_id"] for row in rows
        if abs(row["total_debit"] - row["total_credit"]) > tolerance
    ]
