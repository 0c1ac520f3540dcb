import datetime
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Min, Sum
from django.utils import timezone

from ..exceptions import GroupRetiredError, ImmutableNumberError
from ..models import AccountType
from ..models.ledger import VOUCHER_JOURNAL
from .audit_helper import log_action
from .posting import (PostingLine, assert_balanced, delete_group, find_group,
                      is_retired, live_entries, retire_group,
                      search_groups, write_group)
from .sequence import allocate_group, next_number
from .totals import ZERO, money, to_decimal
from .validation import as_date, paginate

logger = logging.getLogger(__name__)


def build_journal_lines(entries, narration=""):
    """
    Validate caller-supplied journal lines and turn them into PostingLines.
    Raises before anything is written: ValidationError for a malformed line,
    UnbalancedJournalError when debits and credits differ.
    """
    if not entries:
        raise ValidationError("Journal entry must have at least one line")

    lines = []
    for position, entry in enumerate(entries, start=1):
        head = (entry.get("account_head") or "").strip()
        if not head:
            raise ValidationError(f"Entry {position}: account_head is required")
        debit = money(to_decimal(entry.get("debit_amount"), f"Entry {position}: debit_amount"))
        credit = money(to_decimal(entry.get("credit_amount"), f"Entry {position}: credit_amount"))
        if debit < 0 or credit < 0:
            raise ValidationError(f"Entry {position} ({head}): amounts cannot be negative")
        if debit > 0 and credit > 0:
            raise ValidationError(f"Entry {position} ({head}): cannot have both debit and credit amounts")
        if debit == 0 and credit == 0:
            raise ValidationError(f"Entry {position} ({head}): must have either a debit or a credit amount")
        lines.append(
            PostingLine(
                account_head=head,
                account_type=(entry.get("account_type") or AccountType.GENERAL).upper(),
                debit=debit or ZERO,
                credit=credit or ZERO,
                narration=entry.get("narration") or narration or "",
            )
        )
    assert_balanced(lines)
    return lines


def create_journal_entry(firm, *, entries, narration="", transaction_date=None, user=None):
    lines = build_journal_lines(entries, narration)
    transaction_date = as_date(transaction_date, "transaction_date", default_today=True)

    with transaction.atomic():
        voucher_no = next_number(firm, VOUCHER_JOURNAL)
        group = allocate_group(firm, VOUCHER_JOURNAL)
        posted = write_group(firm, group, voucher_no=voucher_no, lines=lines,
                             transaction_date=transaction_date, user=user)
        log_action(action="create", firm=firm, user=user, object_type="JournalEntry", object_id=voucher_no,
                   changes={"lines": len(lines), "narration": narration or ""})

    logger.info("Posted journal %s for firm=%s (%s lines)", voucher_no, firm.pk, len(lines))
    return posted


def update_journal_entry(firm, voucher_id, *, entries, narration, transaction_date, voucher_no=None, user=None):
    """Replace all lines of a journal entry; its number stays."""
    if not narration:
        raise ValidationError("Narration is required")
    transaction_date = as_date(transaction_date, "transaction_date")
    lines = build_journal_lines(entries, narration)

    with transaction.atomic():
        group = find_group(firm, voucher_id, (VOUCHER_JOURNAL,))
        if is_retired(firm, group):
            raise GroupRetiredError(f"Journal entry {voucher_id} has been reversed and cannot be updated")
        current_no = group.entries(firm).values_list("voucher_no", flat=True).first()
        if voucher_no and voucher_no != current_no:
            raise ImmutableNumberError("Journal voucher number cannot be changed")
        delete_group(firm, group)
        posted = write_group(firm, group, voucher_no=current_no, lines=lines,
                             transaction_date=transaction_date, user=user)
        log_action(action="update", firm=firm, user=user, object_type="JournalEntry", object_id=current_no,
                   changes={"lines": len(lines), "narration": narration})

    logger.info("Updated journal %s for firm=%s", current_no, firm.pk)
    return posted


def delete_journal_entry(firm, voucher_id, *, user=None):
    with transaction.atomic():
        group = find_group(firm, voucher_id, (VOUCHER_JOURNAL,))
        voucher_no = group.entries(firm).values_list("voucher_no", flat=True).first()
        retire_group(firm, group, user=user)
        log_action(action="delete", firm=firm, user=user, object_type="JournalEntry", object_id=voucher_no)
    return group


def get_journal_entry(firm, voucher_id):
    group = find_group(firm, voucher_id, (VOUCHER_JOURNAL,))
    entries = list(group.entries(firm).order_by("id"))
    originals = [entry for entry in entries if not entry.is_reversal] or entries
    return {
        "voucher_id": group.logical_id,
        "voucher_no": originals[0].voucher_no,
        "transaction_date": originals[0].transaction_date,
        "narration": originals[0].narration,
        "total_debit": sum((entry.debit_amount for entry in originals), ZERO),
        "total_credit": sum((entry.credit_amount for entry in originals), ZERO),
        "reversed": len(originals) != len(entries),
        "entries": entries,
    }


def list_journal_entries(firm, *, start=None, end=None, search="", page=1, limit=10):
    """Live journal entries grouped by voucher id with their totals, newest first."""
    qs = live_entries(firm, (VOUCHER_JOURNAL,))
    if start:
        qs = qs.filter(transaction_date__gte=as_date(start, "start"))
    if end:
        qs = qs.filter(transaction_date__lte=as_date(end, "end"))
    qs = search_groups(qs, search)
    groups = (
        qs.values("voucher_id", "voucher_no", "transaction_date")
        .annotate(
            description=Min("narration"),
            lines=Count("id"),
            total_debit=Sum("debit_amount"),
            total_credit=Sum("credit_amount"),
        )
        .order_by("-transaction_date", "-voucher_id")
    )
    return paginate(groups, page, limit)


def journal_summary(firm, *, recent_days=30):
    qs = live_entries(firm, (VOUCHER_JOURNAL,))
    since = timezone.localdate() - datetime.timedelta(days=recent_days)
    return {
        "total_journal_entries": qs.values("voucher_id").distinct().count(),
        "recent_journal_entries_count": (
            qs.filter(transaction_date__gte=since).values("voucher_id").distinct().count()
        ),
    }
