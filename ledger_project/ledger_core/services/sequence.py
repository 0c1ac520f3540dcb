import datetime
import logging

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from ..exceptions import SequenceGenerationError
from ..groups import TransactionGroup
from ..models import SequenceCounter, VoucherIdCounter

logger = logging.getLogger(__name__)

VOUCHER_PREFIXES = {
    "SALES": "SI",
    "PURCHASE": "PI",
    "JOURNAL": "JV",
    "PAYMENT": "PV",
    "RECEIPT": "RV",
}


def financial_year(on_date: datetime.date | None = None) -> str:
    """Indian April-March financial year label, e.g. "2025-26"."""
    on_date = on_date or timezone.localdate()
    year = on_date.year
    if on_date.month >= 4:
        return f"{year}-{str(year + 1)[-2:]}"
    return f"{year - 1}-{str(year)[-2:]}"


def voucher_prefix(voucher_type: str) -> str:
    voucher_type = voucher_type.upper()
    return VOUCHER_PREFIXES.get(voucher_type, voucher_type[:2])


def format_number(voucher_type: str, fy: str, number: int) -> str:
    return f"{voucher_prefix(voucher_type)}/{fy}/{number:04d}"


def next_number(firm, voucher_type: str, *, on: datetime.date | None = None) -> str:
    """
    Issue the next number of the (firm, financial year, voucher type) series.

    The counter row is created at zero on first use and bumped with a single
    UPDATE ... SET last_number = last_number + 1, so two requests never get
    the same value. Numbers handed out inside a transaction that later rolls
    back are returned to the series with it.
    """
    voucher_type = voucher_type.upper()
    fy = financial_year(on)
    try:
        with transaction.atomic():
            counter, _ = SequenceCounter.objects.select_for_update().get_or_create(
                firm=firm, financial_year=fy, voucher_type=voucher_type
            )
            SequenceCounter.objects.filter(pk=counter.pk).update(last_number=F("last_number") + 1)
            counter.refresh_from_db(fields=["last_number"])
    except DatabaseError as exc:
        logger.exception("Sequence increment failed for firm=%s %s %s", firm.pk, voucher_type, fy)
        raise SequenceGenerationError(
            f"Could not generate {voucher_type} number for {fy}: {exc}"
        ) from exc
    return format_number(voucher_type, fy, counter.last_number)


def preview_number(firm, voucher_type: str, *, on: datetime.date | None = None) -> str:
    """Number the next next_number() call would issue; never writes."""
    voucher_type = voucher_type.upper()
    fy = financial_year(on)
    last = (
        SequenceCounter.objects.filter(firm=firm, financial_year=fy, voucher_type=voucher_type)
        .values_list("last_number", flat=True)
        .first()
    )
    return format_number(voucher_type, fy, (last or 0) + 1)


def allocate_group(firm, kind: str) -> TransactionGroup:
    """Hand out the next per-firm transaction group id."""
    kind = kind.upper()
    try:
        with transaction.atomic():
            counter, _ = VoucherIdCounter.objects.select_for_update().get_or_create(firm=firm)
            VoucherIdCounter.objects.filter(pk=counter.pk).update(last_id=F("last_id") + 1)
            counter.refresh_from_db(fields=["last_id"])
    except DatabaseError as exc:
        logger.exception("Voucher id allocation failed for firm=%s", firm.pk)
        raise SequenceGenerationError(f"Could not allocate a voucher id: {exc}") from exc
    return TransactionGroup(kind=kind, logical_id=counter.last_id)
