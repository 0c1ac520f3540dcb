"""
Sales and purchase bills.

Each operation runs in one transaction and always in the same order:
validate the payload, take the bill number, move stock line by line, then
write the ledger group. Any failure leaves nothing behind.
"""
import logging
from dataclasses import dataclass, field

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from ..exceptions import BillCancelledError, ImmutableNumberError
from ..models import Bill, Party, StockItem, StockMovement
from ..models.bill import (BILL_PURCHASE, BILL_SALES, INTER_STATE,
                           INTRA_STATE, STATUS_CANCELLED)
from ..models.stock import MOVEMENT_PURCHASE, MOVEMENT_SALE
from .audit_helper import log_action
from .bulk import collect_each
from .posting import (build_purchase_lines, build_sales_lines, delete_group,
                      retire_group, write_group)
from .sequence import allocate_group, next_number
from .stock import (consume_stock, create_or_merge_stock, receive_stock,
                    restore_movement)
from .totals import (BillTotals, CartLine, OtherCharge, as_cart_lines,
                     as_other_charges, compute_totals, money)
from .validation import as_date, as_flag

logger = logging.getLogger(__name__)

BILL_KINDS = (BILL_SALES, BILL_PURCHASE)


@dataclass
class BillInput:
    bill_date: object
    supply_type: str
    party: Party | None
    party_fields: dict
    consignee_fields: dict
    header_fields: dict
    lines: list[CartLine] = field(default_factory=list)
    charges: list[OtherCharge] = field(default_factory=list)
    reverse_charge: bool = False
    bill_no: str | None = None


def _supply_type(firm, meta, party_state_code):
    """billType when given; otherwise compare firm and party GST state codes."""
    bill_type = (meta.get("billType") or "").strip().lower()
    if bill_type:
        if bill_type not in (INTRA_STATE, INTER_STATE):
            raise ValidationError(f"billType must be '{INTRA_STATE}' or '{INTER_STATE}', got {bill_type!r}")
        return bill_type
    if firm.state_code and party_state_code and firm.state_code == party_state_code:
        return INTRA_STATE
    return INTER_STATE


def _parse_payload(firm, payload, kind) -> BillInput:
    """Validate a bill payload without touching the database beyond reads."""
    payload = payload or {}
    meta = payload.get("meta") or {}
    party_data = payload.get("party") or {}
    consignee = payload.get("consignee") or {}

    lines = as_cart_lines(payload.get("cart"))
    if not lines:
        raise ValidationError("Cart cannot be empty")
    for position, line in enumerate(lines, start=1):
        if kind == BILL_SALES and line.stock_id in (None, ""):
            raise ValidationError(f"Line {position}: stockId is required")
        if kind == BILL_PURCHASE and line.stock_id in (None, "") and not (line.item and line.hsn):
            raise ValidationError(f"Line {position}: stockId or item name and HSN are required")

    party = None
    if party_data.get("id") not in (None, ""):
        party = Party.objects.get_for_firm(firm, party_data["id"])
    party_name = (party_data.get("firm") or party_data.get("name") or (party.name if party else "")).strip()
    if not party_name:
        raise ValidationError("Party name is required")
    party_state_code = party_data.get("stateCode") or (party.state_code if party else "")

    party_fields = {
        "party_name": party_name,
        "party_gstin": party_data.get("gstin") or (party.gstin if party else "") or "UNREGISTERED",
        "party_state": party_data.get("state") or (party.state if party else ""),
        "party_state_code": party_state_code or "",
        "party_address": party_data.get("addr") or (party.address if party else ""),
        "party_pin": party_data.get("pin") or (party.pin if party else ""),
    }
    consignee_fields = {
        "consignee_name": consignee.get("name") or "",
        "consignee_gstin": consignee.get("gstin") or "",
        "consignee_address": consignee.get("address") or consignee.get("addr") or "",
        "consignee_state": consignee.get("state") or "",
        "consignee_state_code": consignee.get("stateCode") or "",
        "consignee_pin": consignee.get("pin") or "",
    }
    header_fields = {
        "reference_no": meta.get("referenceNo") or "",
        "vehicle_no": meta.get("vehicleNo") or "",
        "dispatch_through": meta.get("dispatchThrough") or "",
        "narration": meta.get("narration") or "",
    }
    return BillInput(
        bill_date=as_date(meta.get("billDate"), "billDate"),
        supply_type=_supply_type(firm, meta, party_state_code),
        party=party,
        party_fields=party_fields,
        consignee_fields=consignee_fields,
        header_fields=header_fields,
        lines=lines,
        charges=as_other_charges(payload.get("otherCharges")),
        reverse_charge=as_flag(meta.get("reverseCharge")),
        bill_no=meta.get("billNo") or payload.get("billNo"),
    )


def _apply_header(bill: Bill, data: BillInput, totals: BillTotals):
    bill.bill_date = data.bill_date
    bill.supply_type = data.supply_type
    bill.party = data.party
    bill.reverse_charge = data.reverse_charge
    for name, value in {**data.party_fields, **data.consignee_fields, **data.header_fields}.items():
        setattr(bill, name, value)
    bill.gross_total = totals.gross_total
    bill.net_total = totals.net_total
    bill.round_off = totals.round_off
    bill.cgst = totals.cgst
    bill.sgst = totals.sgst
    bill.igst = totals.igst
    bill.other_charges = [charge.as_json() for charge in data.charges]


def _movement(firm, bill, stock, line: CartLine, *, movement_type, outward, batch_label, user):
    return StockMovement.objects.create(
        firm=firm,
        movement_type=movement_type,
        stock=stock,
        bill=bill,
        bill_no=bill.bill_no,
        movement_date=bill.bill_date,
        party_name=bill.party_name,
        item_name=line.item or stock.name,
        narration=line.narration,
        batch_label=batch_label,
        hsn=line.hsn or stock.hsn,
        qty=line.qty,
        is_outward=outward,
        uom=line.uom or stock.uom,
        rate=money(line.rate),
        gst_rate=line.gst_rate,
        discount=line.discount,
        total=money(line.taxable_value),
        created_by=user,
    )


def _apply_cart(firm, bill: Bill, lines, *, user=None):
    """Move stock for every cart line and record one movement per line."""
    for line in lines:
        if bill.bill_kind == BILL_SALES:
            stock, batch = consume_stock(
                firm, line.stock_id, line.qty, label=line.batch, index=line.batch_index, user=user
            )
            _movement(firm, bill, stock, line, movement_type=MOVEMENT_SALE, outward=True,
                      batch_label=batch.label, user=user)
            continue

        if line.stock_id not in (None, ""):
            stock = StockItem.objects.select_for_update().get_for_firm(firm, line.stock_id)
            batch = receive_stock(stock, line.qty, label=line.batch, rate=line.rate,
                                  uom=line.uom or None, gst_rate=line.gst_rate)
            stock.rate = money(line.rate)
            stock.recompute_aggregates(user=user)
            label = batch.label
        else:
            stock, _ = create_or_merge_stock(
                firm, name=line.item, hsn=line.hsn, uom=line.uom or None, rate=line.rate,
                gst_rate=line.gst_rate, qty=line.qty, batch=line.batch, user=user,
            )
            label = line.batch.strip() if line.batch and line.batch.strip() else None
        _movement(firm, bill, stock, line, movement_type=MOVEMENT_PURCHASE, outward=False,
                  batch_label=label, user=user)


def _post(firm, bill: Bill, data: BillInput, totals: BillTotals, *, user=None):
    builder = build_sales_lines if bill.bill_kind == BILL_SALES else build_purchase_lines
    lines = builder(
        party_name=bill.party_name,
        party=bill.party,
        bill_no=bill.bill_no,
        totals=totals,
        other_charges=data.charges,
        reverse_charge=bill.reverse_charge,
    )
    return write_group(
        firm, bill.group, voucher_no=bill.bill_no, lines=lines,
        transaction_date=bill.bill_date, bill=bill, user=user,
    )


def _totals_for(firm, data: BillInput) -> BillTotals:
    return compute_totals(
        data.lines,
        data.charges,
        gst_enabled=firm.gst_enabled,
        bill_type=data.supply_type,
        reverse_charge=data.reverse_charge,
    )


def _summary(bill: Bill):
    return {
        "bill_no": bill.bill_no,
        "bill_date": bill.bill_date.isoformat(),
        "party_name": bill.party_name,
        "net_total": str(bill.net_total),
        "status": bill.status,
    }


# ----------------------------
# Bill lifecycle
# ----------------------------
def create_bill(firm, payload, *, kind=BILL_SALES, user=None) -> Bill:
    kind = (kind or "").upper()
    if kind not in BILL_KINDS:
        raise ValidationError(f"Bill kind must be one of {', '.join(BILL_KINDS)}")
    data = _parse_payload(firm, payload, kind)
    totals = _totals_for(firm, data)

    with transaction.atomic():
        # number first: if the series is unavailable nothing else is written
        bill_no = next_number(firm, kind)
        group = allocate_group(firm, kind)
        bill = Bill(firm=firm, bill_no=bill_no, bill_kind=kind, voucher_id=group.logical_id, created_by=user)
        _apply_header(bill, data, totals)
        bill.save()
        _apply_cart(firm, bill, data.lines, user=user)
        _post(firm, bill, data, totals, user=user)
        log_action(action="create", instance=bill, user=user, changes=_summary(bill))

    logger.info("Created %s bill %s for firm=%s net=%s", kind, bill.bill_no, firm.pk, bill.net_total)
    return bill


def update_bill(firm, bill_id, payload, *, user=None) -> Bill:
    """
    Replace a bill's header and lines. Previous stock movements are undone
    and deleted, the ledger group is deleted, then both are rebuilt.
    """
    with transaction.atomic():
        bill = Bill.objects.select_for_update().get_for_firm(firm, bill_id)
        if bill.is_cancelled:
            raise BillCancelledError(f"Bill {bill.bill_no} is cancelled and cannot be updated")
        data = _parse_payload(firm, payload, bill.bill_kind)
        if data.bill_no and data.bill_no != bill.bill_no:
            raise ImmutableNumberError("Bill number cannot be changed")
        before = _summary(bill)
        totals = _totals_for(firm, data)

        for movement in bill.movements.order_by("id"):
            restore_movement(firm, movement, user=user)
        bill.movements.all().delete()
        delete_group(firm, bill.group)

        _apply_header(bill, data, totals)
        bill.save()
        _apply_cart(firm, bill, data.lines, user=user)
        _post(firm, bill, data, totals, user=user)
        log_action(action="update", instance=bill, user=user,
                   changes={"before": before, "after": _summary(bill)})

    logger.info("Updated %s bill %s for firm=%s", bill.bill_kind, bill.bill_no, firm.pk)
    return bill


def cancel_bill(firm, bill_id, *, reason="", user=None) -> Bill:
    """Restore stock, retire the ledger group and mark the bill CANCELLED."""
    with transaction.atomic():
        bill = Bill.objects.select_for_update().get_for_firm(firm, bill_id)
        if bill.is_cancelled:
            raise BillCancelledError("Bill is already cancelled")

        for movement in bill.movements.order_by("id"):
            restore_movement(firm, movement, user=user)
        retire_group(firm, bill.group, user=user)

        bill.status = STATUS_CANCELLED
        bill.cancellation_reason = reason or ""
        bill.cancelled_at = timezone.now()
        bill.cancelled_by = user
        bill.save()
        log_action(action="cancel", instance=bill, user=user, changes={"reason": bill.cancellation_reason})

    logger.info("Cancelled bill %s for firm=%s", bill.bill_no, firm.pk)
    return bill


def get_bill(firm, bill_id) -> Bill:
    return Bill.objects.prefetch_related("movements", "ledger_entries").get_for_firm(firm, bill_id)


def bulk_cancel_bills(firm, bill_ids, *, reason="", user=None):
    """Cancel each bill on its own; failures are reported, not raised."""
    return collect_each(bill_ids, lambda bill_id: cancel_bill(firm, bill_id, reason=reason, user=user))


def list_bills(firm, *, kind=None, status=None, start=None, end=None, party_id=None, search=""):
    """A firm's bills, newest first, optionally filtered."""
    qs = Bill.objects.for_firm(firm)
    if kind:
        qs = qs.filter(bill_kind=kind.upper())
    if status:
        qs = qs.filter(status=status.upper())
    if start:
        qs = qs.filter(bill_date__gte=as_date(start, "start"))
    if end:
        qs = qs.filter(bill_date__lte=as_date(end, "end"))
    if party_id not in (None, ""):
        qs = qs.filter(party=Party.objects.get_for_firm(firm, party_id))
    search = (search or "").strip()
    if search:
        qs = qs.filter(Q(bill_no__icontains=search) | Q(party_name__icontains=search))
    return qs.order_by("-created_at", "-id")
