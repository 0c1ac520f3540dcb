import logging
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Q

from ..conf import get_setting
from ..exceptions import BatchNotFoundError, InsufficientStockError
from ..models import Party, StockBatch, StockItem, StockMovement
from ..models.stock import (MOVEMENT_ADJUSTMENT, MOVEMENT_OPENING,
                            MOVEMENT_RECEIPT, MOVEMENT_TRANSFER,
                            batch_label_q)
from .bulk import collect_each
from .totals import money, to_decimal
from .validation import as_date, paginate

logger = logging.getLogger(__name__)

DIRECT_MOVEMENT_TYPES = (MOVEMENT_RECEIPT, MOVEMENT_TRANSFER, MOVEMENT_ADJUSTMENT, MOVEMENT_OPENING)


def normalize_label(label):
    """Blank labels collapse to None, the default batch."""
    if label is None:
        return None
    label = str(label).strip()
    return label or None


# ----------------------------
# Batch lookup
# ----------------------------
def resolve_batch(stock: StockItem, label=None, index=None) -> StockBatch:
    """
    Pick the batch a cart line draws from: explicit index first, else exact
    label match, else the default (unlabelled) batch.
    """
    if index is not None:
        batches = list(stock.batches.order_by("id"))
        if index < 0 or index >= len(batches):
            raise BatchNotFoundError(
                f"Invalid batch index {index} for item {stock.name} ({len(batches)} batches)"
            )
        return batches[index]

    label = normalize_label(label)
    batch = stock.batches.filter(batch_label_q(label)).first()
    if batch is None:
        raise BatchNotFoundError(f'Batch "{label or "(No Batch)"}" not found for item {stock.name}')
    return batch


# ----------------------------
# Consume / receive
# ----------------------------
@transaction.atomic
def consume_stock(firm, stock_id, qty, *, label=None, index=None, user=None):
    """
    Take `qty` out of one batch of a firm's stock item.

    The decrement is a conditional UPDATE (qty >= requested), so the check
    and the write cannot interleave with another request's. Returns
    (stock, batch) with the batch as it was resolved.
    """
    qty = to_decimal(qty, "qty")
    if qty <= 0:
        raise ValidationError("Quantity to consume must be greater than zero")

    stock = StockItem.objects.select_for_update().get_for_firm(firm, stock_id)
    batch = resolve_batch(stock, label=label, index=index)

    updated = StockBatch.objects.filter(pk=batch.pk, qty__gte=qty).update(qty=F("qty") - qty)
    if not updated:
        batch.refresh_from_db(fields=["qty"])
        raise InsufficientStockError(
            f'Insufficient quantity in batch "{batch.display_label}" of {stock.name}. '
            f"Available: {batch.qty}, Requested: {qty}",
            stock=stock,
            batch_label=batch.label,
            available=batch.qty,
            requested=qty,
        )
    stock.recompute_aggregates(user=user)
    return stock, batch


@transaction.atomic
def receive_stock(stock: StockItem, qty, *, label=None, rate=None, uom=None, gst_rate=None, expiry=None, mrp=None):
    """
    Merge `qty` into the batch with this label, creating it if needed.
    Optional fields overwrite the batch only when provided.
    """
    label = normalize_label(label)
    qty = to_decimal(qty, "qty")
    if qty < 0:
        raise ValidationError("Quantity to receive cannot be negative")

    batch = stock.batches.select_for_update().filter(batch_label_q(label)).first()
    if batch is None:
        batch = StockBatch.objects.create(
            stock=stock,
            label=label,
            qty=qty,
            uom=uom or stock.uom,
            rate=money(to_decimal(rate)) if rate not in (None, "") else stock.rate,
            gst_rate=to_decimal(gst_rate) if gst_rate not in (None, "") else stock.gst_rate,
            expiry=as_date(expiry, "expiry", required=False),
            mrp=money(to_decimal(mrp)) if mrp not in (None, "") else None,
        )
        return batch

    StockBatch.objects.filter(pk=batch.pk).update(qty=F("qty") + qty)
    changed = []
    if rate not in (None, ""):
        batch.rate = money(to_decimal(rate))
        changed.append("rate")
    if uom:
        batch.uom = uom
        changed.append("uom")
    if gst_rate not in (None, ""):
        batch.gst_rate = to_decimal(gst_rate)
        changed.append("gst_rate")
    if expiry not in (None, ""):
        batch.expiry = as_date(expiry, "expiry", required=False)
        changed.append("expiry")
    if mrp not in (None, ""):
        batch.mrp = money(to_decimal(mrp))
        changed.append("mrp")
    if changed:
        batch.save(update_fields=changed)
    batch.refresh_from_db(fields=["qty"])
    return batch


@transaction.atomic
def restore_movement(firm, movement: StockMovement, *, user=None):
    """Undo one recorded movement against the item's current batches."""
    stock = StockItem.objects.select_for_update().get_for_firm(firm, movement.stock_id)
    label = normalize_label(movement.batch_label)

    if not movement.is_outward:
        # inward (purchase, receipt) is undone by consuming it again
        consume_stock(firm, stock.pk, movement.qty, label=label, user=user)
        return stock

    updated = StockBatch.objects.filter(stock=stock).filter(batch_label_q(label)).update(
        qty=F("qty") + movement.qty
    )
    if not updated:
        logger.warning(
            "Batch %r of %s no longer exists; re-creating it to restore %s",
            label, stock.name, movement.qty,
        )
        StockBatch.objects.create(
            stock=stock,
            label=label,
            qty=movement.qty,
            uom=movement.uom or stock.uom,
            rate=movement.rate,
            gst_rate=movement.gst_rate,
        )
    stock.recompute_aggregates(user=user)
    return stock


# ----------------------------
# Stock item maintenance
# ----------------------------
def _batch_entries(batches, *, qty=None, batch=None, rate=None, expiry=None, mrp=None):
    if batches:
        return [dict(entry) for entry in batches]
    return [{"batch": batch, "qty": qty, "rate": rate, "expiry": expiry, "mrp": mrp}]


@transaction.atomic
def create_or_merge_stock(
    firm,
    *,
    name,
    hsn,
    uom=None,
    rate=None,
    gst_rate=None,
    qty=None,
    batch=None,
    expiry=None,
    mrp=None,
    batches=None,
    part_no="",
    oem="",
    user=None,
):
    """
    Add stock by item name. An existing item of the firm absorbs the new
    batches (matched by label); otherwise a new item is created.
    Returns (stock, created).
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Item name is required")
    if not hsn:
        raise ValidationError(f"HSN is required for item {name}")

    entries = _batch_entries(batches, qty=qty, batch=batch, rate=rate, expiry=expiry, mrp=mrp)
    for position, entry in enumerate(entries, start=1):
        if to_decimal(entry.get("qty"), f"Batch {position}: qty") < 0:
            raise ValidationError(f"Batch {position}: quantity cannot be negative")
        if to_decimal(entry.get("rate"), f"Batch {position}: rate") < 0:
            raise ValidationError(f"Batch {position}: rate cannot be negative")

    header_rate = rate if rate not in (None, "") else entries[0].get("rate")
    stock = StockItem.objects.select_for_update().for_firm(firm).filter(name=name).first()
    created = stock is None
    if created:
        stock = StockItem.objects.create(
            firm=firm,
            name=name,
            hsn=hsn,
            uom=uom or get_setting("DEFAULT_UOM"),
            rate=money(to_decimal(header_rate)),
            gst_rate=to_decimal(gst_rate),
            mrp=money(to_decimal(mrp)) if mrp not in (None, "") else None,
            part_no=part_no or "",
            oem=oem or "",
            updated_by=user,
        )
    else:
        stock.hsn = hsn
        if uom:
            stock.uom = uom
        if header_rate not in (None, ""):
            stock.rate = money(to_decimal(header_rate))
        if gst_rate not in (None, ""):
            stock.gst_rate = to_decimal(gst_rate)
        if mrp not in (None, ""):
            stock.mrp = money(to_decimal(mrp))
        if part_no:
            stock.part_no = part_no
        if oem:
            stock.oem = oem
        stock.save()

    for entry in entries:
        receive_stock(
            stock,
            entry.get("qty") or 0,
            label=entry.get("batch"),
            rate=entry.get("rate"),
            uom=entry.get("uom") or uom,
            gst_rate=gst_rate,
            expiry=entry.get("expiry"),
            mrp=entry.get("mrp"),
        )
    stock.recompute_aggregates(user=user)
    logger.info("%s stock %s for firm=%s (qty=%s)", "Created" if created else "Merged", stock.name, firm.pk, stock.qty)
    return stock, created


@transaction.atomic
def update_stock(firm, stock_id, *, batches=None, user=None, **fields):
    """
    Edit an item's header fields; a `batches` list replaces its batches.
    The root rate follows the first batch, as the bill screens expect.
    """
    stock = StockItem.objects.select_for_update().get_for_firm(firm, stock_id)
    editable = {"name", "hsn", "uom", "gst_rate", "rate", "mrp", "part_no", "oem"}
    unknown = set(fields) - editable
    if unknown:
        raise ValidationError(f"Unknown stock fields: {', '.join(sorted(unknown))}")

    for field, value in fields.items():
        if field in ("rate", "mrp") and value not in (None, ""):
            value = money(to_decimal(value, field))
        elif field == "gst_rate":
            value = to_decimal(value, field)
        elif field == "name":
            value = (value or "").strip()
        setattr(stock, field, value)
    if not stock.name or not stock.hsn:
        raise ValidationError("Item name and HSN are required")
    if "name" in fields and StockItem.objects.for_firm(firm).filter(name=stock.name).exclude(pk=stock.pk).exists():
        raise ValidationError(f"Another stock item is already named {stock.name}")
    stock.save()

    if batches is not None:
        labels = [normalize_label(entry.get("batch")) for entry in batches]
        if len(labels) != len(set(labels)):
            raise ValidationError(f"Duplicate batch labels for item {stock.name}")
        stock.batches.all().delete()
        for entry in batches:
            receive_stock(
                stock,
                entry.get("qty") or 0,
                label=entry.get("batch"),
                rate=entry.get("rate"),
                uom=entry.get("uom"),
                expiry=entry.get("expiry"),
                mrp=entry.get("mrp"),
            )
        if batches and batches[0].get("rate") not in (None, ""):
            stock.rate = money(to_decimal(batches[0]["rate"]))
    stock.recompute_aggregates(user=user)
    return stock


@transaction.atomic
def delete_stock(firm, stock_id):
    stock = StockItem.objects.select_for_update().get_for_firm(firm, stock_id)
    if stock.movements.exists():
        raise ValidationError(f"Cannot delete {stock.name}: it has recorded stock movements.")
    stock.delete()


# ----------------------------
# Direct movements (no bill)
# ----------------------------
@transaction.atomic
def record_stock_movement(
    firm,
    *,
    movement_type,
    stock_id,
    qty,
    uom,
    rate=None,
    batch=None,
    narration="",
    movement_date=None,
    user=None,
):
    """
    Record a RECEIPT / TRANSFER / ADJUSTMENT / OPENING movement.

    Only ADJUSTMENT keeps the sign of qty; a negative adjustment is taken
    out of the batch, everything else is added to it.
    """
    movement_type = (movement_type or "").upper()
    if movement_type not in DIRECT_MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type {movement_type!r}. Allowed: {', '.join(DIRECT_MOVEMENT_TYPES)}"
        )
    if stock_id in (None, ""):
        raise ValidationError("stockId is required")
    if not uom:
        raise ValidationError("uom is required")
    qty = to_decimal(qty, "qty")
    if qty == 0:
        raise ValidationError("qty must be non-zero")

    outward = movement_type == MOVEMENT_ADJUSTMENT and qty < 0
    qty = abs(qty)
    stock = StockItem.objects.select_for_update().get_for_firm(firm, stock_id)
    label = normalize_label(batch)

    if outward:
        stock, resolved = consume_stock(firm, stock.pk, qty, label=label, user=user)
        label = resolved.label
    else:
        receive_stock(stock, qty, label=label, rate=rate, uom=uom)
    if rate not in (None, ""):
        stock.rate = money(to_decimal(rate, "rate"))
    stock.recompute_aggregates(user=user)

    movement = StockMovement.objects.create(
        firm=firm,
        movement_type=movement_type,
        stock=stock,
        movement_date=as_date(movement_date, "movement_date", default_today=True),
        party_name="INTERNAL",
        item_name=stock.name,
        narration=narration or "",
        batch_label=label,
        hsn=stock.hsn,
        qty=qty,
        is_outward=outward,
        uom=uom,
        rate=stock.rate,
        gst_rate=stock.gst_rate,
        total=money(qty * stock.rate),
        created_by=user,
    )
    logger.info("Recorded %s of %s %s for %s (firm=%s)", movement_type, qty, uom, stock.name, firm.pk)
    return movement


# ----------------------------
# Queries
# ----------------------------
def get_stock_batches(firm, stock_id):
    """An item's batches in index order, as plain dicts."""
    stock = StockItem.objects.get_for_firm(firm, stock_id)
    return {
        "id": stock.pk,
        "item": stock.name,
        "batches": [
            {
                "index": index,
                "batch": batch.label,
                "qty": batch.qty,
                "uom": batch.uom,
                "rate": batch.rate,
                "gst_rate": batch.gst_rate,
                "expiry": batch.expiry,
                "mrp": batch.mrp,
            }
            for index, batch in enumerate(stock.batches.all())
        ],
    }


def list_stock_movements(
    firm,
    *,
    movement_type=None,
    batch=None,
    search="",
    party_id=None,
    stock_id=None,
    page=1,
    limit=50,
):
    """
    Stock register rows, newest first, filtered by type, batch label, an
    item-name/bill-number search, the bill's party and the item.
    """
    qs = StockMovement.objects.for_firm(firm).select_related("stock", "bill")
    if movement_type:
        qs = qs.filter(movement_type=movement_type.upper())
    if batch:
        qs = qs.filter(batch_label=batch)
    search = (search or "").strip()
    if search:
        qs = qs.filter(Q(item_name__icontains=search) | Q(bill_no__icontains=search))
    if party_id not in (None, ""):
        party = Party.objects.get_for_firm(firm, party_id)
        qs = qs.filter(bill__party=party)
    if stock_id not in (None, ""):
        qs = qs.filter(stock=StockItem.objects.get_for_firm(firm, stock_id))
    return paginate(qs.order_by("-created_at", "-id"), page, limit)


def stock_movements_for(firm, stock_id, *, page=1, limit=50):
    return list_stock_movements(firm, stock_id=stock_id, page=page, limit=limit)


# ----------------------------
# Maintenance
# ----------------------------
def reconcile_stock_aggregates(firm):
    """Recompute every item's qty/total from its batches; report drift."""
    drifted = []
    for stock in StockItem.objects.for_firm(firm).order_by("id"):
        with transaction.atomic():
            locked = StockItem.objects.select_for_update().get(pk=stock.pk)
            before = (locked.qty, locked.total)
            locked.recompute_aggregates()
            if (locked.qty, locked.total) != before:
                logger.warning(
                    "Stock %s drifted: qty %s -> %s, total %s -> %s",
                    locked.name, before[0], locked.qty, before[1], locked.total,
                )
                drifted.append(locked.pk)
    return drifted


def bulk_delete_stock(firm, stock_ids):
    """Delete each item independently; one failure never stops the rest."""
    return collect_each(stock_ids, lambda stock_id: delete_stock(firm, stock_id))
