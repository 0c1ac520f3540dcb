"""
Bill totals: pure arithmetic over cart lines and other charges.

No ORM access here; callers pass plain dicts (the bill payload) or the
dataclasses below and get a BillTotals back.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.core.exceptions import ValidationError

from ..models.bill import INTRA_STATE

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def money(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_decimal(value, field="value") -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        # str() first so floats like 99.5 come through as written
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")


def _first(data: dict, *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class CartLine:
    item: str
    qty: Decimal
    rate: Decimal
    gst_rate: Decimal = ZERO
    discount: Decimal = ZERO
    stock_id: int | None = None
    hsn: str = ""
    uom: str = ""
    batch: str | None = None
    batch_index: int | None = None
    narration: str = ""

    @classmethod
    def from_payload(cls, data: dict, position: int = 1) -> "CartLine":
        prefix = f"Line {position}"
        qty = to_decimal(data.get("qty"), f"{prefix}: qty")
        rate = to_decimal(data.get("rate"), f"{prefix}: rate")
        if qty <= 0:
            raise ValidationError(f"{prefix}: quantity must be greater than zero")
        if rate < 0:
            raise ValidationError(f"{prefix}: rate cannot be negative")
        batch_index = _first(data, "batchIndex", "batch_index")
        if batch_index is not None:
            try:
                batch_index = int(batch_index)
            except (TypeError, ValueError):
                raise ValidationError(f"{prefix}: batchIndex must be an integer")
        return cls(
            item=str(data.get("item") or ""),
            qty=qty,
            rate=rate,
            gst_rate=to_decimal(_first(data, "grate", "gst_rate"), f"{prefix}: grate"),
            discount=to_decimal(_first(data, "disc", "discount"), f"{prefix}: disc"),
            stock_id=_first(data, "stockId", "stock_id"),
            hsn=str(data.get("hsn") or ""),
            uom=str(data.get("uom") or ""),
            batch=(data.get("batch") or None),
            batch_index=batch_index,
            narration=str(data.get("narration") or ""),
        )

    @property
    def taxable_value(self) -> Decimal:
        return self.qty * self.rate * (1 - self.discount / HUNDRED)

    def tax(self, gst_enabled: bool) -> Decimal:
        if not gst_enabled:
            return Decimal("0")
        return self.taxable_value * self.gst_rate / HUNDRED


@dataclass(frozen=True)
class OtherCharge:
    type: str
    amount: Decimal
    gst_rate: Decimal = ZERO
    hsn_sac: str = ""

    @classmethod
    def from_payload(cls, data: dict) -> "OtherCharge":
        amount = money(to_decimal(data.get("amount"), "Other charge amount"))
        if amount < 0:
            raise ValidationError("Other charge amount cannot be negative")
        return cls(
            type=str(data.get("type") or data.get("name") or "Other Charges"),
            amount=amount,
            gst_rate=to_decimal(_first(data, "gstRate", "gst_rate"), "Other charge gstRate"),
            hsn_sac=str(_first(data, "hsnSac", "hsn_sac", default="")),
        )

    @property
    def account_head(self):
        return self.type or "Other Charges"

    def tax(self, gst_enabled: bool) -> Decimal:
        if not gst_enabled:
            return Decimal("0")
        return self.amount * self.gst_rate / HUNDRED

    def as_json(self):
        return {
            "type": self.type,
            "amount": str(self.amount),
            "gstRate": str(self.gst_rate),
            "hsnSac": self.hsn_sac,
        }


@dataclass(frozen=True)
class BillTotals:
    items_total: Decimal
    other_charges_total: Decimal
    gross_total: Decimal
    total_tax: Decimal
    other_charges_tax: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    net_total: Decimal
    round_off: Decimal
    reverse_charge: bool = False

    @property
    def tax_total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def posting_round_off(self) -> Decimal:
        """
        Round-off as posted to the ledger: net total less the paise amounts
        actually posted. Differs from round_off by a paisa or two when the
        tax split or item total had to be rounded.
        """
        posted_tax = ZERO if self.reverse_charge else self.tax_total
        return self.net_total - self.gross_total - posted_tax


def as_cart_lines(cart) -> list[CartLine]:
    return [
        line if isinstance(line, CartLine) else CartLine.from_payload(line, position)
        for position, line in enumerate(cart or [], start=1)
    ]


def as_other_charges(charges) -> list[OtherCharge]:
    return [
        charge if isinstance(charge, OtherCharge) else OtherCharge.from_payload(charge)
        for charge in charges or []
    ]


def compute_totals(cart, other_charges=None, gst_enabled=True, bill_type=INTRA_STATE, reverse_charge=False) -> BillTotals:
    """
    Gross, GST split, rounded net total and round-off for one bill.

    The net total is rounded from the unrounded gross and tax, and
    round_off is that rounded total minus the raw one, to paise. The
    stored tax components are each taken to paise on their own.
    """
    lines = as_cart_lines(cart)
    charges = as_other_charges(other_charges)

    items_raw = sum((line.taxable_value for line in lines), Decimal("0"))
    line_tax = sum((line.tax(gst_enabled) for line in lines), Decimal("0"))
    charges_total = sum((charge.amount for charge in charges), ZERO)
    charges_tax = sum((charge.tax(gst_enabled) for charge in charges), Decimal("0"))

    items_total = money(items_raw)
    gross_total = items_total + charges_total
    tax = line_tax + charges_tax

    cgst = sgst = igst = ZERO
    if bill_type == INTRA_STATE:
        cgst = sgst = money(tax / 2)
    else:
        igst = money(tax)

    net_raw = items_raw + charges_total + (ZERO if reverse_charge else tax)
    net_total = net_raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    round_off = money(net_total - net_raw)

    return BillTotals(
        items_total=items_total,
        other_charges_total=charges_total,
        gross_total=gross_total,
        total_tax=money(line_tax),
        other_charges_tax=money(charges_tax),
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        net_total=money(net_total),
        round_off=round_off,
        reverse_charge=reverse_charge,
    )
