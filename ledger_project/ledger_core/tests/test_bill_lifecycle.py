from decimal import Decimal
from unittest.mock import patch

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from ..exceptions import (BillCancelledError, ImmutableNumberError,
                          InsufficientStockError, SequenceGenerationError)
from ..models import (AuditLog, Bill, Firm, LedgerEntry, Party,
                      SequenceCounter, StockMovement, VoucherIdCounter)
from ..services.billing import (bulk_cancel_bills, cancel_bill, create_bill,
                                get_bill, list_bills, update_bill)
from ..services.reports import get_account_balance, group_totals
from ..services.sequence import preview_number
from ..services.stock import create_or_merge_stock

DELETE_ON_CANCEL = {**settings.LEDGER_CORE, "CANCELLATION_POSTING": "delete"}


class SalesBillTestMixin:

    def setUp(self):
        self.user = get_user_model().objects.create_user(username="clerk", password="pw")
        self.firm = Firm.objects.create(name="Bearing House", slug="bearing-house", state_code="27")
        self.party = Party.objects.create(firm=self.firm, name="Acme Retail", state="Maharashtra", state_code="27")
        self.stock, _ = create_or_merge_stock(
            self.firm,
            name="Ball Bearing 6204",
            hsn="8482",
            rate="100.00",
            gst_rate="18",
            batches=[{"batch": "B1", "qty": 50}, {"batch": None, "qty": 20}],
        )

    def payload(self, cart=None, **meta):
        return {
            "meta": {"billDate": timezone.localdate().isoformat(), "billType": "intra-state", **meta},
            "party": {"id": self.party.pk},
            "cart": cart if cart is not None else [self.line()],
        }

    def line(self, qty=2, rate="100", batch="B1", **extra):
        return {"stockId": self.stock.pk, "item": self.stock.name, "hsn": "8482", "batch": batch,
                "qty": qty, "uom": "PCS", "rate": rate, "grate": "18", **extra}

    def batch_qty(self, label):
        if label is None:
            return self.stock.batches.get(label__isnull=True).qty
        return self.stock.batches.get(label=label).qty

    def heads(self, bill):
        return {
            entry.account_head: (entry.debit_amount, entry.credit_amount)
            for entry in bill.group.entries(self.firm).filter(is_reversal=False)
        }

    def assert_group_balanced(self, bill):
        debit, credit = group_totals(self.firm, bill.voucher_id)
        self.assertEqual(debit, credit)


class CreateSalesBillTests(SalesBillTestMixin, TestCase):

    def test_create_moves_stock_and_posts_balanced_group(self):
        bill = create_bill(self.firm, self.payload(), user=self.user)

        self.assertTrue(bill.bill_no.startswith("SI/"))
        self.assertEqual(bill.party_name, "Acme Retail")
        self.assertEqual(bill.net_total, Decimal("236.00"))
        self.assertEqual(self.batch_qty("B1"), Decimal("48"))
        self.stock.refresh_from_db()
        self.assertEqual(self.stock.qty, Decimal("68"))

        movement = StockMovement.objects.get(bill=bill)
        self.assertEqual(movement.movement_type, "SALE")
        self.assertTrue(movement.is_outward)
        self.assertEqual(movement.batch_label, "B1")

        self.assertEqual(self.heads(bill), {
            "Acme Retail": (Decimal("236.00"), Decimal("0.00")),
            "CGST Payable": (Decimal("0.00"), Decimal("18.00")),
            "SGST Payable": (Decimal("0.00"), Decimal("18.00")),
            "Sales": (Decimal("0.00"), Decimal("200.00")),
        })
        self.assertTrue(all(entry.voucher_no == bill.bill_no for entry in bill.group.entries(self.firm)))
        self.assert_group_balanced(bill)
        self.assertTrue(AuditLog.objects.filter(action="create", object_type="Bill", object_id=str(bill.pk)).exists())
        self.assertEqual(bill.as_result(), {"bill_id": bill.pk, "bill_no": bill.bill_no, "success": True})
        self.assertEqual(get_bill(self.firm, bill.pk).movements.count(), 1)

    def test_round_off_line_posted(self):
        bill = create_bill(self.firm, self.payload([self.line(rate="99.5")]))
        heads = self.heads(bill)
        self.assertEqual(heads["Acme Retail"], (Decimal("235.00"), Decimal("0.00")))
        self.assertEqual(heads["Round Off"], (Decimal("0.00"), Decimal("0.18")))
        self.assert_group_balanced(bill)

    def test_other_charges_posted_as_income(self):
        payload = self.payload()
        payload["otherCharges"] = [{"type": "Freight", "amount": "50", "gstRate": "18"}]
        bill = create_bill(self.firm, payload)

        self.assertEqual(bill.net_total, Decimal("295.00"))
        self.assertEqual(bill.other_charges[0]["type"], "Freight")
        self.assertEqual(self.heads(bill)["Freight"], (Decimal("0.00"), Decimal("50.00")))
        self.assert_group_balanced(bill)

    def test_supply_type_from_state_codes(self):
        payload = self.payload()
        payload["meta"].pop("billType")
        payload["party"]["stateCode"] = "29"
        bill = create_bill(self.firm, payload)

        self.assertEqual(bill.supply_type, "inter-state")
        self.assertEqual(bill.igst, Decimal("36.00"))
        self.assertIn("IGST Payable", self.heads(bill))
        self.assert_group_balanced(bill)

    def test_reverse_charge_omits_output_tax(self):
        bill = create_bill(self.firm, self.payload(reverseCharge=True))
        self.assertEqual(bill.net_total, Decimal("200.00"))
        self.assertNotIn("CGST Payable", self.heads(bill))
        self.assert_group_balanced(bill)

    def test_batch_index(self):
        create_bill(self.firm, self.payload([self.line(batch=None, batchIndex=1)]))
        self.assertEqual(self.batch_qty(None), Decimal("18"))
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))

    def test_failing_line_rolls_back_everything(self):
        cart = [self.line(qty=2, batch="B1"), self.line(qty=100, batch=None)]

        with self.assertRaises(InsufficientStockError):
            create_bill(self.firm, self.payload(cart))

        self.assertFalse(Bill.objects.exists())
        self.assertFalse(LedgerEntry.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))
        # the number taken for the failed bill went back to the series
        self.assertTrue(preview_number(self.firm, "SALES").endswith("/0001"))

    def test_round_off_line_closes_the_paise_gap(self):
        # raw net 234.879: the bill keeps 0.12, the ledger posts what balances the paise lines
        bill = create_bill(self.firm, self.payload([self.line(qty=1, rate="199.05")]))
        self.assertEqual(bill.net_total, Decimal("235.00"))
        self.assertEqual(bill.round_off, Decimal("0.12"))
        self.assertEqual(self.heads(bill)["Round Off"], (Decimal("0.00"), Decimal("0.13")))
        self.assert_group_balanced(bill)

    def test_number_failure_aborts_the_posting(self):
        with patch.object(SequenceCounter.objects, "select_for_update", side_effect=DatabaseError("locked")):
            with self.assertRaises(SequenceGenerationError):
                create_bill(self.firm, self.payload())

        self.assertFalse(Bill.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertFalse(LedgerEntry.objects.exists())
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))

    def test_group_id_failure_returns_the_number(self):
        with patch.object(VoucherIdCounter.objects, "select_for_update", side_effect=DatabaseError("locked")):
            with self.assertRaises(SequenceGenerationError):
                create_bill(self.firm, self.payload())

        self.assertFalse(Bill.objects.exists())
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))
        self.assertTrue(preview_number(self.firm, "SALES").endswith("/0001"))

    def test_payload_validation(self):
        no_stock = self.line()
        no_stock.pop("stockId")
        cases = {
            "empty cart": self.payload([]),
            "missing stockId": self.payload([no_stock]),
            "bad billType": self.payload(billType="export"),
            "missing date": self.payload(billDate=""),
        }
        for name, payload in cases.items():
            with self.subTest(name):
                with self.assertRaises(ValidationError):
                    create_bill(self.firm, payload)
        self.assertFalse(Bill.objects.exists())

    def test_party_name_required_without_party(self):
        payload = self.payload()
        payload["party"] = {}
        with self.assertRaises(ValidationError):
            create_bill(self.firm, payload)

    def test_numbers_are_sequential(self):
        first = create_bill(self.firm, self.payload())
        second = create_bill(self.firm, self.payload())
        self.assertTrue(first.bill_no.endswith("/0001"))
        self.assertTrue(second.bill_no.endswith("/0002"))
        self.assertNotEqual(first.voucher_id, second.voucher_id)


class UpdateSalesBillTests(SalesBillTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.bill = create_bill(self.firm, self.payload(), user=self.user)

    def test_update_replaces_lines_and_keeps_identity(self):
        bill = update_bill(self.firm, self.bill.pk, self.payload([self.line(qty=5)]), user=self.user)

        self.assertEqual(bill.bill_no, self.bill.bill_no)
        self.assertEqual(bill.voucher_id, self.bill.voucher_id)
        self.assertEqual(bill.net_total, Decimal("590.00"))
        self.assertEqual(self.batch_qty("B1"), Decimal("45"))
        self.assertEqual(StockMovement.objects.filter(bill=bill).count(), 1)
        self.assertEqual(bill.group.entries(self.firm).count(), 4)
        self.assert_group_balanced(bill)

    def test_update_can_switch_batches(self):
        update_bill(self.firm, self.bill.pk, self.payload([self.line(qty=3, batch=None)]))
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))
        self.assertEqual(self.batch_qty(None), Decimal("17"))

    def test_bill_number_cannot_change(self):
        with self.assertRaises(ImmutableNumberError):
            update_bill(self.firm, self.bill.pk, self.payload([self.line(qty=5)], billNo="SI/1999-00/0042"))
        self.assertEqual(self.batch_qty("B1"), Decimal("48"))

    def test_model_refuses_number_change(self):
        self.bill.bill_no = "SI/1999-00/0042"
        with self.assertRaises(ValidationError):
            self.bill.save()

    def test_failed_update_keeps_previous_state(self):
        with self.assertRaises(InsufficientStockError):
            update_bill(self.firm, self.bill.pk, self.payload([self.line(qty=500)]))
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.net_total, Decimal("236.00"))
        self.assertEqual(self.batch_qty("B1"), Decimal("48"))
        self.assertEqual(self.bill.group.entries(self.firm).count(), 4)


class CancelSalesBillTests(SalesBillTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.bill = create_bill(self.firm, self.payload(), user=self.user)

    def test_cancel_restores_stock_and_reverses_ledger(self):
        bill = cancel_bill(self.firm, self.bill.pk, reason="Wrong party", user=self.user)

        self.assertEqual(bill.status, "CANCELLED")
        self.assertEqual(bill.cancellation_reason, "Wrong party")
        self.assertEqual(bill.cancelled_by, self.user)
        self.assertIsNotNone(bill.cancelled_at)
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))

        entries = bill.group.entries(self.firm)
        self.assertEqual(entries.count(), 8)
        self.assertEqual(entries.filter(is_reversal=True).count(), 4)
        self.assertTrue(
            all(entry.narration.startswith("REVERSAL: ") for entry in entries.filter(is_reversal=True))
        )
        self.assert_group_balanced(bill)
        self.assertEqual(get_account_balance(self.firm, "Sales")["balance"], Decimal("0.00"))
        self.assertEqual(get_account_balance(self.firm, "Acme Retail")["balance"], Decimal("0.00"))
        # movements stay as history
        self.assertEqual(StockMovement.objects.filter(bill=bill).count(), 1)

    @override_settings(LEDGER_CORE=DELETE_ON_CANCEL)
    def test_cancel_in_delete_mode_removes_entries(self):
        bill = cancel_bill(self.firm, self.bill.pk)
        self.assertEqual(bill.status, "CANCELLED")
        self.assertFalse(bill.group.entries(self.firm).exists())
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))

    def test_create_then_cancel_round_trip(self):
        other = create_bill(self.firm, self.payload([self.line(qty=4, batch=None)]))
        cancel_bill(self.firm, other.pk)
        cancel_bill(self.firm, self.bill.pk)

        self.assertEqual(self.batch_qty("B1"), Decimal("50"))
        self.assertEqual(self.batch_qty(None), Decimal("20"))
        self.stock.refresh_from_db()
        self.assertEqual(self.stock.qty, Decimal("70"))

    def test_double_cancel(self):
        cancel_bill(self.firm, self.bill.pk)
        with self.assertRaises(BillCancelledError):
            cancel_bill(self.firm, self.bill.pk)
        self.assertEqual(self.batch_qty("B1"), Decimal("50"))

    def test_cancelled_bill_cannot_be_updated(self):
        cancel_bill(self.firm, self.bill.pk)
        with self.assertRaises(BillCancelledError):
            update_bill(self.firm, self.bill.pk, self.payload())

    def test_cancel_restores_deleted_batch(self):
        self.stock.batches.filter(label="B1").delete()
        cancel_bill(self.firm, self.bill.pk)
        self.assertEqual(self.batch_qty("B1"), Decimal("2"))

    def test_bulk_cancel_reports_failures(self):
        cancel_bill(self.firm, self.bill.pk)
        fresh = create_bill(self.firm, self.payload())

        result = bulk_cancel_bills(self.firm, [self.bill.pk, fresh.pk, 987654])

        self.assertEqual(result["succeeded"], [fresh.pk])
        self.assertEqual([failure["id"] for failure in result["failed"]], [self.bill.pk, 987654])
        self.assertEqual(result["failed"][0]["error"], "Bill is already cancelled")

    def test_bills_cannot_be_deleted(self):
        bill = Bill.objects.create(
            firm=self.firm, bill_no="SI/TEST/0001", bill_date=timezone.localdate(),
            voucher_id=999, party_name="Walk-in",
        )
        with self.assertRaises(ValidationError):
            bill.delete()


class ListBillsTests(SalesBillTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.walk_in = Party.objects.create(firm=self.firm, name="Walk-in Garage")
        self.first = create_bill(self.firm, self.payload())
        self.second = create_bill(self.firm, {**self.payload(), "party": {"id": self.walk_in.pk}})
        self.third = create_bill(self.firm, self.payload(billDate="2025-04-02"))
        cancel_bill(self.firm, self.first.pk)

    def test_newest_first(self):
        self.assertEqual(list(list_bills(self.firm)), [self.third, self.second, self.first])

    def test_filters(self):
        self.assertEqual(list(list_bills(self.firm, status="cancelled")), [self.first])
        self.assertEqual(list(list_bills(self.firm, party_id=self.walk_in.pk)), [self.second])
        self.assertEqual(list(list_bills(self.firm, end="2025-04-30")), [self.third])
        self.assertEqual(list(list_bills(self.firm, search="garage")), [self.second])
        self.assertEqual(list(list_bills(self.firm, search=self.third.bill_no)), [self.third])
        self.assertFalse(list_bills(self.firm, kind="purchase").exists())

    def test_scoped_to_the_firm(self):
        other = Firm.objects.create(name="Other Co", slug="other-co")
        self.assertFalse(list_bills(other).exists())
