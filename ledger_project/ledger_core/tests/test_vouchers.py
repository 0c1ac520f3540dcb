from decimal import Decimal
from unittest.mock import patch

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import DatabaseError
from django.test import TestCase

from ..exceptions import (GroupRetiredError, ImmutableNumberError,
                          SequenceGenerationError)
from ..models import (AccountType, AuditLog, BankAccount, Firm, LedgerEntry,
                      Party, SequenceCounter)
from ..services.vouchers import (create_voucher, delete_voucher, get_voucher,
                                 list_vouchers, update_voucher,
                                 vouchers_for_party, vouchers_summary)


class VoucherTests(TestCase):

    def setUp(self):
        self.firm = Firm.objects.create(name="Voucher Co", slug="voucher-co")
        self.party = Party.objects.create(firm=self.firm, name="Acme")
        self.bank = BankAccount.objects.create(
            firm=self.firm, bank_name="HDFC Bank", account_number="50100012345678", ifsc_code="HDFC0000001"
        )

    def receipt(self, amount="5000", **kwargs):
        return create_voucher(
            self.firm, voucher_type="RECEIPT", party_id=self.party.pk, amount=amount, **kwargs
        )

    def test_cash_receipt_posts_two_lines(self):
        posted = self.receipt(payment_mode="Cash")

        self.assertTrue(posted.voucher_no.startswith("RV/"))
        self.assertEqual(len(posted.entries), 2)
        cash, party = posted.entries
        self.assertEqual((cash.account_head, cash.account_type), ("Cash", AccountType.CASH))
        self.assertEqual(cash.debit_amount, Decimal("5000.00"))
        self.assertEqual((party.account_head, party.account_type), ("Acme", AccountType.DEBTOR))
        self.assertEqual(party.credit_amount, Decimal("5000.00"))
        self.assertEqual(party.party, self.party)

        stored = LedgerEntry.objects.filter(voucher_id=posted.voucher_id)
        self.assertEqual(stored.count(), 2)
        self.assertEqual(set(stored.values_list("voucher_no", flat=True)), {posted.voucher_no})
        self.assertEqual(stored.first().narration, f"Receipt from Acme - {posted.voucher_no}")

    def test_bank_payment_uses_masked_account_head(self):
        posted = create_voucher(
            self.firm, voucher_type="payment", party_id=self.party.pk, amount=1200,
            payment_mode="NEFT", bank_account_id=self.bank.pk, narration="Advance",
        )
        party, bank = posted.entries
        self.assertEqual(posted.voucher_no[:3], "PV/")
        self.assertEqual((party.account_type, party.debit_amount), (AccountType.CREDITOR, Decimal("1200.00")))
        self.assertEqual(bank.account_head, "HDFC Bank - 5010XXXX")
        self.assertEqual(bank.account_type, AccountType.BANK)
        self.assertEqual(bank.credit_amount, Decimal("1200.00"))

        voucher = get_voucher(self.firm, posted.voucher_id)
        self.assertEqual(voucher["payment_mode"], "Bank Transfer")
        self.assertEqual(voucher["party_id"], self.party.pk)
        self.assertEqual(voucher["amount"], Decimal("1200.00"))

    def test_validation(self):
        cases = [
            {"voucher_type": "CONTRA", "party_id": self.party.pk, "amount": 10},
            {"voucher_type": "RECEIPT", "party_id": None, "amount": 10},
            {"voucher_type": "RECEIPT", "party_id": self.party.pk, "amount": 0},
            {"voucher_type": "RECEIPT", "party_id": self.party.pk, "amount": "-5"},
        ]
        for kwargs in cases:
            with self.subTest(**kwargs):
                with self.assertRaises(ValidationError):
                    create_voucher(self.firm, **kwargs)
        self.assertFalse(LedgerEntry.objects.exists())

    def test_update_keeps_number_and_group(self):
        posted = self.receipt()
        updated = update_voucher(
            self.firm, posted.voucher_id, party_id=self.party.pk, amount="6000",
            payment_mode="UPI", bank_account_id=self.bank.pk,
        )
        self.assertEqual(updated.voucher_no, posted.voucher_no)
        self.assertEqual(updated.voucher_id, posted.voucher_id)

        voucher = get_voucher(self.firm, posted.voucher_id)
        self.assertEqual(voucher["amount"], Decimal("6000.00"))
        self.assertEqual(voucher["account_head"], "HDFC Bank - 5010XXXX")
        self.assertEqual(LedgerEntry.objects.filter(voucher_id=posted.voucher_id).count(), 2)

    def test_update_cannot_change_type_or_number(self):
        posted = self.receipt()
        with self.assertRaises(ImmutableNumberError):
            update_voucher(self.firm, posted.voucher_id, party_id=self.party.pk, amount=1, voucher_type="PAYMENT")
        with self.assertRaises(ImmutableNumberError):
            update_voucher(self.firm, posted.voucher_id, party_id=self.party.pk, amount=1, voucher_no="RV/X/9")

    def test_delete_reverses_voucher(self):
        posted = self.receipt()
        delete_voucher(self.firm, posted.voucher_id)

        voucher = get_voucher(self.firm, posted.voucher_id)
        self.assertTrue(voucher["reversed"])
        self.assertEqual(len(voucher["entries"]), 4)

        with self.assertRaises(GroupRetiredError):
            delete_voucher(self.firm, posted.voucher_id)
        with self.assertRaises(GroupRetiredError):
            update_voucher(self.firm, posted.voucher_id, party_id=self.party.pk, amount=1)

    def test_missing_voucher(self):
        with self.assertRaises(LedgerEntry.DoesNotExist):
            get_voucher(self.firm, 424242)
        with self.assertRaises(ValidationError):
            get_voucher(self.firm, "abc")

    def test_summary_counts_live_vouchers(self):
        self.receipt(amount="100")
        cancelled = self.receipt(amount="200")
        create_voucher(self.firm, voucher_type="PAYMENT", party_id=self.party.pk, amount="50")
        delete_voucher(self.firm, cancelled.voucher_id)

        summary = vouchers_summary(self.firm)
        self.assertEqual(summary["RECEIPT"], {"count": 1, "total": Decimal("100.00")})
        self.assertEqual(summary["PAYMENT"], {"count": 1, "total": Decimal("50.00")})

    def test_bank_markers_without_account_post_to_the_mode(self):
        for mode, label in (("Cheque", "Cheque"), ("NEFT", "NEFT"), ("rtgs", "RTGS"), ("UPI", "UPI")):
            with self.subTest(mode=mode):
                posted = self.receipt(amount="10", payment_mode=mode)
                cash = posted.entries[0]
                self.assertEqual((cash.account_head, cash.account_type), (mode, AccountType.BANK))
                self.assertEqual(get_voucher(self.firm, posted.voucher_id)["payment_mode"], label)

    def test_number_failure_posts_nothing(self):
        with patch.object(SequenceCounter.objects, "select_for_update", side_effect=DatabaseError("locked")):
            with self.assertRaises(SequenceGenerationError):
                self.receipt()
        self.assertFalse(LedgerEntry.objects.exists())
        self.assertFalse(AuditLog.objects.filter(object_type="Voucher").exists())
        self.assertTrue(self.receipt().voucher_no.endswith("/0001"))


class VoucherListingTests(TestCase):

    def setUp(self):
        self.firm = Firm.objects.create(name="Listing Co", slug="listing-co")
        self.acme = Party.objects.create(firm=self.firm, name="Acme")
        self.zenith = Party.objects.create(firm=self.firm, name="Zenith")
        self.first = create_voucher(self.firm, voucher_type="RECEIPT", party_id=self.acme.pk, amount="100",
                                    transaction_date="2025-05-01", narration="May advance")
        self.second = create_voucher(self.firm, voucher_type="PAYMENT", party_id=self.zenith.pk, amount="40",
                                     payment_mode="NEFT", transaction_date="2025-05-03")
        self.third = create_voucher(self.firm, voucher_type="RECEIPT", party_id=self.acme.pk, amount="70",
                                    transaction_date="2025-05-10")

    def test_rows_are_grouped_newest_first(self):
        page = list_vouchers(self.firm)

        self.assertEqual(page["total"], 3)
        self.assertEqual(page["total_pages"], 1)
        self.assertEqual([row["voucher_id"] for row in page["rows"]],
                         [self.third.voucher_id, self.second.voucher_id, self.first.voucher_id])
        payment = page["rows"][1]
        self.assertEqual(payment["amount"], Decimal("40.00"))
        self.assertEqual(payment["party_name"], "Zenith")
        self.assertEqual(payment["account_head"], "NEFT")
        self.assertEqual(payment["payment_mode"], "NEFT")

    def test_filters(self):
        self.assertEqual(list_vouchers(self.firm, voucher_type="payment")["total"], 1)
        self.assertEqual(list_vouchers(self.firm, party_id=self.acme.pk)["total"], 2)
        self.assertEqual(list_vouchers(self.firm, start="2025-05-02", end="2025-05-05")["total"], 1)

        found = list_vouchers(self.firm, search="advance")
        self.assertEqual([row["voucher_no"] for row in found["rows"]], [self.first.voucher_no])
        # the whole group is summed, not only the matching line
        self.assertEqual(found["rows"][0]["amount"], Decimal("100.00"))

    def test_pagination_and_reversed_vouchers(self):
        delete_voucher(self.firm, self.third.voucher_id)

        first_page = list_vouchers(self.firm, page=1, limit=1)
        self.assertEqual((first_page["total"], first_page["total_pages"]), (2, 2))
        self.assertEqual(first_page["rows"][0]["voucher_id"], self.second.voucher_id)
        self.assertEqual(list_vouchers(self.firm, page=5, limit=1)["rows"], [])
        with self.assertRaises(ValidationError):
            list_vouchers(self.firm, page=0)
        with self.assertRaises(ValidationError):
            list_vouchers(self.firm, voucher_type="CONTRA")

    def test_vouchers_for_party(self):
        lines = vouchers_for_party(self.firm, self.acme.pk)
        self.assertEqual([line.voucher_id for line in lines], [self.third.voucher_id, self.first.voucher_id])
        self.assertTrue(all(line.party_id == self.acme.pk for line in lines))

        other = Firm.objects.create(name="Other Co", slug="other-co")
        with self.assertRaises(PermissionDenied):
            vouchers_for_party(other, self.acme.pk)
