import datetime
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ..models import Firm, LedgerEntry, Party
from ..services import (create_bill, create_journal_entry,
                        create_or_merge_stock, create_voucher)
from ..services.billing import cancel_bill
from ..services.reports import (get_account_balance, get_account_statement,
                                get_account_suggestions,
                                get_account_type_summaries,
                                get_ledger_accounts, get_party_balance,
                                get_party_item_history, get_trial_balance,
                                trial_balance_totals, unbalanced_groups)


class ReportTests(TestCase):

    def setUp(self):
        self.today = timezone.localdate()
        self.firm = Firm.objects.create(name="Report Co", slug="report-co", state_code="27")
        self.party = Party.objects.create(firm=self.firm, name="Acme Retail", state_code="27")
        stock, _ = create_or_merge_stock(self.firm, name="Ball Bearing 6204", hsn="8482", rate="100", qty=10)
        self.bill = create_bill(self.firm, {
            "meta": {"billDate": self.today.isoformat(), "billType": "intra-state"},
            "party": {"id": self.party.pk},
            "cart": [{"stockId": stock.pk, "qty": 2, "rate": "100", "grate": "18"}],
        })
        create_voucher(self.firm, voucher_type="RECEIPT", party_id=self.party.pk, amount=self.bill.net_total)
        create_journal_entry(self.firm, entries=[
            {"account_head": "Rent", "account_type": "EXPENSE", "debit_amount": 1000},
            {"account_head": "Cash", "account_type": "CASH", "credit_amount": 1000},
        ], narration="Shop rent")

    def test_account_balance(self):
        cash = get_account_balance(self.firm, "Cash")
        self.assertEqual(cash["total_debit"], Decimal("236.00"))
        self.assertEqual(cash["total_credit"], Decimal("1000.00"))
        self.assertEqual(cash["balance"], Decimal("-764.00"))
        self.assertEqual((cash["balance_type"], cash["balance_amount"]), ("Cr", Decimal("764.00")))

        before = get_account_balance(self.firm, "Cash", as_of=self.today - datetime.timedelta(days=1))
        self.assertEqual(before["balance"], Decimal("0"))

    def test_trial_balance_agrees(self):
        rows = get_trial_balance(self.firm, self.today, self.today)
        by_head = {row["account_head"]: row for row in rows}

        self.assertEqual(by_head["Sales"]["credit"], Decimal("200.00"))
        self.assertEqual(by_head["Rent"]["debit"], Decimal("1000.00"))
        self.assertEqual(by_head["Cash"]["credit"], Decimal("764.00"))
        self.assertEqual(by_head["Acme Retail"]["debit"], Decimal("0"))
        totals = trial_balance_totals(rows)
        self.assertEqual(totals["debit"], totals["credit"])

    def test_trial_balance_outside_period_is_empty(self):
        last_year = self.today - datetime.timedelta(days=400)
        self.assertEqual(get_trial_balance(self.firm, last_year, last_year), [])

    def test_account_statement_running_balance(self):
        statement = get_account_statement(self.firm, "Cash", self.today, self.today)
        self.assertEqual(statement["opening_balance"], Decimal("0"))
        self.assertEqual([line["balance"] for line in statement["lines"]], [Decimal("236.00"), Decimal("-764.00")])
        self.assertEqual(statement["closing_balance"], Decimal("-764.00"))

    def test_party_balance_settled(self):
        balance = get_party_balance(self.firm, self.party.pk)
        self.assertEqual(balance["party_name"], "Acme Retail")
        self.assertEqual(balance["total_debit"], Decimal("236.00"))
        self.assertEqual(balance["balance"], Decimal("0.00"))

    def test_suggestions(self):
        self.assertEqual(get_account_suggestions(self.firm, "ca"), ["Cash"])
        self.assertEqual(get_account_suggestions(self.firm, "  "), [])
        self.assertEqual(len(get_account_suggestions(self.firm, "s", limit=1)), 1)

    def test_chart_and_type_summaries(self):
        accounts = {row["account_head"]: row for row in get_ledger_accounts(self.firm)}
        self.assertEqual(accounts["Rent"]["balance_type"], "Dr")
        self.assertEqual(accounts["Sales"]["balance_amount"], Decimal("200.00"))

        income = next(row for row in get_account_type_summaries(self.firm) if row["account_type"] == "INCOME")
        self.assertEqual(income["account_count"], 1)
        self.assertEqual(income["balance"], Decimal("-200.00"))

    def test_party_item_history_skips_cancelled_bills(self):
        history = get_party_item_history(self.firm, self.party.pk)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["item_name"], "Ball Bearing 6204")
        self.assertEqual(history[0]["qty"], Decimal("2"))

        cancel_bill(self.firm, self.bill.pk)
        self.assertEqual(get_party_item_history(self.firm, self.party.pk), [])

    def test_unbalanced_groups(self):
        self.assertEqual(unbalanced_groups(self.firm), [])
        LedgerEntry.objects.create(
            firm=self.firm, voucher_id=999, voucher_type="JOURNAL", voucher_no="JV/BROKEN",
            account_head="Suspense", debit_amount=Decimal("5.00"), transaction_date=self.today,
        )
        self.assertEqual(unbalanced_groups(self.firm), [999])
