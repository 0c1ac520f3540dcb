from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from ledger_core.models import Firm, Party
from ledger_core.services import (create_bill, create_or_merge_stock,
                                  create_voucher)

User = get_user_model()


class Command(BaseCommand):
    help = "Create a demo firm, user, party, stock item, one sales bill and one receipt."

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--firm-name",
            default="Demo Traders",
            help="Name of the demo firm to create.",
        )
        parser.add_argument("--username", default="demo", help="Username for the demo user.")
        parser.add_argument("--password", default="demo123", help="Password for the demo user.")

    def _unique_slug(self, name, max_tries=100):
        # "Demo Traders" -> "demo-traders" -> "demo-traders-1" ...
        base = slugify(name) or "firm"
        slug = base
        i = 1
        while Firm.objects.filter(slug=slug).exists():
            slug = f"{base}-{i}"
            i += 1
            if i > max_tries:
                raise CommandError("Couldn't generate unique slug")
        return slug

    @transaction.atomic
    def handle(self, *args, **options):
        firm_name = options["firm_name"]
        username = options["username"]
        password = options["password"]

        # 1. Firm
        firm, created = Firm.objects.get_or_create(
            name=firm_name,
            defaults={"slug": self._unique_slug(firm_name), "state": "Maharashtra", "state_code": "27"},
        )
        if not created and firm.bills.exists():
            raise CommandError(f"Firm {firm} already has bills; pick another --firm-name.")
        self.stdout.write(self.style.SUCCESS(f"Created firm: {firm}"))

        # 2. User
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"email": f"{username}@example.com"},
        )
        if created:
            user.set_password(password)
            user.save()
        self.stdout.write(self.style.SUCCESS(f"Created user: {user.username}"))

        # 3. Customer
        party, _ = Party.objects.get_or_create(
            firm=firm,
            name="Acme Retail",
            defaults={"state": "Maharashtra", "state_code": "27", "gstin": "27AAACA1234A1Z5"},
        )
        self.stdout.write(self.style.SUCCESS(f"Created party: {party}"))

        # 4. Stock with two batches
        stock, _ = create_or_merge_stock(
            firm,
            name="Ball Bearing 6204",
            hsn="8482",
            uom="PCS",
            rate=Decimal("100.00"),
            gst_rate=Decimal("18"),
            batches=[
                {"batch": "B-2401", "qty": 50, "rate": "100.00"},
                {"batch": None, "qty": 20, "rate": "100.00"},
            ],
            user=user,
        )
        self.stdout.write(self.style.SUCCESS(f"Created stock: {stock}"))

        # 5. Sales bill
        bill = create_bill(
            firm,
            {
                "meta": {"billDate": timezone.localdate().isoformat(), "billType": "intra-state"},
                "party": {"id": party.pk},
                "cart": [
                    {"stockId": stock.pk, "batch": "B-2401", "item": stock.name, "hsn": stock.hsn,
                     "qty": 2, "uom": "PCS", "rate": "100.00", "grate": "18"},
                ],
            },
            user=user,
        )
        self.stdout.write(self.style.SUCCESS(f"Created bill: {bill.bill_no} (net {bill.net_total})"))

        # 6. Receipt against the bill
        receipt = create_voucher(
            firm,
            voucher_type="RECEIPT",
            party_id=party.pk,
            amount=bill.net_total,
            payment_mode="Cash",
            user=user,
        )
        self.stdout.write(self.style.SUCCESS(f"Created receipt: {receipt.voucher_no}"))
        self.stdout.write(self.style.SUCCESS("Demo firm setup complete!"))
