from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand

from shop.checkout import sweep_stale_orders


class Command(BaseCommand):
    help = "Cancel pending orders whose payment callback never arrived."

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=getattr(settings, "PENDING_ORDER_TIMEOUT_MINUTES", 30),
            help="Age after which a pending order without payment is considered abandoned.",
        )

    def handle(self, *args, **options):
        cancelled = sweep_stale_orders(older_than=timedelta(minutes=options["minutes"]))
        self.stdout.write(self.style.SUCCESS(f"Cancelled {cancelled} stale pending order(s)."))
