from django.core.management.base import BaseCommand
from django.db import transaction

from apps.common.exceptions import StateConflictError
from apps.orders.models import Order
from apps.payments.services import recompute_order_payment


class Command(BaseCommand):
    help = "Re-derive amount_paid and payment_status from approved payment verifications."

    def add_arguments(self, parser):
        parser.add_argument("--order", type=int, help="Only recompute this order id.")

    def handle(self, *args, **options):
        queryset = Order.objects.order_by("id")
        if options["order"]:
            queryset = queryset.filter(pk=options["order"])

        changed = 0
        failed = 0
        for order_id in queryset.values_list("id", flat=True):
            try:
                with transaction.atomic():
                    locked = Order.objects.select_for_update().get(pk=order_id)
                    before = (locked.amount_paid, locked.payment_status)
                    recompute_order_payment(locked)
                    if (locked.amount_paid, locked.payment_status) != before:
                        changed += 1
            except StateConflictError as exc:
                failed += 1
                self.stderr.write(f"Order {order_id}: {exc.detail}")

        self.stdout.write(self.style.SUCCESS(f"Orders updated: {changed}. Orders skipped: {failed}."))
