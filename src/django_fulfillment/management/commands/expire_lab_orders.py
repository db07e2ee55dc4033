"""Management command to expire lab orders nobody booked."""

from django.core.management.base import BaseCommand
from django.utils import timezone

from django_fulfillment.conf import get_setting
from django_fulfillment.services import expire_stale_lab_orders, stale_lab_orders


class Command(BaseCommand):
    help = 'Expire lab orders still waiting for a slot booking after the expiry window'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Expire orders older than this many days (default: FULFILLMENT_LAB_ORDER_EXPIRY_DAYS)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show count of orders that would be expired without expiring them'
        )

    def handle(self, *args, **options):
        days = options['days']
        if days is None:
            days = get_setting('LAB_ORDER_EXPIRY_DAYS')
        now = timezone.now()

        if options['dry_run']:
            count = stale_lab_orders(now, days).count()
            self.stdout.write(
                f'Would expire {count} lab orders (unbooked for more than {days} days)'
            )
            return

        expired = expire_stale_lab_orders(now, days)
        self.stdout.write(
            self.style.SUCCESS(f'Expired {len(expired)} lab orders')
        )
