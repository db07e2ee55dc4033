"""Management command to clean up old command idempotency keys."""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from django_fulfillment.models import IdempotencyKey


class Command(BaseCommand):
    help = 'Delete old idempotency keys to prevent unbounded table growth'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=7,
            help='Delete keys older than this many days (default: 7)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show count of keys that would be deleted without actually deleting'
        )

    def handle(self, *args, **options):
        days = options['days']
        cutoff = timezone.now() - timedelta(days=days)

        # In-flight keys are never deleted
        qs = IdempotencyKey.objects.filter(created_at__lt=cutoff).exclude(
            state=IdempotencyKey.State.PROCESSING
        )
        count = qs.count()

        if options['dry_run']:
            self.stdout.write(f'Would delete {count} idempotency keys (older than {days} days)')
            return

        deleted, _ = qs.delete()
        self.stdout.write(
            self.style.SUCCESS(f'Deleted {deleted} old idempotency keys')
        )
