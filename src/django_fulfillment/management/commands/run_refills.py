"""Management command to fire due auto-refills."""

from django.core.management.base import BaseCommand
from django.utils import timezone

from django_fulfillment.refills import due_configs, tick


class Command(BaseCommand):
    help = 'Create pharmacy orders for every auto-refill that is due'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List due refill configs without creating orders'
        )

    def handle(self, *args, **options):
        now = timezone.now()

        if options['dry_run']:
            configs = list(due_configs(now).order_by('next_refill_date'))
            self.stdout.write(f'Would fire {len(configs)} due refills')
            for config in configs:
                self.stdout.write(f'  - {config.pk}: due {config.next_refill_date}')
            return

        created = tick(now)
        self.stdout.write(
            self.style.SUCCESS(f'Created {len(created)} refill orders')
        )
