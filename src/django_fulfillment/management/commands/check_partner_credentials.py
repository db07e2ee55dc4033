"""Management command to warn on and enforce phlebotomist credential expiry."""

from django.core.management.base import BaseCommand

from django_fulfillment.services import check_partner_credentials


class Command(BaseCommand):
    help = 'Notify phlebotomists with credentials expiring within 30 days and suspend lapsed ones'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report affected phlebotomists without notifying or suspending'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        report = check_partner_credentials(dry_run=dry_run)

        expiring = len(report['expiring'])
        suspended = len(report['suspended'])
        if dry_run:
            self.stdout.write(
                f'Would notify {expiring} expiring and suspend {suspended} expired phlebotomists'
            )
            return

        self.stdout.write(
            self.style.SUCCESS(
                f'Notified {expiring} expiring, suspended {suspended} expired phlebotomists'
            )
        )
