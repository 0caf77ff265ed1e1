# fees/management/commands/refresh_invoice_statuses.py

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from fees.services import LedgerService


class Command(BaseCommand):
    help = 'Recompute stored invoice statuses from payment history (e.g. mark overdue invoices)'

    def add_arguments(self, parser):
        parser.add_argument('--as-of', help='Evaluate as of this date (YYYY-MM-DD); defaults to today')

    def handle(self, *args, **options):
        today = None
        if options['as_of']:
            try:
                today = date.fromisoformat(options['as_of'])
            except ValueError:
                raise CommandError(f"Invalid date '{options['as_of']}', expected YYYY-MM-DD")

        changed = LedgerService().refresh_invoice_statuses(today=today)
        self.stdout.write(self.style.SUCCESS(f"Updated status of {changed} invoice(s)"))
