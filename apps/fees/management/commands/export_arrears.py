# fees/management/commands/export_arrears.py

from django.core.management.base import BaseCommand

from core.utils import get_school_today
from fees.exports import build_arrears_workbook
from fees.services import LedgerService, total_outstanding


class Command(BaseCommand):
    help = 'Write the arrears report to an Excel file'

    def add_arguments(self, parser):
        parser.add_argument('output', help='Path of the .xlsx file to write')

    def handle(self, *args, **options):
        today = get_school_today()
        rows = LedgerService().compute_arrears(today=today)

        build_arrears_workbook(rows, as_of=today).save(options['output'])

        self.stdout.write(self.style.SUCCESS(
            f"Wrote {len(rows)} invoice(s) in arrears to {options['output']} "
            f"(LRD {total_outstanding(rows, 'LRD')}, USD {total_outstanding(rows, 'USD')})"
        ))
