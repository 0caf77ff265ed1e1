# core/management/commands/setup_school.py

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from core.models import FinancialSettings, SchoolConfiguration


class Command(BaseCommand):
    help = 'Create or update the school configuration and financial settings singletons'

    def add_arguments(self, parser):
        parser.add_argument('--name', help='School name')
        parser.add_argument('--timezone', help='Operational timezone, e.g. Africa/Monrovia')
        parser.add_argument('--currency', help='Primary currency (ISO 4217), e.g. LRD')
        parser.add_argument('--secondary-currency', help='Secondary currency (ISO 4217), e.g. USD')
        parser.add_argument(
            '--allow-overpayment',
            action='store_true',
            help='Accept payments above the outstanding invoice balance',
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.WARNING('Setting up school configuration...'))

        try:
            with transaction.atomic():
                config = SchoolConfiguration.get_instance()
                if options['name']:
                    config.school_name = options['name']
                if options['timezone']:
                    config.operational_timezone = options['timezone']
                config.full_clean()
                config.save()

                financial = FinancialSettings.get_instance()
                if options['currency']:
                    financial.school_currency = options['currency']
                if options['secondary_currency']:
                    financial.secondary_currency = options['secondary_currency']
                if options['allow_overpayment']:
                    financial.allow_overpayment = True
                financial.full_clean()
                financial.save()
        except ValidationError as e:
            raise CommandError(f"Invalid configuration: {e}")

        self.stdout.write(self.style.SUCCESS(
            f"School configured: timezone {config.operational_timezone}, "
            f"currencies {', '.join(financial.get_currencies())}"
        ))
