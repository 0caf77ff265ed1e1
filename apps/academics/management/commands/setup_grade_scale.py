# academics/management/commands/setup_grade_scale.py

from django.core.management.base import BaseCommand

from academics.grading import WASSCE_GRADE_BANDS
from academics.models import GradeScale
from academics.services import GradeService


class Command(BaseCommand):
    help = 'Create the WASSCE grade scale and make it the default'

    def add_arguments(self, parser):
        parser.add_argument('--name', default='WASSCE', help='Scale name (default: WASSCE)')
        parser.add_argument(
            '--no-default',
            action='store_true',
            help='Create the scale without making it the default',
        )

    def handle(self, *args, **options):
        name = options['name']
        make_default = not options['no_default']

        existing = GradeScale.objects.filter(name=name).first()
        if existing:
            if make_default and not existing.is_default:
                existing.is_default = True
                existing.save()
                self.stdout.write(self.style.SUCCESS(f"Grade scale '{name}' is now the default"))
            else:
                self.stdout.write(self.style.WARNING(f"Grade scale '{name}' already exists"))
            return

        scale = GradeService().create_grade_scale(
            name,
            WASSCE_GRADE_BANDS,
            is_default=make_default,
            description='West African Senior School Certificate Examination grading',
        )
        self.stdout.write(self.style.SUCCESS(
            f"Created grade scale '{scale.name}' with {len(scale.bands)} bands"
        ))
