# students/signals.py

"""
Student signals: admission date default, date-of-birth check and
student number allocation, all before the first INSERT.
"""

from django.core.exceptions import ValidationError
from django.db.models.signals import pre_save
from django.dispatch import receiver
import logging

from .models import Student

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Student)
def validate_student_dates(sender, instance, **kwargs):
    from core.utils import get_school_today

    today = get_school_today()
    if instance.date_of_birth and instance.date_of_birth > today:
        raise ValidationError("Date of birth cannot be in the future.")
    instance.admission_date = instance.admission_date or today


@receiver(pre_save, sender=Student)
def assign_student_number(sender, instance, **kwargs):
    """
    STU000001 by default; the admission year is embedded when
    ``SchoolConfiguration.include_year_in_student_number`` is on.

    Registered after ``validate_student_dates``, so a rejected student never
    consumes a number.
    """
    if instance.student_number:
        return

    from core.sequences import KIND_STUDENT, allocate_sequential_number

    instance.student_number = allocate_sequential_number(KIND_STUDENT, year=instance.admission_date.year)
    logger.info(f"Assigned student number {instance.student_number} to {instance.get_full_name()}")
