# students/models.py

from django.db import models
from django.core.exceptions import ValidationError
from django_countries.fields import CountryField
from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# STUDENT MODEL
# =============================================================================

class Student(BaseModel):
    """
    A learner who can be billed and graded. ``student_number`` is filled in
    by ``students.signals`` on first save and never changes afterwards.
    """

    STATUS_ACTIVE = 'ACTIVE'

    ENROLLMENT_STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        ('SUSPENDED', 'Suspended'),
        ('GRADUATED', 'Graduated'),
        ('TRANSFERRED', 'Transferred'),
        ('WITHDRAWN', 'Withdrawn'),
    ]

    GENDER_CHOICES = [('M', 'Male'), ('F', 'Female')]

    student_number = models.CharField(
        "Student Number",
        max_length=30,
        unique=True,
        blank=True,
        help_text="e.g. STU000001"
    )
    admission_date = models.DateField("Admission Date", null=True, blank=True)
    enrollment_status = models.CharField(
        "Enrollment Status",
        max_length=20,
        choices=ENROLLMENT_STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True,
    )
    class_level = models.CharField(
        "Class",
        max_length=30,
        blank=True,
        help_text="e.g. 10th Grade, 12th Grade (WASSCE candidates)"
    )

    # Personal details
    first_name = models.CharField("First Name", max_length=50)
    middle_name = models.CharField("Middle Name", max_length=50, blank=True)
    last_name = models.CharField("Last Name", max_length=50)
    date_of_birth = models.DateField("Date of Birth", null=True, blank=True)
    gender = models.CharField("Gender", max_length=1, choices=GENDER_CHOICES, blank=True)
    nationality = CountryField("Nationality", default='LR', blank=True)

    # Billing contact for fee invoices and reminders
    guardian_name = models.CharField("Guardian Name", max_length=100, blank=True)
    guardian_phone = models.CharField("Guardian Phone", max_length=20, blank=True)
    phone = models.CharField("Phone", max_length=20, blank=True)
    email = models.EmailField("Email", blank=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        verbose_name = "Student"
        verbose_name_plural = "Students"
        indexes = [models.Index(fields=['last_name', 'first_name'])]

    def __str__(self):
        return f"{self.student_number} {self.get_full_name()}"

    @property
    def full_name(self):
        return self.get_full_name()

    def get_full_name(self):
        names = [self.first_name, self.middle_name, self.last_name]
        return ' '.join(name for name in names if name)

    def is_active(self):
        return self.enrollment_status == self.STATUS_ACTIVE

    def clean(self):
        super().clean()
        if self.date_of_birth and self.admission_date and self.date_of_birth >= self.admission_date:
            raise ValidationError({'date_of_birth': "Date of birth must be before the admission date"})
