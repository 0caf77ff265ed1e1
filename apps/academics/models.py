# academics/models.py

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal
from utils.models import BaseModel
import re
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# ACADEMIC SESSION MODEL
# =============================================================================

class AcademicSession(BaseModel):
    """
    One term of an academic year, e.g. "Term 1 2024/2025".

    Assessment records and invoices are tied to a session. Only one session
    is current at a time.
    """

    year_name = models.CharField(
        "Academic Year",
        max_length=20,
        help_text="E.g., '2024', '2024-2025', '2024/2025'"
    )

    term_number = models.PositiveSmallIntegerField(
        "Term Number",
        validators=[MinValueValidator(1), MaxValueValidator(3)],
        db_index=True
    )

    term_name = models.CharField(
        "Term Name",
        max_length=50,
        blank=True,
        help_text="Leave blank to generate 'Term <n>'"
    )

    start_date = models.DateField("Start Date", db_index=True)
    end_date = models.DateField("End Date", db_index=True)

    is_current = models.BooleanField("Is Current Session", default=False, db_index=True)

    class Meta:
        ordering = ['-start_date']
        verbose_name = "Academic Session"
        verbose_name_plural = "Academic Sessions"
        constraints = [
            models.UniqueConstraint(fields=['year_name', 'term_number'], name='unique_session_year_term'),
        ]

    def __str__(self):
        return f"{self.term_name} {self.year_name}"

    def clean(self):
        super().clean()
        errors = {}

        if self.start_date and self.end_date and self.start_date >= self.end_date:
            errors['end_date'] = 'End date must be after start date'

        if '/' in self.year_name or '-' in self.year_name:
            if not re.match(r'^(20\d{2})[\/-](20\d{2})$', self.year_name):
                errors['year_name'] = 'Year name must be in format "YYYY-YYYY" or "YYYY/YYYY"'
        elif not re.match(r'^20\d{2}$', self.year_name):
            errors['year_name'] = 'Year name must be in format "YYYY"'

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if not self.term_name:
            self.term_name = f"Term {self.term_number}"

        self.full_clean()

        # Ensure only one current session
        if self.is_current:
            AcademicSession.objects.filter(is_current=True).exclude(pk=self.pk).update(is_current=False)

        super().save(*args, **kwargs)


# =============================================================================
# SUBJECT MODEL
# =============================================================================

class Subject(BaseModel):
    """Model for managing academic subjects"""
    name = models.CharField("Subject Name", max_length=100)
    code = models.CharField("Subject Code", max_length=20, unique=True)
    description = models.TextField("Description", blank=True)
    is_active = models.BooleanField("Is Active", default=True)

    pass_mark = models.DecimalField(
        "Pass Mark",
        max_digits=5,
        decimal_places=2,
        default=Decimal('50.00'),
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.code} - {self.name}"


# =============================================================================
# GRADE SCALES
# =============================================================================

class GradeScale(BaseModel):
    """
    Named set of grade bands covering 0-100. Exactly one scale is the
    default; create scales through ``GradeService.create_grade_scale`` so the
    bands are validated before anything is written.
    """
    name = models.CharField("Scale Name", max_length=100, unique=True)
    description = models.TextField("Description", blank=True)
    is_default = models.BooleanField("Is Default", default=False, db_index=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name}{' (default)' if self.is_default else ''}"

    def save(self, *args, **kwargs):
        if self.is_default:
            GradeScale.objects.filter(is_default=True).exclude(pk=self.pk).update(is_default=False)
        super().save(*args, **kwargs)


class GradeBand(BaseModel):
    """Inclusive percentage range mapped to a letter grade and grade point."""
    scale = models.ForeignKey(GradeScale, on_delete=models.CASCADE, related_name='bands')
    label = models.CharField("Grade", max_length=5)
    lower_bound = models.DecimalField(
        "Lower Bound (%)",
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    upper_bound = models.DecimalField(
        "Upper Bound (%)",
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    grade_point = models.DecimalField("Grade Point", max_digits=4, decimal_places=2)
    description = models.CharField("Description", max_length=100, blank=True)

    class Meta:
        ordering = ['scale', '-lower_bound']
        constraints = [
            models.UniqueConstraint(fields=['scale', 'label'], name='unique_band_label_per_scale'),
        ]

    def __str__(self):
        return f"{self.label} ({self.lower_bound}-{self.upper_bound})"

    def clean(self):
        super().clean()
        if self.lower_bound is not None and self.upper_bound is not None:
            if self.lower_bound > self.upper_bound:
                raise ValidationError({'upper_bound': 'Upper bound must not be below lower bound'})


# =============================================================================
# ASSESSMENT RECORDS
# =============================================================================

class AssessmentRecord(BaseModel):
    """One scored assessment (quiz, test, exam) for a student in a subject and term."""

    ASSESSMENT_TYPE_CHOICES = [
        ('CONTINUOUS', 'Continuous Assessment'),
        ('MIDTERM', 'Mid-Term Test'),
        ('EXAM', 'Examination'),
    ]

    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='assessment_records'
    )
    subject = models.ForeignKey(Subject, on_delete=models.PROTECT, related_name='assessment_records')
    academic_session = models.ForeignKey(
        AcademicSession,
        on_delete=models.PROTECT,
        related_name='assessment_records',
        verbose_name="Term"
    )
    assessment_type = models.CharField(
        "Assessment Type",
        max_length=20,
        choices=ASSESSMENT_TYPE_CHOICES,
        default='CONTINUOUS'
    )
    title = models.CharField("Title", max_length=100, blank=True)

    raw_score = models.DecimalField("Score", max_digits=7, decimal_places=2)
    max_score = models.DecimalField("Maximum Score", max_digits=7, decimal_places=2, default=Decimal('100.00'))
    weight = models.DecimalField(
        "Weight",
        max_digits=6,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Percentage (0-100) or fraction (0-1) of the subject grade; a subject's weights share one scale"
    )
    recorded_at = models.DateTimeField("Recorded At", null=True, blank=True)

    class Meta:
        ordering = ['academic_session', 'subject', 'recorded_at']
        indexes = [
            models.Index(fields=['student', 'academic_session']),
            models.Index(fields=['student', 'subject', 'academic_session']),
        ]

    def __str__(self):
        return f"{self.student_id} {self.subject_id}: {self.raw_score}/{self.max_score}"

    def clean(self):
        super().clean()
        errors = {}

        if self.max_score is not None and self.max_score <= 0:
            errors['max_score'] = 'Maximum score must be positive'
        if self.raw_score is not None:
            if self.raw_score < 0:
                errors['raw_score'] = 'Score cannot be negative'
            elif self.max_score is not None and self.raw_score > self.max_score:
                errors['raw_score'] = 'Score cannot exceed the maximum score'
        if self.weight is not None and self.weight < 0:
            errors['weight'] = 'Weight cannot be negative'

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if not self.recorded_at:
            from core.utils import get_school_current_time
            self.recorded_at = get_school_current_time()
        self.full_clean()
        super().save(*args, **kwargs)
