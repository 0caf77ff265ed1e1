# academics/store.py

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from core.exceptions import UnknownScale, UnknownStudent
from schooldesk.managers import get_active_db

from .grading import AssessmentScore, Band, Scale
from .models import AssessmentRecord, GradeBand, GradeScale, Subject

logger = logging.getLogger(__name__)


def _record_snapshot(record):
    return AssessmentScore(
        student_id=record.student_id,
        subject_id=record.subject_id,
        term_id=record.academic_session_id,
        raw_score=record.raw_score,
        max_score=record.max_score,
        weight=record.weight,
        assessment_type=record.assessment_type,
        recorded_at=record.recorded_at,
    )


def _scale_snapshot(scale):
    bands = tuple(
        Band(
            label=band.label,
            lower_bound=band.lower_bound,
            upper_bound=band.upper_bound,
            grade_point=band.grade_point,
            description=band.description,
        )
        for band in scale.bands.order_by('lower_bound')
    )
    return Scale(id=scale.pk, name=scale.name, bands=bands, is_default=scale.is_default)


class AcademicRecordStore:
    """ORM reads and writes for the grade engine, returned as plain values."""

    def atomic(self):
        return transaction.atomic(using=get_active_db())

    def _require_student(self, student_id):
        from students.models import Student

        try:
            exists = Student.objects.filter(pk=student_id).exists()
        except ValidationError:
            exists = False
        if not exists:
            raise UnknownStudent(student_id)

    def get_assessment_records(self, student_id, subject_id=None, term_id=None):
        """
        Assessment records for a student, optionally narrowed to a subject
        and term, oldest first.

        Raises:
            UnknownStudent: no student with ``student_id``
        """
        self._require_student(student_id)

        records = AssessmentRecord.objects.filter(student_id=student_id)
        if subject_id is not None:
            records = records.filter(subject_id=subject_id)
        if term_id is not None:
            records = records.filter(academic_session_id=term_id)

        return [_record_snapshot(record) for record in records.order_by('recorded_at', 'created_at')]

    def create_assessment_record(self, student_id, subject_id, term_id, raw_score, max_score,
                                 weight=None, assessment_type='CONTINUOUS', title='', recorded_at=None):
        """
        Insert one assessment record. ``AssessmentRecord.save`` runs
        ``full_clean``, so invalid scores raise ValidationError unsaved.

        Raises:
            UnknownStudent: no student with ``student_id``
        """
        self._require_student(student_id)
        with self.atomic():
            record = AssessmentRecord.objects.create(
                student_id=student_id,
                subject_id=subject_id,
                academic_session_id=term_id,
                raw_score=raw_score,
                max_score=max_score,
                weight=weight,
                assessment_type=assessment_type,
                title=title,
                recorded_at=recorded_at,
            )
        return _record_snapshot(record)

    def get_subject_names(self, subject_ids):
        return dict(Subject.objects.filter(pk__in=subject_ids).values_list('pk', 'name'))

    def get_grade_scale(self, scale_id=None):
        """
        Grade scale with its bands; the default scale when ``scale_id`` is None.

        Raises:
            UnknownScale: no such scale, or no default configured
        """
        try:
            if scale_id is None:
                scale = GradeScale.objects.get(is_default=True)
            else:
                scale = GradeScale.objects.get(pk=scale_id)
        except (GradeScale.DoesNotExist, ValidationError):
            raise UnknownScale(scale_id or 'default')
        return _scale_snapshot(scale)

    def create_grade_scale(self, name, bands, is_default=False, description=''):
        with self.atomic():
            scale = GradeScale.objects.create(name=name, description=description, is_default=is_default)
            for band in bands:
                GradeBand.objects.create(
                    scale=scale,
                    label=band.label,
                    lower_bound=band.lower_bound,
                    upper_bound=band.upper_bound,
                    grade_point=band.grade_point,
                    description=band.description,
                )
        return _scale_snapshot(scale)
