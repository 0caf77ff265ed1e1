# academics/services.py

"""
Grade services: assessment recording, subject averages, term reports and
grade scales.

Computation lives in ``academics.grading``; these services load records and
scales through ``AcademicRecordStore`` and shape the results for reports.
"""

from collections import OrderedDict
import logging

from core.exceptions import NoData

from . import grading
from .store import AcademicRecordStore

logger = logging.getLogger(__name__)


# =============================================================================
# GRADE SERVICE
# =============================================================================

class GradeService:
    """Weighted averages, grade bands and term reports for students."""

    def __init__(self, store=None):
        self.store = store or AcademicRecordStore()

    @staticmethod
    def compute_weighted_average(records):
        return grading.compute_weighted_average(records)

    def resolve_grade_band(self, percentage, scale=None):
        """
        Resolve a percentage against a grade scale.

        Args:
            percentage: value between 0 and 100
            scale: a ``grading.Scale``, a scale id, or None for the default scale

        Returns:
            grading.Band

        Raises:
            UnknownScale: scale id not found / no default scale
            MisconfiguredGradeScale: no band covers the percentage
        """
        if not isinstance(scale, grading.Scale):
            scale = self.store.get_grade_scale(scale)
        return grading.resolve_grade_band(percentage, scale)

    def compute_subject_average(self, student_id, subject_id, term_id, scale=None):
        """
        Average and grade for one subject.

        Raises:
            NoData: the student has no records for the subject in the term
        """
        records = self.store.get_assessment_records(student_id, subject_id, term_id)
        average = grading.compute_weighted_average(records)
        return {
            'subject_id': subject_id,
            'average': average,
            'band': self.resolve_grade_band(average, scale),
            'assessment_count': len(records),
        }

    def compute_term_report(self, student_id, term_id, scale=None):
        """
        Per-subject averages and grades for a student's term.

        Subjects without records are left out rather than reported as zero.
        A term with no records at all gives an empty report without looking
        up the grade scale.

        Returns:
            list of dicts: subject_id, subject_name, average, band, assessment_count

        Example:
            >>> GradeService().compute_term_report(student.pk, term.pk)
            [{'subject_id': ..., 'subject_name': 'Mathematics',
              'average': Decimal('68.00'), 'band': Band(label='B3', ...), ...}]
        """
        report, _scale = self._term_report(student_id, term_id, scale)
        return report

    def compute_term_summary(self, student_id, term_id, scale=None):
        """
        Term report plus the overall figure: the plain mean of subject
        averages, graded on the same scale. ``overall_average`` and
        ``overall_band`` are None when the student has no records.
        """
        subjects, scale = self._term_report(student_id, term_id, scale)
        try:
            overall = grading.mean_of_averages(row['average'] for row in subjects)
        except NoData:
            overall = None

        return {
            'student_id': student_id,
            'term_id': term_id,
            'subjects': subjects,
            'overall_average': overall,
            'overall_band': grading.resolve_grade_band(overall, scale) if overall is not None else None,
        }

    def _term_report(self, student_id, term_id, scale):
        by_subject = OrderedDict()
        for record in self.store.get_assessment_records(student_id, term_id=term_id):
            by_subject.setdefault(record.subject_id, []).append(record)

        if not by_subject:
            logger.debug(f"No assessment records for student {student_id}, term {term_id}")
            return [], scale

        if not isinstance(scale, grading.Scale):
            scale = self.store.get_grade_scale(scale)
        names = self.store.get_subject_names(list(by_subject))

        report = []
        for subject_id, records in by_subject.items():
            average = grading.compute_weighted_average(records)
            report.append({
                'subject_id': subject_id,
                'subject_name': names.get(subject_id, ''),
                'average': average,
                'band': grading.resolve_grade_band(average, scale),
                'assessment_count': len(records),
            })

        report.sort(key=lambda row: row['subject_name'])
        logger.debug(f"Term report for student {student_id}, term {term_id}: {len(report)} subjects")
        return report, scale

    # =========================================================================
    # RECORDING
    # =========================================================================

    def record_assessment(self, student_id, subject_id, term_id, raw_score, max_score=100,
                          weight=None, assessment_type=grading.ASSESSMENT_CONTINUOUS, title='',
                          recorded_at=None):
        """
        Store one scored assessment.

        The row goes through ``AssessmentRecord`` model validation, so a
        score outside 0..max_score, a non-positive maximum or a negative
        weight is refused and nothing is written.

        Returns:
            grading.AssessmentScore for the stored record

        Raises:
            UnknownStudent: no student with ``student_id``
            ValidationError: invalid score, weight, subject or term
        """
        raw_score = grading.to_decimal(raw_score)
        max_score = grading.to_decimal(max_score)
        if weight is not None:
            weight = grading.weight_value(weight)

        record = self.store.create_assessment_record(
            student_id=student_id,
            subject_id=subject_id,
            term_id=term_id,
            raw_score=raw_score,
            max_score=max_score,
            weight=weight,
            assessment_type=assessment_type,
            title=title,
            recorded_at=recorded_at,
        )
        logger.info(
            f"Recorded {assessment_type} assessment {raw_score}/{max_score} "
            f"for student {student_id}, subject {subject_id}, term {term_id}"
        )
        return record

    def create_grade_scale(self, name, bands, is_default=False, description=''):
        """
        Validate and store a grade scale.

        Args:
            bands: ``grading.Band`` objects or
                (label, lower, upper, grade point, description) rows

        Raises:
            MisconfiguredGradeScale: bands overlap, leave gaps or miss 0-100.
                Nothing is written.
        """
        bands = [band if isinstance(band, grading.Band) else grading.build_bands([band])[0] for band in bands]
        bands = grading.validate_grade_bands(bands)
        scale = self.store.create_grade_scale(name, bands, is_default=is_default, description=description)
        logger.info(f"Created grade scale '{name}' with {len(bands)} bands (default={is_default})")
        return scale
