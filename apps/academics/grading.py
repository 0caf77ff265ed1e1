# academics/grading.py

"""
Grade engine: weighted assessment averages and grade-band lookup.

Pure computation over plain values. Records and scales come from
``academics.store``; nothing here touches the database.

Percentages and averages are ``Decimal`` values rounded half-up to two
decimal places, so the same inputs give the same figure on every platform.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging

from django.core.exceptions import ValidationError

from core.exceptions import MisconfiguredGradeScale, NoData

logger = logging.getLogger(__name__)

GRADE_PRECISION = Decimal('0.01')
ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')

ASSESSMENT_CONTINUOUS = 'CONTINUOUS'
ASSESSMENT_MIDTERM = 'MIDTERM'
ASSESSMENT_EXAM = 'EXAM'

# (label, lower, upper, grade point, description)
WASSCE_GRADE_BANDS = (
    ('A1', '75.00', '100.00', 1, 'Excellent'),
    ('B2', '70.00', '74.99', 2, 'Very Good'),
    ('B3', '65.00', '69.99', 3, 'Good'),
    ('C4', '60.00', '64.99', 4, 'Credit'),
    ('C5', '55.00', '59.99', 5, 'Credit'),
    ('C6', '50.00', '54.99', 6, 'Credit'),
    ('D7', '45.00', '49.99', 7, 'Pass'),
    ('E8', '40.00', '44.99', 8, 'Pass'),
    ('F9', '0.00', '39.99', 9, 'Fail'),
)


def to_decimal(value):
    """Convert ints, floats and strings to Decimal without float artefacts."""
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"'{value}' is not a number")
    if not number.is_finite():
        raise ValidationError(f"'{value}' is not a finite number")
    return number


def round_half_up(value, precision=GRADE_PRECISION):
    return to_decimal(value).quantize(precision, rounding=ROUND_HALF_UP)


def weight_value(weight):
    """Raw weight as a Decimal; ``None`` counts as zero."""
    if weight is None:
        return ZERO
    weight = to_decimal(weight)
    if weight < 0:
        raise ValidationError(f"Assessment weight cannot be negative (got {weight})")
    return weight


def normalize_weights(weights):
    """
    Weights of one record set as fractions of one.

    The scale is decided for the whole set: if any weight is above 1 every
    weight is a percentage (40 -> 0.40), otherwise they are all fractions
    already. ``None`` counts as zero.

    Example:
        >>> normalize_weights([1, 99])
        [Decimal('0.01'), Decimal('0.99')]
    """
    weights = [weight_value(weight) for weight in weights]
    if any(weight > ONE for weight in weights):
        return [weight / HUNDRED for weight in weights]
    return weights


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class AssessmentScore:
    """One scored assessment for a student, subject and term."""

    student_id: object
    subject_id: object
    term_id: object
    raw_score: Decimal
    max_score: Decimal
    weight: Decimal = None
    assessment_type: str = ASSESSMENT_CONTINUOUS
    recorded_at: object = None

    def validate(self):
        raw = to_decimal(self.raw_score)
        maximum = to_decimal(self.max_score)
        if maximum <= 0:
            raise ValidationError(f"Maximum score must be positive (got {maximum})")
        if raw < 0 or raw > maximum:
            raise ValidationError(f"Score {raw} is outside 0..{maximum}")
        weight_value(self.weight)

    @property
    def percentage(self):
        """Unrounded percentage of the maximum score."""
        return to_decimal(self.raw_score) / to_decimal(self.max_score) * HUNDRED


@dataclass(frozen=True)
class Band:
    label: str
    lower_bound: Decimal
    upper_bound: Decimal
    grade_point: Decimal
    description: str = ''

    def contains(self, percentage):
        return self.lower_bound <= percentage <= self.upper_bound


@dataclass(frozen=True)
class Scale:
    id: object
    name: str
    bands: tuple = field(default_factory=tuple)
    is_default: bool = False


# =============================================================================
# AVERAGES
# =============================================================================

def compute_weighted_average(records):
    """
    Weighted percentage average of a set of assessment records.

    Each record contributes ``raw_score / max_score * 100`` weighted by its
    weight. Weights are normalized together (see ``normalize_weights``);
    when every weight is zero or missing each record counts once.

    Args:
        records: iterable of ``AssessmentScore`` for one student, subject and term

    Returns:
        Decimal: average rounded half-up to 2 decimal places

    Raises:
        NoData: ``records`` is empty
        ValidationError: a record has an impossible score or negative weight

    Example:
        >>> compute_weighted_average([
        ...     AssessmentScore(s, m, t, 80, 100, 40),
        ...     AssessmentScore(s, m, t, 60, 100, 60),
        ... ])
        Decimal('68.00')
    """
    records = list(records)
    if not records:
        raise NoData("No assessment records to average")

    for record in records:
        record.validate()

    weights = normalize_weights(record.weight for record in records)
    if sum(weights, ZERO) == ZERO:
        weights = [ONE] * len(records)

    weighted_sum = sum(
        (record.percentage * weight for record, weight in zip(records, weights)),
        ZERO,
    )
    return round_half_up(weighted_sum / sum(weights, ZERO))


def mean_of_averages(averages):
    """Unweighted mean of per-subject averages; every subject counts once."""
    averages = [to_decimal(a) for a in averages]
    if not averages:
        raise NoData("No subject averages to combine")
    return round_half_up(sum(averages, ZERO) / len(averages))


# =============================================================================
# GRADE BANDS
# =============================================================================

def resolve_grade_band(percentage, scale):
    """
    Band of ``scale`` containing ``percentage``.

    The percentage is rounded to 2 decimal places first, matching the
    resolution bands are defined at. When bands overlap the one with the
    lowest lower bound wins.

    Raises:
        MisconfiguredGradeScale: no band covers the percentage
    """
    value = round_half_up(percentage)
    for band in sorted(scale.bands, key=lambda b: b.lower_bound):
        if band.contains(value):
            return band

    logger.error(f"Grade scale '{scale.name}' has no band covering {value}")
    raise MisconfiguredGradeScale(
        f"Grade scale '{scale.name}' has no band covering {value}",
        code='band_not_found',
    )


def validate_grade_bands(bands):
    """
    Check that ``bands`` cover 0-100 exactly once at 0.01 resolution.

    Returns the bands sorted from lowest to highest. Raises
    ``MisconfiguredGradeScale`` listing every problem found.
    """
    bands = sorted(bands, key=lambda b: b.lower_bound)
    errors = []

    if not bands:
        raise MisconfiguredGradeScale("A grade scale needs at least one band", code='empty_scale')

    labels = [band.label for band in bands]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        errors.append(f"Duplicate band labels: {', '.join(duplicates)}")

    for band in bands:
        if band.lower_bound > band.upper_bound:
            errors.append(f"Band {band.label}: lower bound {band.lower_bound} is above upper bound {band.upper_bound}")
        if band.lower_bound < ZERO or band.upper_bound > HUNDRED:
            errors.append(f"Band {band.label}: bounds must lie within 0-100")

    if bands[0].lower_bound != ZERO:
        errors.append(f"Lowest band {bands[0].label} must start at 0 (starts at {bands[0].lower_bound})")
    if bands[-1].upper_bound != HUNDRED:
        errors.append(f"Highest band {bands[-1].label} must end at 100 (ends at {bands[-1].upper_bound})")

    for previous, current in zip(bands, bands[1:]):
        expected = previous.upper_bound + GRADE_PRECISION
        if current.lower_bound < expected:
            errors.append(f"Bands {previous.label} and {current.label} overlap")
        elif current.lower_bound > expected:
            errors.append(
                f"Gap between {previous.label} ({previous.upper_bound}) and "
                f"{current.label} ({current.lower_bound})"
            )

    if errors:
        raise MisconfiguredGradeScale(errors, code='invalid_scale')
    return bands


def build_bands(rows):
    """``Band`` objects from (label, lower, upper, grade point, description) rows."""
    return [
        Band(
            label=label,
            lower_bound=to_decimal(lower),
            upper_bound=to_decimal(upper),
            grade_point=to_decimal(grade_point),
            description=description,
        )
        for label, lower, upper, grade_point, description in rows
    ]
