# core/sequences.py

"""
Human-readable sequential numbers for invoices, receipts and students.

Format: ``<PREFIX><optional year><zero-padded sequence>``, for example
``INV2025000123``, ``REC2025000001`` or ``STU000001``. Numbers are persisted
and printed on documents, so the format of a deployment must not change once
numbers have been issued.
"""

from dataclasses import dataclass
import logging

from core.exceptions import AllocationConflict
from core.models import NumberSequence

logger = logging.getLogger(__name__)

KIND_INVOICE = NumberSequence.KIND_INVOICE
KIND_RECEIPT = NumberSequence.KIND_RECEIPT
KIND_STUDENT = NumberSequence.KIND_STUDENT

SEQUENCE_KINDS = (KIND_INVOICE, KIND_RECEIPT, KIND_STUDENT)

GLOBAL_SCOPE = 'ALL'
MAX_ALLOCATION_ATTEMPTS = 5


@dataclass(frozen=True)
class NumberingFormat:
    prefix: str
    include_year: bool
    padding: int = 6

    def format(self, sequence, scope):
        year = scope if self.include_year else ''
        return f"{self.prefix}{year}{sequence:0{self.padding}d}"


def load_numbering_format(kind):
    """Numbering format for ``kind`` from the school's settings singletons."""
    from core.models import FinancialSettings, SchoolConfiguration

    if kind == KIND_STUDENT:
        config = SchoolConfiguration.get_instance()
        padding = FinancialSettings.get_instance().sequence_padding
        return NumberingFormat(config.student_number_prefix, config.include_year_in_student_number, padding)

    settings = FinancialSettings.get_instance()
    if kind == KIND_INVOICE:
        return NumberingFormat(settings.invoice_prefix, settings.include_year_in_invoice_number,
                               settings.sequence_padding)
    if kind == KIND_RECEIPT:
        return NumberingFormat(settings.receipt_prefix, settings.include_year_in_receipt_number,
                               settings.sequence_padding)
    raise ValueError(f"Unknown sequence kind: {kind}")


def allocate_sequential_number(kind, scope=None, *, store=None, numbering=None, year=None):
    """
    Allocate the next number for ``kind``.

    Args:
        kind: INVOICE, RECEIPT or STUDENT
        scope: Sequence scope. Defaults to the year (``year`` or the school's
            current year) when the format embeds it, else ``ALL``.
        store: Object with ``next_sequence_value(kind, scope)``; defaults to
            the database-backed ``SequenceStore``.
        numbering: ``NumberingFormat`` override; defaults to the configured one.
        year: Year used for the default scope.

    Returns:
        str: The formatted number, e.g. ``INV2025000123``.

    Raises:
        AllocationConflict: the store kept conflicting after
            ``MAX_ALLOCATION_ATTEMPTS`` attempts.
    """
    if kind not in SEQUENCE_KINDS:
        raise ValueError(f"Unknown sequence kind: {kind}")

    if store is None:
        from core.store import SequenceStore
        store = SequenceStore()
    if numbering is None:
        numbering = load_numbering_format(kind)
    if scope is None:
        if numbering.include_year:
            if year is None:
                from core.utils import get_school_today
                year = get_school_today().year
            scope = str(year)
        else:
            scope = GLOBAL_SCOPE

    for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        try:
            value = store.next_sequence_value(kind, scope)
        except AllocationConflict:
            if attempt == MAX_ALLOCATION_ATTEMPTS:
                logger.error(
                    f"Giving up allocating {kind} number in scope {scope} "
                    f"after {attempt} attempts"
                )
                raise
            logger.warning(f"Allocation conflict for {kind}/{scope}, retrying (attempt {attempt})")
            continue
        return numbering.format(value, scope)
