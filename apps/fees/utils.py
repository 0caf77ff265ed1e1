# fees/utils.py

"""
Invoice and receipt number generation.

Numbers come from the persisted sequence counters in ``core.sequences`` and
look like INV2025000123 / REC2025000001 with the default settings.
"""

import logging

from core.sequences import KIND_INVOICE, KIND_RECEIPT, allocate_sequential_number

logger = logging.getLogger(__name__)


def generate_invoice_number(store=None, year=None):
    """
    Next invoice number.

    Args:
        store: sequence store override (defaults to the database store)
        year: year embedded in the number (defaults to the school's current year)
    """
    number = allocate_sequential_number(KIND_INVOICE, store=store, year=year)
    logger.debug(f"Generated invoice number: {number}")
    return number


def generate_receipt_number(store=None, year=None):
    """Next receipt number, e.g. REC2025000001."""
    number = allocate_sequential_number(KIND_RECEIPT, store=store, year=year)
    logger.debug(f"Generated receipt number: {number}")
    return number
