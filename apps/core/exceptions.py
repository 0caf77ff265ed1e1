# core/exceptions.py

"""
Errors raised by the grade and ledger engines.

Business-rule rejections subclass Django's ``ValidationError`` and missing
records subclass ``ObjectDoesNotExist`` so callers can handle them the same
way they handle model validation and ``DoesNotExist``.
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError


class NoData(Exception):
    """No assessment records matched the query. Not the same as a score of zero."""


class InvalidAmount(ValidationError):
    """Payment or invoice amount that is not a positive money value."""


class InvoiceCancelled(ValidationError):
    """Operation not allowed on a cancelled invoice."""


class MisconfiguredGradeScale(ValidationError):
    """A grade scale whose bands do not cover a percentage, or fail validation."""


class UnknownEntity(ObjectDoesNotExist):
    entity = 'Record'

    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"{self.entity} '{identifier}' does not exist")


class UnknownInvoice(UnknownEntity):
    entity = 'Invoice'


class UnknownStudent(UnknownEntity):
    entity = 'Student'


class UnknownScale(UnknownEntity):
    entity = 'Grade scale'


class UnknownFee(UnknownEntity):
    entity = 'Fee'


class UnknownFeeSchedule(UnknownEntity):
    entity = 'Fee schedule'


class AllocationConflict(Exception):
    """Another writer claimed the same sequence value first. Safe to retry."""

    def __init__(self, kind, scope, message=None):
        self.kind = kind
        self.scope = scope
        super().__init__(message or f"Conflict allocating {kind} number in scope {scope}")
