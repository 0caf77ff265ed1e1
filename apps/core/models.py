# core/models.py

"""
Per-school settings and persisted number sequences.

``SchoolConfiguration`` and ``FinancialSettings`` are singletons: one row
(pk=1) per school database, read with ``get_instance()``.
"""

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal, InvalidOperation
from utils.models import BaseModel
from core.utils import DEFAULT_TIMEZONE
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones
import pycountry
import logging

logger = logging.getLogger(__name__)

SINGLETON_PK = 1


class SingletonModel(BaseModel):
    """One row per school database; created with field defaults on first read."""

    class Meta:
        abstract = True

    @classmethod
    def get_instance(cls):
        instance, created = cls.objects.get_or_create(pk=SINGLETON_PK)
        if created:
            logger.info(f"Created default {cls._meta.verbose_name}")
        return instance

    def save(self, *args, **kwargs):
        self.pk = SINGLETON_PK
        if self._state.adding:
            # Overwrite the existing row instead of inserting a second one
            created_at = type(self).objects.filter(pk=SINGLETON_PK).values_list('created_at', flat=True).first()
            if created_at is not None:
                self._state.adding = False
                self.created_at = self.created_at or created_at
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        logger.warning(f"Refusing to delete {self._meta.verbose_name}")


# =============================================================================
# SCHOOL CONFIGURATION
# =============================================================================

class SchoolConfiguration(SingletonModel):
    """School identity, operational timezone and student numbering."""

    school_name = models.CharField("School Name", max_length=200, blank=True, default='')
    operational_timezone = models.CharField(
        "Operational Timezone",
        max_length=50,
        default=DEFAULT_TIMEZONE,
        help_text="IANA name; 'today' for due dates and overdue checks is taken in this zone"
    )

    # Student numbers: STU000001, or STU2025000001 with the admission year
    student_number_prefix = models.CharField("Student Number Prefix", max_length=10, default='STU', blank=True)
    include_year_in_student_number = models.BooleanField("Embed Admission Year", default=False)

    class Meta:
        verbose_name = "School Configuration"
        verbose_name_plural = "School Configuration"

    def __str__(self):
        return self.school_name or f"School ({self.operational_timezone})"

    def clean(self):
        super().clean()
        if self.operational_timezone not in available_timezones():
            raise ValidationError({
                'operational_timezone': f"'{self.operational_timezone}' is not a valid IANA timezone"
            })

    def get_timezone(self):
        """ZoneInfo for the operational timezone; Africa/Monrovia if it is unknown."""
        try:
            return ZoneInfo(self.operational_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{self.operational_timezone}', using {DEFAULT_TIMEZONE}")
            return ZoneInfo(DEFAULT_TIMEZONE)


# =============================================================================
# FINANCIAL SETTINGS
# =============================================================================

class FinancialSettings(SingletonModel):
    """
    Ledger currencies, money display, invoice/receipt numbering and
    payment policy.

    LRD and USD are kept as separate ledgers; nothing here converts between
    them.
    """

    CURRENCY_POSITION_CHOICES = [
        ('BEFORE', 'LRD 100.00'),
        ('AFTER', '100.00 LRD'),
        ('BEFORE_NO_SPACE', 'LRD100.00'),
        ('AFTER_NO_SPACE', '100.00LRD'),
    ]

    CURRENCY_TEMPLATES = {
        'BEFORE': '{symbol} {amount}',
        'AFTER': '{amount} {symbol}',
        'BEFORE_NO_SPACE': '{symbol}{amount}',
        'AFTER_NO_SPACE': '{amount}{symbol}',
    }

    # Currencies (ISO 4217)
    school_currency = models.CharField("Primary Currency", max_length=3, default='LRD')
    secondary_currency = models.CharField("Secondary Currency", max_length=3, default='USD', blank=True)

    # Display
    currency_position = models.CharField(
        "Symbol Position", max_length=20, choices=CURRENCY_POSITION_CHOICES, default='BEFORE'
    )
    decimal_places = models.PositiveIntegerField(
        "Decimal Places", default=2, validators=[MinValueValidator(0), MaxValueValidator(4)]
    )
    use_thousand_separator = models.BooleanField("Thousand Separator", default=True)

    # Numbering: INV2025000123, REC2025000001
    invoice_prefix = models.CharField("Invoice Prefix", max_length=10, default='INV', blank=True)
    include_year_in_invoice_number = models.BooleanField("Embed Year in Invoice Numbers", default=True)
    receipt_prefix = models.CharField("Receipt Prefix", max_length=10, default='REC', blank=True)
    include_year_in_receipt_number = models.BooleanField("Embed Year in Receipt Numbers", default=True)
    sequence_padding = models.PositiveIntegerField(
        "Sequence Digits",
        default=6,
        validators=[MinValueValidator(1), MaxValueValidator(12)],
        help_text="Minimum width of the running number; shared by invoices, receipts and students"
    )

    # Payment policy
    default_payment_terms_days = models.PositiveIntegerField(
        "Payment Terms (days)",
        default=30,
        help_text="Due date of an invoice created without one"
    )
    allow_overpayment = models.BooleanField(
        "Allow Overpayment",
        default=False,
        help_text="Accept payments above the outstanding balance; the excess shows as a negative balance"
    )

    class Meta:
        verbose_name = "Financial Settings"
        verbose_name_plural = "Financial Settings"

    def __str__(self):
        return f"Financial Settings ({', '.join(self.get_currencies())})"

    def get_currencies(self):
        """Ledger currencies, primary first."""
        currencies = [self.school_currency]
        if self.secondary_currency and self.secondary_currency != self.school_currency:
            currencies.append(self.secondary_currency)
        return currencies

    def format_currency(self, amount, currency=None, include_symbol=True):
        """
        Example:
            >>> FinancialSettings.get_instance().format_currency(Decimal('1500'), 'USD')
            'USD 1,500.00'
        """
        symbol = currency or self.school_currency
        try:
            value = Decimal(str(amount or 0))
        except (InvalidOperation, ValueError):
            logger.warning(f"Cannot format '{amount}' as money")
            value = Decimal('0')

        formatted = f"{value:,.{self.decimal_places}f}"
        if not self.use_thousand_separator:
            formatted = formatted.replace(',', '')
        if not include_symbol:
            return formatted

        template = self.CURRENCY_TEMPLATES.get(self.currency_position, '{symbol} {amount}')
        return template.format(symbol=symbol, amount=formatted)

    def clean(self):
        super().clean()
        errors = {}
        for field in ('school_currency', 'secondary_currency'):
            code = getattr(self, field)
            if not code:
                continue
            if pycountry.currencies.get(alpha_3=code.upper()) is None:
                errors[field] = f"'{code}' is not an ISO 4217 currency code"
            else:
                setattr(self, field, code.upper())
        if errors:
            raise ValidationError(errors)


# =============================================================================
# NUMBER SEQUENCES
# =============================================================================

class NumberSequence(BaseModel):
    """
    Last value handed out for a numbered document kind within a scope
    (usually a calendar year). Incremented only through
    ``core.store.SequenceStore.next_sequence_value``.
    """

    KIND_INVOICE = 'INVOICE'
    KIND_RECEIPT = 'RECEIPT'
    KIND_STUDENT = 'STUDENT'

    KIND_CHOICES = [
        (KIND_INVOICE, 'Invoice'),
        (KIND_RECEIPT, 'Receipt'),
        (KIND_STUDENT, 'Student'),
    ]

    kind = models.CharField("Kind", max_length=20, choices=KIND_CHOICES)
    scope = models.CharField("Scope", max_length=20, default='ALL')
    last_value = models.PositiveBigIntegerField("Last Value", default=0)

    class Meta:
        verbose_name = "Number Sequence"
        verbose_name_plural = "Number Sequences"
        constraints = [
            models.UniqueConstraint(fields=['kind', 'scope'], name='unique_number_sequence_kind_scope'),
        ]

    def __str__(self):
        return f"{self.kind}/{self.scope}: {self.last_value}"
