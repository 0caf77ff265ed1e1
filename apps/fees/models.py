# fees/models.py

"""
Student Fee Management Models

- Fees and their billable schedules (instalments with a due date)
- Fee invoices with separate LRD and USD due amounts
- Payments (one currency each, immutable once recorded)
- Receipts (one per payment, immutable)

Invoice status is derived from the payment history by ``fees.ledger``; the
stored ``status`` column is a cache refreshed by ``LedgerService``. The only
status callers set directly is CANCELLED, through ``cancel_invoice``.
"""

from django.db import models
from django.core.validators import MinValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal
import logging

from utils.models import BaseModel
from academics.models import AcademicSession
from students.models import Student

from . import ledger

logger = logging.getLogger(__name__)

CURRENCY_CHOICES = [
    (ledger.CURRENCY_LRD, 'Liberian Dollar (LRD)'),
    (ledger.CURRENCY_USD, 'US Dollar (USD)'),
]


# =============================================================================
# FEES
# =============================================================================

class Fee(BaseModel):
    """A named charge (tuition, registration, exam fee) with default amounts"""

    FREQUENCY_CHOICES = [
        (ledger.FREQUENCY_ONE_TIME, 'One Time'),
        (ledger.FREQUENCY_TERMLY, 'Per Term'),
        (ledger.FREQUENCY_YEARLY, 'Yearly'),
    ]

    name = models.CharField("Fee Name", max_length=100, unique=True)
    description = models.TextField("Description", blank=True)
    frequency = models.CharField(
        "Frequency", max_length=20, choices=FREQUENCY_CHOICES, default=ledger.FREQUENCY_TERMLY
    )
    academic_session = models.ForeignKey(
        AcademicSession,
        verbose_name="Academic Session",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fees'
    )

    amount_lrd = models.DecimalField(
        "Amount (LRD)", max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    amount_usd = models.DecimalField(
        "Amount (USD)", max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Fee"
        verbose_name_plural = "Fees"
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_frequency_display()})"

    @property
    def is_recurring(self):
        return self.frequency != ledger.FREQUENCY_ONE_TIME

    @property
    def amount(self):
        return {
            ledger.CURRENCY_LRD: self.amount_lrd,
            ledger.CURRENCY_USD: self.amount_usd,
        }


class FeeSchedule(BaseModel):
    """
    A billable instalment of a fee: what is owed and by when.

    Invoices created from a schedule take its amounts and due date unless
    the caller overrides them.
    """

    fee = models.ForeignKey(Fee, verbose_name="Fee", on_delete=models.PROTECT, related_name='schedules')
    name = models.CharField("Instalment", max_length=100, blank=True, help_text="e.g. 'First instalment'")
    academic_session = models.ForeignKey(
        AcademicSession,
        verbose_name="Academic Session",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fee_schedules'
    )
    due_date = models.DateField("Due Date", db_index=True)

    amount_lrd = models.DecimalField(
        "Amount (LRD)", max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    amount_usd = models.DecimalField(
        "Amount (USD)", max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    class Meta:
        verbose_name = "Fee Schedule"
        verbose_name_plural = "Fee Schedules"
        ordering = ['due_date']

    def __str__(self):
        label = f"{self.fee.name} - {self.name}" if self.name else self.fee.name
        return f"{label} (due {self.due_date})"

    @property
    def amount(self):
        return {
            ledger.CURRENCY_LRD: self.amount_lrd,
            ledger.CURRENCY_USD: self.amount_usd,
        }

    def clean(self):
        super().clean()
        if (self.amount_lrd or 0) <= 0 and (self.amount_usd or 0) <= 0:
            raise ValidationError({
                'amount_lrd': "A fee schedule must bill a positive amount in at least one currency"
            })


# =============================================================================
# INVOICES
# =============================================================================

class FeeInvoice(BaseModel):
    """Amount billed to a student, tracked per currency"""

    STATUS_CHOICES = [
        (ledger.STATUS_PENDING, 'Pending Payment'),
        (ledger.STATUS_PARTIAL, 'Partially Paid'),
        (ledger.STATUS_PAID, 'Paid in Full'),
        (ledger.STATUS_OVERDUE, 'Overdue'),
        (ledger.STATUS_CANCELLED, 'Cancelled'),
    ]

    # -------------------------------------------------------------------------
    # IDENTIFICATION
    # -------------------------------------------------------------------------

    invoice_number = models.CharField("Invoice Number", max_length=50, unique=True, db_index=True)
    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.CASCADE,
        related_name='fee_invoices'
    )
    academic_session = models.ForeignKey(
        AcademicSession,
        verbose_name="Academic Session",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fee_invoices'
    )
    fee_schedule = models.ForeignKey(
        FeeSchedule,
        verbose_name="Fee Schedule",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='invoices'
    )

    # -------------------------------------------------------------------------
    # DATES AND AMOUNTS
    # -------------------------------------------------------------------------

    issue_date = models.DateField("Issue Date", db_index=True)
    due_date = models.DateField("Due Date", db_index=True)

    amount_due_lrd = models.DecimalField(
        "Amount Due (LRD)", max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    amount_due_usd = models.DecimalField(
        "Amount Due (USD)", max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    # -------------------------------------------------------------------------
    # STATUS
    # -------------------------------------------------------------------------

    status = models.CharField(
        "Status", max_length=15, choices=STATUS_CHOICES, default=ledger.STATUS_PENDING, db_index=True
    )
    cancelled_at = models.DateTimeField("Cancelled At", null=True, blank=True)
    cancellation_reason = models.TextField("Cancellation Reason", blank=True)

    notes = models.TextField("Notes", blank=True)

    class Meta:
        verbose_name = "Fee Invoice"
        verbose_name_plural = "Fee Invoices"
        ordering = ['-issue_date', '-created_at']
        indexes = [
            models.Index(fields=['student', 'academic_session']),
            models.Index(fields=['status', 'due_date']),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.student.get_full_name()}"

    @property
    def amount_due(self):
        return {
            ledger.CURRENCY_LRD: self.amount_due_lrd,
            ledger.CURRENCY_USD: self.amount_due_usd,
        }

    def clean(self):
        super().clean()
        errors = {}
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            errors['due_date'] = "Due date cannot be before the issue date"
        if (self.amount_due_lrd or 0) <= 0 and (self.amount_due_usd or 0) <= 0:
            errors['amount_due_lrd'] = "An invoice must bill a positive amount in at least one currency"
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if not self._state.adding and self.pk:
            stored_number = (
                FeeInvoice.objects.filter(pk=self.pk)
                .values_list('invoice_number', flat=True)
                .first()
            )
            if stored_number and stored_number != self.invoice_number:
                raise ValidationError(
                    f"Invoice number {stored_number} cannot be changed once assigned"
                )
        super().save(*args, **kwargs)


# =============================================================================
# PAYMENTS
# =============================================================================

class ImmutableRecordMixin:
    """Rows that may be inserted but never edited or deleted."""

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(f"{self._meta.verbose_name} records cannot be modified once created")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{self._meta.verbose_name} records cannot be deleted")


class Payment(ImmutableRecordMixin, BaseModel):
    """Money received against an invoice in a single currency"""

    PAYMENT_METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('BANK_TRANSFER', 'Bank Transfer / Deposit'),
        ('MOBILE_MONEY', 'Mobile Money'),
        ('CHEQUE', 'Cheque'),
    ]

    invoice = models.ForeignKey(
        FeeInvoice,
        verbose_name="Invoice",
        on_delete=models.PROTECT,
        related_name='payments'
    )
    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.PROTECT,
        related_name='payments'
    )

    currency = models.CharField("Currency", max_length=3, choices=CURRENCY_CHOICES, default=ledger.CURRENCY_LRD)
    amount = models.DecimalField(
        "Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    payment_date = models.DateField("Payment Date", db_index=True)
    payment_method = models.CharField("Payment Method", max_length=20, choices=PAYMENT_METHOD_CHOICES)
    reference_number = models.CharField("Reference Number", max_length=50, blank=True)

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ['payment_date', 'created_at']
        indexes = [
            models.Index(fields=['invoice', 'currency']),
            models.Index(fields=['student', 'payment_date']),
        ]

    def __str__(self):
        return f"{self.currency} {self.amount} on {self.invoice_id} ({self.payment_date})"


class Receipt(ImmutableRecordMixin, BaseModel):
    """Proof of payment; exactly one per payment"""

    receipt_number = models.CharField("Receipt Number", max_length=50, unique=True, db_index=True)
    payment = models.OneToOneField(
        Payment,
        verbose_name="Payment",
        on_delete=models.PROTECT,
        related_name='receipt'
    )
    invoice = models.ForeignKey(
        FeeInvoice,
        verbose_name="Invoice",
        on_delete=models.PROTECT,
        related_name='receipts'
    )
    currency = models.CharField("Currency", max_length=3, choices=CURRENCY_CHOICES)
    amount = models.DecimalField("Amount", max_digits=12, decimal_places=2)
    issued_at = models.DateTimeField("Issued At")

    class Meta:
        verbose_name = "Receipt"
        verbose_name_plural = "Receipts"
        ordering = ['-issued_at']

    def __str__(self):
        return f"{self.receipt_number} - {self.currency} {self.amount}"
