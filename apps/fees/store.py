# fees/store.py

import logging

from django.core.exceptions import ValidationError

from core.exceptions import UnknownFee, UnknownFeeSchedule, UnknownInvoice
from core.store import SequenceStore

from . import ledger
from .models import Fee, FeeInvoice, FeeSchedule, Payment, Receipt

logger = logging.getLogger(__name__)


def _invoice_snapshot(invoice):
    return ledger.InvoiceSnapshot(
        id=invoice.pk,
        invoice_number=invoice.invoice_number,
        student_id=invoice.student_id,
        amount_due=invoice.amount_due,
        due_date=invoice.due_date,
        status=invoice.status,
        issue_date=invoice.issue_date,
        fee_schedule_id=invoice.fee_schedule_id,
    )


def _fee_snapshot(fee):
    return ledger.FeeSnapshot(
        id=fee.pk,
        name=fee.name,
        amount=fee.amount,
        frequency=fee.frequency,
        academic_session_id=fee.academic_session_id,
    )


def _schedule_snapshot(schedule):
    return ledger.FeeScheduleSnapshot(
        id=schedule.pk,
        fee_id=schedule.fee_id,
        fee_name=schedule.fee.name,
        amount=schedule.amount,
        due_date=schedule.due_date,
        academic_session_id=schedule.academic_session_id,
        name=schedule.name,
    )


def _payment_snapshot(payment):
    return ledger.PaymentSnapshot(
        id=payment.pk,
        invoice_id=payment.invoice_id,
        currency=payment.currency,
        amount=payment.amount,
        payment_date=payment.payment_date,
        method=payment.payment_method,
        reference_number=payment.reference_number,
    )


class LedgerStore(SequenceStore):
    """
    ORM reads and writes for the ledger engine.

    Every method returns ``fees.ledger`` snapshots rather than model
    instances. Callers compose writes into one unit with ``atomic()``.
    """

    def student_exists(self, student_id):
        from students.models import Student
        return Student.objects.filter(pk=student_id).exists()

    def get_fee(self, fee_id):
        """
        Raises:
            UnknownFee: no fee with ``fee_id``
        """
        try:
            return _fee_snapshot(Fee.objects.get(pk=fee_id))
        except (Fee.DoesNotExist, ValidationError):
            raise UnknownFee(fee_id)

    def get_fee_schedule(self, schedule_id):
        """
        Raises:
            UnknownFeeSchedule: no schedule with ``schedule_id``
        """
        try:
            return _schedule_snapshot(FeeSchedule.objects.select_related('fee').get(pk=schedule_id))
        except (FeeSchedule.DoesNotExist, ValidationError):
            raise UnknownFeeSchedule(schedule_id)

    def create_fee(self, name, amount, frequency=ledger.FREQUENCY_TERMLY, academic_session_id=None,
                   description=''):
        fee = Fee(
            name=name,
            description=description,
            frequency=frequency,
            academic_session_id=academic_session_id,
            amount_lrd=amount.get(ledger.CURRENCY_LRD, ledger.ZERO),
            amount_usd=amount.get(ledger.CURRENCY_USD, ledger.ZERO),
        )
        fee.full_clean()
        fee.save()
        return _fee_snapshot(fee)

    def create_fee_schedule(self, fee_id, amount, due_date, academic_session_id=None, name=''):
        schedule = FeeSchedule(
            fee_id=fee_id,
            name=name,
            academic_session_id=academic_session_id,
            due_date=due_date,
            amount_lrd=amount.get(ledger.CURRENCY_LRD, ledger.ZERO),
            amount_usd=amount.get(ledger.CURRENCY_USD, ledger.ZERO),
        )
        schedule.full_clean()
        schedule.save()
        return _schedule_snapshot(schedule)

    def get_invoice(self, invoice_id, for_update=False):
        """
        Raises:
            UnknownInvoice: no invoice with ``invoice_id``
        """
        invoices = FeeInvoice.objects.all()
        if for_update:
            invoices = invoices.select_for_update()
        try:
            return _invoice_snapshot(invoices.get(pk=invoice_id))
        except (FeeInvoice.DoesNotExist, ValidationError):
            raise UnknownInvoice(invoice_id)

    def get_invoices(self, student_id=None, exclude_cancelled=False):
        invoices = FeeInvoice.objects.all()
        if student_id is not None:
            invoices = invoices.filter(student_id=student_id)
        if exclude_cancelled:
            invoices = invoices.exclude(status=ledger.STATUS_CANCELLED)
        return [_invoice_snapshot(invoice) for invoice in invoices.order_by('due_date', 'invoice_number')]

    def get_payments_for_invoice(self, invoice_id):
        payments = Payment.objects.filter(invoice_id=invoice_id).order_by('payment_date', 'created_at')
        return [_payment_snapshot(payment) for payment in payments]

    def get_payments_for_invoices(self, invoice_ids):
        """Payments grouped by invoice id, in one query."""
        grouped = {invoice_id: [] for invoice_id in invoice_ids}
        payments = Payment.objects.filter(invoice_id__in=invoice_ids).order_by('payment_date', 'created_at')
        for payment in payments:
            grouped[payment.invoice_id].append(_payment_snapshot(payment))
        return grouped

    def get_student_labels(self, student_ids):
        """student id -> (student number, full name)"""
        from students.models import Student
        return {
            student.pk: (student.student_number, student.get_full_name())
            for student in Student.objects.filter(pk__in=student_ids)
        }

    def create_invoice(self, student_id, invoice_number, amount_due, issue_date, due_date,
                       status=ledger.STATUS_PENDING, academic_session_id=None, notes='', fee_schedule_id=None):
        invoice = FeeInvoice(
            invoice_number=invoice_number,
            student_id=student_id,
            academic_session_id=academic_session_id,
            fee_schedule_id=fee_schedule_id,
            issue_date=issue_date,
            due_date=due_date,
            amount_due_lrd=amount_due.get(ledger.CURRENCY_LRD, ledger.ZERO),
            amount_due_usd=amount_due.get(ledger.CURRENCY_USD, ledger.ZERO),
            status=status,
            notes=notes,
        )
        invoice.full_clean()
        invoice.save()
        return _invoice_snapshot(invoice)

    def create_payment(self, invoice, currency, amount, method, payment_date, reference_number=''):
        payment = Payment.objects.create(
            invoice_id=invoice.id,
            student_id=invoice.student_id,
            currency=currency,
            amount=amount,
            payment_method=method,
            payment_date=payment_date,
            reference_number=reference_number,
        )
        return _payment_snapshot(payment)

    def create_receipt(self, payment, receipt_number):
        from core.utils import get_school_current_time

        receipt = Receipt.objects.create(
            receipt_number=receipt_number,
            payment_id=payment.id,
            invoice_id=payment.invoice_id,
            currency=payment.currency,
            amount=payment.amount,
            issued_at=get_school_current_time(),
        )
        return ledger.ReceiptSnapshot(
            id=receipt.pk,
            receipt_number=receipt.receipt_number,
            payment_id=receipt.payment_id,
            invoice_id=receipt.invoice_id,
            currency=receipt.currency,
            amount=receipt.amount,
        )

    def update_invoice_status(self, invoice_id, status):
        invoice = FeeInvoice.objects.get(pk=invoice_id)
        if invoice.status != status:
            invoice.status = status
            invoice.save(update_fields=['status', 'updated_at', 'updated_by_id'])

    def cancel_invoice(self, invoice_id, reason):
        from core.utils import get_school_current_time

        invoice = FeeInvoice.objects.get(pk=invoice_id)
        invoice.status = ledger.STATUS_CANCELLED
        invoice.cancelled_at = get_school_current_time()
        invoice.cancellation_reason = reason
        invoice.save()
        return _invoice_snapshot(invoice)
