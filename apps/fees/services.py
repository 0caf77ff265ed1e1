# fees/services.py

"""
Ledger Operations

Invoices, payments, receipts, balances and arrears. Amounts and statuses are
computed by ``fees.ledger`` from the full payment history; this module loads
and stores through ``LedgerStore`` and wraps each write in one transaction.
"""

from datetime import timedelta
from decimal import Decimal
import logging

from django.core.exceptions import ValidationError

from core.exceptions import InvalidAmount, InvoiceCancelled, UnknownStudent
from core.sequences import (
    KIND_INVOICE,
    KIND_RECEIPT,
    allocate_sequential_number,
    load_numbering_format,
)

from . import ledger
from .models import Payment
from .store import LedgerStore

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {code for code, _ in Payment.PAYMENT_METHOD_CHOICES}


# =============================================================================
# LEDGER SERVICE
# =============================================================================

class LedgerService:
    """
    Core ledger operations shared by the bursary screens, API and jobs.

    Args:
        store: data store (defaults to ``LedgerStore``)
        allow_overpayment: overrides ``FinancialSettings.allow_overpayment``
        numbering: dict of kind -> ``NumberingFormat`` overriding the
            configured invoice/receipt number formats
    """

    def __init__(self, store=None, allow_overpayment=None, numbering=None):
        self.store = store or LedgerStore()
        self._allow_overpayment = allow_overpayment
        self._numbering = dict(numbering or {})

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------

    @property
    def allow_overpayment(self):
        if self._allow_overpayment is None:
            from core.models import FinancialSettings
            self._allow_overpayment = FinancialSettings.get_instance().allow_overpayment
        return self._allow_overpayment

    def _numbering_for(self, kind):
        if kind not in self._numbering:
            self._numbering[kind] = load_numbering_format(kind)
        return self._numbering[kind]

    @staticmethod
    def _today(today):
        if today is not None:
            return today
        from core.utils import get_school_today
        return get_school_today()

    def allocate_sequential_number(self, kind, scope=None, year=None):
        """Next INVOICE / RECEIPT / STUDENT number from this service's store."""
        return allocate_sequential_number(
            kind, scope, store=self.store, numbering=self._numbering_for(kind), year=year
        )

    # -------------------------------------------------------------------------
    # FEES
    # -------------------------------------------------------------------------

    @staticmethod
    def _amounts(lrd, usd, allow_zero=False):
        amounts = {
            ledger.CURRENCY_LRD: ledger.to_money(lrd or 0),
            ledger.CURRENCY_USD: ledger.to_money(usd or 0),
        }
        if any(amount < 0 for amount in amounts.values()):
            raise InvalidAmount("Amounts cannot be negative", code='negative_amount')
        if not allow_zero and all(amount == 0 for amount in amounts.values()):
            raise InvalidAmount("A positive amount is required in at least one currency", code='zero_amount')
        return amounts

    def create_fee(self, name, amount_lrd=0, amount_usd=0, frequency=ledger.FREQUENCY_TERMLY,
                   academic_session_id=None, description=''):
        """
        Define a chargeable fee. Its amounts are the defaults for schedules
        created from it and may be zero when every schedule sets its own.

        Raises:
            InvalidAmount: negative amount
            ValidationError: unknown frequency or duplicate name
        """
        if frequency not in ledger.FREQUENCIES:
            raise ValidationError(f"Unknown fee frequency '{frequency}'", code='invalid_frequency')
        amount = self._amounts(amount_lrd, amount_usd, allow_zero=True)

        fee = self.store.create_fee(
            name, amount, frequency=frequency, academic_session_id=academic_session_id,
            description=description,
        )
        logger.info(
            f"Created fee '{name}' ({frequency}): "
            f"LRD {amount[ledger.CURRENCY_LRD]}, USD {amount[ledger.CURRENCY_USD]}"
        )
        return fee

    def create_fee_schedule(self, fee_id, due_date, amount_lrd=None, amount_usd=None,
                            academic_session_id=None, name=''):
        """
        Add a billable instalment to a fee.

        When neither amount is given the fee's amounts are used; the fee's
        academic session is the default too.

        Returns:
            ledger.FeeScheduleSnapshot

        Raises:
            UnknownFee: fee does not exist
            InvalidAmount: negative amounts or nothing to bill
        """
        fee = self.store.get_fee(fee_id)
        if amount_lrd is None and amount_usd is None:
            amount_lrd = fee.amount[ledger.CURRENCY_LRD]
            amount_usd = fee.amount[ledger.CURRENCY_USD]
        amount = self._amounts(amount_lrd, amount_usd)

        schedule = self.store.create_fee_schedule(
            fee.id, amount, due_date,
            academic_session_id=academic_session_id or fee.academic_session_id,
            name=name,
        )
        logger.info(f"Added schedule '{name or fee.name}' to fee '{fee.name}', due {due_date}")
        return schedule

    # -------------------------------------------------------------------------
    # INVOICES
    # -------------------------------------------------------------------------

    def create_invoice(self, student_id, amount_due_lrd=None, amount_due_usd=None, due_date=None,
                       issue_date=None, academic_session_id=None, notes='', today=None,
                       fee_schedule_id=None):
        """
        Bill a student, directly or from a fee schedule.

        Args:
            student_id: Student primary key
            amount_due_lrd / amount_due_usd: non-negative, at least one positive.
                Taken from the fee schedule when neither is given.
            due_date: the schedule's due date, else issue date + default
                payment terms
            issue_date: defaults to today (school timezone)
            fee_schedule_id: FeeSchedule to bill; it also supplies the
                academic session when none is given

        Returns:
            ledger.InvoiceSnapshot

        Raises:
            InvalidAmount: negative amounts or nothing billed
            UnknownStudent: student does not exist
            UnknownFeeSchedule: fee schedule does not exist

        Example:
            invoice = LedgerService().create_invoice(
                student.pk, amount_due_lrd='15000.00', amount_due_usd='120.00',
                due_date=date(2025, 10, 31),
            )
        """
        if fee_schedule_id is not None:
            schedule = self.store.get_fee_schedule(fee_schedule_id)
            if amount_due_lrd is None and amount_due_usd is None:
                amount_due_lrd = schedule.amount[ledger.CURRENCY_LRD]
                amount_due_usd = schedule.amount[ledger.CURRENCY_USD]
            due_date = due_date or schedule.due_date
            academic_session_id = academic_session_id or schedule.academic_session_id

        amount_due = self._amounts(amount_due_lrd, amount_due_usd)

        today = self._today(today)
        issue_date = issue_date or today
        if due_date is None:
            from core.models import FinancialSettings
            terms = FinancialSettings.get_instance().default_payment_terms_days
            due_date = issue_date + timedelta(days=terms)

        with self.store.atomic():
            if not self.store.student_exists(student_id):
                raise UnknownStudent(student_id)

            invoice_number = self.allocate_sequential_number(KIND_INVOICE, year=issue_date.year)
            draft = ledger.InvoiceSnapshot(
                id=None, invoice_number=invoice_number, student_id=student_id,
                amount_due=amount_due, due_date=due_date,
            )
            invoice = self.store.create_invoice(
                student_id=student_id,
                invoice_number=invoice_number,
                amount_due=amount_due,
                issue_date=issue_date,
                due_date=due_date,
                status=ledger.derive_invoice_status(draft, [], today),
                academic_session_id=academic_session_id,
                notes=notes,
                fee_schedule_id=fee_schedule_id,
            )

        logger.info(
            f"Created invoice {invoice.invoice_number} for student {student_id}: "
            f"LRD {amount_due[ledger.CURRENCY_LRD]}, USD {amount_due[ledger.CURRENCY_USD]}"
        )
        return invoice

    def cancel_invoice(self, invoice_id, reason=''):
        """
        Cancel an invoice. Cancellation is final: the invoice stays CANCELLED
        and accepts no further payments.

        Raises:
            UnknownInvoice: invoice does not exist
            InvoiceCancelled: already cancelled
            ValidationError: payments have been recorded against it
        """
        with self.store.atomic():
            invoice = self.store.get_invoice(invoice_id, for_update=True)
            if invoice.is_cancelled:
                raise InvoiceCancelled(f"Invoice {invoice.invoice_number} is already cancelled")
            if self.store.get_payments_for_invoice(invoice.id):
                raise ValidationError(
                    f"Invoice {invoice.invoice_number} has payments recorded and cannot be cancelled"
                )
            invoice = self.store.cancel_invoice(invoice.id, reason)

        logger.info(f"Cancelled invoice {invoice.invoice_number}: {reason}")
        return invoice

    def derive_status(self, invoice_id, today=None):
        """Fresh status of an invoice from its payments; nothing is written."""
        invoice = self.store.get_invoice(invoice_id)
        payments = self.store.get_payments_for_invoice(invoice.id)
        return ledger.derive_invoice_status(invoice, payments, self._today(today))

    def refresh_invoice_status(self, invoice_id, today=None):
        """Recompute and store the status of one invoice. Returns the status."""
        today = self._today(today)
        with self.store.atomic():
            invoice = self.store.get_invoice(invoice_id, for_update=True)
            payments = self.store.get_payments_for_invoice(invoice.id)
            status = ledger.derive_invoice_status(invoice, payments, today)
            if status != invoice.status:
                self.store.update_invoice_status(invoice.id, status)
                logger.info(f"Invoice {invoice.invoice_number}: {invoice.status} -> {status}")
        return status

    def refresh_invoice_statuses(self, today=None):
        """
        Recompute the stored status of every open invoice, e.g. to flip
        PENDING invoices to OVERDUE after their due date.

        Returns:
            int: number of invoices whose stored status changed
        """
        today = self._today(today)
        changed = 0
        with self.store.atomic():
            invoices = self.store.get_invoices(exclude_cancelled=True)
            payments = self.store.get_payments_for_invoices([invoice.id for invoice in invoices])
            for invoice in invoices:
                status = ledger.derive_invoice_status(invoice, payments[invoice.id], today)
                if status != invoice.status:
                    self.store.update_invoice_status(invoice.id, status)
                    changed += 1
                    logger.info(f"Invoice {invoice.invoice_number}: {invoice.status} -> {status}")
        return changed

    # -------------------------------------------------------------------------
    # PAYMENTS
    # -------------------------------------------------------------------------

    def record_payment(self, invoice_id, amount, method, payment_date=None, currency=ledger.CURRENCY_LRD,
                       reference_number='', today=None):
        """
        Record a payment, issue its receipt and refresh the invoice status,
        all in one transaction.

        Args:
            invoice_id: FeeInvoice primary key
            amount: positive amount in ``currency``
            method: CASH, BANK_TRANSFER, MOBILE_MONEY or CHEQUE
            payment_date: defaults to today (school timezone)
            currency: LRD or USD

        Returns:
            dict: ``payment``, ``receipt`` and the invoice's new ``status``

        Raises:
            InvalidAmount: amount <= 0, or above the outstanding balance when
                overpayment is not allowed
            UnknownInvoice: invoice does not exist
            InvoiceCancelled: invoice is cancelled

        Example:
            result = LedgerService().record_payment(invoice.id, '400.00', 'CASH')
            result['receipt'].receipt_number   # 'REC2025000001'
            result['status']                   # 'PARTIAL'
        """
        amount = ledger.to_money(amount)
        if amount <= 0:
            logger.warning(f"Rejected payment of {amount} on invoice {invoice_id}: not positive")
            raise InvalidAmount("Payment amount must be positive", code='non_positive_amount')
        if currency not in ledger.CURRENCIES:
            raise ValidationError(f"Unsupported currency '{currency}'")
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{method}'")

        today = self._today(today)
        payment_date = payment_date or today

        with self.store.atomic():
            invoice = self.store.get_invoice(invoice_id, for_update=True)
            if invoice.is_cancelled:
                raise InvoiceCancelled(f"Cannot record payment for cancelled invoice {invoice.invoice_number}")

            history = self.store.get_payments_for_invoice(invoice.id)
            if not self.allow_overpayment:
                remaining = ledger.compute_invoice_balance(invoice, history)[currency].balance
                if amount > remaining:
                    logger.warning(
                        f"Rejected payment of {currency} {amount} on invoice {invoice.invoice_number}: "
                        f"exceeds balance {remaining}"
                    )
                    raise InvalidAmount(
                        f"Payment amount ({amount}) exceeds remaining {currency} balance ({remaining})",
                        code='overpayment',
                    )

            payment = self.store.create_payment(
                invoice, currency, amount, method, payment_date, reference_number
            )
            receipt_number = self.allocate_sequential_number(KIND_RECEIPT, year=today.year)
            receipt = self.store.create_receipt(payment, receipt_number)

            history = self.store.get_payments_for_invoice(invoice.id)
            status = ledger.derive_invoice_status(invoice, history, today)
            if status != invoice.status:
                self.store.update_invoice_status(invoice.id, status)

        logger.info(
            f"Recorded {currency} {amount} ({method}) on invoice {invoice.invoice_number}, "
            f"receipt {receipt.receipt_number}, status {status}"
        )
        return {'payment': payment, 'receipt': receipt, 'status': status}

    # -------------------------------------------------------------------------
    # BALANCES AND REPORTS
    # -------------------------------------------------------------------------

    def compute_student_balance(self, student_id):
        """
        Totals across a student's invoices, per currency. Cancelled invoices
        are excluded. A negative balance is a credit from overpayment.

        Returns:
            dict: currency -> {'total_due', 'total_paid', 'balance'}

        Raises:
            UnknownStudent: student does not exist
        """
        if not self.store.student_exists(student_id):
            raise UnknownStudent(student_id)

        invoices = self.store.get_invoices(student_id=student_id, exclude_cancelled=True)
        payments = self.store.get_payments_for_invoices([invoice.id for invoice in invoices])

        totals = {currency: {'total_due': ledger.ZERO, 'total_paid': ledger.ZERO} for currency in ledger.CURRENCIES}
        for invoice in invoices:
            for currency, balance in ledger.compute_invoice_balance(invoice, payments[invoice.id]).items():
                row = totals.setdefault(currency, {'total_due': ledger.ZERO, 'total_paid': ledger.ZERO})
                row['total_due'] += balance.total_due
                row['total_paid'] += balance.total_paid

        for row in totals.values():
            row['balance'] = row['total_due'] - row['total_paid']
        return totals

    def compute_arrears(self, today=None):
        """
        Invoices with an outstanding balance, status recomputed fresh.

        The stored status column is ignored: an invoice is listed only when
        its derived status is PENDING, PARTIAL or OVERDUE and some currency
        still has a positive balance.

        Returns:
            list of dicts ordered by due date, one per invoice
        """
        today = self._today(today)
        invoices = self.store.get_invoices(exclude_cancelled=True)
        payments = self.store.get_payments_for_invoices([invoice.id for invoice in invoices])

        rows = []
        for invoice in invoices:
            history = payments[invoice.id]
            if not ledger.is_in_arrears(invoice, history, today):
                continue
            balances = ledger.compute_invoice_balance(invoice, history)
            row = {
                'invoice_id': invoice.id,
                'invoice_number': invoice.invoice_number,
                'student_id': invoice.student_id,
                'due_date': invoice.due_date,
                'days_overdue': max((today - invoice.due_date).days, 0),
                'status': ledger.derive_invoice_status(invoice, history, today),
            }
            for currency in ledger.CURRENCIES:
                suffix = currency.lower()
                row[f'amount_due_{suffix}'] = balances[currency].total_due
                row[f'paid_{suffix}'] = balances[currency].total_paid
                row[f'balance_{suffix}'] = balances[currency].balance
            rows.append(row)

        if rows:
            labels = self.store.get_student_labels({row['student_id'] for row in rows})
            for row in rows:
                row['student_number'], row['student_name'] = labels.get(row['student_id'], ('', ''))

        logger.debug(f"Arrears report: {len(rows)} invoices outstanding as of {today}")
        return rows


def total_outstanding(rows, currency):
    """Sum of ``balance_<currency>`` over arrears rows."""
    key = f'balance_{currency.lower()}'
    return sum((row[key] for row in rows if row[key] > 0), Decimal('0.00'))
