# fees/ledger.py

"""
Ledger engine: invoice balances and status derived from payment history.

Each currency is its own ledger. LRD and USD amounts on the same invoice are
summed separately and never converted into each other.

Status is always recomputed from the full list of payments, so deriving it
twice from the same history gives the same answer.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from core.exceptions import InvalidAmount

MONEY_PRECISION = Decimal('0.01')
ZERO = Decimal('0.00')

CURRENCY_LRD = 'LRD'
CURRENCY_USD = 'USD'
CURRENCIES = (CURRENCY_LRD, CURRENCY_USD)

STATUS_PENDING = 'PENDING'
STATUS_PARTIAL = 'PARTIAL'
STATUS_PAID = 'PAID'
STATUS_OVERDUE = 'OVERDUE'
STATUS_CANCELLED = 'CANCELLED'

ARREARS_STATUSES = (STATUS_PENDING, STATUS_PARTIAL, STATUS_OVERDUE)

FREQUENCY_ONE_TIME = 'ONE_TIME'
FREQUENCY_TERMLY = 'TERMLY'
FREQUENCY_YEARLY = 'YEARLY'
FREQUENCIES = (FREQUENCY_ONE_TIME, FREQUENCY_TERMLY, FREQUENCY_YEARLY)


def to_money(value):
    """
    Decimal rounded half-up to cents.

    Raises:
        InvalidAmount: value is not a finite number
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"'{value}' is not a valid amount", code='invalid_amount')
    if not amount.is_finite():
        raise InvalidAmount(f"'{value}' is not a finite amount", code='invalid_amount')
    return amount.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


# =============================================================================
# SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class InvoiceSnapshot:
    id: object
    invoice_number: str
    student_id: object
    amount_due: dict
    due_date: object
    status: str = STATUS_PENDING
    issue_date: object = None
    fee_schedule_id: object = None

    @property
    def is_cancelled(self):
        return self.status == STATUS_CANCELLED

    def due(self, currency):
        return self.amount_due.get(currency, ZERO)


@dataclass(frozen=True)
class FeeSnapshot:
    """A named charge with its default amount per currency."""

    id: object
    name: str
    amount: dict
    frequency: str = FREQUENCY_TERMLY
    academic_session_id: object = None


@dataclass(frozen=True)
class FeeScheduleSnapshot:
    """One billable instalment of a fee."""

    id: object
    fee_id: object
    fee_name: str
    amount: dict
    due_date: object
    academic_session_id: object = None
    name: str = ''


@dataclass(frozen=True)
class PaymentSnapshot:
    id: object
    invoice_id: object
    currency: str
    amount: Decimal
    payment_date: object
    method: str
    reference_number: str = ''


@dataclass(frozen=True)
class ReceiptSnapshot:
    id: object
    receipt_number: str
    payment_id: object
    invoice_id: object
    currency: str = CURRENCY_LRD
    amount: Decimal = ZERO


@dataclass(frozen=True)
class CurrencyBalance:
    total_due: Decimal = ZERO
    total_paid: Decimal = ZERO
    balance: Decimal = field(default=ZERO)

    def as_dict(self):
        return {'total_due': self.total_due, 'total_paid': self.total_paid, 'balance': self.balance}


# =============================================================================
# DERIVATION
# =============================================================================

def sum_payments(payments):
    """Total paid per currency; every known currency is present."""
    totals = {currency: ZERO for currency in CURRENCIES}
    for payment in payments:
        totals[payment.currency] = totals.get(payment.currency, ZERO) + to_money(payment.amount)
    return totals


def compute_invoice_balance(invoice, payments):
    """Due, paid and outstanding amounts for each currency of an invoice."""
    paid = sum_payments(payments)
    currencies = list(CURRENCIES) + [c for c in invoice.amount_due if c not in CURRENCIES]
    balances = {}
    for currency in currencies:
        due = to_money(invoice.due(currency))
        total_paid = paid.get(currency, ZERO)
        balances[currency] = CurrencyBalance(total_due=due, total_paid=total_paid, balance=due - total_paid)
    return balances


def derive_invoice_status(invoice, payments, today):
    """
    Status of ``invoice`` given its complete payment history.

    Rules, first match wins:
      1. CANCELLED when the invoice was cancelled
      2. PAID when every non-zero due amount is met in its own currency
      3. PARTIAL when anything has been paid
      4. OVERDUE when nothing is paid and ``today`` is after the due date
      5. PENDING otherwise
    """
    if invoice.is_cancelled:
        return STATUS_CANCELLED

    balances = compute_invoice_balance(invoice, payments)
    if all(b.total_paid >= b.total_due for b in balances.values() if b.total_due > ZERO):
        return STATUS_PAID
    if any(b.total_paid > ZERO for b in balances.values()):
        return STATUS_PARTIAL
    if invoice.due_date is not None and today > invoice.due_date:
        return STATUS_OVERDUE
    return STATUS_PENDING


def is_in_arrears(invoice, payments, today):
    """True when the fresh status is open and some currency still has a positive balance."""
    if derive_invoice_status(invoice, payments, today) not in ARREARS_STATUSES:
        return False
    return any(b.balance > ZERO for b in compute_invoice_balance(invoice, payments).values())
