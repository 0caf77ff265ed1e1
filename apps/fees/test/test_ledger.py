from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase

from core.exceptions import InvalidAmount
from fees import ledger
from fees.ledger import InvoiceSnapshot, PaymentSnapshot


DUE = date(2025, 3, 31)


def invoice(lrd="0", usd="0", status=ledger.STATUS_PENDING, due_date=DUE):
    return InvoiceSnapshot(
        id=1,
        invoice_number="INV2025000001",
        student_id=7,
        amount_due={ledger.CURRENCY_LRD: Decimal(lrd), ledger.CURRENCY_USD: Decimal(usd)},
        due_date=due_date,
        status=status,
    )


def paid(amount, currency=ledger.CURRENCY_LRD, n=1):
    return PaymentSnapshot(
        id=n, invoice_id=1, currency=currency, amount=Decimal(amount),
        payment_date=date(2025, 3, 1), method="CASH",
    )


class DeriveInvoiceStatusTests(SimpleTestCase):
    def test_pending_before_due_date(self):
        self.assertEqual(ledger.derive_invoice_status(invoice("1000"), [], date(2025, 3, 31)), "PENDING")

    def test_overdue_after_due_date_with_nothing_paid(self):
        self.assertEqual(ledger.derive_invoice_status(invoice("1000"), [], date(2025, 4, 1)), "OVERDUE")

    def test_partial_wins_over_overdue(self):
        status = ledger.derive_invoice_status(invoice("1000"), [paid("400")], date(2025, 6, 1))
        self.assertEqual(status, "PARTIAL")

    def test_paid_in_full(self):
        payments = [paid("400"), paid("600", n=2)]
        self.assertEqual(ledger.derive_invoice_status(invoice("1000"), payments, date(2025, 6, 1)), "PAID")

    def test_cancelled_is_sticky(self):
        cancelled = invoice("1000", status=ledger.STATUS_CANCELLED)
        self.assertEqual(ledger.derive_invoice_status(cancelled, [paid("1000")], date(2025, 3, 1)), "CANCELLED")

    def test_dual_currency_needs_both_ledgers_settled(self):
        bill = invoice("15000", "120")
        self.assertEqual(ledger.derive_invoice_status(bill, [paid("15000")], date(2025, 3, 1)), "PARTIAL")
        payments = [paid("15000"), paid("120", ledger.CURRENCY_USD, n=2)]
        self.assertEqual(ledger.derive_invoice_status(bill, payments, date(2025, 3, 1)), "PAID")

    def test_currencies_are_never_commingled(self):
        # A large LRD payment does not settle a USD-only invoice
        bill = invoice(usd="100")
        status = ledger.derive_invoice_status(bill, [paid("50000")], date(2025, 3, 1))
        self.assertEqual(status, "PARTIAL")
        balances = ledger.compute_invoice_balance(bill, [paid("50000")])
        self.assertEqual(balances["USD"].balance, Decimal("100.00"))
        self.assertEqual(balances["LRD"].balance, Decimal("-50000.00"))

    def test_derivation_is_deterministic(self):
        bill = invoice("1000", "50")
        payments = [paid("250"), paid("20", ledger.CURRENCY_USD, n=2)]
        first = ledger.derive_invoice_status(bill, payments, date(2025, 5, 1))
        self.assertEqual(first, ledger.derive_invoice_status(bill, list(reversed(payments)), date(2025, 5, 1)))


class BalanceTests(SimpleTestCase):
    def test_sum_payments_per_currency(self):
        totals = ledger.sum_payments([paid("0.10"), paid("0.20", n=2), paid("5", ledger.CURRENCY_USD, n=3)])
        self.assertEqual(totals, {"LRD": Decimal("0.30"), "USD": Decimal("5.00")})

    def test_balance_without_payments(self):
        balances = ledger.compute_invoice_balance(invoice("1000"), [])
        self.assertEqual(balances["LRD"].as_dict(), {
            "total_due": Decimal("1000.00"), "total_paid": Decimal("0.00"), "balance": Decimal("1000.00"),
        })
        self.assertEqual(balances["USD"].balance, Decimal("0.00"))


class ArrearsTests(SimpleTestCase):
    def test_open_balance_is_in_arrears(self):
        self.assertTrue(ledger.is_in_arrears(invoice("1000"), [paid("10")], date(2025, 3, 1)))

    def test_settled_invoice_is_not_in_arrears_whatever_the_stored_status(self):
        stale = invoice("1000", status=ledger.STATUS_OVERDUE)
        self.assertFalse(ledger.is_in_arrears(stale, [paid("1000")], date(2025, 6, 1)))

    def test_cancelled_invoice_is_not_in_arrears(self):
        cancelled = invoice("1000", status=ledger.STATUS_CANCELLED)
        self.assertFalse(ledger.is_in_arrears(cancelled, [], date(2025, 6, 1)))


class ToMoneyTests(SimpleTestCase):
    def test_rounds_half_up(self):
        self.assertEqual(ledger.to_money("10.005"), Decimal("10.01"))
        self.assertEqual(ledger.to_money(0.1), Decimal("0.10"))

    def test_rejects_non_numbers(self):
        for value in ("ten", None, "", "NaN", float("nan"), Decimal("sNaN"), "Infinity", float("-inf")):
            with self.subTest(value=value):
                with self.assertRaises(InvalidAmount):
                    ledger.to_money(value)
