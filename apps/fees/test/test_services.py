import uuid
from datetime import date
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase

from academics.models import AcademicSession
from core.exceptions import (
    InvalidAmount,
    InvoiceCancelled,
    UnknownFee,
    UnknownFeeSchedule,
    UnknownInvoice,
    UnknownStudent,
)
from fees.models import Fee, FeeInvoice, FeeSchedule, Payment, Receipt
from fees.services import LedgerService, total_outstanding
from fees.store import LedgerStore
from students.models import Student


ISSUED = date(2025, 2, 3)
DUE = date(2025, 3, 31)
BEFORE_DUE = date(2025, 3, 10)
AFTER_DUE = date(2025, 5, 2)


class LedgerServiceTestCase(TestCase):
    def setUp(self):
        self.student = Student.objects.create(first_name="Comfort", last_name="Sirleaf")
        self.service = LedgerService()

    def make_invoice(self, lrd="1000.00", usd="0", due_date=DUE, student=None, today=ISSUED):
        return self.service.create_invoice(
            (student or self.student).pk, amount_due_lrd=lrd, amount_due_usd=usd,
            issue_date=ISSUED, due_date=due_date, today=today,
        )

    def pay(self, invoice, amount, currency="LRD", method="CASH", today=BEFORE_DUE, service=None):
        return (service or self.service).record_payment(
            invoice.id, amount, method, currency=currency, today=today
        )


class CreateInvoiceTests(LedgerServiceTestCase):
    def test_numbers_are_sequential_within_the_year(self):
        first = self.make_invoice()
        second = self.make_invoice()
        self.assertEqual(first.invoice_number, "INV2025000001")
        self.assertEqual(second.invoice_number, "INV2025000002")
        self.assertEqual(first.status, "PENDING")

    def test_overdue_when_created_after_due_date(self):
        invoice = self.service.create_invoice(
            self.student.pk, amount_due_lrd="500", issue_date=date(2025, 1, 2),
            due_date=date(2025, 1, 31), today=date(2025, 2, 15),
        )
        self.assertEqual(invoice.status, "OVERDUE")
        self.assertEqual(FeeInvoice.objects.get(pk=invoice.id).status, "OVERDUE")

    def test_due_date_defaults_to_payment_terms(self):
        invoice = self.service.create_invoice(self.student.pk, amount_due_usd="120", issue_date=ISSUED, today=ISSUED)
        self.assertEqual(invoice.due_date, date(2025, 3, 5))

    def test_rejects_empty_or_negative_amounts(self):
        for lrd, usd in (("0", "0"), ("-10", "50")):
            with self.subTest(lrd=lrd, usd=usd):
                with self.assertRaises(InvalidAmount):
                    self.make_invoice(lrd, usd)
        self.assertFalse(FeeInvoice.objects.exists())

    def test_unknown_student_consumes_no_number(self):
        with self.assertRaises(UnknownStudent):
            self.service.create_invoice(uuid.uuid4(), amount_due_lrd="100", issue_date=ISSUED, today=ISSUED)
        self.assertEqual(self.make_invoice().invoice_number, "INV2025000001")

    def test_invoice_number_cannot_change(self):
        invoice = FeeInvoice.objects.get(pk=self.make_invoice().id)
        invoice.invoice_number = "INV2025999999"
        with self.assertRaises(ValidationError):
            invoice.save()

    def test_signal_assigns_number_to_invoices_created_directly(self):
        invoice = FeeInvoice.objects.create(
            student=self.student, issue_date=ISSUED, due_date=DUE, amount_due_lrd=Decimal("750.00"),
        )
        self.assertEqual(invoice.invoice_number, "INV2025000001")


class FeeScheduleTests(LedgerServiceTestCase):
    def setUp(self):
        super().setUp()
        self.term = AcademicSession.objects.create(
            year_name="2025", term_number=1, start_date=date(2025, 1, 6), end_date=date(2025, 4, 11)
        )
        self.tuition = self.service.create_fee(
            "Tuition Fee", amount_lrd="15000", amount_usd="100", academic_session_id=self.term.pk
        )

    def test_create_fee(self):
        self.assertEqual(self.tuition.amount, {"LRD": Decimal("15000.00"), "USD": Decimal("100.00")})
        self.assertEqual(self.tuition.frequency, "TERMLY")
        fee = Fee.objects.get(pk=self.tuition.id)
        self.assertTrue(fee.is_recurring)
        self.assertEqual(fee.academic_session, self.term)

    def test_fee_rules(self):
        with self.assertRaises(InvalidAmount):
            self.service.create_fee("Exam Fee", amount_lrd="-3000")
        with self.assertRaises(ValidationError):
            self.service.create_fee("Exam Fee", amount_lrd="3000", frequency="HOURLY")
        with self.assertRaises(ValidationError):
            self.service.create_fee("Tuition Fee", amount_lrd="1")
        registration = self.service.create_fee("Registration Fee", frequency="ONE_TIME")
        self.assertFalse(Fee.objects.get(pk=registration.id).is_recurring)

    def test_schedule_defaults_to_fee_amounts_and_session(self):
        schedule = self.service.create_fee_schedule(self.tuition.id, DUE, name="Term 1")
        self.assertEqual(schedule.amount, {"LRD": Decimal("15000.00"), "USD": Decimal("100.00")})
        self.assertEqual(schedule.academic_session_id, self.term.pk)
        self.assertEqual(schedule.fee_name, "Tuition Fee")

    def test_schedule_with_its_own_amounts(self):
        schedule = self.service.create_fee_schedule(
            self.tuition.id, DUE, amount_lrd="7500", name="First instalment"
        )
        self.assertEqual(schedule.amount, {"LRD": Decimal("7500.00"), "USD": Decimal("0.00")})
        self.assertEqual(
            str(FeeSchedule.objects.get(pk=schedule.id)), "Tuition Fee - First instalment (due 2025-03-31)"
        )

    def test_schedule_must_bill_something(self):
        free = self.service.create_fee("Library Access")
        with self.assertRaises(InvalidAmount):
            self.service.create_fee_schedule(free.id, DUE)
        self.assertFalse(FeeSchedule.objects.exists())

    def test_schedule_for_unknown_fee(self):
        for fee_id in (uuid.uuid4(), "not-a-uuid"):
            with self.subTest(fee_id=fee_id):
                with self.assertRaises(UnknownFee):
                    self.service.create_fee_schedule(fee_id, DUE)

    def test_invoice_from_schedule(self):
        schedule = self.service.create_fee_schedule(self.tuition.id, DUE)
        invoice = self.service.create_invoice(
            self.student.pk, fee_schedule_id=schedule.id, issue_date=ISSUED, today=ISSUED
        )

        self.assertEqual(invoice.amount_due, {"LRD": Decimal("15000.00"), "USD": Decimal("100.00")})
        self.assertEqual(invoice.due_date, DUE)
        self.assertEqual(invoice.fee_schedule_id, schedule.id)
        stored = FeeInvoice.objects.get(pk=invoice.id)
        self.assertEqual(stored.fee_schedule.fee, Fee.objects.get(pk=self.tuition.id))
        self.assertEqual(stored.academic_session, self.term)

        self.assertEqual(self.pay(invoice, "15000.00")["status"], "PARTIAL")
        self.assertEqual(self.pay(invoice, "100.00", currency="USD")["status"], "PAID")

    def test_explicit_values_override_the_schedule(self):
        schedule = self.service.create_fee_schedule(self.tuition.id, DUE)
        invoice = self.service.create_invoice(
            self.student.pk, amount_due_lrd="5000", fee_schedule_id=schedule.id,
            issue_date=ISSUED, due_date=date(2025, 4, 30), today=ISSUED,
        )
        self.assertEqual(invoice.amount_due, {"LRD": Decimal("5000.00"), "USD": Decimal("0.00")})
        self.assertEqual(invoice.due_date, date(2025, 4, 30))

    def test_unknown_schedule_consumes_no_number(self):
        with self.assertRaises(UnknownFeeSchedule):
            self.service.create_invoice(
                self.student.pk, fee_schedule_id=uuid.uuid4(), issue_date=ISSUED, today=ISSUED
            )
        self.assertEqual(self.make_invoice().invoice_number, "INV2025000001")


class RecordPaymentTests(LedgerServiceTestCase):
    def test_partial_then_paid(self):
        invoice = self.make_invoice()

        first = self.pay(invoice, "400.00")
        self.assertEqual(first["status"], "PARTIAL")
        self.assertEqual(first["receipt"].receipt_number, "REC2025000001")
        self.assertEqual(first["receipt"].amount, Decimal("400.00"))

        second = self.pay(invoice, "600.00")
        self.assertEqual(second["status"], "PAID")
        self.assertEqual(second["receipt"].receipt_number, "REC2025000002")
        self.assertEqual(FeeInvoice.objects.get(pk=invoice.id).status, "PAID")

    def test_identical_payments_are_both_recorded(self):
        invoice = self.make_invoice()
        self.pay(invoice, "100.00")
        self.pay(invoice, "100.00")
        self.assertEqual(Payment.objects.filter(invoice_id=invoice.id).count(), 2)
        self.assertEqual(Receipt.objects.filter(invoice_id=invoice.id).count(), 2)

    def test_non_positive_amounts_leave_no_trace(self):
        invoice = self.make_invoice()
        for amount in ("0", "-5"):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmount):
                    self.pay(invoice, amount)
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(Receipt.objects.exists())
        self.assertEqual(FeeInvoice.objects.get(pk=invoice.id).status, "PENDING")

    def test_nan_amount_is_an_invalid_amount(self):
        invoice = self.make_invoice()
        for amount in ("NaN", float("nan"), "Infinity"):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmount):
                    self.pay(invoice, amount)
        self.assertFalse(Payment.objects.exists())

    def test_failure_after_payment_insert_rolls_everything_back(self):
        invoice = self.make_invoice()
        for step in ("create_receipt", "update_invoice_status"):
            with self.subTest(step=step):
                with mock.patch.object(LedgerStore, step, side_effect=RuntimeError("database went away")):
                    with self.assertRaises(RuntimeError):
                        self.pay(invoice, "400.00")
                self.assertFalse(Payment.objects.exists())
                self.assertFalse(Receipt.objects.exists())
                self.assertEqual(FeeInvoice.objects.get(pk=invoice.id).status, "PENDING")

        # The receipt number claimed by the failed attempts was released too
        result = self.pay(invoice, "400.00")
        self.assertEqual(result["receipt"].receipt_number, "REC2025000001")
        self.assertEqual(Payment.objects.count(), 1)

    def test_unknown_invoice(self):
        for invoice_id in (uuid.uuid4(), "not-a-uuid"):
            with self.subTest(invoice_id=invoice_id):
                with self.assertRaises(UnknownInvoice):
                    self.service.record_payment(invoice_id, "10", "CASH", today=BEFORE_DUE)

    def test_unknown_method_and_currency(self):
        invoice = self.make_invoice()
        with self.assertRaises(ValidationError):
            self.pay(invoice, "10", method="BITCOIN")
        with self.assertRaises(ValidationError):
            self.pay(invoice, "10", currency="EUR")

    def test_overpayment_rejected_by_default(self):
        invoice = self.make_invoice()
        with self.assertRaises(InvalidAmount):
            self.pay(invoice, "1200.00")
        self.assertFalse(Payment.objects.exists())

    def test_overpayment_allowed_leaves_credit(self):
        invoice = self.make_invoice()
        result = self.pay(invoice, "1200.00", service=LedgerService(allow_overpayment=True))
        self.assertEqual(result["status"], "PAID")
        balance = self.service.compute_student_balance(self.student.pk)
        self.assertEqual(balance["LRD"]["balance"], Decimal("-200.00"))

    def test_payment_in_currency_not_billed_is_rejected(self):
        invoice = self.make_invoice(lrd="1000.00", usd="0")
        with self.assertRaises(InvalidAmount):
            self.pay(invoice, "10.00", currency="USD")

    def test_dual_currency_invoice(self):
        invoice = self.make_invoice(lrd="15000.00", usd="120.00")
        self.assertEqual(self.pay(invoice, "15000.00")["status"], "PARTIAL")
        self.assertEqual(self.pay(invoice, "120.00", currency="USD")["status"], "PAID")

    def test_cancelled_invoice_accepts_no_payments(self):
        invoice = self.make_invoice()
        self.service.cancel_invoice(invoice.id, "Billed twice")
        with self.assertRaises(InvoiceCancelled):
            self.pay(invoice, "100.00")
        with self.assertRaises(InvoiceCancelled):
            self.service.cancel_invoice(invoice.id)

    def test_invoice_with_payments_cannot_be_cancelled(self):
        invoice = self.make_invoice()
        self.pay(invoice, "100.00")
        with self.assertRaises(ValidationError):
            self.service.cancel_invoice(invoice.id)
        self.assertEqual(FeeInvoice.objects.get(pk=invoice.id).status, "PARTIAL")

    def test_payments_and_receipts_are_immutable(self):
        invoice = self.make_invoice()
        self.pay(invoice, "100.00")
        payment = Payment.objects.get()
        payment.amount = Decimal("1.00")
        with self.assertRaises(ValidationError):
            payment.save()
        with self.assertRaises(ValidationError):
            payment.delete()
        with self.assertRaises(ValidationError):
            Receipt.objects.get().delete()


class StatusRefreshTests(LedgerServiceTestCase):
    def test_refresh_marks_overdue(self):
        late = self.make_invoice()
        settled = self.make_invoice()
        self.pay(settled, "1000.00")

        self.assertEqual(self.service.refresh_invoice_statuses(today=AFTER_DUE), 1)
        self.assertEqual(FeeInvoice.objects.get(pk=late.id).status, "OVERDUE")
        self.assertEqual(FeeInvoice.objects.get(pk=settled.id).status, "PAID")
        self.assertEqual(self.service.refresh_invoice_statuses(today=AFTER_DUE), 0)

    def test_refresh_command(self):
        invoice = self.make_invoice()
        out = StringIO()
        call_command("refresh_invoice_statuses", "--as-of", "2025-05-02", stdout=out)
        self.assertIn("Updated status of 1 invoice(s)", out.getvalue())
        self.assertEqual(self.service.derive_status(invoice.id, today=AFTER_DUE), "OVERDUE")
        self.assertEqual(self.service.refresh_invoice_status(invoice.id, today=BEFORE_DUE), "PENDING")


class BalanceAndArrearsTests(LedgerServiceTestCase):
    def test_student_balance_excludes_cancelled_invoices(self):
        first = self.make_invoice(lrd="1000.00", usd="50.00")
        self.make_invoice(lrd="500.00")
        cancelled = self.make_invoice(lrd="9999.00")
        self.service.cancel_invoice(cancelled.id)
        self.pay(first, "400.00")
        self.pay(first, "50.00", currency="USD")

        balance = self.service.compute_student_balance(self.student.pk)

        self.assertEqual(balance["LRD"], {
            "total_due": Decimal("1500.00"), "total_paid": Decimal("400.00"), "balance": Decimal("1100.00"),
        })
        self.assertEqual(balance["USD"]["balance"], Decimal("0.00"))

    def test_balance_of_unknown_student(self):
        with self.assertRaises(UnknownStudent):
            self.service.compute_student_balance(uuid.uuid4())

    def test_arrears_ignore_stale_stored_status(self):
        other = Student.objects.create(first_name="Jallah", last_name="Kamara")
        open_invoice = self.make_invoice()
        partly_paid = self.make_invoice(lrd="2000.00", student=other)
        settled = self.make_invoice()
        self.pay(partly_paid, "500.00")
        self.pay(settled, "1000.00")

        # Stored statuses are still PENDING / PARTIAL; the report derives them fresh.
        rows = self.service.compute_arrears(today=AFTER_DUE)

        by_number = {row["invoice_number"]: row for row in rows}
        self.assertEqual(set(by_number), {open_invoice.invoice_number, partly_paid.invoice_number})
        row = by_number[open_invoice.invoice_number]
        self.assertEqual(row["status"], "OVERDUE")
        self.assertEqual(row["days_overdue"], 32)
        self.assertEqual(row["balance_lrd"], Decimal("1000.00"))
        self.assertEqual(row["student_name"], "Comfort Sirleaf")
        self.assertEqual(row["student_number"], self.student.student_number)
        self.assertEqual(by_number[partly_paid.invoice_number]["status"], "PARTIAL")
        self.assertEqual(total_outstanding(rows, "LRD"), Decimal("2500.00"))
        self.assertEqual(total_outstanding(rows, "USD"), Decimal("0.00"))

    def test_nothing_in_arrears(self):
        self.assertEqual(self.service.compute_arrears(today=AFTER_DUE), [])
