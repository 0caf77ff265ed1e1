import threading
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

from django.db import IntegrityError
from django.test import SimpleTestCase, TestCase

from core.exceptions import AllocationConflict
from core.models import FinancialSettings, NumberSequence, SchoolConfiguration
from core.sequences import (
    KIND_INVOICE,
    KIND_RECEIPT,
    KIND_STUDENT,
    MAX_ALLOCATION_ATTEMPTS,
    NumberingFormat,
    allocate_sequential_number,
)
from core.store import SequenceStore

INVOICE_FORMAT = NumberingFormat('INV', include_year=True)
STUDENT_FORMAT = NumberingFormat('STU', include_year=False)


class InMemorySequenceStore:
    """Thread-safe counters; the first ``conflicts`` calls raise AllocationConflict."""

    def __init__(self, conflicts=0):
        self.lock = threading.Lock()
        self.counters = {}
        self.conflicts = conflicts
        self.calls = 0

    def next_sequence_value(self, kind, scope):
        with self.lock:
            self.calls += 1
            if self.conflicts:
                self.conflicts -= 1
                raise AllocationConflict(kind, scope)
            value = self.counters.get((kind, scope), 0) + 1
            self.counters[(kind, scope)] = value
            return value


class NumberingFormatTests(SimpleTestCase):
    def test_year_embedded(self):
        self.assertEqual(INVOICE_FORMAT.format(123, '2025'), 'INV2025000123')

    def test_without_year(self):
        self.assertEqual(STUDENT_FORMAT.format(1, 'ALL'), 'STU000001')

    def test_padding_is_a_minimum(self):
        self.assertEqual(NumberingFormat('R', False, padding=3).format(12345, 'ALL'), 'R12345')


class AllocateSequentialNumberTests(SimpleTestCase):
    def test_scope_follows_year(self):
        store = InMemorySequenceStore()

        def allocate(year):
            return allocate_sequential_number(KIND_INVOICE, store=store, numbering=INVOICE_FORMAT, year=year)

        self.assertEqual(allocate(2025), 'INV2025000001')
        self.assertEqual(allocate(2025), 'INV2025000002')
        self.assertEqual(allocate(2026), 'INV2026000001')

    def test_global_scope_without_year(self):
        store = InMemorySequenceStore()
        allocate_sequential_number(KIND_STUDENT, store=store, numbering=STUDENT_FORMAT, year=2025)
        self.assertEqual(list(store.counters), [(KIND_STUDENT, 'ALL')])

    def test_kinds_have_separate_counters(self):
        store = InMemorySequenceStore()
        receipt_format = NumberingFormat('REC', True)
        allocate_sequential_number(KIND_INVOICE, store=store, numbering=INVOICE_FORMAT, year=2025)
        number = allocate_sequential_number(KIND_RECEIPT, store=store, numbering=receipt_format, year=2025)
        self.assertEqual(number, 'REC2025000001')

    def test_concurrent_allocations_are_unique(self):
        store = InMemorySequenceStore()

        def allocate(_):
            return allocate_sequential_number(KIND_INVOICE, store=store, numbering=INVOICE_FORMAT, year=2025)

        with ThreadPoolExecutor(max_workers=16) as pool:
            numbers = list(pool.map(allocate, range(200)))

        self.assertEqual(len(set(numbers)), 200)
        self.assertEqual(max(numbers), 'INV2025000200')

    def test_conflicts_are_retried(self):
        store = InMemorySequenceStore(conflicts=2)
        number = allocate_sequential_number(KIND_INVOICE, store=store, numbering=INVOICE_FORMAT, year=2025)
        self.assertEqual(number, 'INV2025000001')
        self.assertEqual(store.calls, 3)

    def test_gives_up_after_repeated_conflicts(self):
        store = InMemorySequenceStore(conflicts=MAX_ALLOCATION_ATTEMPTS)
        with self.assertRaises(AllocationConflict):
            allocate_sequential_number(KIND_INVOICE, store=store, numbering=INVOICE_FORMAT, year=2025)
        self.assertEqual(store.calls, MAX_ALLOCATION_ATTEMPTS)
        self.assertEqual(store.counters, {})

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            allocate_sequential_number('VOUCHER', store=InMemorySequenceStore(), numbering=STUDENT_FORMAT)


class SequenceStoreTests(TestCase):
    def test_counter_per_scope(self):
        store = SequenceStore()
        self.assertEqual([store.next_sequence_value(KIND_RECEIPT, '2025') for _ in range(3)], [1, 2, 3])
        self.assertEqual(store.next_sequence_value(KIND_RECEIPT, '2026'), 1)
        self.assertEqual(NumberSequence.objects.get(kind=KIND_RECEIPT, scope='2025').last_value, 3)

    def test_creation_race_becomes_allocation_conflict(self):
        with mock.patch.object(NumberSequence.objects, 'create', side_effect=IntegrityError):
            with self.assertRaises(AllocationConflict):
                SequenceStore().next_sequence_value(KIND_INVOICE, '2025')

    def test_configured_formats(self):
        settings = FinancialSettings.get_instance()
        settings.invoice_prefix = 'BILL-'
        settings.sequence_padding = 4
        settings.save()
        config = SchoolConfiguration.get_instance()
        config.include_year_in_student_number = True
        config.save()

        self.assertEqual(allocate_sequential_number(KIND_INVOICE, year=2025), 'BILL-20250001')
        self.assertEqual(allocate_sequential_number(KIND_STUDENT, year=2024), 'STU20240001')
