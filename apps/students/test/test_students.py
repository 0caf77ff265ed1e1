from datetime import date, timedelta

from django.core.exceptions import ValidationError
from django.test import TestCase

from core.models import SchoolConfiguration
from core.utils import get_school_today
from students.models import Student


class StudentNumberTests(TestCase):
    def test_numbers_are_sequential(self):
        first = Student.objects.create(first_name="Musu", last_name="Kollie")
        second = Student.objects.create(first_name="Kpana", middle_name="T.", last_name="Doe")
        self.assertEqual(first.student_number, "STU000001")
        self.assertEqual(second.student_number, "STU000002")
        self.assertEqual(second.full_name, "Kpana T. Doe")

    def test_year_included_when_configured(self):
        config = SchoolConfiguration.get_instance()
        config.include_year_in_student_number = True
        config.save()

        student = Student.objects.create(first_name="Jallah", last_name="Kamara", admission_date=date(2024, 9, 2))
        self.assertEqual(student.student_number, "STU2024000001")

    def test_number_is_stable_on_resave(self):
        student = Student.objects.create(first_name="Musu", last_name="Kollie")
        number = student.student_number
        student.phone = "0886123456"
        student.save()
        student.refresh_from_db()
        self.assertEqual(student.student_number, number)


class StudentValidationTests(TestCase):
    def test_admission_date_defaults_to_today(self):
        student = Student.objects.create(first_name="Musu", last_name="Kollie")
        self.assertEqual(student.admission_date, get_school_today())

    def test_future_date_of_birth_is_rejected(self):
        with self.assertRaises(ValidationError):
            Student.objects.create(
                first_name="Musu", last_name="Kollie", date_of_birth=get_school_today() + timedelta(days=1)
            )
        self.assertFalse(Student.objects.exists())

    def test_date_of_birth_before_admission(self):
        student = Student(
            first_name="Musu", last_name="Kollie", student_number="STU999999",
            date_of_birth=date(2025, 1, 1), admission_date=date(2024, 9, 2),
        )
        with self.assertRaises(ValidationError):
            student.full_clean()

    def test_nationality_defaults_to_liberia(self):
        student = Student.objects.create(first_name="Musu", last_name="Kollie")
        self.assertEqual(student.nationality.code, "LR")
        self.assertEqual(student.nationality.name, "Liberia")
        self.assertTrue(student.is_active())
