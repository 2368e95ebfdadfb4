"""Tests for record number generation."""

from datetime import datetime, timezone

from healthchain.models.patient import Patient
from healthchain.services.record_numbers import generate_hospital_number, validate_number_format


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _patient(db, hospital_number):
    db.add(Patient(hospital_number=hospital_number, first_name="Test", last_name="Patient"))
    db.commit()


def test_first_number_of_the_year(db):
    assert generate_hospital_number(db, NOW) == "HN2026000001"


def test_numbers_continue_past_the_padding_width(db):
    _patient(db, "HN2026999999")
    _patient(db, "HN20261000000")

    number = generate_hospital_number(db, NOW)

    assert number == "HN20261000001"
    assert validate_number_format("hospital_number", number)


def test_previous_year_does_not_count(db):
    _patient(db, "HN2025000041")

    assert generate_hospital_number(db, NOW) == "HN2026000001"
