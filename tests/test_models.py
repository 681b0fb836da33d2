"""
Tests for model invariants, validators and time helpers.
"""

from datetime import date, datetime

import pytest

from clinic.models import Appointment, AppointmentStatus, Patient
from clinic.shared.time_utils import (
    clinic_day_range,
    combine_clinic_datetime,
    format_clinic_time,
    parse_provider_timestamp,
)
from clinic.shared.validators import clean_text, validate_email, validate_gender, validate_phone


def appointment(**fields) -> Appointment:
    values = {"patient_name": "Sam Patient", "patient_email": "sam@example.com", "patient_phone": "5550001111"}
    values.update(fields)
    return Appointment(**values)


class TestScheduleInvariant:
    """Pending appointments carry no slot; scheduled and completed ones always do."""

    def test_pending_with_date_is_rejected(self, db):
        db.add(appointment(status=AppointmentStatus.PENDING, date=datetime(2024, 6, 1, 14, 30), time="14:30"))

        with pytest.raises(ValueError):
            db.commit()

    def test_scheduled_without_slot_is_rejected(self, db):
        db.add(appointment(status=AppointmentStatus.SCHEDULED))

        with pytest.raises(ValueError):
            db.commit()

    def test_cancelled_needs_date_and_time_together(self, db):
        db.add(appointment(status=AppointmentStatus.CANCELLED, date=datetime(2024, 6, 1, 14, 30)))

        with pytest.raises(ValueError):
            db.commit()

    def test_cancelled_request_may_stay_unscheduled(self, db):
        db.add(appointment(status=AppointmentStatus.CANCELLED))
        db.commit()

        assert db.query(Appointment).one().date is None

    def test_defaults(self, db):
        row = appointment()
        db.add(row)
        db.commit()

        assert row.status == AppointmentStatus.PENDING
        assert row.type == "new"
        assert row.booking_token
        assert row.notes == ""

    def test_time_format(self):
        with pytest.raises(ValueError):
            appointment(time="2:30pm")

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            appointment(status="archived")


class TestPatientModel:
    def test_email_is_normalised(self):
        assert Patient(full_name="A", phone="", email="  Mixed@Case.COM ").email == "mixed@case.com"
        assert Patient(full_name="A", phone="", email="  ").email is None


class TestValidators:
    def test_clean_text(self):
        assert clean_text("  hi ") == "hi"
        assert clean_text("   ") is None
        assert clean_text(None) is None

    def test_validate_email(self):
        assert validate_email(" Jane@X.com ") == "jane@x.com"
        with pytest.raises(ValueError):
            validate_email("jane@x")

    def test_validate_phone(self):
        assert validate_phone(" +44 20 7946 0958 ") == "+44 20 7946 0958"
        with pytest.raises(ValueError):
            validate_phone("555-1234")

    def test_validate_gender(self):
        assert validate_gender("female") == "Female"
        assert validate_gender("") is None
        with pytest.raises(ValueError):
            validate_gender("unknown")


class TestTimeUtils:
    def test_parse_provider_timestamp(self):
        assert parse_provider_timestamp("2024-06-01T14:30:00Z") == datetime(2024, 6, 1, 14, 30)
        assert parse_provider_timestamp("2024-06-01T16:30:00+02:00") == datetime(2024, 6, 1, 14, 30)
        assert parse_provider_timestamp("2024-06-01T14:30:00.000000Z") == datetime(2024, 6, 1, 14, 30)

    @pytest.mark.parametrize("value", [None, "", "yesterday", 1717252200])
    def test_parse_provider_timestamp_invalid(self, value):
        with pytest.raises(ValueError):
            parse_provider_timestamp(value)

    def test_format_and_combine(self):
        start = combine_clinic_datetime(date(2024, 6, 1), "09:05")

        assert start == datetime(2024, 6, 1, 9, 5)
        assert format_clinic_time(start) == "09:05"

    def test_day_range(self):
        assert clinic_day_range(date(2024, 6, 1)) == (datetime(2024, 6, 1), datetime(2024, 6, 2))
