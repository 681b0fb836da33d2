import secrets

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import relationship, validates

from .database import Base
from .shared.time_utils import TIME_PATTERN, utcnow


def generate_booking_token():
    """Opaque token handed to the scheduling provider to correlate its callback"""
    return secrets.token_urlsafe(16)


class AppointmentStatus:
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (PENDING, SCHEDULED, COMPLETED, CANCELLED)


class AppointmentType:
    NEW = "new"
    FOLLOW_UP = "follow-up"
    CONSULTATION = "consultation"

    ALL = (NEW, FOLLOW_UP, CONSULTATION)


class AppointmentSource:
    PUBLIC = "public"
    DASHBOARD = "dashboard"

    ALL = (PUBLIC, DASHBOARD)


class NotificationType:
    NEW_APPOINTMENT = "new_appointment"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    SYSTEM = "system"

    ALL = (
        NEW_APPOINTMENT,
        APPOINTMENT_CONFIRMED,
        APPOINTMENT_CANCELLED,
        APPOINTMENT_RESCHEDULED,
        SYSTEM,
    )


GENDERS = ("Male", "Female", "Other")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)  # Optional for public bookings
    gender = Column(String(20), nullable=True)  # Male, Female, Other
    phone = Column(String(50), nullable=False, default="")
    email = Column(String(255), nullable=True, index=True)  # Stored lower-cased
    address = Column(Text, nullable=True)
    onboarding_date = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    visits = relationship(
        "Visit",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="Visit.date",
    )

    @validates("email")
    def normalize_email(self, _key, value):
        if value is None:
            return None
        value = value.strip().lower()
        return value or None


class Visit(Base):
    """A consultation recorded against a patient. Owned by the patient."""

    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, default=utcnow, nullable=False)
    problem = Column(Text, nullable=False)
    diagnosis = Column(Text, nullable=False)
    # {start_date, end_date, medicines: [{name, morning, afternoon, evening}], revisit_required}
    prescription = Column(JSON, nullable=True)
    created_by = Column(String(255), nullable=True)

    patient = relationship("Patient", back_populates="visits")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Contact snapshot copied at booking time, not a reference to the patient
    patient_name = Column(String(255), nullable=False)
    patient_email = Column(String(255), nullable=False, default="", index=True)
    patient_phone = Column(String(50), nullable=False, default="")

    message = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING, index=True)
    # Scheduled start instant (naive UTC); unset while pending
    date = Column(DateTime, nullable=True, index=True)
    # HH:MM in the clinic time zone; unset while pending
    time = Column(String(5), nullable=True)
    type = Column(String(20), nullable=False, default=AppointmentType.NEW)
    notes = Column(Text, nullable=False, default="")
    external_event_id = Column(String(255), nullable=True, unique=True, index=True)
    source = Column(String(20), nullable=False, default=AppointmentSource.PUBLIC)
    booking_token = Column(
        String(64), nullable=True, unique=True, index=True, default=generate_booking_token
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("time")
    def validate_time(self, _key, value):
        if value is not None and not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM format")
        return value

    @validates("status")
    def validate_status(self, _key, value):
        if value not in AppointmentStatus.ALL:
            raise ValueError(f"Unknown appointment status: {value}")
        return value

    def has_schedule(self) -> bool:
        return self.date is not None and self.time is not None


@event.listens_for(Appointment, "before_insert")
@event.listens_for(Appointment, "before_update")
def check_schedule_matches_status(_mapper, _connection, target: Appointment):
    # pending <=> no date/time; a request cancelled before scheduling stays unscheduled
    if target.status == AppointmentStatus.PENDING:
        if target.date is not None or target.time is not None:
            raise ValueError("Pending appointments cannot carry a date or time")
    elif target.status == AppointmentStatus.CANCELLED:
        if (target.date is None) != (target.time is None):
            raise ValueError("Date and time must be set together")
    elif not target.has_schedule():
        raise ValueError(f"A {target.status} appointment requires a date and time")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    # Weak reference: no FK constraint, may point at an appointment that no longer exists
    appointment_id = Column(Integer, nullable=True, index=True)
    read = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    appointment = relationship(
        "Appointment",
        primaryjoin="foreign(Notification.appointment_id) == Appointment.id",
        viewonly=True,
        lazy="joined",
    )
