"""Appointment domain schemas - Pydantic models for validation"""

from datetime import date as date_type
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import Appointment, AppointmentStatus, AppointmentType
from ...shared.time_utils import TIME_PATTERN
from ...shared.validators import clean_text, validate_email, validate_phone


class BookAppointmentRequest(BaseModel):
    """Public booking form. No date/time: the patient picks a slot on Calendly."""

    # Required; missing and blank are both rejected by the service
    name: str = ""
    email: str = ""
    phone: str = ""
    message: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    address: Optional[str] = None

    @field_validator("age", mode="before")
    @classmethod
    def blank_age(cls, v):
        # Forms post "" or 0 when the field is left empty
        if v in ("", 0, "0"):
            return None
        return v


class BookAppointmentResponse(BaseModel):
    success: bool = True
    message: str = "Appointment request created successfully"
    calendlyLink: str
    patientId: int
    appointmentId: int


class AppointmentCreate(BaseModel):
    """Dashboard-entered appointment with a known slot"""

    patientName: str
    patientPhone: str
    patientEmail: Optional[str] = None
    date: date_type
    time: str
    type: str = AppointmentType.NEW
    notes: Optional[str] = None
    message: Optional[str] = None

    @field_validator("patientName")
    @classmethod
    def validate_name(cls, v):
        v = clean_text(v)
        if not v:
            raise ValueError("Patient name is required")
        return v

    @field_validator("patientPhone")
    @classmethod
    def validate_phone_field(cls, v):
        v = clean_text(v)
        if not v:
            raise ValueError("Patient phone is required")
        return validate_phone(v)

    @field_validator("patientEmail")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(clean_text(v))

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        v = v.strip()
        if not TIME_PATTERN.match(v):
            raise ValueError("Time must be in HH:MM format")
        # Normalise 9:05 to 09:05
        hours, minutes = v.split(":")
        return f"{int(hours):02d}:{minutes}"

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in AppointmentType.ALL:
            raise ValueError(f"Type must be one of: {', '.join(AppointmentType.ALL)}")
        return v


class AppointmentUpdate(BaseModel):
    """Partial dashboard edit. Only provided fields change."""

    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in AppointmentStatus.ALL:
            raise ValueError(f"Status must be one of: {', '.join(AppointmentStatus.ALL)}")
        return v


class PatientSnapshot(BaseModel):
    name: str
    email: str
    phone: str


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: int
    patient: PatientSnapshot
    message: str
    status: str
    date: Optional[datetime] = None
    time: Optional[str] = None
    type: str
    notes: str
    calendlyEventId: Optional[str] = None
    source: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            patient=PatientSnapshot(
                name=appointment.patient_name,
                email=appointment.patient_email or "",
                phone=appointment.patient_phone or "",
            ),
            message=appointment.message or "",
            status=appointment.status,
            date=appointment.date,
            time=appointment.time,
            type=appointment.type,
            notes=appointment.notes or "",
            calendlyEventId=appointment.external_event_id,
            source=appointment.source,
            createdAt=appointment.created_at,
            updatedAt=appointment.updated_at,
        )


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class AppointmentListResponse(BaseModel):
    success: bool = True
    appointments: list[AppointmentResponse]
    pagination: Pagination


class UpcomingAppointmentsResponse(BaseModel):
    success: bool = True
    appointments: list[AppointmentResponse]


class AppointmentEnvelope(BaseModel):
    success: bool = True
    appointment: AppointmentResponse
