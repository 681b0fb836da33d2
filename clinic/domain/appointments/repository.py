"""Appointment repository - Database operations for appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, AppointmentStatus


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def create_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def get_appointment_by_id(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_by_external_event_id(db: Session, event_id: str) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.external_event_id == event_id).first()

    @staticmethod
    def get_pending_by_booking_token(db: Session, token: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.booking_token == token,
                Appointment.status == AppointmentStatus.PENDING,
            )
            .first()
        )

    @staticmethod
    def get_latest_pending_by_email(db: Session, email: str) -> Optional[Appointment]:
        """Most recently created pending appointment for this email"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.patient_email == email,
                Appointment.status == AppointmentStatus.PENDING,
            )
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .first()
        )

    @staticmethod
    def get_appointments(
        db: Session,
        page: int,
        limit: int,
        day_range: Optional[tuple[datetime, datetime]] = None,
        status: Optional[str] = None,
    ) -> tuple[list[Appointment], int]:
        query = db.query(Appointment)
        if day_range:
            start, end = day_range
            query = query.filter(Appointment.date >= start, Appointment.date < end)
        if status:
            query = query.filter(Appointment.status == status)

        total = query.count()
        appointments = (
            query.order_by(
                # Unscheduled rows sort after dated ones on every backend
                Appointment.date.is_(None),
                Appointment.date.asc(),
                Appointment.time.asc(),
                Appointment.created_at.desc(),
                Appointment.id.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return appointments, total

    @staticmethod
    def get_upcoming(db: Session, now: datetime, limit: int) -> list[Appointment]:
        """Pending requests (newest first) followed by future scheduled appointments"""
        pending = (
            db.query(Appointment)
            .filter(Appointment.status == AppointmentStatus.PENDING)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .limit(limit)
            .all()
        )
        remaining = limit - len(pending)
        if remaining <= 0:
            return pending

        scheduled = (
            db.query(Appointment)
            .filter(
                Appointment.status == AppointmentStatus.SCHEDULED,
                Appointment.date >= now,
            )
            .order_by(Appointment.date.asc(), Appointment.time.asc(), Appointment.id.asc())
            .limit(remaining)
            .all()
        )
        return pending + scheduled
