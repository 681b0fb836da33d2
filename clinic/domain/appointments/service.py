"""
Appointment service - the appointment lifecycle coordinator

Drives appointments through pending -> scheduled -> completed/cancelled from
three triggers: the public booking form, Calendly webhooks and dashboard edits.

Only the state change itself is authoritative. Dashboard notifications, patient
emails and the scheduling-link call are best effort: their failures are logged
and never undo a committed transition.
"""

import logging
import math
from typing import Any, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import email_service
from ...exceptions import ClinicError, DependencyError, InvalidTransitionError, NotFoundError, ValidationError
from ...models import (
    Appointment,
    AppointmentSource,
    AppointmentStatus,
    AppointmentType,
    NotificationType,
    Patient,
)
from ...services.calendly_service import CalendlyService
from ...shared.time_utils import (
    clinic_day_range,
    combine_clinic_datetime,
    format_clinic_date,
    format_clinic_time,
    parse_provider_timestamp,
    utcnow,
)
from ...shared.validators import clean_text, validate_age, validate_email, validate_gender, validate_phone
from ..notifications.service import NotificationService
from ..patients.repository import PatientRepository
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentUpdate, BookAppointmentRequest

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 10
MAX_PAGE_SIZE = 100

# Legal dashboard status edits. Same-status edits are no-ops and not listed.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CANCELLED}),
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset({AppointmentStatus.CANCELLED}),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Calendly webhook event types
INVITEE_CREATED = "invitee.created"
INVITEE_CANCELED = "invitee.canceled"
INVITEE_RESCHEDULED = "invitee.rescheduled"


def check_transition(current: str, target: str) -> None:
    """
    Raises:
        InvalidTransitionError: If the status change is not allowed
    """
    if current == target:
        return
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cannot change appointment status from {current} to {target}")


def format_questions_and_answers(items: Optional[list[dict]]) -> str:
    """Fold Calendly Q&A into newline-joined 'question: answer' lines"""
    if not isinstance(items, list):
        return ""
    lines = []
    for item in items:
        if not isinstance(item, dict) or not item.get("question"):
            continue
        lines.append(f"{item['question']}: {item.get('answer') or ''}")
    return "\n".join(lines)


class AppointmentService:
    """Service layer for the appointment lifecycle"""

    def __init__(
        self,
        db: Session,
        notifier: NotificationService,
        calendly: Optional[CalendlyService] = None,
        background_tasks: Optional[BackgroundTasks] = None,
    ):
        self.db = db
        self.repo = AppointmentRepository()
        self.patients = PatientRepository()
        self.notifier = notifier
        self.calendly = calendly or CalendlyService()
        self.background_tasks = background_tasks

    # ------------------------------------------------------------------
    # Best-effort side effects
    # ------------------------------------------------------------------

    async def _notify(self, appointment: Appointment, notification_type: str) -> bool:
        try:
            await self.notifier.emit_for_appointment(appointment, notification_type)
            return True
        except ClinicError as e:
            logger.error(
                f"⚠️ Failed to create {notification_type} notification for appointment {appointment.id} (non-blocking): {e.message}"
            )
            return False

    async def _notify_system(self, message: str, appointment_id: int) -> bool:
        try:
            await self.notifier.emit_system(message, appointment_id)
            return True
        except ClinicError as e:
            logger.error(f"⚠️ Failed to create system notification (non-blocking): {e.message}")
            return False

    def _queue_email(self, send, *args) -> bool:
        """Run an email helper after the response has been sent"""
        if self.background_tasks is None:
            logger.warning(f"⚠️ No background task runner, skipping {send.__name__}")
            return False
        self.background_tasks.add_task(send, *args)
        return True

    def _queue_confirmation_email(self, appointment: Appointment) -> None:
        if not appointment.patient_email:
            return
        self._queue_email(
            email_service.send_appointment_confirmation,
            appointment.patient_email,
            appointment.patient_name,
            format_clinic_date(appointment.date),
            appointment.time,
            appointment.type,
            appointment.notes,
        )

    def _queue_status_email(self, appointment: Appointment) -> None:
        if not appointment.patient_email:
            return
        self._queue_email(
            email_service.send_appointment_status_update,
            appointment.patient_email,
            appointment.patient_name,
            appointment.status,
            format_clinic_date(appointment.date) if appointment.date else "",
            appointment.time or "",
        )

    def _save(self, appointment: Appointment, action: str) -> Appointment:
        try:
            return self.repo.save(self.db, appointment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to {action} appointment {appointment.id}: {e}")
            raise DependencyError(f"Failed to {action} appointment") from e

    # ------------------------------------------------------------------
    # Public booking
    # ------------------------------------------------------------------

    def _resolve_patient(self, email: str, **new_patient_fields) -> Patient:
        patient = self.patients.get_patient_by_email(self.db, email)
        if patient:
            return patient
        logger.info(f"👤 Creating patient record for {email}")
        return self.patients.create_patient(self.db, email=email, **new_patient_fields)

    async def request_appointment(self, data: BookAppointmentRequest) -> dict[str, Any]:
        """
        Record a public booking request and hand back a scheduling link.

        Returns:
            {"scheduling_link", "patient_id", "appointment_id"}

        Raises:
            ValidationError: Missing or malformed contact details
            DependencyError: Patient or appointment could not be stored
        """
        name = clean_text(data.name)
        email = clean_text(data.email)
        phone = clean_text(data.phone)
        if not name or not email or not phone:
            raise ValidationError("Name, email, and phone are required")

        try:
            email = validate_email(email)
            phone = validate_phone(phone)
            age = validate_age(data.age)
            gender = validate_gender(data.gender)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        message = clean_text(data.message) or ""
        logger.info(f"📥 Appointment request from {email}")

        try:
            patient = self._resolve_patient(
                email,
                full_name=name,
                phone=phone,
                age=age,
                gender=gender,
                address=clean_text(data.address),
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to store patient for {email}: {e}")
            raise DependencyError("Failed to save patient record") from e

        patient_id = patient.id
        try:
            appointment = self.repo.create_appointment(
                self.db,
                patient_name=name,
                patient_email=email,
                patient_phone=phone,
                message=message,
                status=AppointmentStatus.PENDING,
                type=AppointmentType.NEW,
                source=AppointmentSource.PUBLIC,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"❌ Patient {patient_id} exists but appointment request for {email} failed: {e}"
            )
            raise DependencyError(
                f"Patient record {patient_id} exists but the appointment request could not be created",
                errors=[{"patientId": patient_id}],
            ) from e

        logger.info(f"✅ Pending appointment {appointment.id} created for patient {patient_id}")
        await self._notify(appointment, NotificationType.NEW_APPOINTMENT)

        scheduling_link = await self.calendly.get_scheduling_link(
            name, email, appointment.booking_token
        )

        self._queue_email(
            email_service.send_appointment_request_confirmation,
            email,
            name,
            phone,
            message,
            scheduling_link,
        )

        return {
            "scheduling_link": scheduling_link,
            "patient_id": patient_id,
            "appointment_id": appointment.id,
        }

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    async def create_appointment(self, data: AppointmentCreate) -> Appointment:
        """Dashboard entry with a known slot, stored directly as scheduled"""
        try:
            start = combine_clinic_datetime(data.date, data.time)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        try:
            appointment = self.repo.create_appointment(
                self.db,
                patient_name=data.patientName,
                patient_email=data.patientEmail or "",
                patient_phone=data.patientPhone,
                message=clean_text(data.message) or "",
                notes=clean_text(data.notes) or "",
                status=AppointmentStatus.SCHEDULED,
                date=start,
                time=data.time,
                type=data.type,
                source=AppointmentSource.DASHBOARD,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create appointment for {data.patientName}: {e}")
            raise DependencyError("Failed to create appointment") from e

        logger.info(f"✅ Appointment {appointment.id} scheduled from dashboard")
        await self._notify(appointment, NotificationType.APPOINTMENT_CONFIRMED)
        self._queue_confirmation_email(appointment)
        return appointment

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def list_appointments(
        self,
        day=None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Appointment], dict[str, int]]:
        """Filtered page of appointments plus {current, pages, total}"""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        if status and status not in AppointmentStatus.ALL:
            raise ValidationError(f"Status must be one of: {', '.join(AppointmentStatus.ALL)}")
        limit = min(limit, MAX_PAGE_SIZE)

        try:
            appointments, total = self.repo.get_appointments(
                self.db,
                page,
                limit,
                day_range=clinic_day_range(day) if day else None,
                status=status,
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Error fetching appointments: {e}")
            raise DependencyError("Failed to fetch appointments") from e

        pagination = {"current": page, "pages": math.ceil(total / limit), "total": total}
        return appointments, pagination

    def list_upcoming(self) -> list[Appointment]:
        """Pending requests first (they need action), then future scheduled ones"""
        try:
            return self.repo.get_upcoming(self.db, utcnow(), UPCOMING_LIMIT)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error fetching upcoming appointments: {e}")
            raise DependencyError("Failed to fetch upcoming appointments") from e

    async def _enter_status(self, appointment: Appointment, target: str) -> None:
        """Side effects of a committed transition"""
        if target == AppointmentStatus.COMPLETED:
            await self._notify_system(
                f"✅ Appointment completed for {appointment.patient_name}", appointment.id
            )
            self._queue_status_email(appointment)
        elif target == AppointmentStatus.CANCELLED:
            await self._notify(appointment, NotificationType.APPOINTMENT_CANCELLED)
            self._queue_status_email(appointment)

    async def update_status(self, appointment_id: int, data: AppointmentUpdate) -> Appointment:
        """
        Partial dashboard edit of status and/or notes.

        Raises:
            NotFoundError: Unknown appointment
            InvalidTransitionError: Status change not allowed from the current status
        """
        appointment = self.get_appointment(appointment_id)
        previous = appointment.status

        if data.status is not None:
            check_transition(previous, data.status)
        if data.status is None and data.notes is None:
            return appointment

        if data.status is not None:
            appointment.status = data.status
        if data.notes is not None:
            appointment.notes = data.notes.strip()
        appointment = self._save(appointment, "update")

        logger.info(f"📝 Updated appointment {appointment_id}: status={appointment.status}")
        if appointment.status != previous:
            await self._enter_status(appointment, appointment.status)
        return appointment

    async def cancel_appointment(self, appointment_id: int) -> Appointment:
        """Cancel from any state. Cancelling a cancelled appointment changes nothing."""
        appointment = self.get_appointment(appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED:
            logger.info(f"Appointment {appointment_id} already cancelled")
            return appointment

        check_transition(appointment.status, AppointmentStatus.CANCELLED)
        appointment.status = AppointmentStatus.CANCELLED
        appointment = self._save(appointment, "cancel")

        logger.info(f"❌ Cancelled appointment {appointment_id}")
        await self._enter_status(appointment, AppointmentStatus.CANCELLED)
        return appointment

    # ------------------------------------------------------------------
    # Calendly webhooks
    # ------------------------------------------------------------------

    async def handle_provider_event(
        self, event_type: Optional[str], payload: Any
    ) -> Optional[Appointment]:
        """
        Apply a Calendly webhook event.

        Returns the affected appointment, or None when the event was ignored.

        Raises:
            ValidationError: Malformed payload
            DependencyError: Storage failure (the provider should retry)
        """
        logger.info(f"📥 Calendly event received: {event_type}")
        handlers = {
            INVITEE_CREATED: self._handle_invitee_created,
            INVITEE_CANCELED: self._handle_invitee_canceled,
            INVITEE_RESCHEDULED: self._handle_invitee_rescheduled,
        }
        handler = handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            logger.info(f"ℹ️ Unhandled Calendly event type: {event_type}")
            return None

        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be an object")
        return await handler(payload)

    @staticmethod
    def _event_block(payload: dict) -> dict:
        event = payload.get("event")
        if not isinstance(event, dict):
            raise ValidationError("Webhook payload is missing the event block")
        if not event.get("uuid") or not isinstance(event["uuid"], str):
            raise ValidationError("Webhook payload is missing the event UUID")
        return event

    @staticmethod
    def _start_time(event: dict):
        try:
            return parse_provider_timestamp(event.get("start_time"))
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid event start time: {event.get('start_time')}") from e

    def _correlate_pending(self, payload: dict, email: str) -> Optional[Appointment]:
        """Booking token first, then the most recent pending request for the email"""
        tracking = payload.get("tracking")
        token = tracking.get("utm_content") if isinstance(tracking, dict) else None
        if token and isinstance(token, str):
            appointment = self.repo.get_pending_by_booking_token(self.db, token)
            if appointment:
                logger.info(f"🔗 Matched appointment {appointment.id} by booking token")
                return appointment
            logger.warning("⚠️ Booking token did not match a pending appointment, falling back to email")

        return self.repo.get_latest_pending_by_email(self.db, email)

    async def _handle_invitee_created(self, payload: dict) -> Appointment:
        invitee = payload.get("invitee")
        invitee_email = invitee.get("email") if isinstance(invitee, dict) else None
        if not isinstance(invitee_email, str) or not invitee_email.strip():
            raise ValidationError("Webhook payload is missing the invitee email")
        event = self._event_block(payload)
        start = self._start_time(event)
        event_id = event["uuid"]
        email = invitee_email.strip().lower()
        invitee_name = invitee.get("name")
        invitee_name = clean_text(invitee_name) if isinstance(invitee_name, str) else None
        notes = format_questions_and_answers(invitee.get("questions_and_answers"))

        logger.info(f"📅 Processing invitee.created for: {email}")
        existing = self.repo.get_by_external_event_id(self.db, event_id)
        if existing:
            logger.info(f"Calendly event {event_id} already recorded on appointment {existing.id}")
            return existing

        try:
            patient = self._resolve_patient(email, full_name=invitee_name or email, phone="")
            appointment = self._correlate_pending(payload, email)

            if appointment:
                logger.info(f"✅ Updating existing pending appointment: {appointment.id}")
                appointment.status = AppointmentStatus.SCHEDULED
                appointment.date = start
                appointment.time = format_clinic_time(start)
                appointment.external_event_id = event_id
                if notes:
                    appointment.notes = notes
                appointment = self.repo.save(self.db, appointment)
            else:
                logger.warning("⚠️ No pending appointment found, creating new one")
                appointment = self.repo.create_appointment(
                    self.db,
                    patient_name=invitee_name or patient.full_name,
                    patient_email=email,
                    patient_phone=patient.phone or "",
                    status=AppointmentStatus.SCHEDULED,
                    date=start,
                    time=format_clinic_time(start),
                    type=AppointmentType.NEW,
                    notes=notes,
                    external_event_id=event_id,
                    source=AppointmentSource.PUBLIC,
                )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error handling invitee.created for {email}: {e}")
            raise DependencyError("Failed to record scheduled appointment") from e

        await self._notify(appointment, NotificationType.APPOINTMENT_CONFIRMED)
        self._queue_confirmation_email(appointment)
        return appointment

    async def _handle_invitee_canceled(self, payload: dict) -> Optional[Appointment]:
        event = self._event_block(payload)
        appointment = self.repo.get_by_external_event_id(self.db, event["uuid"])
        if not appointment:
            logger.warning(f"⚠️ Appointment not found for Calendly event: {event['uuid']}")
            return None
        if appointment.status == AppointmentStatus.CANCELLED:
            logger.info(f"Appointment {appointment.id} already cancelled, ignoring repeat event")
            return appointment

        appointment.status = AppointmentStatus.CANCELLED
        appointment = self._save(appointment, "cancel")
        await self._notify(appointment, NotificationType.APPOINTMENT_CANCELLED)
        self._queue_status_email(appointment)
        return appointment

    async def _handle_invitee_rescheduled(self, payload: dict) -> Optional[Appointment]:
        event = self._event_block(payload)
        start = self._start_time(event)
        appointment = self.repo.get_by_external_event_id(self.db, event["uuid"])
        if not appointment:
            logger.warning(f"⚠️ Appointment not found for Calendly event: {event['uuid']}")
            return None

        appointment.date = start
        appointment.time = format_clinic_time(start)
        appointment = self._save(appointment, "reschedule")
        await self._notify(appointment, NotificationType.APPOINTMENT_RESCHEDULED)
        return appointment
