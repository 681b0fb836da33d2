"""Appointment router - dashboard endpoints for appointments"""

import logging
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.calendly_service import CalendlyService, get_calendly_service
from ..notifications.router import get_notification_service
from ..notifications.service import NotificationService
from .schemas import (
    AppointmentCreate,
    AppointmentEnvelope,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdate,
    Pagination,
    UpcomingAppointmentsResponse,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["Appointments"])


def get_appointment_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
    calendly: CalendlyService = Depends(get_calendly_service),
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, notifier, calendly, background_tasks)


@router.get("", response_model=AppointmentListResponse)
async def get_appointments(
    date: Optional[date_type] = Query(None, description="Calendar day (YYYY-MM-DD) in the clinic time zone"),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments, pagination = service.list_appointments(date, status, page, limit)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_model(a) for a in appointments],
        pagination=Pagination(**pagination),
    )


@router.get("/upcoming", response_model=UpcomingAppointmentsResponse)
async def get_upcoming_appointments(
    service: AppointmentService = Depends(get_appointment_service),
):
    """Pending requests first, then scheduled appointments from now on (max 10)"""
    appointments = service.list_upcoming()
    return UpcomingAppointmentsResponse(
        appointments=[AppointmentResponse.from_model(a) for a in appointments]
    )


@router.post("", response_model=AppointmentEnvelope, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = await service.create_appointment(data)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_model(appointment))


@router.get("/{appointment_id}", response_model=AppointmentEnvelope)
async def get_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_appointment(appointment_id)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_model(appointment))


@router.patch("/{appointment_id}", response_model=AppointmentEnvelope)
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    service: AppointmentService = Depends(get_appointment_service),
):
    """Change status and/or notes"""
    appointment = await service.update_status(appointment_id, data)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_model(appointment))


@router.delete("/{appointment_id}")
async def cancel_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    """Appointments are cancelled, never removed"""
    await service.cancel_appointment(appointment_id)
    return {"success": True, "message": "Appointment cancelled successfully"}
