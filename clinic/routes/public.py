"""
Public Routes
Unauthenticated endpoints used by the patient-facing booking page
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..domain.appointments.router import get_appointment_service
from ..domain.appointments.schemas import BookAppointmentRequest, BookAppointmentResponse
from ..domain.appointments.service import AppointmentService
from ..exceptions import DependencyError, ValidationError
from ..rate_limiter import create_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public", tags=["Public"])

API_VERSION = "1.0.0"

BOOKING_PATH = "/api/public/book-appointment"
BOOKING_REJECTED_MESSAGE = "Please check your information and try again"

# 10 booking requests per hour per IP
rate_limit_booking = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="public_booking")


@router.post("/book-appointment", response_model=BookAppointmentResponse)
async def book_appointment(
    data: BookAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(rate_limit_booking),
):
    """
    Record an appointment request and return a link to pick a time slot.
    The link is always present, even when the Calendly API is unreachable.
    """
    try:
        result = await service.request_appointment(data)
    except ValidationError as e:
        logger.warning(f"⚠️ Booking rejected: {e.message}")
        raise ValidationError(BOOKING_REJECTED_MESSAGE, errors=[e.message]) from e
    except DependencyError as e:
        raise DependencyError(
            "We could not save your appointment request, please try again shortly",
            errors=e.errors,
        ) from e

    return BookAppointmentResponse(
        calendlyLink=result["scheduling_link"],
        patientId=result["patient_id"],
        appointmentId=result["appointment_id"],
    )


@router.get("/health")
async def public_health():
    return {
        "success": True,
        "message": "Public API is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
    }
