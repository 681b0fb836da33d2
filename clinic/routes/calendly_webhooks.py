"""
Calendly Webhook Routes
Receives invitee events and feeds them to the appointment lifecycle

Responses tell Calendly whether to retry: 2xx for handled or ignored events
(including unknown event UUIDs), 400 for payloads that will never parse and
500 for failures worth retrying.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ..config import CALENDLY_WEBHOOK_SIGNING_KEY
from ..domain.appointments.router import get_appointment_service
from ..domain.appointments.service import AppointmentService
from ..exceptions import ClinicError, ValidationError
from ..rate_limiter import create_rate_limiter
from ..webhook_security import verify_calendly_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["calendly-webhooks"])

# Rate limiter for webhooks - 100 requests per minute
rate_limit_webhook = create_rate_limiter(
    limit=100,
    window_seconds=60,
    key_prefix="webhook_calendly",
    use_ip=False,  # Global limit for all webhooks
)


@router.post("/calendly")
async def handle_calendly_webhook(
    request: Request,
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(rate_limit_webhook),
):
    """
    Handle Calendly webhook events
    Supported events: invitee.created, invitee.canceled, invitee.rescheduled
    """
    body = await verify_calendly_webhook(request, CALENDLY_WEBHOOK_SIGNING_KEY)

    try:
        envelope = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"❌ Calendly webhook body is not valid JSON: {e}")
        raise ValidationError("Webhook body must be valid JSON") from e

    if not isinstance(envelope, dict):
        raise ValidationError("Webhook body must be a JSON object")

    payload = envelope.get("payload")
    event_type = envelope.get("event_type") or envelope.get("event")
    if not event_type and isinstance(payload, dict):
        event_type = payload.get("event_type")

    try:
        await service.handle_provider_event(event_type, payload)
    except ValidationError as e:
        logger.error(f"❌ Malformed Calendly {event_type} payload: {e.message}")
        raise
    except ClinicError as e:
        logger.error(f"❌ Webhook processing error: {e.message}")
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e

    return {"success": True, "status": "ok"}
