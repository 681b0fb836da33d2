"""Notification domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...models import Notification
from ..appointments.schemas import AppointmentResponse


class NotificationResponse(BaseModel):
    id: int
    type: str
    message: str
    appointmentId: Optional[int] = None
    # Expanded reference; None when the appointment is gone
    appointment: Optional[AppointmentResponse] = None
    read: bool
    createdAt: datetime

    @classmethod
    def from_model(cls, notification: Notification, expand: bool = True) -> "NotificationResponse":
        appointment = None
        if expand and notification.appointment is not None:
            appointment = AppointmentResponse.from_model(notification.appointment)
        return cls(
            id=notification.id,
            type=notification.type,
            message=notification.message,
            appointmentId=notification.appointment_id,
            appointment=appointment,
            read=notification.read,
            createdAt=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    success: bool = True
    notifications: list[NotificationResponse]
    unreadCount: int


class NotificationEnvelope(BaseModel):
    success: bool = True
    notification: NotificationResponse
