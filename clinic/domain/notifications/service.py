"""
Notification service - records lifecycle events and pushes them to the dashboard

Every notification is written to the database first and then broadcast to the
dashboard room. Sessions that were not connected when an event was emitted
catch up through the list endpoint.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import NOTIFICATION_RETENTION_DAYS
from ...exceptions import DependencyError, NotFoundError, ValidationError
from ...models import Appointment, Notification, NotificationType
from ...services.dashboard_broadcaster import DashboardBroadcaster
from ...shared.time_utils import format_clinic_date, utcnow
from .repository import NotificationRepository
from .schemas import NotificationResponse

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def render_appointment_message(appointment: Appointment, notification_type: str) -> str:
    """Message text is frozen at creation; later edits to the appointment don't change it"""
    name = appointment.patient_name
    if notification_type == NotificationType.NEW_APPOINTMENT:
        return f"🆕 New appointment request from {name} ({appointment.patient_phone})"
    if notification_type == NotificationType.APPOINTMENT_CONFIRMED:
        return f"✅ Appointment confirmed for {name} on {format_clinic_date(appointment.date)}"
    if notification_type == NotificationType.APPOINTMENT_CANCELLED:
        return f"❌ Appointment cancelled for {name}"
    if notification_type == NotificationType.APPOINTMENT_RESCHEDULED:
        return f"📅 Appointment rescheduled for {name} to {format_clinic_date(appointment.date)}"
    return f"📋 Appointment update for {name}"


class NotificationService:
    """Service layer for the notification feed"""

    def __init__(self, db: Session, broadcaster: Optional[DashboardBroadcaster] = None):
        self.db = db
        self.repo = NotificationRepository()
        self.broadcaster = broadcaster

    async def _push(self, event: str, data=None) -> None:
        """Broadcast to the dashboard room. Failures never reach the caller."""
        if self.broadcaster is None:
            logger.warning(f"⚠️ No dashboard broadcaster configured, '{event}' not pushed")
            return
        try:
            await self.broadcaster.broadcast(event, data)
        except Exception as e:
            logger.warning(f"⚠️ Failed to push '{event}' to dashboard sessions: {e}")

    async def emit(
        self, notification_type: str, message: str, appointment_id: Optional[int] = None
    ) -> Notification:
        """
        Persist a notification and push it to every dashboard session.

        Raises:
            ValidationError: Unknown notification type
            DependencyError: The notification could not be stored
        """
        if notification_type not in NotificationType.ALL:
            raise ValidationError(f"Unknown notification type: {notification_type}")

        logger.info(f"🔔 Creating notification: {notification_type} - {message}")
        try:
            notification = self.repo.create_notification(
                self.db, notification_type, message, appointment_id
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to store notification: {e}")
            raise DependencyError("Failed to store notification") from e

        payload = NotificationResponse.from_model(notification, expand=False).model_dump(
            mode="json"
        )
        await self._push("notification", payload)
        return notification

    async def emit_for_appointment(
        self, appointment: Appointment, notification_type: str
    ) -> Notification:
        message = render_appointment_message(appointment, notification_type)
        return await self.emit(notification_type, message, appointment.id)

    async def emit_system(
        self, message: str, appointment_id: Optional[int] = None
    ) -> Notification:
        return await self.emit(NotificationType.SYSTEM, message, appointment_id)

    def list_notifications(self, limit: int = 20, offset: int = 0) -> tuple[list[Notification], int]:
        """Newest first, plus the total unread count"""
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        limit = min(limit, MAX_PAGE_SIZE)
        try:
            notifications = self.repo.get_notifications(self.db, limit, offset)
            unread = self.repo.count_unread(self.db)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error fetching notifications: {e}")
            raise DependencyError("Failed to fetch notifications") from e
        return notifications, unread

    async def mark_read(self, notification_id: int) -> Notification:
        notification = self.repo.get_notification_by_id(self.db, notification_id)
        if not notification:
            raise NotFoundError("Notification not found")

        try:
            notification = self.repo.mark_read(self.db, notification)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error marking notification {notification_id} as read: {e}")
            raise DependencyError("Failed to mark notification as read") from e

        await self._push("notification_read", {"notificationId": notification.id})
        return notification

    async def mark_all_read(self) -> int:
        try:
            updated = self.repo.mark_all_read(self.db)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error marking all notifications as read: {e}")
            raise DependencyError("Failed to mark all notifications as read") from e

        # One event for the whole batch; sessions clear their local state
        await self._push("all_notifications_read")
        logger.info(f"✅ All notifications marked as read ({updated} updated)")
        return updated

    def unread_count(self) -> int:
        try:
            return self.repo.count_unread(self.db)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error getting unread count: {e}")
            raise DependencyError("Failed to count unread notifications") from e

    def cleanup(self, retention_days: int = NOTIFICATION_RETENTION_DAYS) -> int:
        """Delete notifications older than the retention window"""
        if retention_days < 0:
            raise ValidationError("retention_days must not be negative")

        cutoff = utcnow() - timedelta(days=retention_days)
        try:
            deleted = self.repo.delete_older_than(self.db, cutoff)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error cleaning up old notifications: {e}")
            raise DependencyError("Failed to clean up notifications") from e

        logger.info(f"🧹 Cleaned up {deleted} old notifications")
        return deleted
