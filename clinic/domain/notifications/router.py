"""Notification router - dashboard notification feed"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.dashboard_broadcaster import DashboardBroadcaster, get_broadcaster
from .schemas import NotificationEnvelope, NotificationListResponse, NotificationResponse
from .service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def get_notification_service(
    db: Session = Depends(get_db),
    broadcaster: DashboardBroadcaster = Depends(get_broadcaster),
) -> NotificationService:
    """Dependency injection for NotificationService"""
    return NotificationService(db, broadcaster)


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    service: NotificationService = Depends(get_notification_service),
):
    """Newest notifications first, with the unread count for the badge"""
    notifications, unread = service.list_notifications(limit, offset)
    return NotificationListResponse(
        notifications=[NotificationResponse.from_model(n) for n in notifications],
        unreadCount=unread,
    )


# Registered before /{notification_id}/read so "read-all" is not taken as an id
@router.patch("/read-all")
async def mark_all_notifications_read(
    service: NotificationService = Depends(get_notification_service),
):
    await service.mark_all_read()
    return {"success": True, "message": "All notifications marked as read"}


@router.patch("/{notification_id}/read", response_model=NotificationEnvelope)
async def mark_notification_read(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.mark_read(notification_id)
    return NotificationEnvelope(notification=NotificationResponse.from_model(notification))
