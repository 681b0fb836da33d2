"""Notification repository - Database operations for notifications"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Notification


class NotificationRepository:
    """Repository for notification database operations"""

    @staticmethod
    def create_notification(
        db: Session, type: str, message: str, appointment_id: Optional[int] = None
    ) -> Notification:
        notification = Notification(
            type=type, message=message, appointment_id=appointment_id, read=False
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def get_notifications(db: Session, limit: int, offset: int) -> list[Notification]:
        """Newest first"""
        return (
            db.query(Notification)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_notification_by_id(db: Session, notification_id: int) -> Optional[Notification]:
        return db.query(Notification).filter(Notification.id == notification_id).first()

    @staticmethod
    def mark_read(db: Session, notification: Notification) -> Notification:
        if not notification.read:
            notification.read = True
            db.commit()
            db.refresh(notification)
        return notification

    @staticmethod
    def mark_all_read(db: Session) -> int:
        """Single bulk update. Returns the number of rows changed."""
        updated = (
            db.query(Notification)
            .filter(Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def count_unread(db: Session) -> int:
        return (
            db.query(func.count(Notification.id)).filter(Notification.read.is_(False)).scalar()
            or 0
        )

    @staticmethod
    def delete_older_than(db: Session, cutoff: datetime) -> int:
        deleted = (
            db.query(Notification)
            .filter(Notification.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted
