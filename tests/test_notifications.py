"""
Tests for the dashboard notification feed and its broadcaster.
"""

from datetime import timedelta

import pytest

from clinic.domain.notifications.schemas import NotificationResponse
from clinic.domain.notifications.service import NotificationService, render_appointment_message
from clinic.exceptions import NotFoundError, ValidationError
from clinic.models import AppointmentStatus, Notification, NotificationType
from clinic.services.dashboard_broadcaster import DashboardBroadcaster
from clinic.shared.time_utils import utcnow

from .conftest import FakeWebSocket


class TestDashboardBroadcaster:
    """Tests for DashboardBroadcaster."""

    @pytest.mark.asyncio
    async def test_join_and_leave(self):
        broadcaster = DashboardBroadcaster()
        socket = FakeWebSocket()

        await broadcaster.join(socket)
        assert broadcaster.session_count == 1

        await broadcaster.leave(socket)
        assert broadcaster.session_count == 0

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_session(self):
        broadcaster = DashboardBroadcaster()
        sockets = [FakeWebSocket(), FakeWebSocket()]
        for socket in sockets:
            await broadcaster.join(socket)

        delivered = await broadcaster.broadcast("notification", {"id": 1})

        assert delivered == 2
        for socket in sockets:
            assert socket.sent == [{"event": "notification", "data": {"id": 1}}]

    @pytest.mark.asyncio
    async def test_failed_session_is_dropped(self):
        """Test a dead socket is removed and the others still receive the event."""
        broadcaster = DashboardBroadcaster()
        healthy, dead = FakeWebSocket(), FakeWebSocket(fail=True)
        await broadcaster.join(healthy)
        await broadcaster.join(dead)

        delivered = await broadcaster.broadcast("all_notifications_read")

        assert delivered == 1
        assert broadcaster.session_count == 1
        assert healthy.events() == ["all_notifications_read"]

    @pytest.mark.asyncio
    async def test_broadcast_without_sessions(self):
        assert await DashboardBroadcaster().broadcast("notification", {}) == 0


class TestEmit:
    """Tests for NotificationService.emit."""

    @pytest.mark.asyncio
    async def test_persists_then_pushes(self, db, notifier, dashboard_socket):
        notification = await notifier.emit(NotificationType.SYSTEM, "Backup finished")

        stored = db.query(Notification).one()
        assert stored.id == notification.id
        assert stored.read is False

        assert len(dashboard_socket.sent) == 1
        message = dashboard_socket.sent[0]
        assert message["event"] == "notification"
        assert message["data"]["id"] == notification.id
        assert message["data"]["type"] == "system"
        assert message["data"]["message"] == "Backup finished"
        assert message["data"]["read"] is False

    @pytest.mark.asyncio
    async def test_rejects_unknown_type(self, db, notifier):
        with pytest.raises(ValidationError):
            await notifier.emit("appointment_exploded", "nope")

        assert db.query(Notification).count() == 0

    @pytest.mark.asyncio
    async def test_push_failure_keeps_notification(self, db):
        """Test a broken broadcast never loses the stored notification."""
        broadcaster = DashboardBroadcaster()
        await broadcaster.join(FakeWebSocket(fail=True))
        service = NotificationService(db, broadcaster)

        await service.emit(NotificationType.SYSTEM, "Still stored")

        assert db.query(Notification).count() == 1
        assert broadcaster.session_count == 0

    @pytest.mark.asyncio
    async def test_without_broadcaster(self, db):
        await NotificationService(db).emit(NotificationType.SYSTEM, "Offline")

        assert db.query(Notification).count() == 1

    @pytest.mark.asyncio
    async def test_appointment_message_is_frozen(self, db, notifier, make_appointment):
        """Test later edits to the appointment don't rewrite the stored message."""
        appointment = make_appointment(patient_name="Ana Lee")
        notification = await notifier.emit_for_appointment(
            appointment, NotificationType.APPOINTMENT_CONFIRMED
        )

        appointment.patient_name = "Someone Else"
        db.commit()
        db.refresh(notification)

        assert "Ana Lee" in notification.message
        assert notification.appointment_id == appointment.id


class TestRenderAppointmentMessage:
    def test_new_request_mentions_phone(self, make_appointment):
        appointment = make_appointment(status=AppointmentStatus.PENDING)

        message = render_appointment_message(appointment, NotificationType.NEW_APPOINTMENT)

        assert "Sam Patient" in message
        assert "5550001111" in message

    def test_cancelled(self, make_appointment):
        appointment = make_appointment()

        message = render_appointment_message(appointment, NotificationType.APPOINTMENT_CANCELLED)

        assert message == "❌ Appointment cancelled for Sam Patient"


class TestReadState:
    """Tests for marking notifications as read."""

    @pytest.mark.asyncio
    async def test_mark_all_read_twice(self, notifier, dashboard_socket):
        await notifier.emit(NotificationType.SYSTEM, "one")
        await notifier.emit(NotificationType.SYSTEM, "two")

        assert await notifier.mark_all_read() == 2
        assert await notifier.mark_all_read() == 0
        assert notifier.unread_count() == 0
        assert dashboard_socket.events().count("all_notifications_read") == 2

    @pytest.mark.asyncio
    async def test_mark_read_unknown_id(self, notifier):
        await notifier.emit(NotificationType.SYSTEM, "one")

        with pytest.raises(NotFoundError):
            await notifier.mark_read(999)

        assert notifier.unread_count() == 1

    @pytest.mark.asyncio
    async def test_mark_read_is_idempotent(self, notifier, dashboard_socket):
        notification = await notifier.emit(NotificationType.SYSTEM, "one")

        await notifier.mark_read(notification.id)
        again = await notifier.mark_read(notification.id)

        assert again.read is True
        assert notifier.unread_count() == 0
        assert dashboard_socket.sent[-1] == {
            "event": "notification_read",
            "data": {"notificationId": notification.id},
        }


class TestListAndCleanup:
    """Tests for listing and the retention sweep."""

    @pytest.mark.asyncio
    async def test_newest_first_with_unread_count(self, notifier):
        first = await notifier.emit(NotificationType.SYSTEM, "first")
        second = await notifier.emit(NotificationType.SYSTEM, "second")
        await notifier.mark_read(first.id)

        notifications, unread = notifier.list_notifications(limit=20, offset=0)

        assert [n.id for n in notifications] == [second.id, first.id]
        assert unread == 1

    @pytest.mark.asyncio
    async def test_offset_and_limit(self, notifier):
        for index in range(5):
            await notifier.emit(NotificationType.SYSTEM, f"n{index}")

        notifications, unread = notifier.list_notifications(limit=2, offset=1)

        assert [n.message for n in notifications] == ["n3", "n2"]
        assert unread == 5

    def test_rejects_bad_paging(self, notifier):
        with pytest.raises(ValidationError):
            notifier.list_notifications(limit=0)

    @pytest.mark.asyncio
    async def test_expands_appointment_and_tolerates_missing_one(self, db, notifier, make_appointment):
        appointment = make_appointment()
        linked = await notifier.emit_for_appointment(appointment, NotificationType.APPOINTMENT_CONFIRMED)
        dangling = await notifier.emit(NotificationType.SYSTEM, "orphan", appointment_id=4242)

        linked_view = NotificationResponse.from_model(linked)
        dangling_view = NotificationResponse.from_model(dangling)

        assert linked_view.appointment.id == appointment.id
        assert linked_view.appointment.patient.name == "Sam Patient"
        assert dangling_view.appointmentId == 4242
        assert dangling_view.appointment is None

    def test_cleanup_removes_old_notifications(self, db):
        db.add(Notification(type="system", message="old", created_at=utcnow() - timedelta(days=45)))
        db.add(Notification(type="system", message="recent"))
        db.commit()

        deleted = NotificationService(db).cleanup(retention_days=30)

        assert deleted == 1
        assert [n.message for n in db.query(Notification).all()] == ["recent"]

    def test_cleanup_rejects_negative_retention(self, db):
        with pytest.raises(ValidationError):
            NotificationService(db).cleanup(retention_days=-1)
