"""
Shared pytest fixtures for all tests.

The application is imported against an in-memory SQLite database; every test
gets freshly created tables. The Calendly API is never reached and outgoing
email is replaced with a mock.
"""

import os

# Test environment must be in place before the clinic package is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CLINIC_TIMEZONE"] = "UTC"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["CALENDLY_PERSONAL_ACCESS_TOKEN"] = ""
os.environ["CALENDLY_USER_URI"] = ""
os.environ["CALENDLY_WEBHOOK_SIGNING_KEY"] = ""
os.environ["CALENDLY_BOOKING_URL"] = "https://calendly.com/test-clinic/30min"
os.environ["RESEND_API_KEY"] = ""

from datetime import timedelta
from typing import Generator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient

from clinic.database import Base, SessionLocal, engine
from clinic.domain.appointments.service import AppointmentService
from clinic.domain.notifications.service import NotificationService
from clinic.main import app
from clinic.models import Appointment, AppointmentSource, AppointmentStatus
from clinic.services.calendly_service import CalendlyService, get_calendly_service
from clinic.services.dashboard_broadcaster import DashboardBroadcaster
from clinic.shared.time_utils import utcnow

BOOKING_URL = "https://calendly.com/test-clinic/30min"


class FakeWebSocket:
    """Stands in for a connected dashboard session"""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self) -> list[str]:
        return [message["event"] for message in self.sent]


def unreachable_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def tables() -> Generator:
    """Fresh schema for every test"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
async def dashboard_socket():
    return FakeWebSocket()


@pytest.fixture
async def broadcaster(dashboard_socket):
    broadcaster = DashboardBroadcaster()
    await broadcaster.join(dashboard_socket)
    return broadcaster


@pytest.fixture
def calendly_unreachable() -> CalendlyService:
    """API credentials configured but every call fails"""
    return CalendlyService(
        access_token="test-token",
        user_uri="https://api.calendly.com/users/TEST",
        booking_url=BOOKING_URL,
        timeout=1,
        transport=unreachable_transport(),
    )


@pytest.fixture
def notifier(db, broadcaster) -> NotificationService:
    return NotificationService(db, broadcaster)


@pytest.fixture
def background_tasks() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
def appointment_service(db, notifier, calendly_unreachable, background_tasks) -> AppointmentService:
    return AppointmentService(db, notifier, calendly_unreachable, background_tasks)


@pytest.fixture
def make_appointment(db):
    """Insert an appointment directly, bypassing the lifecycle"""

    def _make(status=AppointmentStatus.SCHEDULED, days_from_now=1, **fields):
        values = {
            "patient_name": "Sam Patient",
            "patient_email": "sam@example.com",
            "patient_phone": "5550001111",
            "status": status,
            "source": AppointmentSource.PUBLIC,
        }
        if status != AppointmentStatus.PENDING:
            values["date"] = utcnow().replace(second=0, microsecond=0) + timedelta(days=days_from_now)
            values["time"] = values["date"].strftime("%H:%M")
        values.update(fields)
        appointment = Appointment(**values)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest.fixture
def mock_email():
    with patch("clinic.email_service.send_email_with_retry", new_callable=AsyncMock) as mock_send:
        mock_send.return_value = {"id": "test-email"}
        yield mock_send


@pytest.fixture
def client(mock_email) -> Generator[TestClient, None, None]:
    """TestClient with the Calendly API unconfigured (direct booking links only)"""
    app.dependency_overrides[get_calendly_service] = lambda: CalendlyService(
        access_token=None, user_uri=None, booking_url=BOOKING_URL
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

