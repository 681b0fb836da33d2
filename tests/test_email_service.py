"""
Tests for patient email delivery and templates.

Resend is never called: send_email is patched out and asyncio.sleep is
replaced so the retry backoff runs instantly.
"""

from unittest.mock import AsyncMock, patch

import pytest

from clinic import email_service
from clinic.email_service import EmailDeliveryError
from clinic.email_templates import (
    appointment_confirmed_template,
    appointment_status_update_template,
    prescription_template,
)


class TestSendEmailWithRetry:
    """Tests for send_email_with_retry."""

    @pytest.mark.asyncio
    async def test_retries_with_backoff_until_success(self):
        with (
            patch.object(
                email_service,
                "send_email",
                new_callable=AsyncMock,
                side_effect=[EmailDeliveryError("down"), EmailDeliveryError("down"), {"id": "sent"}],
            ) as mock_send,
            patch("clinic.email_service.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            result = await email_service.send_email_with_retry(
                "jane@x.com", "Hello", "<mjml/>", max_attempts=3, base_delay=0.5
            )

        assert result == {"id": "sent"}
        assert mock_send.await_count == 3
        assert [call.args[0] for call in mock_sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        with (
            patch.object(
                email_service,
                "send_email",
                new_callable=AsyncMock,
                side_effect=EmailDeliveryError("down"),
            ) as mock_send,
            patch("clinic.email_service.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            with pytest.raises(EmailDeliveryError):
                await email_service.send_email_with_retry("jane@x.com", "Hello", "<mjml/>", max_attempts=3)

        assert mock_send.await_count == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_send_without_api_key_fails(self):
        with pytest.raises(EmailDeliveryError):
            await email_service.send_email("jane@x.com", "Hello", "<mjml/>")


class TestLifecycleEmails:
    """Tests for the best-effort send_* helpers."""

    @pytest.mark.asyncio
    async def test_failure_returns_false(self):
        with patch.object(
            email_service,
            "send_email_with_retry",
            new_callable=AsyncMock,
            side_effect=EmailDeliveryError("down"),
        ):
            sent = await email_service.send_appointment_status_update(
                "jane@x.com", "Jane Doe", "cancelled", "2024-06-01", "14:30"
            )

        assert sent is False

    @pytest.mark.asyncio
    async def test_missing_recipient_is_skipped(self):
        with patch.object(email_service, "send_email_with_retry", new_callable=AsyncMock) as mock_send:
            sent = await email_service.send_appointment_confirmation(
                "", "Jane Doe", "2024-06-01", "14:30", "new"
            )

        assert sent is False
        mock_send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_request_confirmation_carries_link(self):
        with patch.object(email_service, "send_email_with_retry", new_callable=AsyncMock) as mock_send:
            sent = await email_service.send_appointment_request_confirmation(
                "jane@x.com",
                "Jane Doe",
                "5551234567",
                "Knee pain",
                "https://calendly.com/test-clinic/30min?utm_content=abc",
            )

        assert sent is True
        to, subject, mjml = mock_send.await_args.args
        assert to == "jane@x.com"
        assert subject == "Appointment Request Received - Schedule Your Visit"
        assert "https://calendly.com/test-clinic/30min?utm_content=abc" in mjml
        assert "Knee pain" in mjml

    @pytest.mark.asyncio
    async def test_prescription_reminder(self):
        prescription = {
            "start_date": "2024-06-01",
            "end_date": "2024-06-10",
            "medicines": [{"name": "Ibuprofen", "morning": True, "afternoon": False, "evening": True}],
            "revisit_required": True,
        }
        with patch.object(email_service, "send_email_with_retry", new_callable=AsyncMock) as mock_send:
            sent = await email_service.send_prescription_reminder("jane@x.com", "Jane Doe", prescription)

        assert sent is True
        _, subject, mjml = mock_send.await_args.args
        assert subject == "Your Prescription Details"
        assert "Ibuprofen</strong> - Morning, Evening" in mjml
        assert "2024-06-01 to 2024-06-10" in mjml
        assert "follow-up visit is required" in mjml


class TestTemplates:
    def test_patient_input_is_escaped(self):
        mjml = appointment_confirmed_template(
            "<script>alert(1)</script>", "2024-06-01", "14:30", "new", notes="a & b"
        )

        assert "<script>" not in mjml
        assert "&lt;script&gt;" in mjml
        assert "a &amp; b" in mjml

    def test_status_update_for_unscheduled_request(self):
        mjml = appointment_status_update_template("Jane Doe", "cancelled", "", "")

        assert "your appointment request" in mjml
        assert "scheduled for" not in mjml

    def test_status_update_for_scheduled_appointment(self):
        mjml = appointment_status_update_template("Jane Doe", "completed", "2024-06-01", "14:30")

        assert "<strong>2024-06-01</strong> at <strong>14:30</strong>" in mjml
        assert "Thank you for visiting us." in mjml

    def test_prescription_without_medicines(self):
        mjml = prescription_template("Jane Doe", "2024-06-01", "2024-06-02", [])

        assert "No medicines listed" in mjml
        assert "follow-up visit is required" not in mjml
