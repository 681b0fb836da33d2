"""
Email Service using Resend
Patient emails are built from MJML templates and delivered with a bounded retry.

The send_* helpers below are best effort: they are queued as background tasks
after the response, log every failure and return False instead of raising.
"""

import asyncio
import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import (
    EMAIL_FROM_ADDRESS,
    EMAIL_MAX_ATTEMPTS,
    EMAIL_RETRY_BASE_DELAY,
    RESEND_API_KEY,
)
from .email_templates import (
    appointment_confirmed_template,
    appointment_request_confirmation_template,
    appointment_status_update_template,
    prescription_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the delivery service"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict-like result with 'html' and 'errors'
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        if html is not None:
            errors = getattr(result, "errors", None)
            if errors:
                logger.warning(f"MJML compilation warnings: {errors}")
            return html
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailDeliveryError(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailDeliveryError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        email_data = {
            "from": from_address or EMAIL_FROM_ADDRESS,
            "to": recipients,
            "subject": subject,
            "html": html_content,
        }
        # The Resend SDK is synchronous
        response = await asyncio.to_thread(resend.Emails.send, email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailDeliveryError(f"Failed to send email: {str(e)}") from e


async def send_email_with_retry(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    max_attempts: int = EMAIL_MAX_ATTEMPTS,
    base_delay: float = EMAIL_RETRY_BASE_DELAY,
) -> dict:
    """
    Send with exponential backoff between attempts (1s, 2s, ... by default).

    Raises the last EmailDeliveryError once every attempt has failed.
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await send_email(to, subject, mjml_content)
        except EmailDeliveryError as e:
            last_error = e
            if attempt >= max_attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"⚠️ Email attempt {attempt}/{max_attempts} to {to} failed, retrying in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)

    logger.error(f"❌ Giving up on email to {to} after {max_attempts} attempts")
    raise EmailDeliveryError(str(last_error)) from last_error


async def _deliver(to: str, subject: str, mjml_content: str) -> bool:
    if not to:
        logger.warning(f"⚠️ No recipient for '{subject}', skipping email")
        return False
    try:
        await send_email_with_retry(to, subject, mjml_content)
        return True
    except EmailDeliveryError as e:
        logger.error(f"❌ Failed to deliver '{subject}' to {to}: {e}")
        return False


# ============================================
# Patient emails for the appointment lifecycle
# ============================================


async def send_appointment_request_confirmation(
    to: str,
    patient_name: str,
    patient_phone: str,
    message: Optional[str] = None,
    scheduling_link: Optional[str] = None,
) -> bool:
    """Sent after a public booking request; carries the scheduling link"""
    mjml = appointment_request_confirmation_template(
        patient_name=patient_name,
        patient_email=to,
        patient_phone=patient_phone,
        message=message,
        scheduling_link=scheduling_link,
    )
    return await _deliver(to, "Appointment Request Received - Schedule Your Visit", mjml)


async def send_appointment_confirmation(
    to: str,
    patient_name: str,
    appointment_date: str,
    appointment_time: str,
    appointment_type: str,
    notes: Optional[str] = None,
) -> bool:
    mjml = appointment_confirmed_template(
        patient_name=patient_name,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        appointment_type=appointment_type,
        notes=notes,
    )
    return await _deliver(to, "Appointment Confirmed", mjml)


async def send_appointment_status_update(
    to: str,
    patient_name: str,
    status: str,
    appointment_date: str,
    appointment_time: str,
) -> bool:
    mjml = appointment_status_update_template(
        patient_name=patient_name,
        status=status,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
    )
    return await _deliver(to, f"Appointment {status.capitalize()}", mjml)


async def send_prescription_reminder(
    to: str,
    patient_name: str,
    prescription: dict,
) -> bool:
    mjml = prescription_template(
        patient_name=patient_name,
        start_date=str(prescription.get("start_date", "")),
        end_date=str(prescription.get("end_date", "")),
        medicines=prescription.get("medicines") or [],
        revisit_required=bool(prescription.get("revisit_required")),
    )
    return await _deliver(to, "Your Prescription Details", mjml)
