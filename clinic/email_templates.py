"""
MJML Email Templates
Patient-facing emails for the appointment lifecycle and prescriptions
"""

from html import escape
from typing import Optional

from .config import CLINIC_CONTACT_EMAIL, CLINIC_NAME

THEME = {
    "primary": "#2563eb",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#059669",
    "success_light": "#ecfdf5",
    "warning": "#d97706",
    "warning_light": "#fef3c7",
    "danger": "#dc2626",
    "panel": "#f3f4f6",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    title_color: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="0 0 24px 0">
          <mj-column>
            <mj-button href="{escape(cta_url)}" background-color="{THEME['primary']}"
              color="#ffffff" font-weight="600" border-radius="8px" padding="16px 40px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    contact_line = ""
    if CLINIC_CONTACT_EMAIL:
        contact_line = f"""
            <mj-text align="center" font-size="13px" color="{THEME['text_muted']}" padding="4px 0 0 0">
              {escape(CLINIC_CONTACT_EMAIL)}
            </mj-text>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="40px 40px 24px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{title_color or THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="24px 20px">
          <mj-column>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="0 0 16px 0" />
            <mj-text align="center" font-size="14px" font-weight="600" color="{THEME['text_primary']}" padding="0">
              {escape(CLINIC_NAME)}
            </mj-text>
            {contact_line}
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _panel(rows: str, background: str = THEME["panel"]) -> str:
    return f"""
    <mj-text container-background-color="{background}" padding="16px" font-size="15px">
      {rows}
    </mj-text>
    """


def appointment_request_confirmation_template(
    patient_name: str,
    patient_email: str,
    patient_phone: str,
    message: Optional[str],
    scheduling_link: Optional[str],
) -> str:
    """Sent right after the public booking form is submitted"""
    details = (
        f"<strong>Name:</strong> {escape(patient_name)}<br/>"
        f"<strong>Email:</strong> {escape(patient_email)}<br/>"
        f"<strong>Phone:</strong> {escape(patient_phone)}<br/>"
    )
    if message:
        details += f"<strong>Message:</strong> {escape(message)}<br/>"

    content = f"""
    <mj-text>Dear {escape(patient_name)},</mj-text>
    <mj-text>
      Thank you for your interest in scheduling an appointment with {escape(CLINIC_NAME)}.
      We have received your request with the following details:
    </mj-text>
    {_panel(details)}
    <mj-text>
      <strong>Next steps:</strong><br/>
      1. Choose your preferred date and time from the calendar<br/>
      2. Complete the booking process<br/>
      3. Receive a final confirmation email<br/>
      4. Arrive 10 minutes before your scheduled time
    </mj-text>
    """
    return get_base_template(
        title="Appointment Request Received",
        preview_text="Pick a time that works for you",
        content_sections=content,
        cta_url=scheduling_link,
        cta_label="Choose a time" if scheduling_link else None,
    )


REMINDERS = (
    "<strong>Important reminders</strong><br/>"
    "Please arrive 10 minutes before your scheduled time.<br/>"
    "Bring a valid ID and any relevant medical documents.<br/>"
    "If you need to cancel or reschedule, contact us at least 24 hours in advance."
)


def appointment_confirmed_template(
    patient_name: str,
    appointment_date: str,
    appointment_time: str,
    appointment_type: str,
    notes: Optional[str] = None,
) -> str:
    """Sent when the provider confirms a concrete slot"""
    details = (
        f"<strong>Date:</strong> {escape(appointment_date)}<br/>"
        f"<strong>Time:</strong> {escape(appointment_time)}<br/>"
        f"<strong>Type:</strong> {escape(appointment_type.capitalize())} consultation"
    )
    if notes:
        details += f"<br/><strong>Notes:</strong> {escape(notes)}"

    content = f"""
    <mj-text>Dear {escape(patient_name)},</mj-text>
    <mj-text>Your appointment with {escape(CLINIC_NAME)} has been successfully scheduled.</mj-text>
    {_panel(details, background=THEME['success_light'])}
    {_panel(REMINDERS, background=THEME['warning_light'])}
    <mj-text>We look forward to seeing you at your appointment.</mj-text>
    """
    return get_base_template(
        title="Appointment Confirmed",
        preview_text=f"See you on {appointment_date} at {appointment_time}",
        content_sections=content,
        title_color=THEME["success"],
    )


def appointment_status_update_template(
    patient_name: str,
    status: str,
    appointment_date: str,
    appointment_time: str,
) -> str:
    """Sent when an appointment is cancelled or completed"""
    cancelled = status == "cancelled"
    if appointment_time:
        when = (
            f"scheduled for <strong>{escape(appointment_date)}</strong>"
            f" at <strong>{escape(appointment_time)}</strong>"
        )
    else:
        when = "request"

    if cancelled:
        follow_up = (
            "If you would like to schedule a new appointment, please visit our "
            "booking page or contact us directly."
        )
    else:
        follow_up = "Thank you for visiting us."

    content = f"""
    <mj-text>Dear {escape(patient_name)},</mj-text>
    <mj-text>
      This is to inform you that your appointment {when}
      has been <strong>{escape(status)}</strong>.
    </mj-text>
    <mj-text>{follow_up}</mj-text>
    """
    return get_base_template(
        title=f"Appointment {status.capitalize()}",
        preview_text=f"Your appointment has been {status}",
        content_sections=content,
        title_color=THEME["danger"] if cancelled else THEME["success"],
    )


def prescription_template(
    patient_name: str,
    start_date: str,
    end_date: str,
    medicines: list[dict],
    revisit_required: bool = False,
) -> str:
    """Prescription summary sent after a visit is recorded"""
    medicine_rows = ""
    for medicine in medicines:
        timings = [
            label
            for label, key in (("Morning", "morning"), ("Afternoon", "afternoon"), ("Evening", "evening"))
            if medicine.get(key)
        ]
        name = escape(medicine.get("name", ""))
        medicine_rows += f"<strong>{name}</strong> - {', '.join(timings) or 'as directed'}<br/>"

    period = f"<strong>Prescription period:</strong> {escape(start_date)} to {escape(end_date)}"
    revisit = ""
    if revisit_required:
        revisit = (
            "<mj-text><strong>A follow-up visit is required.</strong> "
            "Please book one before your prescription ends.</mj-text>"
        )

    content = f"""
    <mj-text>Dear {escape(patient_name)},</mj-text>
    <mj-text>This is a summary of your current prescription from {escape(CLINIC_NAME)}:</mj-text>
    {_panel(period)}
    {_panel(medicine_rows or 'No medicines listed')}
    {revisit}
    <mj-text>
      Please take your medicines as prescribed and complete the full course.
      If you experience any side effects, contact us immediately.
    </mj-text>
    """
    return get_base_template(
        title="Your Prescription",
        preview_text="Prescription details from your visit",
        content_sections=content,
    )
