import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# Clinic identity used in notifications and emails
CLINIC_NAME = os.getenv("CLINIC_NAME", "Clinic")
CLINIC_CONTACT_EMAIL = os.getenv("CLINIC_CONTACT_EMAIL")
# IANA zone used to render appointment times (HH:MM) and to interpret day filters
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# Calendly Configuration
CALENDLY_PERSONAL_ACCESS_TOKEN = os.getenv("CALENDLY_PERSONAL_ACCESS_TOKEN")
CALENDLY_USER_URI = os.getenv("CALENDLY_USER_URI")
# Direct booking page used when the scheduling-links API is unavailable
CALENDLY_BOOKING_URL = os.getenv("CALENDLY_BOOKING_URL", "https://calendly.com/clinic/30min")
CALENDLY_WEBHOOK_SIGNING_KEY = os.getenv("CALENDLY_WEBHOOK_SIGNING_KEY")
CALENDLY_TIMEOUT_SECONDS = float(os.getenv("CALENDLY_TIMEOUT_SECONDS", "10"))

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", f"{CLINIC_NAME} <noreply@example.com>")
EMAIL_MAX_ATTEMPTS = int(os.getenv("EMAIL_MAX_ATTEMPTS", "3"))
EMAIL_RETRY_BASE_DELAY = float(os.getenv("EMAIL_RETRY_BASE_DELAY", "1.0"))

# Notifications older than this are removed by the retention sweep
NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30"))

# Frontend base URL (dashboard)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
