import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from ..config import (
    CALENDLY_BOOKING_URL,
    CALENDLY_PERSONAL_ACCESS_TOKEN,
    CALENDLY_TIMEOUT_SECONDS,
    CALENDLY_USER_URI,
)

logger = logging.getLogger(__name__)


class CalendlyError(Exception):
    """Raised when the Calendly API cannot produce a scheduling link"""

    pass


class CalendlyService:
    """Service for interacting with Calendly API"""

    BASE_URL = "https://api.calendly.com"

    def __init__(
        self,
        access_token: Optional[str] = CALENDLY_PERSONAL_ACCESS_TOKEN,
        user_uri: Optional[str] = CALENDLY_USER_URI,
        booking_url: str = CALENDLY_BOOKING_URL,
        timeout: float = CALENDLY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.user_uri = user_uri
        self.booking_url = booking_url
        self.timeout = timeout
        self.transport = transport

    @property
    def api_configured(self) -> bool:
        return bool(self.access_token and self.user_uri)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def create_scheduling_link(self, name: str, email: str) -> str:
        """
        Mint a single-use scheduling link for one invitee.

        Raises:
            CalendlyError: If credentials are missing or the API call fails or times out
        """
        if not self.api_configured:
            raise CalendlyError("Calendly API token or user URI is not configured")

        payload = {
            "owner": self.user_uri,
            "owner_type": "User",
            "max_event_count": 1,
            "send_notifications": False,
            "invitees": [{"email": email, "name": name}],
        }

        logger.info(f"🔗 Creating Calendly scheduling link for {email}")
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.BASE_URL}/scheduling_links",
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"❌ Calendly scheduling link request timed out after {self.timeout}s")
            raise CalendlyError("Calendly API timed out") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                f"❌ Calendly API error: {e.response.status_code} {e.response.text[:200]}"
            )
            raise CalendlyError(f"Calendly API error: {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Calendly API request failed: {e}")
            raise CalendlyError(f"Calendly API request failed: {e}") from e

        booking_url = (body.get("resource") or {}).get("booking_url")
        if not booking_url:
            raise CalendlyError("Calendly response did not include a booking URL")

        logger.info("✅ Calendly scheduling link created successfully")
        return booking_url

    def build_direct_booking_url(
        self, name: str, email: str, booking_token: Optional[str] = None
    ) -> str:
        """
        Direct booking page URL with the invitee prefilled.

        The booking token travels as utm_content and comes back in the
        webhook's tracking block.
        """
        params: dict[str, Any] = {"hide_gdpr_banner": "1", "name": name, "email": email}
        if booking_token:
            params["utm_content"] = booking_token

        separator = "&" if "?" in self.booking_url else "?"
        return f"{self.booking_url}{separator}{urlencode(params)}"

    async def get_scheduling_link(
        self, name: str, email: str, booking_token: Optional[str] = None
    ) -> str:
        """API link when possible, otherwise the direct booking URL. Never raises."""
        if self.api_configured:
            try:
                return await self.create_scheduling_link(name, email)
            except CalendlyError as e:
                logger.warning(f"⚠️ Calendly API unavailable, falling back to direct URL: {e}")

        return self.build_direct_booking_url(name, email, booking_token)


def get_calendly_service() -> CalendlyService:
    """Dependency injection for CalendlyService"""
    return CalendlyService()
