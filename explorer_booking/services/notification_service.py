"""Notification service for booking emails via SendGrid."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from explorer_booking.config import settings
from explorer_booking.gateways.base import NOT_CONFIGURED, BookingNotifier
from explorer_booking.schemas.booking import Booking

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationService(BookingNotifier):
    """Service for sending booking lifecycle emails."""

    # Email templates
    BOOKING_CONFIRMATION = "booking_confirmation"
    EXPERIENCE_REMINDER = "experience_reminder"
    BOOKING_CANCELLATION = "booking_cancellation"
    REFUND_CONFIRMATION = "refund_confirmation"
    BOOKING_FAILED = "booking_failed"
    REVIEW_REQUEST = "review_request"

    SUBJECTS = {
        BOOKING_CONFIRMATION: "Your booking is confirmed",
        EXPERIENCE_REMINDER: "Your experience is coming up",
        BOOKING_CANCELLATION: "Your booking has been cancelled",
        REFUND_CONFIRMATION: "Your refund is on its way",
        BOOKING_FAILED: "We could not complete your booking",
        REVIEW_REQUEST: "How was your experience?",
    }

    def __init__(
        self,
        api_key: str | None = None,
        template_ids: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize notification service.

        Args:
            api_key: SendGrid API key (defaults to settings)
            template_ids: SendGrid dynamic template ids keyed by template name
            http_client: Optional preconfigured HTTP client
        """
        self.api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.template_ids = template_ids or {}
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        template_id: str | None = None,
        template_data: dict[str, Any] | None = None,
    ) -> bool | str:
        """Send an email via SendGrid.

        Args:
            to_email: Recipient email
            subject: Email subject
            html_content: HTML body (ignored if template_id provided)
            template_id: SendGrid template ID
            template_data: Dynamic template data

        Returns:
            bool | str: True if sent successfully, NOT_CONFIGURED without an API key
        """
        if not self.api_key:
            logger.info(f"SendGrid not configured, skipping email '{subject}' to {to_email}")
            return NOT_CONFIGURED

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        payload: dict[str, Any] = {
            "personalizations": [
                {
                    "to": [{"email": to_email}],
                }
            ],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
        }

        if template_id:
            payload["template_id"] = template_id
            if template_data:
                payload["personalizations"][0]["dynamic_template_data"] = template_data
        else:
            payload["subject"] = subject
            payload["content"] = [{"type": "text/html", "value": html_content}]

        response = await self.http_client.post(SENDGRID_SEND_URL, headers=headers, json=payload)
        if response.status_code not in (200, 202):
            logger.warning(
                f"SendGrid rejected email '{subject}' to {to_email}: {response.status_code}"
            )
            return False
        return True

    async def send_booking_email(
        self,
        booking: Booking,
        template: str,
        template_data: dict[str, Any],
    ) -> bool | str:
        """Send a lifecycle email to the lead traveler."""
        traveler = booking.lead_traveler
        if traveler is None or not traveler.email:
            logger.info(f"No recipient for {template} email on booking {booking.reference}")
            return False

        subject = self.SUBJECTS.get(template, "Booking update")
        data = {key: _jsonable(value) for key, value in template_data.items()}
        logger.info(f"Sending {template} email for booking: {booking.reference}")
        return await self.send_email(
            to_email=traveler.email,
            subject=subject,
            html_content=self._generate_email_html(subject, data),
            template_id=self.template_ids.get(template),
            template_data=data,
        )

    def _generate_email_html(self, title: str, data: dict[str, Any]) -> str:
        """Generate simple HTML email content.

        Args:
            title: Email title
            data: Template data rendered as a detail list

        Returns:
            str: HTML email content
        """
        rows = "".join(
            f"<li><strong>{key}</strong>: {value}</li>"
            for key, value in data.items()
            if value is not None
        )
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                     max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
            <div style="background-color: #f9fafb; border-radius: 8px; padding: 24px;">
                <h1 style="color: #111827; font-size: 24px; margin-bottom: 16px;">{title}</h1>
                <ul style="color: #4b5563; font-size: 16px; line-height: 1.6;">{rows}</ul>
            </div>
            <p style="color: #9ca3af; font-size: 12px; margin-top: 24px; text-align: center;">
                &copy; {datetime.now(UTC).year} {settings.email_from_name}. All rights reserved.
            </p>
        </body>
        </html>
        """


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if value is not None and not isinstance(value, (str, int, float, bool, list, dict)):
        return str(value)
    return value
