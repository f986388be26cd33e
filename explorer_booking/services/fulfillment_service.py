"""Fulfillment event publisher.

Inventory, ticketing, refunds, loyalty and finance live in other systems.
Each call posts one event to the configured fulfillment webhook.
"""

import hashlib
import hmac
import json
import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from explorer_booking.config import settings
from explorer_booking.core.exceptions import ExternalServiceError
from explorer_booking.gateways.base import NOT_CONFIGURED, FulfillmentGateway, RefundKind
from explorer_booking.schemas.booking import Booking

logger = logging.getLogger(__name__)


class FulfillmentService(FulfillmentGateway):
    """Publishes booking lifecycle events over HTTP."""

    def __init__(
        self,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url if webhook_url is not None else settings.fulfillment_webhook_url
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.fulfillment_webhook_secret
        )
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

    def _sign(self, body: bytes) -> str:
        return hmac.new(self.webhook_secret.encode(), body, hashlib.sha256).hexdigest()

    async def publish(self, event: str, booking: Booking, **data: Any) -> bool | str:
        """Post an event for ``booking``.

        Returns:
            bool | str: True once accepted, NOT_CONFIGURED without a webhook

        Raises:
            ExternalServiceError: If the receiver rejects the event
        """
        if not self.webhook_url:
            logger.info(f"Fulfillment webhook not configured, skipping {event} for {booking.reference}")
            return NOT_CONFIGURED

        payload = {
            "event": event,
            "booking_id": booking.id,
            "booking_reference": booking.reference,
            "status": booking.status,
            "occurred_at": datetime.now(UTC).isoformat(),
            "data": data,
        }
        body = json.dumps(payload, default=str).encode()
        headers = {"Content-Type": "application/json"}
        if self.webhook_secret:
            headers["X-Signature"] = self._sign(body)

        try:
            response = await self.http_client.post(self.webhook_url, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError("fulfillment", str(e)) from e

        if response.status_code >= 400:
            raise ExternalServiceError("fulfillment", f"{event} returned {response.status_code}")

        logger.info(f"Published {event} for booking: {booking.reference}")
        return True

    async def schedule_ticket_delivery(self, booking: Booking) -> bool | str:
        return await self.publish("tickets.schedule_delivery", booking, date_time=booking.date_time)

    async def update_inventory_on_confirmation(self, booking: Booking) -> bool | str:
        return await self.publish(
            "inventory.confirm",
            booking,
            product_id=booking.product_id,
            products=[product.id for product in booking.products],
        )

    async def release_inventory(self, booking: Booking) -> bool | str:
        return await self.publish(
            "inventory.release",
            booking,
            product_id=booking.product_id,
            products=[product.id for product in booking.products],
        )

    async def process_refund(self, booking: Booking, kind: RefundKind) -> bool | str:
        return await self.publish(
            "refunds.process",
            booking,
            kind=RefundKind(kind).value,
            total_price=booking.total_price,
            currency=booking.currency,
        )

    async def update_loyalty_points(self, booking: Booking) -> bool | str:
        return await self.publish(
            "loyalty.award", booking, customer_id=booking.customer_id, total_price=booking.total_price
        )

    async def generate_completion_certificate(self, booking: Booking) -> bool | str:
        return await self.publish("certificates.generate", booking, product_name=booking.product_name)

    async def update_financial_records(self, booking: Booking, status: str) -> bool | str:
        return await self.publish(
            "ledger.refund_recorded",
            booking,
            refund_status=status,
            refund_amount=booking.refund_amount,
            currency=booking.currency,
        )

    async def create_rebooking_offer(self, booking: Booking) -> bool | str:
        return await self.publish(
            "offers.rebooking", booking, customer_id=booking.customer_id, product_id=booking.product_id
        )
