"""Collaborator interfaces for booking status side-effects.

Adapters only deliver notifications to the systems that own email,
inventory, tickets and money. Status business logic stays in the engine.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from explorer_booking.schemas.booking import Booking

# Returned by an adapter whose external system is not configured
NOT_CONFIGURED = "not configured"


class RefundKind(str, Enum):
    """Refund kinds passed to refund and ledger collaborators."""

    FULL = "FULL"
    PARTIAL = "PARTIAL"


class BookingNotifier(ABC):
    """Sends customer-facing booking emails."""

    @abstractmethod
    async def send_booking_email(
        self,
        booking: Booking,
        template: str,
        template_data: dict[str, Any],
    ) -> bool | str:
        """Send a templated email about ``booking``.

        Returns:
            True when handed off, False when not delivered, or
            NOT_CONFIGURED when no email provider is set up
        """
        pass


class FulfillmentGateway(ABC):
    """One-way notifications to inventory, ticketing, loyalty and finance."""

    @abstractmethod
    async def schedule_ticket_delivery(self, booking: Booking) -> Any:
        pass

    @abstractmethod
    async def update_inventory_on_confirmation(self, booking: Booking) -> Any:
        pass

    @abstractmethod
    async def release_inventory(self, booking: Booking) -> Any:
        pass

    @abstractmethod
    async def process_refund(self, booking: Booking, kind: RefundKind) -> Any:
        pass

    @abstractmethod
    async def update_loyalty_points(self, booking: Booking) -> Any:
        pass

    @abstractmethod
    async def generate_completion_certificate(self, booking: Booking) -> Any:
        pass

    @abstractmethod
    async def update_financial_records(self, booking: Booking, status: str) -> Any:
        pass

    @abstractmethod
    async def create_rebooking_offer(self, booking: Booking) -> Any:
        pass
