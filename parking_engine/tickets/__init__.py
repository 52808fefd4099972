"""
Ticket Lifecycle Module

Entry and exit of vehicles. A check-in claims a slot (or redeems a
reservation's held slot) and opens an ACTIVE ticket; a check-out closes the
ticket, prices the stay and hands the slot back, all in one transaction.

Key Components:
- ticket_service.py: TicketLifecycleManager (check-in / check-out / cancel / payment)
- router.py: gate-facing parking endpoints
- schemas.py: Pydantic models for tickets and check-in/out payloads
"""

from .router import router
from .ticket_service import TicketLifecycleManager
from .schemas import (
    CheckInRequest, CheckInResponse, CheckOutRequest, CheckOutResponse,
    PaymentOutcomeRequest, TicketCancellationRequest, TicketResponse
)

__all__ = [
    "router",
    "TicketLifecycleManager",
    "CheckInRequest",
    "CheckInResponse",
    "CheckOutRequest",
    "CheckOutResponse",
    "PaymentOutcomeRequest",
    "TicketCancellationRequest",
    "TicketResponse"
]
