"""
Reservations Module

Future-dated holds on a slot. A reservation holds its slot (RESERVED) from
creation until it is redeemed at check-in, cancelled or swept as expired.

- Window validation (future start, bounded length)
- Slot hold through the slot allocator
- Check-in handoff that races safely against the expiry sweep
- Background sweeper thread with startup reconciliation

Key Components:
- reservation_service.py: ReservationManager
- sweeper.py: ExpirySweeper background loop
- router.py: reservation endpoints
- schemas.py: Pydantic models for reservations
"""

from .router import router
from .reservation_service import ReservationManager
from .sweeper import ExpirySweeper
from .schemas import ReservationCreateRequest, ReservationResponse, ReservationList

__all__ = [
    "router",
    "ReservationManager",
    "ExpirySweeper",
    "ReservationCreateRequest",
    "ReservationResponse",
    "ReservationList"
]
