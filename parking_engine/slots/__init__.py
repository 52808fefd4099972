"""
Slot Allocation Module

Owns the facility's slot pool. Slots are claimed, held and released through
version-guarded compare-and-swap writes so that concurrent check-ins can never
receive the same slot.

Key Components:
- allocator.py: SlotAllocator (claim / hold / release / force_status)
- router.py: read-only slot endpoints
- schemas.py: Pydantic models for slot data
"""

from .router import router
from .allocator import SlotAllocator, SlotConstraints, SlotHandle
from .schemas import SlotResponse, SlotFilters

__all__ = [
    "router",
    "SlotAllocator",
    "SlotConstraints",
    "SlotHandle",
    "SlotResponse",
    "SlotFilters"
]
