"""
Admin Module

Operator tooling for the car park.

- Slot block/unblock and forced status changes (deferred on held slots)
- Maintenance alerts that take slots out of service
- Append-only pricing rule publication
- Facility setup: floors, entry gates, slots
- Dashboard, occupancy and revenue reporting

Key Components:
- admin_service.py: AdminOperations
- analytics_service.py: ParkingAnalyticsService (read-only reporting)
- router.py: admin endpoints
- schemas.py: Pydantic models for admin requests and reports
"""

from .router import router
from .admin_service import AdminOperations
from .analytics_service import ParkingAnalyticsService

__all__ = [
    "router",
    "AdminOperations",
    "ParkingAnalyticsService"
]
