from pydantic import BaseModel, Field, validator
from typing import List, Dict, Optional
from datetime import datetime
from decimal import Decimal

from parking_engine.states import VehicleType, SlotStatus, AlertStatus, AlertSeverity

# Facility Management
class FloorCreate(BaseModel):
    """Admin floor creation request"""
    floor_number: int
    name: str = Field(..., min_length=1, max_length=100)

class FloorResponse(BaseModel):
    id: int
    floor_number: int
    name: str

    class Config:
        from_attributes = True

class GateCreate(BaseModel):
    """Admin entry gate creation request"""
    name: str = Field(..., min_length=1, max_length=100)
    floor_number: int
    x_coordinate: int = 0
    y_coordinate: int = 0
    is_active: bool = True

class GateResponse(BaseModel):
    id: int
    name: str
    floor_id: int
    x_coordinate: int
    y_coordinate: int
    is_active: bool

    class Config:
        from_attributes = True

class SlotCreate(BaseModel):
    """Admin slot creation request"""
    slot_code: str = Field(..., min_length=1, max_length=20)
    floor_number: int
    vehicle_type: VehicleType
    x_coordinate: int = 0
    y_coordinate: int = 0
    is_ev_capable: bool = False
    is_vip: bool = False

    @validator('slot_code')
    def normalize_slot_code(cls, v):
        return v.strip().upper()

# Slot Administration
class SlotStatusChange(BaseModel):
    """Forced status change"""
    status: SlotStatus
    reason: str = ""

class SlotAdminAction(BaseModel):
    """Reason attached to a block/unblock"""
    reason: str = ""

# Maintenance
class MaintenanceAlertCreate(BaseModel):
    """Open a maintenance alert against a slot"""
    slot_id: int
    alert_type: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    severity: AlertSeverity = AlertSeverity.MEDIUM

class MaintenanceAlertResponse(BaseModel):
    id: int
    slot_id: int
    alert_type: str
    description: Optional[str] = None
    severity: AlertSeverity
    status: AlertStatus
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Dashboard
class DashboardSummary(BaseModel):
    """Dashboard data response"""
    total_slots: int
    slots_by_status: Dict[str, int]
    occupancy_rate: float
    active_tickets: int
    active_reservations: int
    revenue_today: Decimal
    revenue_this_month: Decimal
    critical_alerts: List[MaintenanceAlertResponse]
    last_updated: datetime

class OccupancyReport(BaseModel):
    """Where the vehicles are"""
    total_slots: int
    occupied_slots: int
    occupancy_rate: float
    by_status: Dict[str, int]
    occupied_by_floor: Dict[int, int]
    occupied_by_vehicle_type: Dict[str, int]

class RevenueReport(BaseModel):
    """Revenue report"""
    period_from: datetime
    period_to: datetime
    completed_tickets: int
    total_revenue: Decimal
    average_fee: Decimal
    revenue_by_vehicle_type: Dict[str, Decimal]
    revenue_by_payment_method: Dict[str, Decimal]
    currency: str

class SlotHandleResponse(BaseModel):
    """Slot state after an administrative write"""
    slot_id: int
    slot_code: str
    floor_number: int
    vehicle_type: VehicleType
    status: SlotStatus
    version: int

    class Config:
        from_attributes = True

class TriggerResult(BaseModel):
    """Counts from a manually triggered sweep or reconciliation"""
    counts: Dict[str, int]
    triggered_at: datetime
