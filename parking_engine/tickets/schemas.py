from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from parking_engine.states import VehicleType, TicketStatus, PaymentStatus, PaymentMethod
from parking_engine.pricing.schemas import FeeBreakdown

# Request Models
class CheckInRequest(BaseModel):
    """Vehicle arriving at an entry gate"""
    vehicle_number: str = Field(..., min_length=1, max_length=20)
    vehicle_type: VehicleType
    gate_id: int
    ev_required: bool = False
    vip: bool = False
    preferred_floor: Optional[int] = None
    reservation_number: Optional[str] = None

    @validator('vehicle_number')
    def normalize_vehicle_number(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError('Vehicle number is required')
        return v

class CheckOutRequest(BaseModel):
    """Vehicle leaving; payment outcome is reported by the settlement step"""
    ticket_number: str
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: Optional[PaymentStatus] = None

class PaymentOutcomeRequest(BaseModel):
    """Settlement result reported after check-out"""
    payment_status: PaymentStatus

class TicketCancellationRequest(BaseModel):
    """Administrative voiding of a ticket issued in error"""
    reason: str = Field(..., min_length=1)

# Response Models
class TicketResponse(BaseModel):
    """Parking ticket"""
    ticket_number: str
    vehicle_number: str
    vehicle_type: VehicleType
    slot_id: int
    gate_id: Optional[int] = None
    reservation_id: Optional[int] = None
    ev_required: bool
    vip: bool
    entry_time: datetime
    expected_exit: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    status: TicketStatus
    fee: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: PaymentStatus
    cancellation_reason: Optional[str] = None

    class Config:
        from_attributes = True

class CheckInResponse(BaseModel):
    """Ticket plus where to park"""
    ticket: TicketResponse
    slot_code: str
    floor_number: int
    message: str

class CheckOutResponse(BaseModel):
    """Outcome of a check-out"""
    ticket_number: str
    vehicle_number: str
    entry_time: datetime
    exit_time: datetime
    duration_minutes: int
    fee: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    breakdown: FeeBreakdown
    message: str
