from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional, List
from datetime import datetime

from parking_engine.database import naive_local
from parking_engine.states import VehicleType, ReservationStatus

class ReservationCreateRequest(BaseModel):
    """Request to hold a slot for a future window"""
    vehicle_number: str = Field(..., min_length=1, max_length=20)
    vehicle_type: VehicleType
    reserved_from: datetime
    reserved_until: datetime
    ev_required: bool = False
    vip: bool = False
    preferred_floor: Optional[int] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None

    @validator('vehicle_number')
    def normalize_vehicle_number(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError('Vehicle number is required')
        return v

    @validator('reserved_from', 'reserved_until')
    def to_local_time(cls, v):
        return naive_local(v)

    @validator('reserved_until')
    def validate_window(cls, v, values):
        if 'reserved_from' in values and v <= values['reserved_from']:
            raise ValueError('reserved_until must be after reserved_from')
        return v

class ReservationResponse(BaseModel):
    """Reservation details"""
    reservation_number: str
    vehicle_number: str
    vehicle_type: VehicleType
    reserved_from: datetime
    reserved_until: datetime
    ev_required: bool
    vip: bool
    preferred_floor: Optional[int] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    status: ReservationStatus
    slot_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ReservationList(BaseModel):
    """Reservations for one contact"""
    contact_email: str
    reservations: List[ReservationResponse]
    total: int
