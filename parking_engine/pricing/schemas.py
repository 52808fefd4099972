from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from parking_engine.database import naive_local
from parking_engine.states import VehicleType

class PricingRuleCreate(BaseModel):
    """New pricing rule row (rules are never edited in place)"""
    vehicle_type: VehicleType
    base_price: Decimal = Field(..., ge=0, decimal_places=2)
    hourly_rate: Decimal = Field(..., ge=0, decimal_places=2)
    daily_rate: Decimal = Field(..., ge=0, decimal_places=2)
    penalty_rate: Decimal = Field(Decimal('0'), ge=0, decimal_places=2)
    ev_charging_rate: Decimal = Field(Decimal('0'), ge=0, decimal_places=2)
    vip_discount_percent: Decimal = Field(Decimal('0'), ge=0, le=100, decimal_places=2)
    effective_from: Optional[datetime] = None
    is_active: bool = True

    @validator('effective_from')
    def effective_from_local_time(cls, v):
        return naive_local(v)

class PricingRuleResponse(BaseModel):
    """Pricing rule as stored"""
    id: int
    vehicle_type: VehicleType
    base_price: Decimal
    hourly_rate: Decimal
    daily_rate: Decimal
    penalty_rate: Decimal
    ev_charging_rate: Decimal
    vip_discount_percent: Decimal
    effective_from: datetime
    is_active: bool

    class Config:
        from_attributes = True

class FeeQuoteRequest(BaseModel):
    """Request a fee quote without opening a ticket"""
    vehicle_type: VehicleType
    entry_time: Optional[datetime] = None
    duration_minutes: int = Field(..., ge=0)
    ev_used: bool = False
    vip: bool = False
    overstay_minutes: int = Field(0, ge=0)

    @validator('entry_time')
    def entry_time_local_time(cls, v):
        return naive_local(v)

    @validator('overstay_minutes')
    def validate_overstay(cls, v, values):
        if 'duration_minutes' in values and v > values['duration_minutes']:
            raise ValueError('overstay_minutes cannot exceed duration_minutes')
        return v

class FeeBreakdown(BaseModel):
    """Itemised fee computation"""
    rule_id: Optional[int] = None
    vehicle_type: VehicleType
    duration_minutes: int
    billed_hours: int
    full_days: int
    remainder_hours: int
    base_price: Decimal
    time_charge: Decimal
    vip_discount: Decimal
    overstay_hours: int
    overstay_penalty: Decimal
    ev_charge: Decimal
    total: Decimal
    currency: str
