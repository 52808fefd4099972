from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from parking_engine.states import VehicleType, SlotStatus

class SlotResponse(BaseModel):
    """Slot as exposed to callers and admin tooling"""
    id: int
    slot_code: str
    floor_id: int
    x_coordinate: int
    y_coordinate: int
    vehicle_type: VehicleType
    status: SlotStatus
    is_ev_capable: bool
    is_vip: bool
    pending_block: bool
    pending_maintenance: bool
    version: int
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SlotFilters(BaseModel):
    """Filters for slot listings"""
    vehicle_type: Optional[VehicleType] = None
    status: Optional[SlotStatus] = None
    floor_number: Optional[int] = None
    ev_capable: Optional[bool] = None
    vip: Optional[bool] = None
