from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from parking_engine.database import get_db
from parking_engine.exceptions import ParkingError
from parking_engine.slots.allocator import SlotAllocator
from parking_engine.slots.schemas import SlotResponse
from parking_engine.states import VehicleType, SlotStatus

router = APIRouter()

@router.get("", response_model=List[SlotResponse])
def list_slots(
    vehicle_type: Optional[VehicleType] = Query(None, description="Filter by vehicle type"),
    slot_status: Optional[SlotStatus] = Query(None, alias="status", description="Filter by slot status"),
    floor_number: Optional[int] = Query(None, description="Filter by floor number"),
    ev_capable: Optional[bool] = Query(None, description="Only EV-capable slots"),
    vip: Optional[bool] = Query(None, description="Only VIP slots"),
    db: Session = Depends(get_db)
):
    """List slots with optional filters"""

    allocator = SlotAllocator(db)
    return allocator.list_slots(
        vehicle_type=vehicle_type.value if vehicle_type else None,
        status=slot_status.value if slot_status else None,
        floor_number=floor_number,
        ev_capable=ev_capable,
        vip=vip
    )

@router.get("/{slot_id}", response_model=SlotResponse)
def get_slot(
    slot_id: int,
    db: Session = Depends(get_db)
):
    """Get a single slot"""

    try:
        return SlotAllocator(db).get_slot(slot_id)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
