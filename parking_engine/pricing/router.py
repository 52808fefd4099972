from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from parking_engine.database import get_db
from parking_engine.exceptions import ParkingError
from parking_engine.pricing.pricing_service import PricingEngine
from parking_engine.pricing.schemas import PricingRuleResponse, FeeQuoteRequest, FeeBreakdown
from parking_engine.states import VehicleType

router = APIRouter()

@router.get("/rules", response_model=List[PricingRuleResponse])
def list_pricing_rules(
    vehicle_type: Optional[VehicleType] = Query(None, description="Filter by vehicle type"),
    db: Session = Depends(get_db)
):
    """List pricing rules, newest first per vehicle type"""
    return PricingEngine(db).list_rules(vehicle_type.value if vehicle_type else None)

@router.get("/rules/current", response_model=PricingRuleResponse)
def get_current_pricing_rule(
    vehicle_type: VehicleType = Query(..., description="Vehicle type"),
    at: Optional[datetime] = Query(None, description="Moment to resolve the rule for"),
    db: Session = Depends(get_db)
):
    """Get the rule in force for a vehicle type"""

    try:
        return PricingEngine(db).get_current_rule(vehicle_type.value, at)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

@router.post("/quote", response_model=FeeBreakdown)
def quote_fee(
    request: FeeQuoteRequest,
    db: Session = Depends(get_db)
):
    """Quote the fee for a hypothetical stay"""

    try:
        return PricingEngine(db).quote(
            vehicle_type=request.vehicle_type.value,
            entry_time=request.entry_time or datetime.now(),
            duration_minutes=request.duration_minutes,
            ev_used=request.ev_used,
            vip=request.vip,
            overstay_minutes=request.overstay_minutes
        )
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
