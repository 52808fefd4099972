from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from parking_engine.database import get_db
from parking_engine.exceptions import ParkingError
from parking_engine.pricing.schemas import FeeBreakdown
from parking_engine.tickets.schemas import (
    CheckInRequest, CheckInResponse, CheckOutRequest, CheckOutResponse,
    PaymentOutcomeRequest, TicketResponse
)
from parking_engine.tickets.ticket_service import TicketLifecycleManager

router = APIRouter()

@router.post("/check-in", response_model=CheckInResponse, status_code=status.HTTP_201_CREATED)
def check_in(
    request: CheckInRequest,
    db: Session = Depends(get_db)
):
    """Admit a vehicle and assign it a slot"""

    manager = TicketLifecycleManager(db)

    try:
        ticket = manager.check_in(
            vehicle_number=request.vehicle_number,
            vehicle_type=request.vehicle_type.value,
            gate_id=request.gate_id,
            ev_required=request.ev_required,
            vip=request.vip,
            reservation_number=request.reservation_number,
            preferred_floor=request.preferred_floor
        )
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return CheckInResponse(
        ticket=TicketResponse.model_validate(ticket),
        slot_code=ticket.slot.slot_code,
        floor_number=ticket.slot.floor.floor_number,
        message=f"Proceed to slot {ticket.slot.slot_code}"
    )

@router.post("/check-out", response_model=CheckOutResponse)
def check_out(
    request: CheckOutRequest,
    db: Session = Depends(get_db)
):
    """Close a ticket and compute the fee"""

    try:
        return TicketLifecycleManager(db).check_out(
            ticket_number=request.ticket_number,
            payment_method=request.payment_method.value,
            payment_status=request.payment_status.value if request.payment_status else None
        )
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.get("/tickets/{ticket_number}", response_model=TicketResponse)
def get_ticket(
    ticket_number: str,
    db: Session = Depends(get_db)
):
    """Get ticket details"""

    try:
        return TicketLifecycleManager(db).get_ticket(ticket_number)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

@router.get("/tickets/{ticket_number}/estimate", response_model=FeeBreakdown)
def estimate_fee(
    ticket_number: str,
    db: Session = Depends(get_db)
):
    """Fee the vehicle would pay if it left now"""

    try:
        return TicketLifecycleManager(db).estimate_fee(ticket_number)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

@router.get("/vehicles/{vehicle_number}/active-ticket", response_model=TicketResponse)
def get_active_ticket(
    vehicle_number: str,
    db: Session = Depends(get_db)
):
    """Find the active ticket for a parked vehicle"""

    try:
        return TicketLifecycleManager(db).get_active_ticket_for_vehicle(vehicle_number)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

@router.post("/tickets/{ticket_number}/payment", response_model=TicketResponse)
def record_payment_outcome(
    ticket_number: str,
    request: PaymentOutcomeRequest,
    db: Session = Depends(get_db)
):
    """Record the settlement outcome for a completed ticket"""

    try:
        return TicketLifecycleManager(db).record_payment_outcome(
            ticket_number, request.payment_status.value
        )
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
