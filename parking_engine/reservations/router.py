from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from parking_engine.database import get_db
from parking_engine.exceptions import ParkingError
from parking_engine.reservations.reservation_service import ReservationManager
from parking_engine.reservations.schemas import (
    ReservationCreateRequest, ReservationResponse, ReservationList
)

router = APIRouter()

@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    request: ReservationCreateRequest,
    db: Session = Depends(get_db)
):
    """Hold a slot for a future time window"""

    try:
        return ReservationManager(db).create(
            vehicle_number=request.vehicle_number,
            vehicle_type=request.vehicle_type.value,
            reserved_from=request.reserved_from,
            reserved_until=request.reserved_until,
            ev_required=request.ev_required,
            vip=request.vip,
            contact_email=request.contact_email,
            contact_phone=request.contact_phone,
            preferred_floor=request.preferred_floor
        )
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.get("", response_model=ReservationList)
def list_reservations(
    email: str = Query(..., description="Contact email used when reserving"),
    db: Session = Depends(get_db)
):
    """List reservations made with a contact email"""

    reservations = ReservationManager(db).list_for_contact(email)
    return ReservationList(
        contact_email=email,
        reservations=[ReservationResponse.model_validate(r) for r in reservations],
        total=len(reservations)
    )

@router.get("/{reservation_number}", response_model=ReservationResponse)
def get_reservation(
    reservation_number: str,
    db: Session = Depends(get_db)
):
    """Get reservation details"""

    try:
        return ReservationManager(db).get_reservation(reservation_number)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

@router.post("/{reservation_number}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_number: str,
    db: Session = Depends(get_db)
):
    """Cancel a reservation and free its slot"""

    try:
        return ReservationManager(db).cancel(reservation_number)
    except ParkingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
