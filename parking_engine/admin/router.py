from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from parking_engine.database import get_db
from parking_engine.exceptions import ParkingError
from parking_engine.admin.admin_service import AdminOperations
from parking_engine.admin.analytics_service import ParkingAnalyticsService
from parking_engine.admin.schemas import (
    FloorCreate, FloorResponse, GateCreate, GateResponse, SlotCreate,
    SlotStatusChange, SlotAdminAction, SlotHandleResponse,
    MaintenanceAlertCreate, MaintenanceAlertResponse,
    DashboardSummary, OccupancyReport, RevenueReport, TriggerResult
)
from parking_engine.pricing.schemas import PricingRuleCreate, PricingRuleResponse
from parking_engine.slots.schemas import SlotResponse, SlotFilters
from parking_engine.states import AlertStatus
from parking_engine.tickets.schemas import TicketCancellationRequest, TicketResponse
from parking_engine.tickets.ticket_service import TicketLifecycleManager

router = APIRouter()

def _raise_http(e: Exception):
    if isinstance(e, ParkingError):
        raise HTTPException(status_code=e.status_code, detail=e.message)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

# Dashboard
@router.get("/dashboard", response_model=DashboardSummary)
def get_dashboard(db: Session = Depends(get_db)):
    """Get admin dashboard summary"""
    return ParkingAnalyticsService(db).get_dashboard_summary()

@router.get("/occupancy", response_model=OccupancyReport)
def get_occupancy(db: Session = Depends(get_db)):
    """Current occupancy by status, floor and vehicle type"""
    return ParkingAnalyticsService(db).get_occupancy()

@router.get("/reports/revenue", response_model=RevenueReport)
def get_revenue_report(
    period_from: datetime = Query(..., description="Start of period (exit time)"),
    period_to: datetime = Query(..., description="End of period (exit time)"),
    db: Session = Depends(get_db)
):
    """Get revenue report for a period"""

    try:
        return ParkingAnalyticsService(db).get_revenue_report(period_from, period_to)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

# Facility Management
@router.post("/floors", response_model=FloorResponse, status_code=status.HTTP_201_CREATED)
def create_floor(request: FloorCreate, db: Session = Depends(get_db)):
    """Create a floor"""
    try:
        return AdminOperations(db).create_floor(request.floor_number, request.name)
    except ValueError as e:
        _raise_http(e)

@router.post("/gates", response_model=GateResponse, status_code=status.HTTP_201_CREATED)
def create_gate(request: GateCreate, db: Session = Depends(get_db)):
    """Create an entry gate"""
    try:
        return AdminOperations(db).create_gate(
            name=request.name,
            floor_number=request.floor_number,
            x_coordinate=request.x_coordinate,
            y_coordinate=request.y_coordinate,
            is_active=request.is_active
        )
    except ValueError as e:
        _raise_http(e)

@router.post("/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(request: SlotCreate, db: Session = Depends(get_db)):
    """Create a slot"""
    try:
        return AdminOperations(db).create_slot(
            slot_code=request.slot_code,
            floor_number=request.floor_number,
            vehicle_type=request.vehicle_type.value,
            x_coordinate=request.x_coordinate,
            y_coordinate=request.y_coordinate,
            is_ev_capable=request.is_ev_capable,
            is_vip=request.is_vip
        )
    except ValueError as e:
        _raise_http(e)

# Slot Administration
@router.get("/slots", response_model=List[SlotResponse])
def list_slots(filters: SlotFilters = Depends(), db: Session = Depends(get_db)):
    """List slots including pending admin flags"""
    return AdminOperations(db).list_slots(
        vehicle_type=filters.vehicle_type.value if filters.vehicle_type else None,
        status=filters.status.value if filters.status else None,
        floor_number=filters.floor_number,
        ev_capable=filters.ev_capable,
        vip=filters.vip
    )

@router.post("/slots/{slot_id}/block", response_model=SlotHandleResponse)
def block_slot(slot_id: int, request: SlotAdminAction, db: Session = Depends(get_db)):
    """Block a slot (deferred until release if it is held)"""
    try:
        return AdminOperations(db).block_slot(slot_id, request.reason)
    except (ParkingError, ValueError) as e:
        _raise_http(e)

@router.post("/slots/{slot_id}/unblock", response_model=SlotHandleResponse)
def unblock_slot(slot_id: int, request: SlotAdminAction, db: Session = Depends(get_db)):
    """Unblock a slot or withdraw a pending block"""
    try:
        return AdminOperations(db).unblock_slot(slot_id, request.reason)
    except (ParkingError, ValueError) as e:
        _raise_http(e)

@router.post("/slots/{slot_id}/status", response_model=SlotHandleResponse)
def force_slot_status(slot_id: int, request: SlotStatusChange, db: Session = Depends(get_db)):
    """Force a slot status"""
    try:
        return AdminOperations(db).force_status(slot_id, request.status.value, request.reason)
    except (ParkingError, ValueError) as e:
        _raise_http(e)

# Maintenance
@router.get("/maintenance-alerts", response_model=List[MaintenanceAlertResponse])
def list_maintenance_alerts(
    alert_status: Optional[AlertStatus] = Query(AlertStatus.OPEN, alias="status"),
    db: Session = Depends(get_db)
):
    """List maintenance alerts, most severe first"""
    return AdminOperations(db).list_maintenance_alerts(alert_status.value if alert_status else None)

@router.post("/maintenance-alerts", response_model=MaintenanceAlertResponse, status_code=status.HTTP_201_CREATED)
def create_maintenance_alert(request: MaintenanceAlertCreate, db: Session = Depends(get_db)):
    """Open a maintenance alert on a slot"""
    try:
        return AdminOperations(db).create_maintenance_alert(
            slot_id=request.slot_id,
            alert_type=request.alert_type,
            description=request.description,
            severity=request.severity.value
        )
    except (ParkingError, ValueError) as e:
        _raise_http(e)

@router.post("/maintenance-alerts/{alert_id}/resolve", response_model=MaintenanceAlertResponse)
def resolve_maintenance_alert(alert_id: int, db: Session = Depends(get_db)):
    """Resolve a maintenance alert"""
    try:
        return AdminOperations(db).resolve_maintenance_alert(alert_id)
    except (ParkingError, ValueError) as e:
        _raise_http(e)

# Pricing
@router.post("/pricing-rules", response_model=PricingRuleResponse, status_code=status.HTTP_201_CREATED)
def create_pricing_rule(request: PricingRuleCreate, db: Session = Depends(get_db)):
    """Publish a new pricing rule version"""
    try:
        return AdminOperations(db).update_pricing_rule(
            vehicle_type=request.vehicle_type.value,
            base_price=request.base_price,
            hourly_rate=request.hourly_rate,
            daily_rate=request.daily_rate,
            penalty_rate=request.penalty_rate,
            ev_charging_rate=request.ev_charging_rate,
            vip_discount_percent=request.vip_discount_percent,
            effective_from=request.effective_from,
            is_active=request.is_active
        )
    except ValueError as e:
        _raise_http(e)

# Tickets
@router.post("/tickets/{ticket_number}/cancel", response_model=TicketResponse)
def cancel_ticket(ticket_number: str, request: TicketCancellationRequest, db: Session = Depends(get_db)):
    """Void a ticket issued in error"""
    try:
        return AdminOperations(db).cancel_ticket(ticket_number, request.reason)
    except (ParkingError, ValueError) as e:
        _raise_http(e)

# Background jobs
@router.post("/sweep", response_model=TriggerResult)
def trigger_sweep(db: Session = Depends(get_db)):
    """Run the reservation expiry sweep now"""
    manager = TicketLifecycleManager(db)
    return TriggerResult(counts=manager.reservations.sweep_expired(), triggered_at=datetime.now())

@router.post("/reconcile", response_model=TriggerResult)
def trigger_reconciliation(db: Session = Depends(get_db)):
    """Release slots held by no live ticket or reservation"""
    manager = TicketLifecycleManager(db)
    return TriggerResult(counts=manager.reconcile_orphaned_slots(), triggered_at=datetime.now())
