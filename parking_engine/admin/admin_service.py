from typing import List, Optional, Callable
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from parking_engine.exceptions import AlertNotFound
from parking_engine.models import (
    ParkingFloor, EntryGate, ParkingSlot, PricingRule, MaintenanceAlert, Ticket
)
from parking_engine.slots.allocator import SlotAllocator, SlotHandle
from parking_engine.states import (
    SlotStatus, AlertStatus, AlertSeverity, VehicleType, SEVERITY_RANK, HELD_SLOT_STATES
)

logger = logging.getLogger(__name__)

class AdminOperations:
    """Service for administrative slot, maintenance and pricing operations"""

    def __init__(
        self,
        db: Session,
        allocator: Optional[SlotAllocator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db
        self.allocator = allocator or SlotAllocator(db)
        self.clock = clock

    # Slot Administration
    def block_slot(self, slot_id: int, reason: str = "") -> SlotHandle:
        """Take a slot out of service; held or maintained slots block once freed"""

        try:
            slot = self.allocator.get_slot(slot_id)
            current = SlotStatus(slot.status)
            if current == SlotStatus.MAINTENANCE:
                handle = self.allocator.set_pending_flags(slot_id, pending_block=True)
            else:
                handle = self.allocator.force_status(slot_id, SlotStatus.BLOCKED, reason)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Blocked slot %s (%s): %s", handle.slot_code, handle.status.value, reason or "no reason given")
        return handle

    def unblock_slot(self, slot_id: int, reason: str = "") -> SlotHandle:
        """Return a blocked slot to service, or withdraw a pending block"""

        try:
            slot = self.allocator.get_slot(slot_id)
            current = SlotStatus(slot.status)
            if current == SlotStatus.BLOCKED:
                handle = self.allocator.force_status(slot_id, SlotStatus.AVAILABLE, reason)
            else:
                handle = self.allocator.set_pending_flags(slot_id, pending_block=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Unblocked slot %s (%s)", handle.slot_code, handle.status.value)
        return handle

    def force_status(self, slot_id: int, new_status: str, reason: str = "") -> SlotHandle:
        """Administrative status override"""

        try:
            handle = self.allocator.force_status(slot_id, SlotStatus(new_status), reason)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return handle

    def list_slots(self, **filters) -> List[ParkingSlot]:
        return self.allocator.list_slots(**filters)

    # Maintenance
    def create_maintenance_alert(
        self,
        slot_id: int,
        alert_type: str,
        description: Optional[str] = None,
        severity: str = AlertSeverity.MEDIUM.value
    ) -> MaintenanceAlert:
        """Open an alert and take the slot out of service"""

        severity = AlertSeverity(severity)
        try:
            slot = self.allocator.get_slot(slot_id)
            alert = MaintenanceAlert(
                slot_id=slot.id,
                alert_type=alert_type,
                description=description,
                severity=severity.value,
                status=AlertStatus.OPEN.value,
                created_at=self.clock()
            )
            self.db.add(alert)
            self.db.flush()

            current = SlotStatus(slot.status)
            if current in HELD_SLOT_STATES:
                self.allocator.set_pending_flags(slot.id, pending_maintenance=True)
            elif current != SlotStatus.MAINTENANCE:
                self.allocator.force_status(slot.id, SlotStatus.MAINTENANCE, f"{alert_type} alert")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(alert)
        log = logger.warning if severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL) else logger.info
        log("Maintenance alert %d (%s, %s) opened on slot %s", alert.id, alert_type, severity.value, slot.slot_code)
        return alert

    def resolve_maintenance_alert(self, alert_id: int) -> MaintenanceAlert:
        """Resolve an alert; the last open alert returns the slot to service"""

        try:
            alert = self._get_alert(alert_id)
            if alert.status == AlertStatus.RESOLVED.value:
                return alert

            alert.status = AlertStatus.RESOLVED.value
            alert.resolved_at = self.clock()
            self.db.flush()

            if not self.allocator.has_open_alerts(alert.slot_id):
                slot = self.allocator.get_slot(alert.slot_id)
                current = SlotStatus(slot.status)
                if current == SlotStatus.MAINTENANCE:
                    target = SlotStatus.BLOCKED if slot.pending_block else SlotStatus.AVAILABLE
                    self.allocator.force_status(slot.id, target, f"alert {alert_id} resolved")
                elif current in HELD_SLOT_STATES and slot.pending_maintenance:
                    self.allocator.set_pending_flags(slot.id, pending_maintenance=False)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Maintenance alert %d resolved", alert_id)
        return self._get_alert(alert_id)

    def list_maintenance_alerts(self, status: Optional[str] = AlertStatus.OPEN.value) -> List[MaintenanceAlert]:
        """Alerts, most severe first, oldest first within a severity"""
        query = self.db.query(MaintenanceAlert)
        if status:
            query = query.filter(MaintenanceAlert.status == AlertStatus(status).value)
        alerts = query.all()
        return sorted(
            alerts,
            key=lambda a: (SEVERITY_RANK[AlertSeverity(a.severity)], a.created_at or datetime.min, a.id)
        )

    # Pricing (append-only)
    def update_pricing_rule(
        self,
        vehicle_type: str,
        base_price: Decimal,
        hourly_rate: Decimal,
        daily_rate: Decimal,
        penalty_rate: Decimal = Decimal('0'),
        ev_charging_rate: Decimal = Decimal('0'),
        vip_discount_percent: Decimal = Decimal('0'),
        effective_from: Optional[datetime] = None,
        is_active: bool = True
    ) -> PricingRule:
        """Publish a new rule version; existing rules are never edited"""

        rule = PricingRule(
            vehicle_type=VehicleType(vehicle_type).value,
            base_price=base_price,
            hourly_rate=hourly_rate,
            daily_rate=daily_rate,
            penalty_rate=penalty_rate,
            ev_charging_rate=ev_charging_rate,
            vip_discount_percent=vip_discount_percent,
            effective_from=effective_from or self.clock(),
            is_active=is_active
        )
        try:
            self.db.add(rule)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(rule)
        logger.info(
            "Pricing rule %d published for %s, effective %s",
            rule.id, rule.vehicle_type, rule.effective_from.isoformat()
        )
        return rule

    # Facility Management
    def create_floor(self, floor_number: int, name: str) -> ParkingFloor:
        if self._find_floor(floor_number):
            raise ValueError(f"Floor {floor_number} already exists")
        floor = ParkingFloor(floor_number=floor_number, name=name)
        return self._save(floor)

    def create_gate(
        self,
        name: str,
        floor_number: int,
        x_coordinate: int = 0,
        y_coordinate: int = 0,
        is_active: bool = True
    ) -> EntryGate:
        floor = self._require_floor(floor_number)
        gate = EntryGate(
            name=name,
            floor_id=floor.id,
            x_coordinate=x_coordinate,
            y_coordinate=y_coordinate,
            is_active=is_active
        )
        return self._save(gate)

    def create_slot(
        self,
        slot_code: str,
        floor_number: int,
        vehicle_type: str,
        x_coordinate: int = 0,
        y_coordinate: int = 0,
        is_ev_capable: bool = False,
        is_vip: bool = False
    ) -> ParkingSlot:
        floor = self._require_floor(floor_number)
        if self.db.query(ParkingSlot.id).filter(ParkingSlot.slot_code == slot_code).first():
            raise ValueError(f"Slot {slot_code} already exists")
        slot = ParkingSlot(
            slot_code=slot_code,
            floor_id=floor.id,
            vehicle_type=VehicleType(vehicle_type).value,
            x_coordinate=x_coordinate,
            y_coordinate=y_coordinate,
            is_ev_capable=is_ev_capable,
            is_vip=is_vip,
            status=SlotStatus.AVAILABLE.value,
            version=0
        )
        slot = self._save(slot)
        logger.info("Slot %s created on floor %d for %s", slot.slot_code, floor_number, slot.vehicle_type)
        return slot

    def cancel_ticket(self, ticket_number: str, reason: str) -> Ticket:
        """Void a ticket issued in error"""
        # Import here to avoid circular imports
        from parking_engine.tickets.ticket_service import TicketLifecycleManager
        return TicketLifecycleManager(self.db, allocator=self.allocator, clock=self.clock).cancel_ticket(
            ticket_number, reason
        )

    def _save(self, instance):
        try:
            self.db.add(instance)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(instance)
        return instance

    def _find_floor(self, floor_number: int) -> Optional[ParkingFloor]:
        return self.db.query(ParkingFloor).filter(ParkingFloor.floor_number == floor_number).first()

    def _require_floor(self, floor_number: int) -> ParkingFloor:
        floor = self._find_floor(floor_number)
        if not floor:
            raise ValueError(f"Floor {floor_number} does not exist")
        return floor

    def _get_alert(self, alert_id: int) -> MaintenanceAlert:
        alert = (
            self.db.query(MaintenanceAlert)
            .filter(MaintenanceAlert.id == alert_id)
            .populate_existing()
            .first()
        )
        if not alert:
            raise AlertNotFound(f"Maintenance alert {alert_id} not found")
        return alert
