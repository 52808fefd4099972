from typing import List, Optional, Sequence, Tuple, Callable
from dataclasses import dataclass
from datetime import datetime
from sqlalchemy import update, and_
from sqlalchemy.orm import Session, joinedload
import logging
import math
import random
import time

from parking_engine.config import settings
from parking_engine.exceptions import NoSlotAvailable, SlotConflict, SlotNotFound, InvalidTransition
from parking_engine.models import ParkingSlot, ParkingFloor, EntryGate, Reservation, MaintenanceAlert
from parking_engine.states import (
    SlotStatus, ReservationStatus, AlertStatus, SLOT_TRANSITIONS, HELD_SLOT_STATES,
    ensure_transition
)

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class SlotConstraints:
    """Requirements a claimed slot must satisfy"""
    ev_required: bool = False
    vip_required: bool = False
    preferred_floor: Optional[int] = None

@dataclass(frozen=True)
class SlotHandle:
    """Snapshot of a slot right after a successful write"""
    slot_id: int
    slot_code: str
    floor_number: int
    vehicle_type: str
    status: SlotStatus
    version: int

    @classmethod
    def from_slot(cls, slot: ParkingSlot) -> "SlotHandle":
        return cls(
            slot_id=slot.id,
            slot_code=slot.slot_code,
            floor_number=slot.floor.floor_number,
            vehicle_type=slot.vehicle_type,
            status=SlotStatus(slot.status),
            version=slot.version
        )

class SlotAllocator:
    """Owns the slot pool: finds slots and changes their status with version-guarded writes

    Every status write is a compare-and-swap on ``(id, version, status)``. The
    allocator never commits; the calling service owns the transaction so a
    slot write and its ticket/reservation write land together.
    """

    def __init__(
        self,
        db: Session,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.db = db
        self.max_attempts = max_attempts or settings.SLOT_CLAIM_MAX_ATTEMPTS
        self.backoff_seconds = settings.SLOT_CLAIM_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.floor_travel_distance = settings.FLOOR_TRAVEL_DISTANCE
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_slot(self, slot_id: int) -> ParkingSlot:
        """Read a slot fresh from the store, bypassing the identity map"""
        slot = (
            self.db.query(ParkingSlot)
            .options(joinedload(ParkingSlot.floor))
            .filter(ParkingSlot.id == slot_id)
            .populate_existing()
            .first()
        )
        if not slot:
            raise SlotNotFound(f"Slot {slot_id} not found")
        return slot

    def list_slots(
        self,
        vehicle_type: Optional[str] = None,
        status: Optional[str] = None,
        floor_number: Optional[int] = None,
        ev_capable: Optional[bool] = None,
        vip: Optional[bool] = None
    ) -> List[ParkingSlot]:
        """List slots for dashboards and admin tooling"""
        query = self.db.query(ParkingSlot).join(ParkingFloor)
        if vehicle_type:
            query = query.filter(ParkingSlot.vehicle_type == vehicle_type)
        if status:
            query = query.filter(ParkingSlot.status == status)
        if floor_number is not None:
            query = query.filter(ParkingFloor.floor_number == floor_number)
        if ev_capable is not None:
            query = query.filter(ParkingSlot.is_ev_capable.is_(ev_capable))
        if vip is not None:
            query = query.filter(ParkingSlot.is_vip.is_(vip))
        return query.order_by(ParkingFloor.floor_number, ParkingSlot.slot_code).all()

    def find_candidates(
        self,
        vehicle_type: str,
        constraints: SlotConstraints,
        gate: Optional[EntryGate] = None,
        window: Optional[Tuple[datetime, datetime]] = None
    ) -> List[ParkingSlot]:
        """AVAILABLE slots matching the constraints, best candidate first"""

        query = (
            self.db.query(ParkingSlot)
            .options(joinedload(ParkingSlot.floor))
            .filter(
                ParkingSlot.vehicle_type == vehicle_type,
                ParkingSlot.status == SlotStatus.AVAILABLE.value
            )
        )
        if constraints.ev_required:
            query = query.filter(ParkingSlot.is_ev_capable.is_(True))
        if constraints.vip_required:
            query = query.filter(ParkingSlot.is_vip.is_(True))

        candidates = query.populate_existing().all()

        if window and candidates:
            # A live reservation keeps its window even if its slot row was reset to AVAILABLE by hand
            conflicting = self._slots_with_overlapping_reservations(
                [slot.id for slot in candidates], window[0], window[1]
            )
            candidates = [slot for slot in candidates if slot.id not in conflicting]

        return sorted(
            candidates,
            key=lambda slot: self._sort_key(slot, gate, constraints.preferred_floor)
        )

    def _sort_key(self, slot: ParkingSlot, gate: Optional[EntryGate], preferred_floor: Optional[int]):
        floor_number = slot.floor.floor_number
        off_preferred_floor = 0 if preferred_floor is None or floor_number == preferred_floor else 1

        distance = 0.0
        if gate is not None:
            distance = math.hypot(
                slot.x_coordinate - gate.x_coordinate,
                slot.y_coordinate - gate.y_coordinate
            )
            distance += abs(floor_number - gate.floor.floor_number) * self.floor_travel_distance

        return (
            off_preferred_floor,
            distance,
            floor_number,
            slot.x_coordinate + slot.y_coordinate,
            slot.id
        )

    def _slots_with_overlapping_reservations(
        self,
        slot_ids: Sequence[int],
        window_from: datetime,
        window_until: datetime
    ) -> set:
        rows = self.db.query(Reservation.slot_id).filter(
            Reservation.slot_id.in_(slot_ids),
            Reservation.status.in_([ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value]),
            Reservation.reserved_from < window_until,
            Reservation.reserved_until > window_from
        ).all()
        return {row.slot_id for row in rows}

    def has_open_alerts(self, slot_id: int) -> bool:
        return self.db.query(MaintenanceAlert.id).filter(
            MaintenanceAlert.slot_id == slot_id,
            MaintenanceAlert.status == AlertStatus.OPEN.value
        ).first() is not None

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------
    def claim(
        self,
        vehicle_type: str,
        constraints: Optional[SlotConstraints] = None,
        gate: Optional[EntryGate] = None
    ) -> SlotHandle:
        """Claim the best AVAILABLE slot for a walk-in vehicle (AVAILABLE -> OCCUPIED)"""
        return self._acquire(vehicle_type, constraints or SlotConstraints(), SlotStatus.OCCUPIED, gate)

    def hold(
        self,
        vehicle_type: str,
        constraints: Optional[SlotConstraints],
        window_from: datetime,
        window_until: datetime
    ) -> SlotHandle:
        """Hold a slot for a future reservation window (AVAILABLE -> RESERVED)"""
        return self._acquire(
            vehicle_type, constraints or SlotConstraints(), SlotStatus.RESERVED,
            window=(window_from, window_until)
        )

    def _acquire(
        self,
        vehicle_type: str,
        constraints: SlotConstraints,
        target: SlotStatus,
        gate: Optional[EntryGate] = None,
        window: Optional[Tuple[datetime, datetime]] = None
    ) -> SlotHandle:
        for attempt in range(1, self.max_attempts + 1):
            # Fresh search every attempt, a lost race means our read is stale
            candidates = self.find_candidates(vehicle_type, constraints, gate, window)
            if not candidates:
                raise NoSlotAvailable(f"No available {vehicle_type} slot matches the request")

            slot = candidates[0]
            if self._compare_and_swap(slot.id, slot.version, SlotStatus.AVAILABLE, target):
                handle = SlotHandle.from_slot(self.get_slot(slot.id))
                logger.info(
                    "Slot %s -> %s for %s (attempt %d, version %d)",
                    handle.slot_code, target.value, vehicle_type, attempt, handle.version
                )
                return handle

            logger.debug("Lost race for slot %s on attempt %d", slot.slot_code, attempt)
            self._backoff(attempt)

        logger.warning(
            "Gave up claiming a %s slot after %d contended attempts", vehicle_type, self.max_attempts
        )
        raise NoSlotAvailable(f"No available {vehicle_type} slot after {self.max_attempts} attempts")

    def occupy_reserved(self, slot_id: int, expected_version: int) -> Optional[SlotHandle]:
        """Turn a reservation's held slot into an occupied one; None if the version moved"""
        if not self._compare_and_swap(slot_id, expected_version, SlotStatus.RESERVED, SlotStatus.OCCUPIED):
            return None
        return SlotHandle.from_slot(self.get_slot(slot_id))

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------
    def resting_status(self, slot: ParkingSlot) -> Tuple[SlotStatus, dict]:
        """Status a held slot returns to on release, plus the pending flags to write"""
        if slot.pending_maintenance or self.has_open_alerts(slot.id):
            # A pending block outlives the maintenance period
            return SlotStatus.MAINTENANCE, {"pending_maintenance": False}
        if slot.pending_block:
            return SlotStatus.BLOCKED, {"pending_block": False}
        return SlotStatus.AVAILABLE, {}

    def release(self, slot_id: int) -> SlotHandle:
        """Hand a held slot back to the pool; releasing an unheld slot is a no-op"""

        for attempt in range(1, self.max_attempts + 1):
            slot = self.get_slot(slot_id)
            current = SlotStatus(slot.status)
            if current not in HELD_SLOT_STATES:
                logger.debug("Release of slot %s ignored, already %s", slot.slot_code, current.value)
                return SlotHandle.from_slot(slot)

            target, flags = self.resting_status(slot)
            if self._compare_and_swap(slot.id, slot.version, current, target, **flags):
                handle = SlotHandle.from_slot(self.get_slot(slot.id))
                logger.info("Released slot %s: %s -> %s", handle.slot_code, current.value, target.value)
                return handle

            self._backoff(attempt)

        raise SlotConflict(f"Could not release slot {slot_id} after {self.max_attempts} attempts")

    def release_if(self, slot_id: int, expected_status: SlotStatus, expected_version: int) -> bool:
        """Single-shot release guarded by a version the caller already observed"""
        slot = self.get_slot(slot_id)
        if slot.version != expected_version or SlotStatus(slot.status) != expected_status:
            return False
        target, flags = self.resting_status(slot)
        released = self._compare_and_swap(slot_id, expected_version, expected_status, target, **flags)
        if released:
            logger.info("Released slot %s: %s -> %s", slot.slot_code, expected_status.value, target.value)
        return released

    # ------------------------------------------------------------------
    # Admin overrides
    # ------------------------------------------------------------------
    def force_status(self, slot_id: int, new_status: SlotStatus, reason: str = "") -> SlotHandle:
        """Administrative status change; held slots only get a pending flag"""

        new_status = SlotStatus(new_status)
        if new_status in HELD_SLOT_STATES:
            raise InvalidTransition(f"Slots cannot be forced into {new_status.value}")

        for attempt in range(1, self.max_attempts + 1):
            slot = self.get_slot(slot_id)
            current = SlotStatus(slot.status)

            if current in HELD_SLOT_STATES:
                if new_status == SlotStatus.BLOCKED:
                    flags = {"pending_block": True}
                elif new_status == SlotStatus.MAINTENANCE:
                    flags = {"pending_maintenance": True}
                else:
                    flags = {"pending_block": False, "pending_maintenance": False}
                written = self._compare_and_swap(slot.id, slot.version, current, current, **flags)
            elif current == new_status:
                return SlotHandle.from_slot(slot)
            else:
                ensure_transition(SLOT_TRANSITIONS, current, new_status)
                flags = {}
                if new_status == SlotStatus.AVAILABLE:
                    flags = {"pending_block": False, "pending_maintenance": False}
                elif new_status == SlotStatus.BLOCKED:
                    flags = {"pending_block": False}
                elif current == SlotStatus.BLOCKED:
                    # Maintenance on a blocked slot returns it to BLOCKED afterwards
                    flags = {"pending_block": True, "pending_maintenance": False}
                written = self._compare_and_swap(slot.id, slot.version, current, new_status, **flags)

            if written:
                handle = SlotHandle.from_slot(self.get_slot(slot.id))
                logger.info(
                    "Admin set slot %s to %s (now %s): %s",
                    handle.slot_code, new_status.value, handle.status.value, reason or "no reason given"
                )
                return handle

            self._backoff(attempt)

        raise SlotConflict(f"Could not update slot {slot_id} after {self.max_attempts} attempts")

    def set_pending_flags(self, slot_id: int, **flags) -> SlotHandle:
        """Write pending_block / pending_maintenance without changing status"""
        for attempt in range(1, self.max_attempts + 1):
            slot = self.get_slot(slot_id)
            current = SlotStatus(slot.status)
            if all(getattr(slot, name) == value for name, value in flags.items()):
                return SlotHandle.from_slot(slot)
            if self._compare_and_swap(slot.id, slot.version, current, current, **flags):
                return SlotHandle.from_slot(self.get_slot(slot.id))
            self._backoff(attempt)

        raise SlotConflict(f"Could not update slot {slot_id} after {self.max_attempts} attempts")

    # ------------------------------------------------------------------
    # Compare-and-swap
    # ------------------------------------------------------------------
    def _compare_and_swap(
        self,
        slot_id: int,
        expected_version: int,
        expected_status: SlotStatus,
        new_status: SlotStatus,
        **values
    ) -> bool:
        """Conditional write: succeeds only if nobody wrote the slot since it was read"""

        if new_status != expected_status:
            ensure_transition(SLOT_TRANSITIONS, expected_status, new_status)

        statement = (
            update(ParkingSlot)
            .where(and_(
                ParkingSlot.id == slot_id,
                ParkingSlot.version == expected_version,
                ParkingSlot.status == expected_status.value
            ))
            .values(status=new_status.value, version=ParkingSlot.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(statement)
        return result.rowcount == 1

    def _backoff(self, attempt: int):
        if attempt >= self.max_attempts or self.backoff_seconds <= 0:
            return
        self._sleep(self.backoff_seconds * attempt * random.uniform(0.5, 1.5))
