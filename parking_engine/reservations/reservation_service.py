from typing import List, Dict, Optional, Tuple, Callable
from datetime import datetime, timedelta
from sqlalchemy import update, and_, exists
from sqlalchemy.orm import Session
import logging
import secrets

from parking_engine.config import settings
from parking_engine.database import naive_local
from parking_engine.exceptions import (
    NoSlotAvailable, NoAvailabilityForWindow, ReservationInvalid, ReservationNotFound,
    InvalidReservationWindow
)
from parking_engine.models import Reservation, ParkingSlot
from parking_engine.slots.allocator import SlotAllocator, SlotConstraints, SlotHandle
from parking_engine.states import (
    ReservationStatus, SlotStatus, VehicleType, RESERVATION_TRANSITIONS, ensure_transition
)

logger = logging.getLogger(__name__)

class ReservationManager:
    """Future-dated slot holds: create, cancel, redeem at check-in, expire"""

    def __init__(
        self,
        db: Session,
        allocator: Optional[SlotAllocator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db
        self.allocator = allocator or SlotAllocator(db)
        self.clock = clock
        self.max_window = timedelta(hours=settings.MAX_RESERVATION_HOURS)

    def create(
        self,
        vehicle_number: str,
        vehicle_type: str,
        reserved_from: datetime,
        reserved_until: datetime,
        ev_required: bool = False,
        vip: bool = False,
        contact_email: Optional[str] = None,
        contact_phone: Optional[str] = None,
        preferred_floor: Optional[int] = None
    ) -> Reservation:
        """Hold a matching slot for the window and confirm the reservation"""

        now = self.clock()
        vehicle_number = vehicle_number.strip().upper()
        vehicle_type = VehicleType(vehicle_type).value
        reserved_from, reserved_until = naive_local(reserved_from), naive_local(reserved_until)
        self._validate_window(reserved_from, reserved_until, now)

        try:
            try:
                handle = self.allocator.hold(
                    vehicle_type,
                    SlotConstraints(ev_required=ev_required, vip_required=vip, preferred_floor=preferred_floor),
                    reserved_from,
                    reserved_until
                )
            except NoSlotAvailable as e:
                raise NoAvailabilityForWindow(
                    f"No {vehicle_type} slot can be held from {reserved_from.isoformat()} "
                    f"to {reserved_until.isoformat()}"
                ) from e

            reservation = Reservation(
                reservation_number=self._generate_reservation_number(now),
                vehicle_number=vehicle_number,
                vehicle_type=vehicle_type,
                contact_email=contact_email,
                contact_phone=contact_phone,
                reserved_from=reserved_from,
                reserved_until=reserved_until,
                ev_required=ev_required,
                vip=vip,
                preferred_floor=preferred_floor,
                status=ReservationStatus.PENDING.value,
                slot_id=handle.slot_id
            )
            self.db.add(reservation)
            self.db.flush()

            # Slot is held, promote the soft hold
            ensure_transition(RESERVATION_TRANSITIONS, ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
            reservation.status = ReservationStatus.CONFIRMED.value

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reservation)
        logger.info(
            "Reservation %s confirmed on slot %s for %s (%s - %s)",
            reservation.reservation_number, handle.slot_code, vehicle_number,
            reserved_from.isoformat(), reserved_until.isoformat()
        )
        return reservation

    def cancel(self, reservation_number: str) -> Reservation:
        """Cancel a PENDING/CONFIRMED reservation and hand its slot back"""

        try:
            reservation = self._get_fresh(reservation_number)
            if not reservation:
                raise ReservationNotFound(f"Reservation {reservation_number} not found")

            current = ReservationStatus(reservation.status)
            if current not in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED):
                raise ReservationInvalid(f"Reservation {reservation_number} is {current.value} and cannot be cancelled")

            if not self._release_held_slot(reservation):
                raise ReservationInvalid(f"Reservation {reservation_number} changed while cancelling")

            if not self.guarded_transition(reservation.id, current, ReservationStatus.CANCELLED):
                raise ReservationInvalid(f"Reservation {reservation_number} changed while cancelling")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Reservation %s cancelled", reservation_number)
        return self._get_fresh(reservation_number)

    def redeem(
        self,
        reservation_number: str,
        vehicle_number: str,
        vehicle_type: str,
        now: datetime
    ) -> Tuple[Reservation, SlotHandle]:
        """Check-in handoff: occupy the held slot and complete the reservation.

        Runs inside the caller's transaction. Losing the slot CAS to a
        concurrent sweep or cancel raises ReservationInvalid.
        """

        reservation = self._get_fresh(reservation_number)
        if not reservation:
            raise ReservationInvalid(f"Reservation {reservation_number} does not exist")

        current = ReservationStatus(reservation.status)
        if current != ReservationStatus.CONFIRMED:
            raise ReservationInvalid(f"Reservation {reservation_number} is {current.value}")

        if not (reservation.reserved_from <= now <= reservation.reserved_until):
            raise ReservationInvalid(
                f"Reservation {reservation_number} is valid from {reservation.reserved_from.isoformat()} "
                f"to {reservation.reserved_until.isoformat()}"
            )

        if reservation.vehicle_number != vehicle_number:
            raise ReservationInvalid(f"Reservation {reservation_number} belongs to a different vehicle")

        if reservation.vehicle_type != vehicle_type:
            raise ReservationInvalid(f"Reservation {reservation_number} is for a {reservation.vehicle_type}")

        slot = self.allocator.get_slot(reservation.slot_id)
        if SlotStatus(slot.status) != SlotStatus.RESERVED:
            raise ReservationInvalid(f"Reservation {reservation_number} no longer holds its slot")

        handle = self.allocator.occupy_reserved(slot.id, slot.version)
        if handle is None:
            raise ReservationInvalid(f"Reservation {reservation_number} was changed concurrently")

        if not self.guarded_transition(reservation.id, ReservationStatus.CONFIRMED, ReservationStatus.COMPLETED):
            raise ReservationInvalid(f"Reservation {reservation_number} was changed concurrently")

        return reservation, handle

    def sweep_expired(self) -> Dict[str, int]:
        """Expire CONFIRMED reservations whose window has passed and free their slots.

        Each reservation is its own unit of work, so overlapping sweeps and a
        racing check-in resolve on the slot's version: the loser skips.
        """

        now = self.clock()
        due_ids = [
            row.id for row in self.db.query(Reservation.id).filter(
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.reserved_until < now
            ).order_by(Reservation.reserved_until, Reservation.id).all()
        ]

        expired = 0
        skipped = 0
        for reservation_id in due_ids:
            if self._expire_one(reservation_id, now):
                expired += 1
            else:
                skipped += 1

        if expired or skipped:
            logger.info("Reservation sweep: %d expired, %d skipped", expired, skipped)

        return {"expired": expired, "skipped": skipped}

    def reconcile_held_slots(self) -> int:
        """Release RESERVED slots that no live reservation holds"""

        live_hold = exists().where(and_(
            Reservation.slot_id == ParkingSlot.id,
            Reservation.status.in_([ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value])
        ))
        orphans = self.db.query(ParkingSlot.id, ParkingSlot.version).filter(
            ParkingSlot.status == SlotStatus.RESERVED.value,
            ~live_hold
        ).all()

        released = 0
        for slot_id, version in orphans:
            try:
                if self.allocator.release_if(slot_id, SlotStatus.RESERVED, version):
                    released += 1
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        if released:
            logger.warning("Reconciliation released %d orphaned RESERVED slots", released)
        return released

    def guarded_transition(
        self,
        reservation_id: int,
        expected: ReservationStatus,
        target: ReservationStatus
    ) -> bool:
        """Status-guarded reservation write; False if someone else moved it first"""

        ensure_transition(RESERVATION_TRANSITIONS, expected, target)
        result = self.db.execute(
            update(Reservation)
            .where(and_(Reservation.id == reservation_id, Reservation.status == expected.value))
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def get_reservation(self, reservation_number: str) -> Reservation:
        """Get reservation by number"""
        reservation = self._get_fresh(reservation_number)
        if not reservation:
            raise ReservationNotFound(f"Reservation {reservation_number} not found")
        return reservation

    def list_for_contact(self, contact_email: str) -> List[Reservation]:
        """Reservations made with a contact email, newest first"""
        return (
            self.db.query(Reservation)
            .filter(Reservation.contact_email == contact_email)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
            .all()
        )

    def _expire_one(self, reservation_id: int, now: datetime) -> bool:
        try:
            reservation = (
                self.db.query(Reservation)
                .filter(Reservation.id == reservation_id)
                .populate_existing()
                .first()
            )
            if (
                not reservation
                or reservation.status != ReservationStatus.CONFIRMED.value
                or reservation.reserved_until >= now
            ):
                self.db.rollback()
                return False

            if not self._release_held_slot(reservation):
                logger.debug("Sweep lost the slot race for reservation %s", reservation.reservation_number)
                self.db.rollback()
                return False

            if not self.guarded_transition(reservation.id, ReservationStatus.CONFIRMED, ReservationStatus.EXPIRED):
                self.db.rollback()
                return False

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Reservation %s expired", reservation.reservation_number)
        return True

    def _release_held_slot(self, reservation: Reservation) -> bool:
        """Release the reservation's slot if it is still RESERVED; False on a lost race"""
        if reservation.slot_id is None:
            return True
        slot = self.allocator.get_slot(reservation.slot_id)
        if SlotStatus(slot.status) != SlotStatus.RESERVED:
            # Already handed back (e.g. by reconciliation)
            return True
        return self.allocator.release_if(slot.id, SlotStatus.RESERVED, slot.version)

    def _validate_window(self, reserved_from: datetime, reserved_until: datetime, now: datetime):
        if reserved_from <= now:
            raise InvalidReservationWindow("Reservation must start in the future")
        if reserved_until <= reserved_from:
            raise InvalidReservationWindow("Reservation end must be after its start")
        if reserved_until - reserved_from > self.max_window:
            raise InvalidReservationWindow(
                f"Maximum reservation duration is {settings.MAX_RESERVATION_HOURS} hours"
            )

    def _get_fresh(self, reservation_number: str) -> Optional[Reservation]:
        return (
            self.db.query(Reservation)
            .filter(Reservation.reservation_number == reservation_number)
            .populate_existing()
            .first()
        )

    def _generate_reservation_number(self, now: datetime) -> str:
        """Generate human-readable reservation number"""
        return f"RSV{now:%Y%m%d}{secrets.token_hex(4).upper()}"
