from typing import Dict, Optional, Callable
from datetime import datetime
from decimal import Decimal
from sqlalchemy import update, and_, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
import logging
import secrets

from parking_engine.exceptions import (
    NoSlotAvailable, SlotUnavailable, TicketNotActive, TicketNotFound, GateNotFound,
    VehicleAlreadyParked, InvalidTransition
)
from parking_engine.models import Ticket, EntryGate, ParkingSlot
from parking_engine.pricing.pricing_service import PricingEngine
from parking_engine.pricing.schemas import FeeBreakdown
from parking_engine.reservations.reservation_service import ReservationManager
from parking_engine.slots.allocator import SlotAllocator, SlotConstraints
from parking_engine.states import (
    VehicleType, SlotStatus, TicketStatus, PaymentStatus, PaymentMethod,
    TICKET_TRANSITIONS, PAYMENT_TRANSITIONS, ensure_transition
)
from parking_engine.tickets.schemas import CheckOutResponse

logger = logging.getLogger(__name__)

def whole_minutes(start: datetime, end: datetime) -> int:
    """Completed minutes between two instants, never negative"""
    return max(int((end - start).total_seconds() // 60), 0)

class TicketLifecycleManager:
    """Service for vehicle check-in and check-out"""

    def __init__(
        self,
        db: Session,
        allocator: Optional[SlotAllocator] = None,
        pricing: Optional[PricingEngine] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db
        self.allocator = allocator or SlotAllocator(db)
        self.pricing = pricing or PricingEngine(db)
        self.clock = clock
        self.reservations = ReservationManager(db, allocator=self.allocator, clock=clock)

    def check_in(
        self,
        vehicle_number: str,
        vehicle_type: str,
        gate_id: int,
        ev_required: bool = False,
        vip: bool = False,
        reservation_number: Optional[str] = None,
        preferred_floor: Optional[int] = None
    ) -> Ticket:
        """Issue an ACTIVE ticket on a freshly claimed or reserved slot"""

        now = self.clock()
        vehicle_number = vehicle_number.strip().upper()
        vehicle_type = VehicleType(vehicle_type).value

        try:
            gate = self._get_gate(gate_id)

            if self._find_active_ticket(vehicle_number):
                raise VehicleAlreadyParked(f"Vehicle {vehicle_number} already has an active ticket")

            expected_exit = None
            reservation_id = None
            if reservation_number:
                reservation, handle = self.reservations.redeem(
                    reservation_number, vehicle_number, vehicle_type, now
                )
                reservation_id = reservation.id
                expected_exit = reservation.reserved_until
                ev_required = ev_required or reservation.ev_required
                vip = vip or reservation.vip
            else:
                try:
                    handle = self.allocator.claim(
                        vehicle_type,
                        SlotConstraints(ev_required=ev_required, vip_required=vip, preferred_floor=preferred_floor),
                        gate
                    )
                except NoSlotAvailable as e:
                    raise SlotUnavailable(f"No {vehicle_type} slot available for {vehicle_number}") from e

            ticket = Ticket(
                ticket_number=self._generate_ticket_number(now),
                vehicle_number=vehicle_number,
                vehicle_type=vehicle_type,
                slot_id=handle.slot_id,
                gate_id=gate.id,
                reservation_id=reservation_id,
                ev_required=ev_required,
                vip=vip,
                entry_time=now,
                expected_exit=expected_exit,
                status=TicketStatus.ACTIVE.value,
                payment_status=PaymentStatus.PENDING.value
            )
            self.db.add(ticket)
            self.db.flush()
            self.db.commit()
        except IntegrityError as e:
            # Partial unique index: another gate checked this vehicle in first
            self.db.rollback()
            raise VehicleAlreadyParked(f"Vehicle {vehicle_number} already has an active ticket") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ticket)
        logger.info(
            "Checked in %s (%s) at gate %s: ticket %s, slot %s on floor %d%s",
            vehicle_number, vehicle_type, gate.name, ticket.ticket_number,
            handle.slot_code, handle.floor_number,
            f", reservation {reservation_number}" if reservation_number else ""
        )
        return ticket

    def check_out(
        self,
        ticket_number: str,
        payment_method: str = PaymentMethod.CASH.value,
        payment_status: Optional[str] = None
    ) -> CheckOutResponse:
        """Close an ACTIVE ticket, price the stay and release the slot"""

        now = self.clock()
        payment_method = PaymentMethod(payment_method)
        payment_status = PaymentStatus(payment_status or PaymentStatus.PENDING)
        if payment_status != PaymentStatus.PENDING:
            ensure_transition(PAYMENT_TRANSITIONS, PaymentStatus.PENDING, payment_status)

        try:
            ticket = self._get_fresh(ticket_number)
            if not ticket:
                raise TicketNotFound(f"Ticket {ticket_number} not found")
            self._ensure_active(ticket)

            duration_minutes = whole_minutes(ticket.entry_time, now)
            breakdown = self._price(ticket, duration_minutes, now)

            ensure_transition(TICKET_TRANSITIONS, TicketStatus.ACTIVE, TicketStatus.COMPLETED)
            result = self.db.execute(
                update(Ticket)
                .where(and_(Ticket.id == ticket.id, Ticket.status == TicketStatus.ACTIVE.value))
                .values(
                    status=TicketStatus.COMPLETED.value,
                    exit_time=now,
                    duration_minutes=duration_minutes,
                    fee=breakdown.total,
                    pricing_rule_id=breakdown.rule_id,
                    payment_method=payment_method.value,
                    payment_status=payment_status.value
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise TicketNotActive(f"Ticket {ticket_number} was closed concurrently")

            self.allocator.release(ticket.slot_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Checked out %s: ticket %s, %d min, fee %s %s (%s)",
            ticket.vehicle_number, ticket_number, duration_minutes,
            breakdown.total, breakdown.currency, payment_status.value
        )

        return CheckOutResponse(
            ticket_number=ticket_number,
            vehicle_number=ticket.vehicle_number,
            entry_time=ticket.entry_time,
            exit_time=now,
            duration_minutes=duration_minutes,
            fee=breakdown.total,
            payment_method=payment_method,
            payment_status=payment_status,
            breakdown=breakdown,
            message="Check-out successful"
        )

    def cancel_ticket(self, ticket_number: str, reason: str) -> Ticket:
        """Void a ticket issued in error; no fee is charged"""

        try:
            ticket = self._get_fresh(ticket_number)
            if not ticket:
                raise TicketNotFound(f"Ticket {ticket_number} not found")
            self._ensure_active(ticket)

            ensure_transition(TICKET_TRANSITIONS, TicketStatus.ACTIVE, TicketStatus.CANCELLED)
            result = self.db.execute(
                update(Ticket)
                .where(and_(Ticket.id == ticket.id, Ticket.status == TicketStatus.ACTIVE.value))
                .values(
                    status=TicketStatus.CANCELLED.value,
                    fee=Decimal('0'),
                    cancellation_reason=reason
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise TicketNotActive(f"Ticket {ticket_number} was closed concurrently")

            self.allocator.release(ticket.slot_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Ticket %s cancelled: %s", ticket_number, reason)
        return self._get_fresh(ticket_number)

    def record_payment_outcome(self, ticket_number: str, payment_status: str) -> Ticket:
        """Apply the settlement result reported for a completed ticket"""

        target = PaymentStatus(payment_status)
        try:
            ticket = self._get_fresh(ticket_number)
            if not ticket:
                raise TicketNotFound(f"Ticket {ticket_number} not found")
            if ticket.status != TicketStatus.COMPLETED.value:
                raise InvalidTransition(f"Payment can only be recorded for a completed ticket, {ticket_number} is {ticket.status}")

            current = PaymentStatus(ticket.payment_status)
            ensure_transition(PAYMENT_TRANSITIONS, current, target)
            result = self.db.execute(
                update(Ticket)
                .where(and_(Ticket.id == ticket.id, Ticket.payment_status == current.value))
                .values(payment_status=target.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransition(f"Payment for ticket {ticket_number} changed concurrently")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Ticket %s payment %s -> %s", ticket_number, current.value, target.value)
        return self._get_fresh(ticket_number)

    def get_ticket(self, ticket_number: str) -> Ticket:
        """Get ticket by number"""
        ticket = self._get_fresh(ticket_number)
        if not ticket:
            raise TicketNotFound(f"Ticket {ticket_number} not found")
        return ticket

    def get_active_ticket_for_vehicle(self, vehicle_number: str) -> Ticket:
        """The ACTIVE ticket of a parked vehicle"""
        ticket = self._find_active_ticket(vehicle_number.strip().upper())
        if not ticket:
            raise TicketNotFound(f"No active ticket for vehicle {vehicle_number}")
        return ticket

    def estimate_fee(self, ticket_number: str) -> FeeBreakdown:
        """Running fee for a parked vehicle if it left now"""
        ticket = self.get_ticket(ticket_number)
        self._ensure_active(ticket)
        now = self.clock()
        return self._price(ticket, whole_minutes(ticket.entry_time, now), now)

    def reconcile_orphaned_slots(self) -> Dict[str, int]:
        """Crash recovery: release held slots that no live ticket or reservation owns"""

        live_ticket = exists().where(and_(
            Ticket.slot_id == ParkingSlot.id,
            Ticket.status == TicketStatus.ACTIVE.value
        ))
        orphans = self.db.query(ParkingSlot.id, ParkingSlot.version).filter(
            ParkingSlot.status == SlotStatus.OCCUPIED.value,
            ~live_ticket
        ).all()

        released_occupied = 0
        for slot_id, version in orphans:
            try:
                if self.allocator.release_if(slot_id, SlotStatus.OCCUPIED, version):
                    released_occupied += 1
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        if released_occupied:
            logger.warning("Reconciliation released %d orphaned OCCUPIED slots", released_occupied)

        return {
            "released_occupied": released_occupied,
            "released_reserved": self.reservations.reconcile_held_slots()
        }

    def _price(self, ticket: Ticket, duration_minutes: int, now: datetime) -> FeeBreakdown:
        overstay_minutes = 0
        if ticket.expected_exit is not None:
            overstay_minutes = whole_minutes(ticket.expected_exit, now)
        return self.pricing.quote(
            vehicle_type=ticket.vehicle_type,
            entry_time=ticket.entry_time,
            duration_minutes=duration_minutes,
            ev_used=ticket.ev_required,
            vip=ticket.vip,
            overstay_minutes=overstay_minutes
        )

    def _ensure_active(self, ticket: Ticket):
        if ticket.status != TicketStatus.ACTIVE.value:
            raise TicketNotActive(f"Ticket {ticket.ticket_number} is {ticket.status}")

    def _get_gate(self, gate_id: int) -> EntryGate:
        gate = (
            self.db.query(EntryGate)
            .options(joinedload(EntryGate.floor))
            .filter(EntryGate.id == gate_id)
            .first()
        )
        if not gate or not gate.is_active:
            raise GateNotFound(f"Entry gate {gate_id} not found or inactive")
        return gate

    def _find_active_ticket(self, vehicle_number: str) -> Optional[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(
                Ticket.vehicle_number == vehicle_number,
                Ticket.status == TicketStatus.ACTIVE.value
            )
            .populate_existing()
            .first()
        )

    def _get_fresh(self, ticket_number: str) -> Optional[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(Ticket.ticket_number == ticket_number)
            .populate_existing()
            .first()
        )

    def _generate_ticket_number(self, now: datetime) -> str:
        """Generate human-readable ticket number"""
        return f"TKT{now:%Y%m%d}{secrets.token_hex(4).upper()}"
