"""
Lifecycle states for slots, tickets, reservations and payments.

Each lifecycle is a str-valued enumeration with an explicit transition table.
Services call ``ensure_transition`` before every status write so that a move
missing from the table can never be persisted.
"""

from enum import Enum
from typing import Dict, FrozenSet, Mapping

from parking_engine.exceptions import InvalidTransition


class VehicleType(str, Enum):
    """Vehicle classes a slot can be built for"""
    TWO_WHEELER = "TWO_WHEELER"
    CAR = "CAR"
    TRUCK = "TRUCK"


class SlotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    BLOCKED = "BLOCKED"
    MAINTENANCE = "MAINTENANCE"


class TicketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    """Settlement outcome reported by the payment collaborator"""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    WALLET = "WALLET"


class AlertStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.HIGH: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 3,
}


# OCCUPIED/RESERVED -> BLOCKED/MAINTENANCE only happen as the release target
# of a pending admin request, never as an eviction.
SLOT_TRANSITIONS: Dict[SlotStatus, FrozenSet[SlotStatus]] = {
    SlotStatus.AVAILABLE: frozenset({
        SlotStatus.OCCUPIED, SlotStatus.RESERVED,
        SlotStatus.BLOCKED, SlotStatus.MAINTENANCE,
    }),
    SlotStatus.OCCUPIED: frozenset({
        SlotStatus.AVAILABLE, SlotStatus.BLOCKED, SlotStatus.MAINTENANCE,
    }),
    SlotStatus.RESERVED: frozenset({
        SlotStatus.AVAILABLE, SlotStatus.OCCUPIED,
        SlotStatus.BLOCKED, SlotStatus.MAINTENANCE,
    }),
    SlotStatus.BLOCKED: frozenset({SlotStatus.AVAILABLE, SlotStatus.MAINTENANCE}),
    SlotStatus.MAINTENANCE: frozenset({SlotStatus.AVAILABLE, SlotStatus.BLOCKED}),
}

TICKET_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.ACTIVE: frozenset({TicketStatus.COMPLETED, TicketStatus.CANCELLED}),
    TicketStatus.COMPLETED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}

RESERVATION_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({
        ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.COMPLETED, ReservationStatus.EXPIRED, ReservationStatus.CANCELLED,
    }),
    ReservationStatus.EXPIRED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED}),
    PaymentStatus.SUCCESS: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

# Slot states a claim or hold may never start from
HELD_SLOT_STATES = frozenset({SlotStatus.OCCUPIED, SlotStatus.RESERVED})


def can_transition(table: Mapping, current, target) -> bool:
    return target in table.get(current, frozenset())


def ensure_transition(table: Mapping, current, target) -> None:
    """Raise InvalidTransition unless current -> target is in the table"""
    if not can_transition(table, current, target):
        current_name = getattr(current, "value", current)
        target_name = getattr(target, "value", target)
        raise InvalidTransition(f"Cannot move from {current_name} to {target_name}")
