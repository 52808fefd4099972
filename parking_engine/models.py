from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Text, ForeignKey, Numeric, Index, text
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from parking_engine.database import Base
from parking_engine.states import (
    SlotStatus, TicketStatus, ReservationStatus, PaymentStatus, AlertStatus
)

# SQLite only autoincrements INTEGER primary keys
IdType = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Facility layout
# ================================
class ParkingFloor(Base):
    __tablename__ = "parking_floors"

    id = Column(IdType, primary_key=True, index=True)
    floor_number = Column(Integer, unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    slots = relationship("ParkingSlot", back_populates="floor")
    gates = relationship("EntryGate", back_populates="floor")

class EntryGate(Base):
    __tablename__ = "entry_gates"

    id = Column(IdType, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    floor_id = Column(IdType, ForeignKey("parking_floors.id"), nullable=False)
    x_coordinate = Column(Integer, nullable=False, default=0)
    y_coordinate = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    floor = relationship("ParkingFloor", back_populates="gates")

# ================================
# Slots
# ================================
class ParkingSlot(Base):
    __tablename__ = "parking_slots"
    __table_args__ = (
        Index("idx_slot_type_status", "vehicle_type", "status"),
    )

    id = Column(IdType, primary_key=True, index=True)
    slot_code = Column(String(20), unique=True, nullable=False)
    floor_id = Column(IdType, ForeignKey("parking_floors.id"), nullable=False, index=True)
    x_coordinate = Column(Integer, nullable=False, default=0)
    y_coordinate = Column(Integer, nullable=False, default=0)
    vehicle_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=SlotStatus.AVAILABLE.value)
    is_ev_capable = Column(Boolean, nullable=False, default=False)
    is_vip = Column(Boolean, nullable=False, default=False)
    # Admin requests recorded while the slot is held, applied at release
    pending_block = Column(Boolean, nullable=False, default=False)
    pending_maintenance = Column(Boolean, nullable=False, default=False)
    # Optimistic concurrency counter, bumped by every successful write
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    floor = relationship("ParkingFloor", back_populates="slots")
    tickets = relationship("Ticket", back_populates="slot")
    reservations = relationship("Reservation", back_populates="slot")
    alerts = relationship("MaintenanceAlert", back_populates="slot")

    @validates("vehicle_type")
    def _vehicle_type_is_immutable(self, key, value):
        if self.id is not None and self.vehicle_type is not None and value != self.vehicle_type:
            raise ValueError("A slot's vehicle type cannot change after creation")
        return value

# ================================
# Tickets
# ================================
class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        # One ACTIVE ticket per slot and per vehicle
        Index(
            "uq_active_ticket_per_slot", "slot_id", unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
        Index(
            "uq_active_ticket_per_vehicle", "vehicle_number", unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    id = Column(IdType, primary_key=True, index=True)
    ticket_number = Column(String(50), unique=True, nullable=False, index=True)
    vehicle_number = Column(String(20), nullable=False, index=True)
    vehicle_type = Column(String(20), nullable=False)
    slot_id = Column(IdType, ForeignKey("parking_slots.id"), nullable=False, index=True)
    gate_id = Column(IdType, ForeignKey("entry_gates.id"))
    reservation_id = Column(IdType, ForeignKey("reservations.id"))
    ev_required = Column(Boolean, nullable=False, default=False)
    vip = Column(Boolean, nullable=False, default=False)
    entry_time = Column(DateTime, nullable=False, index=True)
    expected_exit = Column(DateTime)
    exit_time = Column(DateTime, index=True)
    duration_minutes = Column(Integer)
    status = Column(String(20), nullable=False, default=TicketStatus.ACTIVE.value, index=True)
    fee = Column(Numeric(10, 2))
    pricing_rule_id = Column(IdType, ForeignKey("pricing_rules.id"))
    payment_method = Column(String(20))
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    slot = relationship("ParkingSlot", back_populates="tickets")
    gate = relationship("EntryGate")
    reservation = relationship("Reservation")
    pricing_rule = relationship("PricingRule")

# ================================
# Reservations
# ================================
class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_reservation_status_window", "status", "reserved_from", "reserved_until"),
    )

    id = Column(IdType, primary_key=True, index=True)
    reservation_number = Column(String(50), unique=True, nullable=False, index=True)
    vehicle_number = Column(String(20), nullable=False)
    vehicle_type = Column(String(20), nullable=False)
    contact_email = Column(String(255), index=True)
    contact_phone = Column(String(20))
    reserved_from = Column(DateTime, nullable=False)
    reserved_until = Column(DateTime, nullable=False)
    ev_required = Column(Boolean, nullable=False, default=False)
    vip = Column(Boolean, nullable=False, default=False)
    preferred_floor = Column(Integer)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    slot_id = Column(IdType, ForeignKey("parking_slots.id"), index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    slot = relationship("ParkingSlot", back_populates="reservations")

# ================================
# Pricing (append-only)
# ================================
class PricingRule(Base):
    __tablename__ = "pricing_rules"
    __table_args__ = (
        Index("idx_pricing_rule_lookup", "vehicle_type", "is_active", "effective_from"),
    )

    id = Column(IdType, primary_key=True, index=True)
    vehicle_type = Column(String(20), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    daily_rate = Column(Numeric(10, 2), nullable=False)
    penalty_rate = Column(Numeric(10, 2), nullable=False, default=0)
    ev_charging_rate = Column(Numeric(10, 2), nullable=False, default=0)
    vip_discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    effective_from = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())

# ================================
# Maintenance
# ================================
class MaintenanceAlert(Base):
    __tablename__ = "maintenance_alerts"

    id = Column(IdType, primary_key=True, index=True)
    slot_id = Column(IdType, ForeignKey("parking_slots.id"), nullable=False, index=True)
    alert_type = Column(String(50), nullable=False)
    description = Column(Text)
    severity = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=AlertStatus.OPEN.value, index=True)
    created_at = Column(DateTime, server_default=func.now())
    resolved_at = Column(DateTime)

    # Relationships
    slot = relationship("ParkingSlot", back_populates="alerts")
