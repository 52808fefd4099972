#!/usr/bin/env python3

from datetime import datetime
from decimal import Decimal

from parking_engine.database import SessionLocal, init_db
from parking_engine.models import (
    ParkingFloor, EntryGate, ParkingSlot, PricingRule, MaintenanceAlert, Reservation, Ticket
)
from parking_engine.states import VehicleType, SlotStatus

FLOORS = [
    (0, "G", "Ground Floor"),
    (1, "L1", "Level 1"),
    (2, "L2", "Level 2"),
]

# (vehicle type, slots per floor, lane y-coordinate, floors it exists on)
SLOT_LAYOUT = [
    (VehicleType.TWO_WHEELER, 10, 10, (0, 1, 2)),
    (VehicleType.CAR, 20, 30, (0, 1, 2)),
    (VehicleType.TRUCK, 5, 60, (0,)),
]

EV_CAR_SLOTS_PER_FLOOR = 4
VIP_CAR_SLOTS_PER_FLOOR = 2

PRICING = [
    # vehicle type, base, hourly, daily, penalty, EV, VIP %
    (VehicleType.TWO_WHEELER, "10.00", "5.00", "50.00", "2.00", "3.00", "10.00"),
    (VehicleType.CAR, "20.00", "10.00", "100.00", "5.00", "5.00", "15.00"),
    (VehicleType.TRUCK, "40.00", "20.00", "200.00", "10.00", "0.00", "5.00"),
]

def create_seed_data():
    init_db()
    db = SessionLocal()

    try:
        print("Creating seed data for Multi-Level Car Park...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(Ticket).delete()
        db.query(Reservation).delete()
        db.query(MaintenanceAlert).delete()
        db.query(ParkingSlot).delete()
        db.query(EntryGate).delete()
        db.query(ParkingFloor).delete()
        db.query(PricingRule).delete()

        # 1. Create Floors
        print("Creating floors...")
        floors = {}
        for floor_number, prefix, name in FLOORS:
            floor = ParkingFloor(floor_number=floor_number, name=name)
            db.add(floor)
            floors[floor_number] = (floor, prefix)
        db.flush()

        # 2. Create Entry Gates
        print("Creating entry gates...")
        ground = floors[0][0]
        db.add_all([
            EntryGate(name="Gate A (North)", floor_id=ground.id, x_coordinate=0, y_coordinate=0),
            EntryGate(name="Gate B (South)", floor_id=ground.id, x_coordinate=100, y_coordinate=0),
        ])
        db.flush()

        # 3. Create Slots
        print("Creating parking slots...")
        slot_count = 0
        for vehicle_type, per_floor, lane_y, on_floors in SLOT_LAYOUT:
            for floor_number in on_floors:
                floor, prefix = floors[floor_number]
                for index in range(1, per_floor + 1):
                    is_car = vehicle_type == VehicleType.CAR
                    db.add(ParkingSlot(
                        slot_code=f"{prefix}-{vehicle_type.value}-{index:03d}",
                        floor_id=floor.id,
                        x_coordinate=index * 5,
                        y_coordinate=lane_y,
                        vehicle_type=vehicle_type.value,
                        status=SlotStatus.AVAILABLE.value,
                        is_ev_capable=is_car and index <= EV_CAR_SLOTS_PER_FLOOR,
                        is_vip=is_car and index > per_floor - VIP_CAR_SLOTS_PER_FLOOR,
                        version=0
                    ))
                    slot_count += 1
        db.flush()

        # 4. Create Pricing Rules
        print("Creating pricing rules...")
        effective_from = datetime(2024, 1, 1)
        for vehicle_type, base, hourly, daily, penalty, ev, vip in PRICING:
            db.add(PricingRule(
                vehicle_type=vehicle_type.value,
                base_price=Decimal(base),
                hourly_rate=Decimal(hourly),
                daily_rate=Decimal(daily),
                penalty_rate=Decimal(penalty),
                ev_charging_rate=Decimal(ev),
                vip_discount_percent=Decimal(vip),
                effective_from=effective_from,
                is_active=True
            ))

        db.commit()
        print(f"Seed data created: {len(FLOORS)} floors, 2 gates, {slot_count} slots, {len(PRICING)} pricing rules")

    except Exception as e:
        print(f"Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
