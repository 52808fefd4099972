"""
Shared fixtures for the parking engine tests.

Every test case gets its own file-backed SQLite database so that
multi-session and multi-thread tests see real transaction isolation.
"""

import os
import tempfile
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from parking_engine.database import build_engine, init_db
from parking_engine.models import ParkingFloor, EntryGate, ParkingSlot, PricingRule
from parking_engine.slots.allocator import SlotAllocator
from parking_engine.states import VehicleType, SlotStatus


class FakeClock:
    """Callable clock the tests move by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_rule(
    vehicle_type=VehicleType.CAR,
    base_price="20.00",
    hourly_rate="10.00",
    daily_rate="100.00",
    penalty_rate="5.00",
    ev_charging_rate="5.00",
    vip_discount_percent="15.00",
    effective_from=datetime(2024, 1, 1),
    is_active=True
) -> PricingRule:
    """Unsaved pricing rule with every column populated"""
    return PricingRule(
        vehicle_type=VehicleType(vehicle_type).value,
        base_price=Decimal(base_price),
        hourly_rate=Decimal(hourly_rate),
        daily_rate=Decimal(daily_rate),
        penalty_rate=Decimal(penalty_rate),
        ev_charging_rate=Decimal(ev_charging_rate),
        vip_discount_percent=Decimal(vip_discount_percent),
        effective_from=effective_from,
        is_active=is_active
    )


class DatabaseTestCase(unittest.TestCase):
    """Fresh database, session and clock per test"""

    start_time = datetime(2025, 3, 10, 9, 0)

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = build_engine(f"sqlite:///{os.path.join(self._tmpdir.name, 'parking.db')}")
        init_db(bind=self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.db = self.SessionLocal()
        self.clock = FakeClock(self.start_time)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()
        self._tmpdir.cleanup()

    # Seed helpers
    def add_floor(self, floor_number=0, name=None) -> ParkingFloor:
        floor = ParkingFloor(floor_number=floor_number, name=name or f"Floor {floor_number}")
        self.db.add(floor)
        self.db.commit()
        return floor

    def add_gate(self, floor, x=0, y=0, name="Gate A", is_active=True) -> EntryGate:
        gate = EntryGate(
            name=name, floor_id=floor.id, x_coordinate=x, y_coordinate=y, is_active=is_active
        )
        self.db.add(gate)
        self.db.commit()
        return gate

    def add_slot(
        self,
        code,
        floor,
        vehicle_type=VehicleType.CAR,
        x=0,
        y=0,
        ev=False,
        vip=False,
        status=SlotStatus.AVAILABLE
    ) -> ParkingSlot:
        slot = ParkingSlot(
            slot_code=code,
            floor_id=floor.id,
            vehicle_type=VehicleType(vehicle_type).value,
            x_coordinate=x,
            y_coordinate=y,
            is_ev_capable=ev,
            is_vip=vip,
            status=SlotStatus(status).value,
            version=0
        )
        self.db.add(slot)
        self.db.commit()
        return slot

    def add_rule(self, **kwargs) -> PricingRule:
        rule = make_rule(**kwargs)
        self.db.add(rule)
        self.db.commit()
        return rule

    def seed_facility(self):
        """Ground floor, one gate at the origin and a rule for every vehicle type"""
        self.floor = self.add_floor(0, "Ground Floor")
        self.gate = self.add_gate(self.floor, 0, 0)
        self.add_rule(vehicle_type=VehicleType.CAR)
        self.add_rule(
            vehicle_type=VehicleType.TWO_WHEELER, base_price="10.00", hourly_rate="5.00",
            daily_rate="50.00", penalty_rate="2.00", ev_charging_rate="3.00", vip_discount_percent="10.00"
        )
        self.add_rule(
            vehicle_type=VehicleType.TRUCK, base_price="40.00", hourly_rate="20.00",
            daily_rate="200.00", penalty_rate="10.00", ev_charging_rate="0.00", vip_discount_percent="5.00"
        )

    def allocator(self, db=None) -> SlotAllocator:
        return SlotAllocator(db or self.db, backoff_seconds=0)

    def reload_slot(self, slot_id) -> ParkingSlot:
        return self.db.query(ParkingSlot).filter(ParkingSlot.id == slot_id).populate_existing().one()
