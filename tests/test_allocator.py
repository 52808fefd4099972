"""
Slot Allocator Unit Tests

Candidate ordering, compare-and-swap claims, releases and admin overrides.
"""

import unittest
from unittest.mock import Mock

from parking_engine.exceptions import NoSlotAvailable, InvalidTransition
from parking_engine.models import MaintenanceAlert
from parking_engine.slots.allocator import SlotAllocator, SlotConstraints
from parking_engine.states import VehicleType, SlotStatus, AlertStatus

from tests.helpers import DatabaseTestCase


class TestCandidateOrdering(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.ground = self.add_floor(0)
        self.upper = self.add_floor(1)
        self.gate = self.add_gate(self.ground, 0, 0)

    def test_nearest_slot_to_gate_wins(self):
        self.add_slot("G-CAR-002", self.ground, x=50, y=0)
        near = self.add_slot("G-CAR-001", self.ground, x=5, y=5)

        handle = self.allocator().claim(VehicleType.CAR.value, gate=self.gate)

        self.assertEqual(handle.slot_id, near.id)
        self.assertEqual(handle.status, SlotStatus.OCCUPIED)
        self.assertEqual(handle.version, 1)

    def test_other_floors_cost_travel_distance(self):
        upstairs = self.add_slot("L1-CAR-001", self.upper, x=0, y=0)
        downstairs = self.add_slot("G-CAR-010", self.ground, x=60, y=0)

        candidates = self.allocator().find_candidates(VehicleType.CAR.value, SlotConstraints(), self.gate)

        self.assertEqual([s.id for s in candidates], [downstairs.id, upstairs.id])

    def test_preferred_floor_is_soft(self):
        self.add_slot("G-CAR-001", self.ground, x=1, y=0)
        upstairs = self.add_slot("L1-CAR-001", self.upper, x=90, y=90)
        allocator = self.allocator()

        handle = allocator.claim(VehicleType.CAR.value, SlotConstraints(preferred_floor=1), self.gate)
        self.assertEqual(handle.slot_id, upstairs.id)

        # Preferred floor full: falls back instead of failing
        handle = allocator.claim(VehicleType.CAR.value, SlotConstraints(preferred_floor=1), self.gate)
        self.assertEqual(handle.slot_code, "G-CAR-001")

    def test_ordering_is_deterministic_without_gate(self):
        first = self.add_slot("G-CAR-003", self.ground, x=1, y=1)
        self.add_slot("G-CAR-004", self.ground, x=1, y=1)
        self.add_slot("L1-CAR-001", self.upper, x=0, y=0)

        candidates = self.allocator().find_candidates(VehicleType.CAR.value, SlotConstraints())

        self.assertEqual(candidates[0].id, first.id)

    def test_constraints_filter_slots(self):
        self.add_slot("G-CAR-001", self.ground)
        ev = self.add_slot("G-CAR-002", self.ground, x=40, ev=True)
        self.add_slot("G-TRK-001", self.ground, vehicle_type=VehicleType.TRUCK)

        handle = self.allocator().claim(VehicleType.CAR.value, SlotConstraints(ev_required=True), self.gate)
        self.assertEqual(handle.slot_id, ev.id)

        with self.assertRaises(NoSlotAvailable):
            self.allocator().claim(VehicleType.CAR.value, SlotConstraints(vip_required=True), self.gate)


class TestCompareAndSwap(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.floor = self.add_floor(0)
        self.slot = self.add_slot("G-CAR-001", self.floor)

    def test_stale_version_is_rejected(self):
        allocator = self.allocator()
        self.assertTrue(allocator._compare_and_swap(self.slot.id, 0, SlotStatus.AVAILABLE, SlotStatus.OCCUPIED))
        self.assertFalse(allocator._compare_and_swap(self.slot.id, 0, SlotStatus.OCCUPIED, SlotStatus.AVAILABLE))
        self.assertEqual(self.reload_slot(self.slot.id).version, 1)

    def test_claim_retries_with_fresh_search(self):
        other = self.add_slot("G-CAR-002", self.floor, x=30)
        allocator = self.allocator()
        real_cas = allocator._compare_and_swap
        calls = []

        def losing_first_cas(*args, **kwargs):
            calls.append(args[0])
            if len(calls) == 1:
                # Another gate takes the slot between our read and our write
                real_cas(self.slot.id, 0, SlotStatus.AVAILABLE, SlotStatus.OCCUPIED)
                return False
            return real_cas(*args, **kwargs)

        allocator._compare_and_swap = losing_first_cas
        handle = allocator.claim(VehicleType.CAR.value)

        self.assertEqual(handle.slot_id, other.id)
        self.assertEqual(calls, [self.slot.id, other.id])

    def test_claim_gives_up_after_max_attempts(self):
        sleep = Mock()
        allocator = SlotAllocator(self.db, max_attempts=3, backoff_seconds=0.01, sleep=sleep)
        allocator._compare_and_swap = Mock(return_value=False)

        with self.assertRaises(NoSlotAvailable):
            allocator.claim(VehicleType.CAR.value)

        self.assertEqual(allocator._compare_and_swap.call_count, 3)
        # No sleep after the final attempt
        self.assertEqual(sleep.call_count, 2)

    def test_release_of_available_slot_is_noop(self):
        handle = self.allocator().release(self.slot.id)
        self.assertEqual(handle.status, SlotStatus.AVAILABLE)
        self.assertEqual(self.reload_slot(self.slot.id).version, 0)

    def test_release_if_requires_observed_version(self):
        allocator = self.allocator()
        allocator.claim(VehicleType.CAR.value)
        self.assertFalse(allocator.release_if(self.slot.id, SlotStatus.OCCUPIED, 0))
        self.assertTrue(allocator.release_if(self.slot.id, SlotStatus.OCCUPIED, 1))
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.AVAILABLE.value)


class TestPendingAdminRequests(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.floor = self.add_floor(0)
        self.slot = self.add_slot("G-CAR-001", self.floor)
        self.allocator_ = self.allocator()
        self.allocator_.claim(VehicleType.CAR.value)

    def test_block_on_occupied_slot_is_deferred(self):
        handle = self.allocator_.force_status(self.slot.id, SlotStatus.BLOCKED, "resurfacing")
        self.assertEqual(handle.status, SlotStatus.OCCUPIED)
        self.assertTrue(self.reload_slot(self.slot.id).pending_block)

        handle = self.allocator_.release(self.slot.id)
        slot = self.reload_slot(self.slot.id)
        self.assertEqual(handle.status, SlotStatus.BLOCKED)
        self.assertFalse(slot.pending_block)

    def test_open_alert_sends_released_slot_to_maintenance(self):
        self.db.add(MaintenanceAlert(
            slot_id=self.slot.id, alert_type="LIGHTING", severity="HIGH", status=AlertStatus.OPEN.value
        ))
        self.db.flush()

        handle = self.allocator_.release(self.slot.id)
        self.assertEqual(handle.status, SlotStatus.MAINTENANCE)

    def test_pending_block_survives_maintenance(self):
        self.allocator_.set_pending_flags(self.slot.id, pending_block=True, pending_maintenance=True)

        self.assertEqual(self.allocator_.release(self.slot.id).status, SlotStatus.MAINTENANCE)
        self.assertTrue(self.reload_slot(self.slot.id).pending_block)

    def test_cannot_force_into_held_state(self):
        with self.assertRaises(InvalidTransition):
            self.allocator_.force_status(self.slot.id, SlotStatus.RESERVED)


class TestSlotModel(DatabaseTestCase):

    def test_vehicle_type_is_immutable(self):
        floor = self.add_floor(0)
        slot = self.add_slot("G-CAR-001", floor)
        with self.assertRaises(ValueError):
            slot.vehicle_type = VehicleType.TRUCK.value


if __name__ == '__main__':
    unittest.main()
