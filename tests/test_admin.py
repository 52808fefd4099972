"""
Admin Operations Tests

Block/unblock, maintenance alerts, pricing publication, facility setup and
dashboard reporting.
"""

import unittest
from datetime import datetime
from decimal import Decimal

from parking_engine.admin.admin_service import AdminOperations
from parking_engine.admin.analytics_service import ParkingAnalyticsService
from parking_engine.exceptions import AlertNotFound, InvalidTransition, SlotUnavailable
from parking_engine.models import PricingRule
from parking_engine.pricing.pricing_service import PricingEngine
from parking_engine.states import (
    VehicleType, SlotStatus, AlertStatus, AlertSeverity, PaymentMethod, TicketStatus
)
from parking_engine.tickets.ticket_service import TicketLifecycleManager

from tests.helpers import DatabaseTestCase


class AdminTestCase(DatabaseTestCase):

    start_time = datetime(2025, 3, 10, 10, 0)

    def setUp(self):
        super().setUp()
        self.seed_facility()
        self.slot = self.add_slot("G-CAR-001", self.floor)
        self.admin = AdminOperations(self.db, allocator=self.allocator(), clock=self.clock)
        self.tickets = TicketLifecycleManager(self.db, allocator=self.allocator(), clock=self.clock)

    def occupy(self, plate="CAR1"):
        return self.tickets.check_in(plate, VehicleType.CAR.value, self.gate.id)


class TestBlockSlot(AdminTestCase):

    def test_block_and_unblock_available_slot(self):
        self.assertEqual(self.admin.block_slot(self.slot.id, "line painting").status, SlotStatus.BLOCKED)
        self.assertEqual(self.admin.unblock_slot(self.slot.id).status, SlotStatus.AVAILABLE)

    def test_blocked_slot_is_not_allocated(self):
        self.admin.block_slot(self.slot.id)
        with self.assertRaises(SlotUnavailable):
            self.occupy()

    def test_block_on_occupied_slot_applies_at_check_out(self):
        ticket = self.occupy()
        handle = self.admin.block_slot(self.slot.id)
        self.assertEqual(handle.status, SlotStatus.OCCUPIED)

        self.clock.advance(minutes=30)
        self.tickets.check_out(ticket.ticket_number)

        slot = self.reload_slot(self.slot.id)
        self.assertEqual(slot.status, SlotStatus.BLOCKED.value)
        self.assertFalse(slot.pending_block)

    def test_unblock_withdraws_pending_block(self):
        ticket = self.occupy()
        self.admin.block_slot(self.slot.id)
        self.admin.unblock_slot(self.slot.id)

        self.clock.advance(minutes=30)
        self.tickets.check_out(ticket.ticket_number)
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.AVAILABLE.value)

    def test_force_status_rejects_held_targets(self):
        with self.assertRaises(InvalidTransition):
            self.admin.force_status(self.slot.id, SlotStatus.OCCUPIED.value)


class TestMaintenanceAlerts(AdminTestCase):

    def test_alert_takes_slot_out_until_resolved(self):
        alert = self.admin.create_maintenance_alert(self.slot.id, "LIGHTING", "bulb out", AlertSeverity.HIGH.value)
        self.assertEqual(alert.status, AlertStatus.OPEN.value)
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.MAINTENANCE.value)

        resolved = self.admin.resolve_maintenance_alert(alert.id)
        self.assertEqual(resolved.status, AlertStatus.RESOLVED.value)
        self.assertEqual(resolved.resolved_at, self.clock.now)
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.AVAILABLE.value)

    def test_slot_stays_in_maintenance_while_any_alert_open(self):
        first = self.admin.create_maintenance_alert(self.slot.id, "LIGHTING")
        self.admin.create_maintenance_alert(self.slot.id, "DRAINAGE")

        self.admin.resolve_maintenance_alert(first.id)
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.MAINTENANCE.value)

    def test_blocked_slot_returns_to_blocked_after_maintenance(self):
        self.admin.block_slot(self.slot.id)
        alert = self.admin.create_maintenance_alert(self.slot.id, "LIGHTING")
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.MAINTENANCE.value)

        self.admin.resolve_maintenance_alert(alert.id)
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.BLOCKED.value)

    def test_alert_on_occupied_slot_applies_at_check_out(self):
        ticket = self.occupy()
        self.admin.create_maintenance_alert(self.slot.id, "BARRIER")
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.OCCUPIED.value)

        self.clock.advance(minutes=30)
        self.tickets.check_out(ticket.ticket_number)
        self.assertEqual(self.reload_slot(self.slot.id).status, SlotStatus.MAINTENANCE.value)

    def test_alerts_listed_most_severe_first(self):
        other = self.add_slot("G-CAR-002", self.floor, x=10)
        self.admin.create_maintenance_alert(self.slot.id, "PAINT", severity=AlertSeverity.LOW.value)
        self.clock.advance(minutes=1)
        self.admin.create_maintenance_alert(other.id, "FIRE", severity=AlertSeverity.CRITICAL.value)
        self.clock.advance(minutes=1)
        self.admin.create_maintenance_alert(self.slot.id, "SENSOR", severity=AlertSeverity.MEDIUM.value)

        alerts = self.admin.list_maintenance_alerts()
        self.assertEqual([a.alert_type for a in alerts], ["FIRE", "SENSOR", "PAINT"])

    def test_resolve_unknown_alert(self):
        with self.assertRaises(AlertNotFound):
            self.admin.resolve_maintenance_alert(404)


class TestPricingPublication(AdminTestCase):

    def test_new_rule_is_appended(self):
        before = self.db.query(PricingRule).count()
        self.admin.update_pricing_rule(
            VehicleType.CAR.value,
            base_price=Decimal("25.00"),
            hourly_rate=Decimal("12.00"),
            daily_rate=Decimal("120.00"),
            effective_from=datetime(2025, 3, 10, 12, 0)
        )
        self.assertEqual(self.db.query(PricingRule).count(), before + 1)

        engine = PricingEngine(self.db)
        # Vehicles that entered before the change keep the old rule
        self.assertEqual(engine.compute_fee(VehicleType.CAR.value, datetime(2025, 3, 10, 11, 0), 105), Decimal("40.00"))
        self.assertEqual(engine.compute_fee(VehicleType.CAR.value, datetime(2025, 3, 10, 12, 0), 105), Decimal("49.00"))


class TestFacilitySetup(AdminTestCase):

    def test_create_floor_gate_and_slot(self):
        self.admin.create_floor(1, "Level 1")
        gate = self.admin.create_gate("Ramp Gate", 1, 10, 0)
        slot = self.admin.create_slot("L1-CAR-001", 1, VehicleType.CAR.value, 12, 0, is_ev_capable=True)

        self.assertEqual(gate.floor_id, slot.floor_id)
        self.assertEqual(slot.status, SlotStatus.AVAILABLE.value)
        self.assertEqual(slot.version, 0)

        with self.assertRaises(ValueError):
            self.admin.create_floor(1, "Duplicate")
        with self.assertRaises(ValueError):
            self.admin.create_slot("L1-CAR-001", 1, VehicleType.CAR.value)
        with self.assertRaises(ValueError):
            self.admin.create_gate("Nowhere", 9)

    def test_cancel_ticket_passthrough(self):
        ticket = self.occupy()
        cancelled = self.admin.cancel_ticket(ticket.ticket_number, "duplicate ticket")
        self.assertEqual(cancelled.status, TicketStatus.CANCELLED.value)


class TestAnalytics(AdminTestCase):

    def test_dashboard_and_occupancy(self):
        self.add_slot("G-CAR-002", self.floor, x=10)
        self.occupy("CAR1")
        self.admin.create_maintenance_alert(
            self.add_slot("G-CAR-003", self.floor, x=20).id, "FIRE", severity=AlertSeverity.CRITICAL.value
        )

        analytics = ParkingAnalyticsService(self.db, clock=self.clock)
        summary = analytics.get_dashboard_summary()

        self.assertEqual(summary.total_slots, 3)
        self.assertEqual(summary.slots_by_status[SlotStatus.OCCUPIED.value], 1)
        self.assertEqual(summary.slots_by_status[SlotStatus.MAINTENANCE.value], 1)
        self.assertEqual(summary.occupancy_rate, 33.33)
        self.assertEqual(summary.active_tickets, 1)
        self.assertEqual(len(summary.critical_alerts), 1)

        occupancy = analytics.get_occupancy()
        self.assertEqual(occupancy.occupied_by_floor, {0: 1})
        self.assertEqual(occupancy.occupied_by_vehicle_type, {VehicleType.CAR.value: 1})

    def test_revenue_report(self):
        self.add_slot("G-CAR-002", self.floor, x=10)
        first = self.occupy("CAR1")
        second = self.occupy("CAR2")
        self.clock.advance(minutes=105)
        self.tickets.check_out(first.ticket_number, PaymentMethod.CARD.value)
        self.tickets.check_out(second.ticket_number, PaymentMethod.CASH.value)

        analytics = ParkingAnalyticsService(self.db, clock=self.clock)
        report = analytics.get_revenue_report(datetime(2025, 3, 10), datetime(2025, 3, 11))

        self.assertEqual(report.completed_tickets, 2)
        self.assertEqual(report.total_revenue, Decimal("80.00"))
        self.assertEqual(report.average_fee, Decimal("40.00"))
        self.assertEqual(report.revenue_by_payment_method, {"CARD": Decimal("40.00"), "CASH": Decimal("40.00")})
        self.assertEqual(analytics.get_dashboard_summary().revenue_today, Decimal("80.00"))

        with self.assertRaises(ValueError):
            analytics.get_revenue_report(datetime(2025, 3, 11), datetime(2025, 3, 10))


if __name__ == '__main__':
    unittest.main()
