from typing import Dict, Callable
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from collections import defaultdict
from sqlalchemy import func
from sqlalchemy.orm import Session

from parking_engine.config import settings
from parking_engine.models import ParkingSlot, ParkingFloor, Ticket, Reservation, MaintenanceAlert
from parking_engine.pricing.pricing_service import minor_unit
from parking_engine.admin.schemas import (
    DashboardSummary, OccupancyReport, RevenueReport, MaintenanceAlertResponse
)
from parking_engine.states import (
    SlotStatus, TicketStatus, ReservationStatus, AlertStatus, AlertSeverity
)

class ParkingAnalyticsService:
    """Read-only dashboard queries over slots, tickets and alerts"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock
        self.quantum = minor_unit(settings.CURRENCY_MINOR_UNITS)

    def get_dashboard_summary(self) -> DashboardSummary:
        """Get dashboard data"""

        now = self.clock()
        by_status = self._slot_counts_by_status()
        total = sum(by_status.values())

        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)

        critical_alerts = (
            self.db.query(MaintenanceAlert)
            .filter(
                MaintenanceAlert.status == AlertStatus.OPEN.value,
                MaintenanceAlert.severity == AlertSeverity.CRITICAL.value
            )
            .order_by(MaintenanceAlert.created_at.desc(), MaintenanceAlert.id.desc())
            .limit(5)
            .all()
        )

        return DashboardSummary(
            total_slots=total,
            slots_by_status=by_status,
            occupancy_rate=self._rate(by_status[SlotStatus.OCCUPIED.value], total),
            active_tickets=self.db.query(func.count(Ticket.id)).filter(
                Ticket.status == TicketStatus.ACTIVE.value
            ).scalar(),
            active_reservations=self.db.query(func.count(Reservation.id)).filter(
                Reservation.status.in_([ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value])
            ).scalar(),
            revenue_today=self._revenue_between(start_of_day, now),
            revenue_this_month=self._revenue_between(start_of_month, now),
            critical_alerts=[MaintenanceAlertResponse.model_validate(a) for a in critical_alerts],
            last_updated=now
        )

    def get_occupancy(self) -> OccupancyReport:
        """Slot counts by status, occupied slots by floor and vehicle type"""

        by_status = self._slot_counts_by_status()
        total = sum(by_status.values())
        occupied = by_status[SlotStatus.OCCUPIED.value]

        by_floor = dict(
            self.db.query(ParkingFloor.floor_number, func.count(ParkingSlot.id))
            .join(ParkingSlot, ParkingSlot.floor_id == ParkingFloor.id)
            .filter(ParkingSlot.status == SlotStatus.OCCUPIED.value)
            .group_by(ParkingFloor.floor_number)
            .all()
        )
        by_vehicle_type = dict(
            self.db.query(ParkingSlot.vehicle_type, func.count(ParkingSlot.id))
            .filter(ParkingSlot.status == SlotStatus.OCCUPIED.value)
            .group_by(ParkingSlot.vehicle_type)
            .all()
        )

        return OccupancyReport(
            total_slots=total,
            occupied_slots=occupied,
            occupancy_rate=self._rate(occupied, total),
            by_status=by_status,
            occupied_by_floor=by_floor,
            occupied_by_vehicle_type=by_vehicle_type
        )

    def get_revenue_report(self, period_from: datetime, period_to: datetime) -> RevenueReport:
        """Revenue of tickets completed within the period"""

        if period_to < period_from:
            raise ValueError("period_to must not be before period_from")

        tickets = self.db.query(Ticket).filter(
            Ticket.status == TicketStatus.COMPLETED.value,
            Ticket.exit_time >= period_from,
            Ticket.exit_time <= period_to
        ).all()

        total = Decimal('0')
        by_vehicle_type = defaultdict(lambda: Decimal('0'))
        by_payment_method = defaultdict(lambda: Decimal('0'))
        for ticket in tickets:
            fee = Decimal(ticket.fee or 0)
            total += fee
            by_vehicle_type[ticket.vehicle_type] += fee
            by_payment_method[ticket.payment_method or "UNKNOWN"] += fee

        average = total / len(tickets) if tickets else Decimal('0')

        return RevenueReport(
            period_from=period_from,
            period_to=period_to,
            completed_tickets=len(tickets),
            total_revenue=self._money(total),
            average_fee=self._money(average),
            revenue_by_vehicle_type={k: self._money(v) for k, v in by_vehicle_type.items()},
            revenue_by_payment_method={k: self._money(v) for k, v in by_payment_method.items()},
            currency=settings.CURRENCY
        )

    def _slot_counts_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in SlotStatus}
        rows = (
            self.db.query(ParkingSlot.status, func.count(ParkingSlot.id))
            .group_by(ParkingSlot.status)
            .all()
        )
        for slot_status, count in rows:
            counts[slot_status] = count
        return counts

    def _revenue_between(self, start: datetime, end: datetime) -> Decimal:
        total = self.db.query(func.sum(Ticket.fee)).filter(
            Ticket.status == TicketStatus.COMPLETED.value,
            Ticket.exit_time >= start,
            Ticket.exit_time <= end
        ).scalar()
        return self._money(Decimal(str(total or 0)))

    def _money(self, amount: Decimal) -> Decimal:
        return amount.quantize(self.quantum, rounding=ROUND_HALF_UP)

    def _rate(self, part: int, total: int) -> float:
        if not total:
            return 0.0
        return round(part * 100.0 / total, 2)
