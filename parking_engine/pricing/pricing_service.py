from typing import List, Optional
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy.orm import Session
import logging

from parking_engine.config import settings
from parking_engine.exceptions import NoPricingRule
from parking_engine.models import PricingRule
from parking_engine.pricing.schemas import FeeBreakdown

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24

def billed_hours(duration_minutes: int) -> int:
    """Started hours: any partial hour is billed as a full one"""
    if duration_minutes <= 0:
        return 0
    return -(-duration_minutes // 60)

def minor_unit(minor_units: int) -> Decimal:
    return Decimal(1).scaleb(-minor_units)

def calculate_fee(
    rule: PricingRule,
    duration_minutes: int,
    ev_used: bool = False,
    vip: bool = False,
    overstay_minutes: int = 0,
    apply_overstay: bool = True,
    minor_units: int = 2,
    currency: str = "INR"
) -> FeeBreakdown:
    """Price one stay against a single rule.

    base + billed hours at the hourly rate, each 24-hour block capped at the
    daily rate. The VIP discount applies to that subtotal only; the overstay
    penalty and the flat EV charge are added after it.
    """

    hours = billed_hours(duration_minutes)
    full_days, remainder_hours = divmod(hours, HOURS_PER_DAY)

    hourly_rate = Decimal(rule.hourly_rate)
    daily_rate = Decimal(rule.daily_rate)
    day_charge = min(hourly_rate * HOURS_PER_DAY, daily_rate)
    remainder_charge = min(hourly_rate * remainder_hours, daily_rate)
    time_charge = day_charge * full_days + remainder_charge

    base_price = Decimal(rule.base_price)
    subtotal = base_price + time_charge

    vip_discount = Decimal('0')
    if vip and rule.vip_discount_percent:
        vip_discount = subtotal * Decimal(rule.vip_discount_percent) / Decimal('100')

    overstay_hours = billed_hours(overstay_minutes) if apply_overstay else 0
    overstay_penalty = Decimal(rule.penalty_rate or 0) * overstay_hours

    ev_charge = Decimal(rule.ev_charging_rate or 0) if ev_used else Decimal('0')

    quantum = minor_unit(minor_units)
    total = (subtotal - vip_discount + overstay_penalty + ev_charge).quantize(quantum, rounding=ROUND_HALF_UP)

    return FeeBreakdown(
        rule_id=rule.id,
        vehicle_type=rule.vehicle_type,
        duration_minutes=max(duration_minutes, 0),
        billed_hours=hours,
        full_days=full_days,
        remainder_hours=remainder_hours,
        base_price=base_price,
        time_charge=time_charge.quantize(quantum, rounding=ROUND_HALF_UP),
        vip_discount=vip_discount.quantize(quantum, rounding=ROUND_HALF_UP),
        overstay_hours=overstay_hours,
        overstay_penalty=overstay_penalty.quantize(quantum, rounding=ROUND_HALF_UP),
        ev_charge=ev_charge.quantize(quantum, rounding=ROUND_HALF_UP),
        total=total,
        currency=currency
    )

class PricingEngine:
    """Computes parking fees from the append-only pricing rule table"""

    def __init__(self, db: Session):
        self.db = db
        self.minor_units = settings.CURRENCY_MINOR_UNITS
        self.currency = settings.CURRENCY
        self.overstay_penalty_enabled = settings.OVERSTAY_PENALTY_ENABLED

    def get_current_rule(self, vehicle_type: str, at: Optional[datetime] = None) -> PricingRule:
        """Latest active rule for the vehicle type that was effective at the given moment"""

        at = at or datetime.now()
        rule = (
            self.db.query(PricingRule)
            .filter(
                PricingRule.vehicle_type == vehicle_type,
                PricingRule.is_active.is_(True),
                PricingRule.effective_from <= at
            )
            .order_by(PricingRule.effective_from.desc(), PricingRule.id.desc())
            .first()
        )

        if not rule:
            # Never fall back to a zero fee
            logger.critical("No active pricing rule for %s effective at %s", vehicle_type, at.isoformat())
            raise NoPricingRule(f"No active pricing rule for {vehicle_type} at {at.isoformat()}")

        return rule

    def list_rules(self, vehicle_type: Optional[str] = None) -> List[PricingRule]:
        """All rules, newest first"""
        query = self.db.query(PricingRule)
        if vehicle_type:
            query = query.filter(PricingRule.vehicle_type == vehicle_type)
        return query.order_by(PricingRule.vehicle_type, PricingRule.effective_from.desc(), PricingRule.id.desc()).all()

    def quote(
        self,
        vehicle_type: str,
        entry_time: datetime,
        duration_minutes: int,
        ev_used: bool = False,
        vip: bool = False,
        overstay_minutes: int = 0
    ) -> FeeBreakdown:
        """Itemised fee using the rule effective at entry"""

        rule = self.get_current_rule(vehicle_type, entry_time)
        breakdown = calculate_fee(
            rule,
            duration_minutes,
            ev_used=ev_used,
            vip=vip,
            overstay_minutes=overstay_minutes,
            apply_overstay=self.overstay_penalty_enabled,
            minor_units=self.minor_units,
            currency=self.currency
        )
        logger.debug(
            "Fee for %s, %d min (rule %d): %s %s",
            vehicle_type, duration_minutes, rule.id, breakdown.total, self.currency
        )
        return breakdown

    def compute_fee(
        self,
        vehicle_type: str,
        entry_time: datetime,
        duration_minutes: int,
        ev_used: bool = False,
        vip: bool = False,
        overstay_minutes: int = 0
    ) -> Decimal:
        """Fee amount for a stay"""
        return self.quote(vehicle_type, entry_time, duration_minutes, ev_used, vip, overstay_minutes).total
