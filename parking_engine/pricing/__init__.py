"""
Pricing Module

Stateless fee computation over the append-only pricing rule table.

- Rule selection: latest active rule with effective_from <= entry time
- Started hours billed in full, each 24-hour block capped at the daily rate
- VIP discount on the pre-EV subtotal, flat EV surcharge per stay
- Optional overstay penalty for reservation stays past their window
- Half-up rounding to the currency's minor unit

Key Components:
- pricing_service.py: PricingEngine and the pure calculate_fee function
- router.py: rule listing and fee quote endpoints
- schemas.py: Pydantic models for rules and fee breakdowns
"""

from .router import router
from .pricing_service import PricingEngine, calculate_fee, billed_hours
from .schemas import PricingRuleCreate, PricingRuleResponse, FeeQuoteRequest, FeeBreakdown

__all__ = [
    "router",
    "PricingEngine",
    "calculate_fee",
    "billed_hours",
    "PricingRuleCreate",
    "PricingRuleResponse",
    "FeeQuoteRequest",
    "FeeBreakdown"
]
