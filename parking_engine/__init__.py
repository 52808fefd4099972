"""
Multi-Level Car Park engine

Slot allocation, vehicle check-in/check-out, reservations, pricing and
operator tooling for a multi-floor parking facility, served over FastAPI.
"""

__version__ = "1.0.0"
