"""Dashboard routes."""

from .escalations import escalations_bp
from .prescriptions import prescriptions_bp
from .reviews import reviews_bp
from .risk import risk_bp

__all__ = [
    "escalations_bp",
    "prescriptions_bp",
    "reviews_bp",
    "risk_bp",
]
