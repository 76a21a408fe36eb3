"""Perioperative risk and readiness engine.

Deterministic clinical risk scoring, the pre-anesthetic review workflow,
the prescription gate that exposes approved orders to pharmacy, and the
escalation alerts raised by equipment-return and PACU monitoring.
"""

__version__ = "0.1.0"
