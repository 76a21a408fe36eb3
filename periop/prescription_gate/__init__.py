"""Prescription visibility gate and pharmacy status machine."""

from .gate import (
    ALLOWED_TRANSITIONS,
    PRESCRIPTION_SCHEMA,
    approval_deadline,
    can_transition,
    insert_prescription,
    is_late_arrival,
    is_visible,
    open_gate,
    supersede,
)
from .models import (
    Medication,
    MedicationPackingStatus,
    Prescription,
    PrescriptionStatus,
    Urgency,
    parse_medications,
)
from .store import PrescriptionStore

__all__ = [
    "ALLOWED_TRANSITIONS",
    "PRESCRIPTION_SCHEMA",
    "Medication",
    "MedicationPackingStatus",
    "Prescription",
    "PrescriptionStatus",
    "PrescriptionStore",
    "Urgency",
    "approval_deadline",
    "can_transition",
    "insert_prescription",
    "is_late_arrival",
    "is_visible",
    "open_gate",
    "parse_medications",
    "supersede",
]
