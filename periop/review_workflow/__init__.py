"""Pre-anesthetic review state machine."""

from ..audit import AuditAction, AuditEntry
from .models import (
    PreAnestheticReview,
    ReviewDecision,
    ReviewStatus,
    Submission,
    TransitionResult,
)
from .workflow import ReviewWorkflow

__all__ = [
    "AuditAction",
    "AuditEntry",
    "PreAnestheticReview",
    "ReviewDecision",
    "ReviewStatus",
    "ReviewWorkflow",
    "Submission",
    "TransitionResult",
]
