"""Data models for pre-anesthetic reviews."""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from ..prescription_gate.models import Prescription


class ReviewStatus(str, Enum):
    """Review states. Both outcomes are terminal."""
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED_WITH_CORRECTION = "rejected_with_correction"

    @classmethod
    def display_name(cls, status: "ReviewStatus | str") -> str:
        """Get human-readable display name for a status."""
        display_names = {
            cls.SUBMITTED: "Submitted",
            cls.APPROVED: "Approved",
            cls.REJECTED_WITH_CORRECTION: "Rejected with Correction",
        }
        if isinstance(status, str) and not isinstance(status, cls):
            try:
                status = cls(status)
            except ValueError:
                return status.replace("_", " ").title()
        return display_names.get(status, status.value)

    @classmethod
    def all_options(cls) -> list[tuple[str, str]]:
        """Get all options as (value, display_name) tuples for dropdowns."""
        return [(s.value, cls.display_name(s)) for s in cls]


@dataclass
class PreAnestheticReview:
    """A pre-anesthetic review awaiting or holding a consultant decision."""
    id: str
    surgery_id: str
    patient_id: str
    patient_name: str | None = None
    folder_number: str | None = None
    scheduled_surgery_date: date | None = None
    asa_class: str | None = None
    proposed_anesthesia_type: str | None = None
    risk_profile_id: str | None = None

    # Clinical findings from the assessment form (JSON blob)
    assessment: dict = field(default_factory=dict)

    status: str = ReviewStatus.SUBMITTED.value
    submitted_by: str | None = None
    submitted_by_role: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    decided_by: str | None = None
    decided_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ReviewStatus.SUBMITTED.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "surgery_id": self.surgery_id,
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "folder_number": self.folder_number,
            "scheduled_surgery_date": (
                self.scheduled_surgery_date.isoformat() if self.scheduled_surgery_date else None
            ),
            "asa_class": self.asa_class,
            "proposed_anesthesia_type": self.proposed_anesthesia_type,
            "risk_profile_id": self.risk_profile_id,
            "assessment": self.assessment,
            "status": self.status,
            "status_display": ReviewStatus.display_name(self.status),
            "submitted_by": self.submitted_by,
            "submitted_by_role": self.submitted_by_role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_by": self.decided_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    @classmethod
    def from_row(cls, row) -> "PreAnestheticReview":
        """Create from a sqlite3.Row."""
        return cls(
            id=row["id"],
            surgery_id=row["surgery_id"],
            patient_id=row["patient_id"],
            patient_name=row["patient_name"],
            folder_number=row["folder_number"],
            scheduled_surgery_date=(
                date.fromisoformat(row["scheduled_surgery_date"])
                if row["scheduled_surgery_date"] else None
            ),
            asa_class=row["asa_class"],
            proposed_anesthesia_type=row["proposed_anesthesia_type"],
            risk_profile_id=row["risk_profile_id"],
            assessment=json.loads(row["assessment"]) if row["assessment"] else {},
            status=row["status"],
            submitted_by=row["submitted_by"],
            submitted_by_role=row["submitted_by_role"],
            created_at=datetime.fromisoformat(row["created_at"]),
            decided_by=row["decided_by"],
            decided_at=datetime.fromisoformat(row["decided_at"]) if row["decided_at"] else None,
        )


@dataclass(frozen=True)
class ReviewDecision:
    """The one decision ever recorded for a review. Never edited."""
    id: str
    review_id: str
    decision: str
    actor_id: str
    actor_role: str
    decided_at: datetime
    actor_name: str | None = None
    notes: str | None = None
    reason: str | None = None
    replacement_prescription_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "review_id": self.review_id,
            "decision": self.decision,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "actor_role": self.actor_role,
            "decided_at": self.decided_at.isoformat(),
            "notes": self.notes,
            "reason": self.reason,
            "replacement_prescription_id": self.replacement_prescription_id,
        }

    @classmethod
    def from_row(cls, row) -> "ReviewDecision":
        """Create from a sqlite3.Row."""
        return cls(
            id=row["id"],
            review_id=row["review_id"],
            decision=row["decision"],
            actor_id=row["actor_id"],
            actor_name=row["actor_name"],
            actor_role=row["actor_role"],
            decided_at=datetime.fromisoformat(row["decided_at"]),
            notes=row["notes"],
            reason=row["reason"],
            replacement_prescription_id=row["replacement_prescription_id"],
        )


@dataclass
class Submission:
    """Result of submitting a review."""
    review: PreAnestheticReview
    prescription: Prescription | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "review_id": self.review.id,
            "status": self.review.status,
            "prescription_id": self.prescription.id if self.prescription else None,
        }


@dataclass
class TransitionResult:
    """Result of approving or rejecting a review."""
    review: PreAnestheticReview
    decision: ReviewDecision
    opened_prescription_ids: list[str] = field(default_factory=list)
    new_prescription: Prescription | None = None
    superseded_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = {
            "review_id": self.review.id,
            "status": self.review.status,
            "decision": self.decision.to_dict(),
        }
        if self.new_prescription is not None:
            result["new_prescription_id"] = self.new_prescription.id
            result["superseded_prescription_ids"] = self.superseded_ids
        else:
            result["opened_prescription_ids"] = self.opened_prescription_ids
        return result
