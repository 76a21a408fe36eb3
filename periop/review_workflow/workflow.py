"""SQLite-backed pre-anesthetic review workflow.

A review moves submitted -> approved or submitted -> rejected_with_correction
exactly once. Each transition is a compare-and-set on the review status,
run together with its decision row, prescription writes and audit rows in
one BEGIN IMMEDIATE transaction.
"""

import json
import logging
import os
import sqlite3
import uuid
from datetime import date, datetime
from typing import Any

from ..audit import AUDIT_SCHEMA, AuditAction, AuditEntry, fetch_audit, write_audit
from ..config import config
from ..db import connect, ensure_parent_dir, immediate_transaction
from ..errors import ConflictError, NotFoundError, ValidationError
from ..prescription_gate.gate import (
    PRESCRIPTION_SCHEMA,
    approval_deadline,
    insert_prescription,
    open_gate,
    supersede,
)
from ..prescription_gate.models import PrescriptionStatus, Urgency, parse_medications
from ..readiness.models import AsaClass
from ..roles import REVIEW_APPROVERS, REVIEW_SUBMITTERS, Actor, require_role
from .models import (
    PreAnestheticReview,
    ReviewDecision,
    ReviewStatus,
    Submission,
    TransitionResult,
)

logger = logging.getLogger(__name__)


REVIEW_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    surgery_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    patient_name TEXT,
    folder_number TEXT,
    scheduled_surgery_date TEXT,
    asa_class TEXT,
    proposed_anesthesia_type TEXT,
    risk_profile_id TEXT,
    assessment TEXT,

    status TEXT NOT NULL DEFAULT 'submitted',
    submitted_by TEXT,
    submitted_by_role TEXT,
    created_at TEXT NOT NULL,
    decided_by TEXT,
    decided_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_reviews_status ON reviews(status);
CREATE INDEX IF NOT EXISTS idx_reviews_surgery ON reviews(surgery_id);

CREATE TABLE IF NOT EXISTS review_decisions (
    id TEXT PRIMARY KEY,
    review_id TEXT NOT NULL UNIQUE REFERENCES reviews(id),
    decision TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    actor_name TEXT,
    actor_role TEXT NOT NULL,
    decided_at TEXT NOT NULL,
    notes TEXT,
    reason TEXT,
    replacement_prescription_id TEXT
);
"""


def _parse_date(value: date | datetime | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(
            "scheduled_surgery_date must be an ISO date (YYYY-MM-DD)",
            details={"scheduled_surgery_date": value},
        )


def _parse_asa(value: Any) -> str | None:
    if value is None or value == "":
        return None
    try:
        return AsaClass.parse(value).value
    except ValueError:
        raise ValidationError(
            "asa_class must be ASA_I through ASA_VI",
            details={"asa_class": value},
        )


class ReviewWorkflow:
    """Role-gated review state machine backed by the workflow database."""

    def __init__(self, db_path: str | None = None):
        """Initialize the review workflow.

        Args:
            db_path: Path to SQLite database. Defaults to PERIOP_WORKFLOW_DB_PATH env var
                     or ~/.periop/workflow.db
        """
        self.db_path = os.path.expanduser(db_path) if db_path else config.WORKFLOW_DB_PATH
        ensure_parent_dir(self.db_path)
        self._init_db()

    def _init_db(self) -> None:
        conn = connect(self.db_path)
        try:
            conn.executescript(REVIEW_SCHEMA + PRESCRIPTION_SCHEMA + AUDIT_SCHEMA)
        finally:
            conn.close()

    def _generate_id(self, prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:10].upper()}"

    def _load_review(self, conn: sqlite3.Connection, review_id: str) -> PreAnestheticReview:
        row = conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Review {review_id} not found")
        return PreAnestheticReview.from_row(row)

    def _claim(
        self,
        conn: sqlite3.Connection,
        review_id: str,
        target: ReviewStatus,
        actor: Actor,
        now: datetime,
    ) -> None:
        """Compare-and-set submitted -> target, or raise ConflictError."""
        cursor = conn.execute(
            """
            UPDATE reviews
            SET status = ?, decided_by = ?, decided_at = ?
            WHERE id = ? AND status = ?
            """,
            (target.value, actor.id, now.isoformat(), review_id, ReviewStatus.SUBMITTED.value),
        )
        if cursor.rowcount == 0:
            current = self._load_review(conn, review_id)
            logger.warning(
                f"Conflict: {actor.id} tried to move review {review_id} to {target.value} "
                f"but it is already {current.status}"
            )
            raise ConflictError(
                f"Review {review_id} is already {ReviewStatus.display_name(current.status)}",
                details={"status": current.status, "decided_by": current.decided_by},
            )

    def _record_decision(
        self,
        conn: sqlite3.Connection,
        review_id: str,
        decision: ReviewStatus,
        actor: Actor,
        now: datetime,
        notes: str | None = None,
        reason: str | None = None,
        replacement_prescription_id: str | None = None,
    ) -> ReviewDecision:
        record = ReviewDecision(
            id=self._generate_id("DEC"),
            review_id=review_id,
            decision=decision.value,
            actor_id=actor.id,
            actor_name=actor.name,
            actor_role=actor.role.value,
            decided_at=now,
            notes=notes,
            reason=reason,
            replacement_prescription_id=replacement_prescription_id,
        )
        conn.execute(
            """
            INSERT INTO review_decisions (
                id, review_id, decision, actor_id, actor_name, actor_role,
                decided_at, notes, reason, replacement_prescription_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id, record.review_id, record.decision, record.actor_id,
                record.actor_name, record.actor_role, now.isoformat(),
                record.notes, record.reason, record.replacement_prescription_id,
            ),
        )
        return record

    # Operations

    def submit(
        self,
        actor: Actor,
        surgery_id: str,
        patient_id: str,
        patient_name: str | None = None,
        folder_number: str | None = None,
        scheduled_surgery_date: date | datetime | str | None = None,
        asa_class: AsaClass | str | int | None = None,
        proposed_anesthesia_type: str | None = None,
        risk_profile_id: str | None = None,
        assessment: dict | None = None,
        medications: list[dict] | None = None,
        urgency: Urgency | str | None = None,
        special_instructions: str | None = None,
    ) -> Submission:
        """Create a review in submitted, with its original prescription if given.

        Args:
            actor: Submitting anaesthetist
            surgery_id: Scheduled surgery under review
            patient_id: Patient being reviewed
            scheduled_surgery_date: Used later for the late-arrival check
            asa_class: ASA I-VI in any accepted spelling
            risk_profile_id: Optional link to a stored risk profile
            assessment: Free-form clinical findings
            medications: Proposed prescription lines; omit for no prescription
            urgency: routine, urgent or emergency (default routine)

        Returns:
            Submission with the review and the pending prescription, if any

        Raises:
            AuthorizationError: unless the actor is an anaesthetist or admin
            ValidationError: if a required field is missing or malformed
        """
        require_role(actor, REVIEW_SUBMITTERS, "submit pre-anesthetic reviews")
        if not surgery_id or not patient_id:
            raise ValidationError("surgery_id and patient_id are required")

        surgery_date = _parse_date(scheduled_surgery_date)
        asa = _parse_asa(asa_class)
        meds = parse_medications(medications) if medications else []
        rx_urgency = Urgency.parse(urgency)

        review_id = self._generate_id("REV")
        now = datetime.now()
        prescription = None

        with immediate_transaction(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO reviews (
                    id, surgery_id, patient_id, patient_name, folder_number,
                    scheduled_surgery_date, asa_class, proposed_anesthesia_type,
                    risk_profile_id, assessment, status,
                    submitted_by, submitted_by_role, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    review_id, surgery_id, patient_id, patient_name, folder_number,
                    surgery_date.isoformat() if surgery_date else None,
                    asa, proposed_anesthesia_type, risk_profile_id,
                    json.dumps(assessment) if assessment else None,
                    ReviewStatus.SUBMITTED.value,
                    actor.id, actor.role.value, now.isoformat(),
                ),
            )
            write_audit(conn, AuditAction.REVIEW_SUBMITTED, actor.id, now,
                        review_id=review_id, details=f"Surgery {surgery_id}")

            if meds:
                prescription = insert_prescription(
                    conn,
                    review_id=review_id,
                    surgery_id=surgery_id,
                    patient_id=patient_id,
                    medications=meds,
                    urgency=rx_urgency,
                    status=PrescriptionStatus.PENDING_APPROVAL,
                    created_by=actor.id,
                    now=now,
                    special_instructions=special_instructions,
                )

        logger.info(
            f"Review {review_id} submitted by {actor.label} for surgery {surgery_id}"
            + (f" with prescription {prescription.id}" if prescription else "")
        )

        review = PreAnestheticReview(
            id=review_id,
            surgery_id=surgery_id,
            patient_id=patient_id,
            patient_name=patient_name,
            folder_number=folder_number,
            scheduled_surgery_date=surgery_date,
            asa_class=asa,
            proposed_anesthesia_type=proposed_anesthesia_type,
            risk_profile_id=risk_profile_id,
            assessment=assessment or {},
            status=ReviewStatus.SUBMITTED.value,
            submitted_by=actor.id,
            submitted_by_role=actor.role.value,
            created_at=now,
        )
        return Submission(review=review, prescription=prescription)

    def approve(self, review_id: str, actor: Actor, notes: str | None = None) -> TransitionResult:
        """Approve a submitted review and open the gate on its prescription.

        Raises:
            AuthorizationError: unless the actor is a consultant, admin or theatre manager
            NotFoundError: if the review does not exist
            ConflictError: if the review was already decided
        """
        require_role(actor, REVIEW_APPROVERS, "approve pre-anesthetic reviews")
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            review = self._load_review(conn, review_id)
            self._claim(conn, review_id, ReviewStatus.APPROVED, actor, now)
            decision = self._record_decision(
                conn, review_id, ReviewStatus.APPROVED, actor, now, notes=notes
            )
            opened = open_gate(
                conn, review_id, actor.id, now,
                deadline=approval_deadline(review.scheduled_surgery_date),
            )
            write_audit(conn, AuditAction.REVIEW_APPROVED, actor.id, now,
                        review_id=review_id, details=notes)
            review = self._load_review(conn, review_id)

        logger.info(
            f"Review {review_id} approved by {actor.label}; "
            f"{len(opened)} prescription(s) released to pharmacy"
        )
        return TransitionResult(review=review, decision=decision, opened_prescription_ids=opened)

    def reject(
        self,
        review_id: str,
        actor: Actor,
        reason: str,
        corrected_prescription: dict[str, Any] | None,
    ) -> TransitionResult:
        """Reject a submitted review and issue a corrected prescription.

        The replacement is created directly in approved_for_packing. The
        original prescription is kept, marked superseded, and never becomes
        visible to pharmacy.

        Args:
            review_id: Review to reject
            actor: Consultant (or admin / theatre manager) rejecting it
            reason: Why the original was rejected; required
            corrected_prescription: {"medications": [...], "urgency": ...,
                "special_instructions": ...}; at least one medication with
                name and dose is required

        Raises:
            AuthorizationError: unless the actor may approve reviews
            ValidationError: for a blank reason or unusable replacement;
                nothing is written
            NotFoundError: if the review does not exist
            ConflictError: if the review was already decided
        """
        require_role(actor, REVIEW_APPROVERS, "reject pre-anesthetic reviews")

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("a rejection reason is required")
        corrected = corrected_prescription or {}
        meds = parse_medications(corrected.get("medications"))
        rx_urgency = Urgency.parse(corrected.get("urgency"))
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            review = self._load_review(conn, review_id)
            self._claim(conn, review_id, ReviewStatus.REJECTED_WITH_CORRECTION, actor, now)

            original = conn.execute(
                """
                SELECT id FROM prescriptions
                WHERE review_id = ? AND status = ? AND superseded_by IS NULL
                ORDER BY created_at ASC LIMIT 1
                """,
                (review_id, PrescriptionStatus.PENDING_APPROVAL.value),
            ).fetchone()

            replacement = insert_prescription(
                conn,
                review_id=review_id,
                surgery_id=review.surgery_id,
                patient_id=review.patient_id,
                medications=meds,
                urgency=rx_urgency,
                status=PrescriptionStatus.APPROVED_FOR_PACKING,
                created_by=actor.id,
                now=now,
                special_instructions=corrected.get("special_instructions"),
                replaces_id=original["id"] if original else None,
                approved_by=actor.id,
                deadline=approval_deadline(review.scheduled_surgery_date),
            )
            superseded = supersede(conn, review_id, replacement.id, actor.id, now)
            decision = self._record_decision(
                conn, review_id, ReviewStatus.REJECTED_WITH_CORRECTION, actor, now,
                reason=reason, replacement_prescription_id=replacement.id,
            )
            write_audit(conn, AuditAction.REVIEW_REJECTED, actor.id, now,
                        review_id=review_id, prescription_id=replacement.id, details=reason)
            review = self._load_review(conn, review_id)

        logger.info(
            f"Review {review_id} rejected by {actor.label}; replacement {replacement.id} "
            f"supersedes {', '.join(superseded) or 'nothing'}"
        )
        return TransitionResult(
            review=review,
            decision=decision,
            new_prescription=replacement,
            superseded_ids=superseded,
        )

    # Queries

    def get_review(self, review_id: str) -> PreAnestheticReview:
        """Get a review by ID.

        Raises:
            NotFoundError: if no such review exists
        """
        conn = connect(self.db_path)
        try:
            return self._load_review(conn, review_id)
        finally:
            conn.close()

    def get_decision(self, review_id: str) -> ReviewDecision | None:
        """The decision for a review, or None while it is still submitted."""
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM review_decisions WHERE review_id = ?", (review_id,)
            ).fetchone()
        finally:
            conn.close()
        return ReviewDecision.from_row(row) if row else None

    def list_reviews(
        self,
        status: ReviewStatus | str | None = None,
        surgery_id: str | None = None,
        limit: int = 100,
    ) -> list[PreAnestheticReview]:
        """List reviews, newest first."""
        query = "SELECT * FROM reviews WHERE 1=1"
        params: list[Any] = []

        if status:
            try:
                status = ReviewStatus(status if isinstance(status, ReviewStatus) else str(status).lower())
            except ValueError:
                raise ValidationError(
                    f"status must be one of: {', '.join(s.value for s in ReviewStatus)}",
                    details={"status": status},
                )
            query += " AND status = ?"
            params.append(status.value)
        if surgery_id:
            query += " AND surgery_id = ?"
            params.append(surgery_id)

        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        conn = connect(self.db_path)
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [PreAnestheticReview.from_row(row) for row in rows]

    def get_audit_log(self, review_id: str) -> list[AuditEntry]:
        """Every review and prescription action for a review, oldest first."""
        conn = connect(self.db_path)
        try:
            return fetch_audit(conn, review_id=review_id)
        finally:
            conn.close()
