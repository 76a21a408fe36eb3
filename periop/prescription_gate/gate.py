"""Prescription visibility gate and status machine.

Pharmacy sees a prescription only while it is approved_for_packing. The
helpers here take an open connection so the review workflow can create,
open and supersede prescriptions inside its own transaction.
"""

import json
import logging
import sqlite3
import uuid
from datetime import date, datetime, time, timedelta
from typing import Any

from ..audit import AuditAction, write_audit
from ..config import config
from ..errors import ConflictError, NotFoundError
from .models import Medication, Prescription, PrescriptionStatus, Urgency

logger = logging.getLogger(__name__)


PRESCRIPTION_SCHEMA = """
CREATE TABLE IF NOT EXISTS prescriptions (
    id TEXT PRIMARY KEY,
    review_id TEXT NOT NULL,
    surgery_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    medications TEXT NOT NULL,
    urgency TEXT NOT NULL DEFAULT 'routine',
    status TEXT NOT NULL,
    special_instructions TEXT,
    created_by TEXT,
    created_at TEXT NOT NULL,

    replaces_id TEXT,
    superseded_by TEXT,
    superseded_at TEXT,

    approved_by TEXT,
    approved_at TEXT,
    approval_deadline TEXT,
    is_late_arrival INTEGER NOT NULL DEFAULT 0,

    packed_by TEXT,
    packed_at TEXT,
    packing_notes TEXT,
    medication_packing_status TEXT,
    out_of_stock_items TEXT,
    dispensed_by TEXT,
    dispensed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_prescriptions_status ON prescriptions(status);
CREATE INDEX IF NOT EXISTS idx_prescriptions_review ON prescriptions(review_id);
CREATE INDEX IF NOT EXISTS idx_prescriptions_surgery ON prescriptions(surgery_id);

CREATE TRIGGER IF NOT EXISTS prescriptions_urgency_read_only
BEFORE UPDATE OF urgency ON prescriptions
WHEN NEW.urgency IS NOT OLD.urgency
BEGIN
    SELECT RAISE(ABORT, 'prescription urgency is read-only');
END;
"""


ALLOWED_TRANSITIONS: dict[PrescriptionStatus, frozenset[PrescriptionStatus]] = {
    PrescriptionStatus.PENDING_APPROVAL: frozenset({PrescriptionStatus.APPROVED_FOR_PACKING}),
    PrescriptionStatus.APPROVED_FOR_PACKING: frozenset({
        PrescriptionStatus.PACKED,
        PrescriptionStatus.OUT_OF_STOCK_FLAGGED,
    }),
    PrescriptionStatus.PACKED: frozenset({PrescriptionStatus.DISPENSED}),
    PrescriptionStatus.DISPENSED: frozenset(),
    PrescriptionStatus.OUT_OF_STOCK_FLAGGED: frozenset(),
}


def is_visible(prescription: Prescription) -> bool:
    """Whether pharmacy may see and act on the prescription."""
    return prescription.status == PrescriptionStatus.APPROVED_FOR_PACKING.value


def can_transition(current: PrescriptionStatus | str, target: PrescriptionStatus | str) -> bool:
    return PrescriptionStatus(target) in ALLOWED_TRANSITIONS.get(PrescriptionStatus(current), frozenset())


def approval_deadline(
    scheduled_surgery_date: date | datetime | str | None,
    deadline_hour: int | None = None,
) -> datetime | None:
    """The cut-off for timely approval: deadline_hour on the day before surgery."""
    if not scheduled_surgery_date:
        return None
    if isinstance(scheduled_surgery_date, str):
        scheduled_surgery_date = datetime.fromisoformat(scheduled_surgery_date)
    if isinstance(scheduled_surgery_date, datetime):
        scheduled_surgery_date = scheduled_surgery_date.date()

    hour = config.APPROVAL_DEADLINE_HOUR if deadline_hour is None else deadline_hour
    return datetime.combine(scheduled_surgery_date - timedelta(days=1), time(hour=hour))


def is_late_arrival(approved_at: datetime, deadline: datetime | None) -> bool:
    return deadline is not None and approved_at > deadline


def generate_prescription_id() -> str:
    return f"RX-{uuid.uuid4().hex[:10].upper()}"


def get_prescription(conn: sqlite3.Connection, prescription_id: str) -> Prescription:
    """Load one prescription.

    Raises:
        NotFoundError: if no such prescription exists
    """
    row = conn.execute(
        "SELECT * FROM prescriptions WHERE id = ?", (prescription_id,)
    ).fetchone()
    if row is None:
        raise NotFoundError(f"Prescription {prescription_id} not found")
    return Prescription.from_row(row)


def insert_prescription(
    conn: sqlite3.Connection,
    review_id: str,
    surgery_id: str,
    patient_id: str,
    medications: list[Medication],
    urgency: Urgency,
    status: PrescriptionStatus,
    created_by: str | None,
    now: datetime,
    special_instructions: str | None = None,
    replaces_id: str | None = None,
    approved_by: str | None = None,
    deadline: datetime | None = None,
) -> Prescription:
    """Insert a prescription on the caller's connection.

    A prescription born approved_for_packing is stamped as approved at
    ``now`` and gets the late-arrival check against ``deadline``.
    """
    prescription_id = generate_prescription_id()
    approved = status == PrescriptionStatus.APPROVED_FOR_PACKING
    approved_at = now if approved else None
    late = is_late_arrival(now, deadline) if approved else False

    conn.execute(
        """
        INSERT INTO prescriptions (
            id, review_id, surgery_id, patient_id, medications, urgency, status,
            special_instructions, created_by, created_at, replaces_id,
            approved_by, approved_at, approval_deadline, is_late_arrival
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            prescription_id, review_id, surgery_id, patient_id,
            json.dumps([m.to_dict() for m in medications]),
            urgency.value, status.value, special_instructions, created_by,
            now.isoformat(), replaces_id,
            approved_by if approved else None,
            approved_at.isoformat() if approved_at else None,
            deadline.isoformat() if deadline else None,
            int(late),
        ),
    )

    details = f"{len(medications)} medication(s), urgency {urgency.value}, status {status.value}"
    if replaces_id:
        details += f", replaces {replaces_id}"
    write_audit(conn, AuditAction.PRESCRIPTION_CREATED, created_by, now,
                review_id=review_id, prescription_id=prescription_id, details=details)
    if late:
        logger.warning(f"Prescription {prescription_id} approved after deadline {deadline.isoformat()}")

    return Prescription(
        id=prescription_id,
        review_id=review_id,
        surgery_id=surgery_id,
        patient_id=patient_id,
        medications=list(medications),
        urgency=urgency.value,
        status=status.value,
        special_instructions=special_instructions,
        created_by=created_by,
        created_at=now,
        replaces_id=replaces_id,
        approved_by=approved_by if approved else None,
        approved_at=approved_at,
        approval_deadline=deadline,
        is_late_arrival=late,
    )


def open_gate(
    conn: sqlite3.Connection,
    review_id: str,
    approved_by: str,
    now: datetime,
    deadline: datetime | None = None,
) -> list[str]:
    """Move the review's pending prescriptions to approved_for_packing.

    Returns:
        IDs of prescriptions that became visible
    """
    rows = conn.execute(
        """
        SELECT id FROM prescriptions
        WHERE review_id = ? AND status = ? AND superseded_by IS NULL
        """,
        (review_id, PrescriptionStatus.PENDING_APPROVAL.value),
    ).fetchall()

    late = is_late_arrival(now, deadline)
    opened = []
    for row in rows:
        cursor = conn.execute(
            """
            UPDATE prescriptions
            SET status = ?, approved_by = ?, approved_at = ?,
                approval_deadline = ?, is_late_arrival = ?
            WHERE id = ? AND status = ?
            """,
            (
                PrescriptionStatus.APPROVED_FOR_PACKING.value, approved_by, now.isoformat(),
                deadline.isoformat() if deadline else None, int(late),
                row["id"], PrescriptionStatus.PENDING_APPROVAL.value,
            ),
        )
        if cursor.rowcount:
            opened.append(row["id"])
            write_audit(conn, AuditAction.GATE_OPENED, approved_by, now,
                        review_id=review_id, prescription_id=row["id"],
                        details="late arrival" if late else None)

    if late and opened:
        logger.warning(f"Review {review_id} approved after deadline {deadline.isoformat()}")
    return opened


def supersede(
    conn: sqlite3.Connection,
    review_id: str,
    replacement_id: str,
    performed_by: str,
    now: datetime,
) -> list[str]:
    """Mark the review's pending prescriptions as replaced.

    The originals stay in pending_approval and are never deleted, so they
    remain on record but never reach pharmacy.
    """
    rows = conn.execute(
        """
        SELECT id FROM prescriptions
        WHERE review_id = ? AND status = ? AND superseded_by IS NULL AND id != ?
        """,
        (review_id, PrescriptionStatus.PENDING_APPROVAL.value, replacement_id),
    ).fetchall()

    superseded = []
    for row in rows:
        conn.execute(
            "UPDATE prescriptions SET superseded_by = ?, superseded_at = ? WHERE id = ?",
            (replacement_id, now.isoformat(), row["id"]),
        )
        superseded.append(row["id"])
        write_audit(conn, AuditAction.SUPERSEDED, performed_by, now,
                    review_id=review_id, prescription_id=row["id"],
                    details=f"Replaced by {replacement_id}")
    return superseded


def compare_and_set_status(
    conn: sqlite3.Connection,
    prescription_id: str,
    target: PrescriptionStatus,
    fields: dict[str, Any] | None = None,
) -> Prescription:
    """Apply one downstream transition if the stored status still allows it.

    Raises:
        NotFoundError: if the prescription does not exist
        ConflictError: if the move is not allowed from the current status, or
            another writer changed the status first
    """
    current = get_prescription(conn, prescription_id)
    if not can_transition(current.status, target):
        raise ConflictError(
            f"Prescription {prescription_id} is {current.status}; cannot move to {target.value}",
            details={"status": current.status, "target": target.value},
        )

    fields = fields or {}
    assignments = ", ".join(["status = ?"] + [f"{name} = ?" for name in fields])
    cursor = conn.execute(
        f"UPDATE prescriptions SET {assignments} WHERE id = ? AND status = ?",
        (target.value, *fields.values(), prescription_id, current.status),
    )
    if cursor.rowcount == 0:
        raise ConflictError(
            f"Prescription {prescription_id} changed state concurrently",
            details={"target": target.value},
        )
    return get_prescription(conn, prescription_id)
