"""Audit trail for review and prescription actions.

Rows are written on the caller's connection so they commit or roll back
with the action they describe.
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


AUDIT_SCHEMA = """
CREATE TABLE IF NOT EXISTS workflow_audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    review_id TEXT,
    prescription_id TEXT,
    action TEXT NOT NULL,
    performed_by TEXT,
    performed_at TEXT NOT NULL,
    details TEXT
);

CREATE INDEX IF NOT EXISTS idx_workflow_audit_review ON workflow_audit(review_id);
CREATE INDEX IF NOT EXISTS idx_workflow_audit_prescription ON workflow_audit(prescription_id);
"""


class AuditAction(str, Enum):
    """Actions tracked in the workflow audit log."""
    REVIEW_SUBMITTED = "review_submitted"
    REVIEW_APPROVED = "review_approved"
    REVIEW_REJECTED = "review_rejected"
    PRESCRIPTION_CREATED = "prescription_created"
    GATE_OPENED = "gate_opened"
    SUPERSEDED = "superseded"
    PACKED = "packed"
    DISPENSED = "dispensed"
    OUT_OF_STOCK = "out_of_stock"


@dataclass
class AuditEntry:
    """An entry in the workflow audit log."""
    id: int
    action: str
    performed_at: datetime
    review_id: str | None = None
    prescription_id: str | None = None
    performed_by: str | None = None
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "review_id": self.review_id,
            "prescription_id": self.prescription_id,
            "action": self.action,
            "performed_by": self.performed_by,
            "performed_at": self.performed_at.isoformat(),
            "details": self.details,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AuditEntry":
        """Create from a sqlite3.Row."""
        return cls(
            id=row["id"],
            review_id=row["review_id"],
            prescription_id=row["prescription_id"],
            action=row["action"],
            performed_by=row["performed_by"],
            performed_at=datetime.fromisoformat(row["performed_at"]),
            details=row["details"],
        )


def write_audit(
    conn: sqlite3.Connection,
    action: AuditAction,
    performed_by: str | None,
    performed_at: datetime,
    review_id: str | None = None,
    prescription_id: str | None = None,
    details: str | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO workflow_audit (review_id, prescription_id, action, performed_by, performed_at, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (review_id, prescription_id, action.value, performed_by,
         performed_at.isoformat(), details[:200] if details else None),
    )


def fetch_audit(
    conn: sqlite3.Connection,
    review_id: str | None = None,
    prescription_id: str | None = None,
) -> list[AuditEntry]:
    """Audit entries for a review and/or prescription, oldest first."""
    query = "SELECT * FROM workflow_audit WHERE 1=1"
    params: list[Any] = []
    if review_id:
        query += " AND review_id = ?"
        params.append(review_id)
    if prescription_id:
        query += " AND prescription_id = ?"
        params.append(prescription_id)
    query += " ORDER BY id ASC"

    return [AuditEntry.from_row(row) for row in conn.execute(query, params).fetchall()]
