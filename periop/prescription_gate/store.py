"""Pharmacy-facing storage for prescriptions."""

import json
import logging
import os
from datetime import datetime
from typing import Any

from ..audit import AUDIT_SCHEMA, AuditAction, AuditEntry, fetch_audit, write_audit
from ..config import config
from ..db import connect, ensure_parent_dir, immediate_transaction
from ..errors import ValidationError
from ..roles import PHARMACY_ROLES, Actor, require_role
from .gate import PRESCRIPTION_SCHEMA, compare_and_set_status, get_prescription
from .models import MedicationPackingStatus, Prescription, PrescriptionStatus, Urgency

logger = logging.getLogger(__name__)


class PrescriptionStore:
    """Visibility query and downstream status machine for pharmacy."""

    def __init__(self, db_path: str | None = None):
        """Initialize prescription store.

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
            conn.executescript(PRESCRIPTION_SCHEMA + AUDIT_SCHEMA)
        finally:
            conn.close()

    # Queries

    def list_visible(
        self,
        surgery_id: str | None = None,
        urgency: Urgency | str | None = None,
    ) -> list[Prescription]:
        """Prescriptions pharmacy may pack, oldest first.

        Urgency is only a filter here; results are never reordered by it.
        """
        query = "SELECT * FROM prescriptions WHERE status = ?"
        params: list[Any] = [PrescriptionStatus.APPROVED_FOR_PACKING.value]

        if surgery_id:
            query += " AND surgery_id = ?"
            params.append(surgery_id)
        if urgency:
            query += " AND urgency = ?"
            params.append(Urgency.parse(urgency).value)

        query += " ORDER BY created_at ASC, rowid ASC"

        conn = connect(self.db_path)
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [Prescription.from_row(row) for row in rows]

    def get_prescription(self, prescription_id: str) -> Prescription:
        conn = connect(self.db_path)
        try:
            return get_prescription(conn, prescription_id)
        finally:
            conn.close()

    def list_for_review(self, review_id: str) -> list[Prescription]:
        """Every prescription a review produced, superseded ones included."""
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM prescriptions WHERE review_id = ? ORDER BY created_at ASC, rowid ASC",
                (review_id,),
            ).fetchall()
        finally:
            conn.close()
        return [Prescription.from_row(row) for row in rows]

    def get_audit_log(self, prescription_id: str) -> list[AuditEntry]:
        conn = connect(self.db_path)
        try:
            return fetch_audit(conn, prescription_id=prescription_id)
        finally:
            conn.close()

    # Transitions

    def pack(
        self,
        prescription_id: str,
        actor: Actor,
        medication_statuses: list[MedicationPackingStatus | dict] | None = None,
        packing_notes: str | None = None,
    ) -> Prescription:
        """Record packing.

        Any medication marked out of stock flags the whole prescription
        out_of_stock_flagged; otherwise it becomes packed.

        Raises:
            AuthorizationError: unless the actor is a pharmacist or admin
            ConflictError: if the prescription is not approved_for_packing
        """
        require_role(actor, PHARMACY_ROLES, "pack prescriptions")
        statuses = [
            s if isinstance(s, MedicationPackingStatus) else MedicationPackingStatus.from_dict(s)
            for s in (medication_statuses or [])
        ]
        out_of_stock = [s.drug_name for s in statuses if s.is_out_of_stock]
        target = (
            PrescriptionStatus.OUT_OF_STOCK_FLAGGED if out_of_stock else PrescriptionStatus.PACKED
        )
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            prescription = compare_and_set_status(
                conn,
                prescription_id,
                target,
                {
                    "packed_by": actor.id,
                    "packed_at": now.isoformat(),
                    "packing_notes": packing_notes,
                    "medication_packing_status": json.dumps([s.to_dict() for s in statuses]),
                    "out_of_stock_items": json.dumps(out_of_stock) if out_of_stock else None,
                },
            )
            details = f"Out of stock: {', '.join(out_of_stock)}" if out_of_stock else packing_notes
            write_audit(
                conn,
                AuditAction.OUT_OF_STOCK if out_of_stock else AuditAction.PACKED,
                actor.id, now,
                review_id=prescription.review_id,
                prescription_id=prescription_id,
                details=details,
            )

        logger.info(f"Prescription {prescription_id} {target.value} by {actor.label}")
        return prescription

    def dispense(self, prescription_id: str, actor: Actor) -> Prescription:
        """Hand a packed prescription over to theatre.

        Raises:
            AuthorizationError: unless the actor is a pharmacist or admin
            ConflictError: if the prescription is not packed
        """
        require_role(actor, PHARMACY_ROLES, "dispense prescriptions")
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            prescription = compare_and_set_status(
                conn,
                prescription_id,
                PrescriptionStatus.DISPENSED,
                {"dispensed_by": actor.id, "dispensed_at": now.isoformat()},
            )
            write_audit(conn, AuditAction.DISPENSED, actor.id, now,
                        review_id=prescription.review_id, prescription_id=prescription_id)

        logger.info(f"Prescription {prescription_id} dispensed by {actor.label}")
        return prescription

    def flag_out_of_stock(
        self,
        prescription_id: str,
        actor: Actor,
        items: list[str],
        notes: str | None = None,
    ) -> Prescription:
        """Flag a visible prescription as unfillable.

        Raises:
            ValidationError: if no items are named
            AuthorizationError: unless the actor is a pharmacist or admin
            ConflictError: if the prescription is not approved_for_packing
        """
        require_role(actor, PHARMACY_ROLES, "flag prescriptions out of stock")
        items = [item.strip() for item in (items or []) if item and item.strip()]
        if not items:
            raise ValidationError("name at least one out-of-stock item")
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            prescription = compare_and_set_status(
                conn,
                prescription_id,
                PrescriptionStatus.OUT_OF_STOCK_FLAGGED,
                {"out_of_stock_items": json.dumps(items), "packing_notes": notes},
            )
            write_audit(conn, AuditAction.OUT_OF_STOCK, actor.id, now,
                        review_id=prescription.review_id, prescription_id=prescription_id,
                        details=", ".join(items))

        logger.warning(f"Prescription {prescription_id} flagged out of stock: {', '.join(items)}")
        return prescription
