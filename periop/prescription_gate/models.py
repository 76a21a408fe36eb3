"""Data models for anesthetic prescriptions."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import ValidationError


class PrescriptionStatus(str, Enum):
    """Lifecycle of a prescription as seen by pharmacy."""
    PENDING_APPROVAL = "pending_approval"
    APPROVED_FOR_PACKING = "approved_for_packing"
    PACKED = "packed"
    DISPENSED = "dispensed"
    OUT_OF_STOCK_FLAGGED = "out_of_stock_flagged"

    @classmethod
    def display_name(cls, status: "PrescriptionStatus | str") -> str:
        """Get human-readable display name for a status."""
        display_names = {
            cls.PENDING_APPROVAL: "Pending Approval",
            cls.APPROVED_FOR_PACKING: "Approved for Packing",
            cls.PACKED: "Packed",
            cls.DISPENSED: "Dispensed",
            cls.OUT_OF_STOCK_FLAGGED: "Out of Stock",
        }
        if isinstance(status, str) and not isinstance(status, cls):
            try:
                status = cls(status)
            except ValueError:
                return status.replace("_", " ").title()
        return display_names.get(status, status.value)


class Urgency(str, Enum):
    """Set once at creation. Carried for display only, never used for ordering."""
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENCY = "emergency"

    @classmethod
    def parse(cls, value: "Urgency | str | None") -> "Urgency":
        """Parse a request value, defaulting to routine.

        Raises:
            ValidationError: if the value is not a known urgency
        """
        if value is None or value == "":
            return cls.ROUTINE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"urgency must be one of: {', '.join(u.value for u in cls)}",
                details={"urgency": value},
            )


@dataclass
class Medication:
    """One line of a prescription."""
    name: str
    dose: str
    route: str | None = None
    frequency: str | None = None
    timing: str | None = None
    quantity: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Medication":
        """Build from a request payload. ``dosage`` is accepted for ``dose``.

        Raises:
            ValidationError: if name or dose is blank, a field has the wrong
                type, or quantity is not a whole number
        """
        if not isinstance(data, dict):
            raise ValidationError("each medication must be an object", details={"medication": data})
        name, dose = _name_and_dose(data)
        if not name or not dose:
            raise ValidationError(
                "each medication needs a name and a dose",
                details={"medication": data},
            )
        return cls(
            name=name,
            dose=dose,
            route=data.get("route"),
            frequency=data.get("frequency"),
            timing=data.get("timing"),
            quantity=_parse_quantity(data.get("quantity")),
        )


def _name_and_dose(data: dict[str, Any]) -> tuple[str, str]:
    name = data.get("name") or ""
    dose = data.get("dose") or data.get("dosage") or ""
    if not isinstance(name, str):
        raise ValidationError("medication name must be text", details={"medication": data})
    if not isinstance(dose, (str, int, float)) or isinstance(dose, bool):
        raise ValidationError("medication dose must be text", details={"medication": data})
    return name.strip(), str(dose).strip()


def _parse_quantity(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("quantity must be a whole number", details={"quantity": value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be a whole number", details={"quantity": value})


def parse_medications(items: list[dict[str, Any]] | None) -> list[Medication]:
    """Validate a medication list, dropping blank rows.

    Rows missing a name or a dose are left out, as a half-filled form row
    would be. At least one complete row must remain.

    Raises:
        ValidationError: if no complete entry remains or a kept entry is malformed
    """
    if items is not None and not isinstance(items, list):
        raise ValidationError("medications must be a list", details={"medications": items})

    medications = []
    for item in items or []:
        if isinstance(item, Medication):
            medications.append(item)
            continue
        if not isinstance(item, dict):
            raise ValidationError("each medication must be an object", details={"medication": item})
        name, dose = _name_and_dose(item)
        if name and dose:
            medications.append(Medication.from_dict(item))

    if not medications:
        raise ValidationError("at least one medication with a name and a dose is required")
    return medications


@dataclass
class MedicationPackingStatus:
    """Per-medication result recorded by the pharmacist while packing."""
    drug_name: str
    is_packed: bool = False
    is_out_of_stock: bool = False
    substitute_drug_name: str | None = None
    pharmacist_note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MedicationPackingStatus":
        drug_name = data.get("drug_name") or data.get("name")
        if not drug_name:
            raise ValidationError("medication status needs a drug_name", details={"status": data})
        return cls(
            drug_name=drug_name,
            is_packed=bool(data.get("is_packed", False)),
            is_out_of_stock=bool(data.get("is_out_of_stock", False)),
            substitute_drug_name=data.get("substitute_drug_name"),
            pharmacist_note=data.get("pharmacist_note"),
        )


@dataclass
class Prescription:
    """An anesthetic prescription attached to a pre-anesthetic review."""
    id: str
    review_id: str
    surgery_id: str
    patient_id: str
    medications: list[Medication] = field(default_factory=list)
    urgency: str = Urgency.ROUTINE.value
    status: str = PrescriptionStatus.PENDING_APPROVAL.value
    special_instructions: str | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    # Set when a rejection replaces this prescription, or on the replacement
    replaces_id: str | None = None
    superseded_by: str | None = None
    superseded_at: datetime | None = None

    # Gate opening
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_deadline: datetime | None = None
    is_late_arrival: bool = False

    # Pharmacy
    packed_by: str | None = None
    packed_at: datetime | None = None
    packing_notes: str | None = None
    medication_packing_status: list[MedicationPackingStatus] = field(default_factory=list)
    out_of_stock_items: list[str] = field(default_factory=list)
    dispensed_by: str | None = None
    dispensed_at: datetime | None = None

    @property
    def is_superseded(self) -> bool:
        return self.superseded_by is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "review_id": self.review_id,
            "surgery_id": self.surgery_id,
            "patient_id": self.patient_id,
            "medications": [m.to_dict() for m in self.medications],
            "urgency": self.urgency,
            "status": self.status,
            "status_display": PrescriptionStatus.display_name(self.status),
            "special_instructions": self.special_instructions,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "replaces_id": self.replaces_id,
            "superseded_by": self.superseded_by,
            "superseded_at": self.superseded_at.isoformat() if self.superseded_at else None,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approval_deadline": self.approval_deadline.isoformat() if self.approval_deadline else None,
            "is_late_arrival": self.is_late_arrival,
            "packed_by": self.packed_by,
            "packed_at": self.packed_at.isoformat() if self.packed_at else None,
            "packing_notes": self.packing_notes,
            "medication_packing_status": [s.to_dict() for s in self.medication_packing_status],
            "out_of_stock_items": self.out_of_stock_items,
            "dispensed_by": self.dispensed_by,
            "dispensed_at": self.dispensed_at.isoformat() if self.dispensed_at else None,
        }

    @classmethod
    def from_row(cls, row) -> "Prescription":
        """Create from a sqlite3.Row."""
        def ts(name):
            return datetime.fromisoformat(row[name]) if row[name] else None

        return cls(
            id=row["id"],
            review_id=row["review_id"],
            surgery_id=row["surgery_id"],
            patient_id=row["patient_id"],
            medications=[Medication(**m) for m in json.loads(row["medications"] or "[]")],
            urgency=row["urgency"],
            status=row["status"],
            special_instructions=row["special_instructions"],
            created_by=row["created_by"],
            created_at=ts("created_at"),
            replaces_id=row["replaces_id"],
            superseded_by=row["superseded_by"],
            superseded_at=ts("superseded_at"),
            approved_by=row["approved_by"],
            approved_at=ts("approved_at"),
            approval_deadline=ts("approval_deadline"),
            is_late_arrival=bool(row["is_late_arrival"]),
            packed_by=row["packed_by"],
            packed_at=ts("packed_at"),
            packing_notes=row["packing_notes"],
            medication_packing_status=[
                MedicationPackingStatus(**s)
                for s in json.loads(row["medication_packing_status"] or "[]")
            ],
            out_of_stock_items=json.loads(row["out_of_stock_items"] or "[]"),
            dispensed_by=row["dispensed_by"],
            dispensed_at=ts("dispensed_at"),
        )
