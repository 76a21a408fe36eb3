"""Data models for escalation alerts."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import ValidationError


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: "AlertSeverity | str | None", default: "AlertSeverity") -> "AlertSeverity":
        """Parse a request value, falling back to ``default`` when absent.

        Raises:
            ValidationError: if the value is not a known severity
        """
        if value is None or value == "":
            return default
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"severity must be one of: {', '.join(s.value for s in cls)}",
                details={"severity": value},
            )


class AlertPriority(str, Enum):
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    """Alert lifecycle."""
    REPORTED = "reported"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"

    @classmethod
    def display_name(cls, status: "AlertStatus | str") -> str:
        """Get human-readable display name for a status."""
        if isinstance(status, cls):
            status = status.value
        return status.replace("_", " ").title()


class TriggerType(str, Enum):
    """What raised the alert."""
    EQUIPMENT_FAULT = "equipment_fault"
    PACU_RED_ALERT = "pacu_red_alert"


class ItemCondition(str, Enum):
    """Condition of a returned equipment item."""
    GOOD = "good"
    FAULTY = "faulty"
    DAMAGED = "damaged"
    MISSING = "missing"


@dataclass(frozen=True)
class ReturnedItem:
    """One item on an equipment return."""
    equipment_id: str
    name: str
    condition: ItemCondition
    fault_description: str | None = None
    fault_severity: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReturnedItem":
        """Build from a request payload.

        Raises:
            ValidationError: if equipment_id is missing or condition is unknown
        """
        if not data.get("equipment_id"):
            raise ValidationError("each returned item needs an equipment_id", details={"item": data})
        try:
            condition = ItemCondition(str(data.get("condition", "good")).lower())
        except ValueError:
            raise ValidationError(
                f"condition must be one of: {', '.join(c.value for c in ItemCondition)}",
                details={"item": data},
            )
        return cls(
            equipment_id=str(data["equipment_id"]),
            name=data.get("name") or str(data["equipment_id"]),
            condition=condition,
            fault_description=data.get("fault_description"),
            fault_severity=data.get("fault_severity"),
        )


@dataclass
class EscalationAlert:
    """An appended alert. Its creation never edits the triggering entity."""
    id: str
    trigger_type: str
    entity_type: str
    entity_id: str
    episode_key: str
    severity: str
    priority: str
    description: str
    recipients: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    created_by: str | None = None

    # Context supplied by the trigger (alert type, item name, ...)
    context: dict = field(default_factory=dict)

    status: str = AlertStatus.REPORTED.value
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "trigger_type": self.trigger_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "episode_key": self.episode_key,
            "severity": self.severity,
            "priority": self.priority,
            "description": self.description,
            "recipients": self.recipients,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "context": self.context,
            "status": self.status,
            "status_display": AlertStatus.display_name(self.status),
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution_notes": self.resolution_notes,
        }

    @classmethod
    def from_row(cls, row) -> "EscalationAlert":
        """Create from a sqlite3.Row."""
        def ts(name):
            return datetime.fromisoformat(row[name]) if row[name] else None

        return cls(
            id=row["id"],
            trigger_type=row["trigger_type"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            episode_key=row["episode_key"],
            severity=row["severity"],
            priority=row["priority"],
            description=row["description"],
            recipients=json.loads(row["recipients"] or "[]"),
            created_at=ts("created_at"),
            created_by=row["created_by"],
            context=json.loads(row["context"]) if row["context"] else {},
            status=row["status"],
            acknowledged_by=row["acknowledged_by"],
            acknowledged_at=ts("acknowledged_at"),
            resolved_by=row["resolved_by"],
            resolved_at=ts("resolved_at"),
            resolution_notes=row["resolution_notes"],
        )


@dataclass
class EscalationFlag:
    """Per-entity marker that at least one alert fired."""
    entity_type: str
    entity_id: str
    red_alert_triggered: bool
    alert_count: int
    first_triggered_at: datetime
    last_triggered_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "red_alert_triggered": self.red_alert_triggered,
            "alert_count": self.alert_count,
            "first_triggered_at": self.first_triggered_at.isoformat(),
            "last_triggered_at": self.last_triggered_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row) -> "EscalationFlag":
        return cls(
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            red_alert_triggered=bool(row["red_alert_triggered"]),
            alert_count=row["alert_count"],
            first_triggered_at=datetime.fromisoformat(row["first_triggered_at"]),
            last_triggered_at=datetime.fromisoformat(row["last_triggered_at"]),
        )
