"""Generic escalation: equipment faults and PACU red alerts."""

from .engine import (
    EQUIPMENT_FAULT_POLICY,
    PACU_RED_ALERT_POLICY,
    POLICIES,
    EscalationEngine,
    EscalationPolicy,
    priority_for,
)
from .models import (
    AlertPriority,
    AlertSeverity,
    AlertStatus,
    EscalationAlert,
    EscalationFlag,
    ItemCondition,
    ReturnedItem,
    TriggerType,
)
from .store import EscalationStore

__all__ = [
    "EQUIPMENT_FAULT_POLICY",
    "PACU_RED_ALERT_POLICY",
    "POLICIES",
    "AlertPriority",
    "AlertSeverity",
    "AlertStatus",
    "EscalationAlert",
    "EscalationEngine",
    "EscalationFlag",
    "EscalationPolicy",
    "EscalationStore",
    "ItemCondition",
    "ReturnedItem",
    "TriggerType",
    "priority_for",
]
