"""Trigger -> record -> recipients escalation.

Each alert source is an EscalationPolicy: a predicate deciding whether the
trigger qualifies, a recipient rule, and a default severity. The engine
turns a qualifying trigger into one appended alert plus a flag upsert and
never writes to the triggering entity itself.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ..errors import ValidationError
from ..roles import PACU_ALERT_RAISERS, Actor, StaffRole, require_role
from .models import (
    AlertPriority,
    AlertSeverity,
    EscalationAlert,
    ItemCondition,
    ReturnedItem,
    TriggerType,
)
from .store import EscalationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscalationPolicy:
    """How one trigger source escalates."""
    trigger_type: TriggerType
    entity_type: str
    predicate: Callable[[dict[str, Any]], bool]
    recipients: Callable[[dict[str, Any]], list[str]]
    default_severity: AlertSeverity = AlertSeverity.HIGH


def priority_for(severity: AlertSeverity) -> AlertPriority:
    return AlertPriority.CRITICAL if severity == AlertSeverity.CRITICAL else AlertPriority.HIGH


FAULT_CONDITIONS = frozenset({ItemCondition.FAULTY, ItemCondition.DAMAGED})


def _equipment_fault_recipients(context: dict[str, Any]) -> list[str]:
    return [StaffRole.THEATRE_MANAGER.value, StaffRole.THEATRE_CHAIRMAN.value]


def _pacu_recipients(context: dict[str, Any]) -> list[str]:
    def addressee(role: StaffRole, staff_id: str | None) -> str:
        return f"{role.value}:{staff_id}" if staff_id else role.value

    recipients = [addressee(StaffRole.SURGEON, context.get("surgeon_id"))]
    if context.get("anaesthetist_id"):
        recipients.append(addressee(StaffRole.ANAESTHETIST, context["anaesthetist_id"]))
    recipients.append(StaffRole.THEATRE_MANAGER.value)
    return recipients


EQUIPMENT_FAULT_POLICY = EscalationPolicy(
    trigger_type=TriggerType.EQUIPMENT_FAULT,
    entity_type="equipment",
    predicate=lambda context: ItemCondition(context.get("condition", "good")) in FAULT_CONDITIONS,
    recipients=_equipment_fault_recipients,
)

PACU_RED_ALERT_POLICY = EscalationPolicy(
    trigger_type=TriggerType.PACU_RED_ALERT,
    entity_type="surgery",
    predicate=lambda context: True,
    recipients=_pacu_recipients,
)

POLICIES = {
    TriggerType.EQUIPMENT_FAULT: EQUIPMENT_FAULT_POLICY,
    TriggerType.PACU_RED_ALERT: PACU_RED_ALERT_POLICY,
}


class EscalationEngine:
    """Applies escalation policies and records the resulting alerts."""

    def __init__(self, store: EscalationStore | None = None):
        self.store = store or EscalationStore()

    def trigger(
        self,
        policy: EscalationPolicy,
        entity_id: str,
        description: str,
        context: dict[str, Any] | None = None,
        severity: AlertSeverity | str | None = None,
        episode_key: str | None = None,
        created_by: str | None = None,
    ) -> EscalationAlert | None:
        """Record an alert if the policy's predicate holds.

        Args:
            policy: Which trigger source this is
            entity_id: The equipment item, surgery, ... the alert is about
            description: Human-readable summary
            context: Facts the predicate and recipient rule read
            severity: Overrides the policy default
            episode_key: Identifies the episode for dedupe; a fresh key is
                generated when omitted, so each call is its own episode
            created_by: Reporting staff id

        Returns:
            The new alert, the existing alert for a duplicate episode, or
            None when the predicate does not hold
        """
        context = dict(context or {})
        if not entity_id:
            raise ValidationError("entity_id is required")
        if not policy.predicate(context):
            logger.debug(f"{policy.trigger_type.value} not raised for {entity_id}: predicate false")
            return None

        level = AlertSeverity.parse(severity, default=policy.default_severity)
        alert = EscalationAlert(
            id=f"ALT-{uuid.uuid4().hex[:10].upper()}",
            trigger_type=policy.trigger_type.value,
            entity_type=policy.entity_type,
            entity_id=str(entity_id),
            episode_key=episode_key or uuid.uuid4().hex,
            severity=level.value,
            priority=priority_for(level).value,
            description=description,
            recipients=policy.recipients(context),
            created_at=datetime.now(),
            created_by=created_by,
            context=context,
        )
        stored, _ = self.store.append(alert)
        return stored

    def _raise_item_alert(
        self,
        item: ReturnedItem,
        episode_key: str | None,
        checkout_id: str | None = None,
        reported_by: str | None = None,
    ) -> EscalationAlert | None:
        description = f"{item.name} returned {item.condition.value}"
        if item.fault_description:
            description += f": {item.fault_description}"
        return self.trigger(
            EQUIPMENT_FAULT_POLICY,
            entity_id=item.equipment_id,
            description=description,
            context={
                "checkout_id": checkout_id,
                "equipment_name": item.name,
                "condition": item.condition.value,
                "fault_description": item.fault_description,
            },
            severity=item.fault_severity,
            episode_key=episode_key,
            created_by=reported_by,
        )

    def escalate_equipment_return(
        self,
        checkout_id: str,
        items: list[ReturnedItem | dict[str, Any]],
        reported_by: str | None = None,
    ) -> list[str]:
        """Raise one alert per faulty or damaged item on a return.

        The episode key is the checkout id plus the item's line position, so
        two faulty units of the same equipment each get an alert while
        re-submitting the same return yields the same alert ids.

        Returns:
            Alert IDs for the return's faulty and damaged items
        """
        if not checkout_id:
            raise ValidationError("checkout_id is required")
        returned = [i if isinstance(i, ReturnedItem) else ReturnedItem.from_dict(i) for i in items or []]

        alert_ids = []
        for line, item in enumerate(returned):
            alert = self._raise_item_alert(
                item,
                episode_key=f"{checkout_id}:{line}",
                checkout_id=checkout_id,
                reported_by=reported_by,
            )
            if alert is not None:
                alert_ids.append(alert.id)

        if alert_ids:
            logger.warning(
                f"Equipment return {checkout_id}: {len(alert_ids)} fault alert(s) for "
                f"{len(returned)} item(s)"
            )
        return alert_ids

    def report_equipment_fault(
        self,
        equipment_id: str,
        description: str,
        severity: AlertSeverity | str | None = None,
        condition: ItemCondition | str = ItemCondition.FAULTY,
        equipment_name: str | None = None,
        checkout_id: str | None = None,
        reported_by: str | None = None,
    ) -> EscalationAlert | None:
        """Raise a fault alert for one item outside a full return.

        Without a checkout id every report is its own episode.

        Raises:
            ValidationError: if equipment_id or description is blank, or the
                condition is unknown
        """
        if not (description or "").strip():
            raise ValidationError("description is required")
        item = ReturnedItem.from_dict({
            "equipment_id": equipment_id,
            "name": equipment_name,
            "condition": condition.value if isinstance(condition, ItemCondition) else condition,
            "fault_description": description.strip(),
            "fault_severity": severity.value if isinstance(severity, AlertSeverity) else severity,
        })
        alert = self._raise_item_alert(
            item, episode_key=checkout_id, checkout_id=checkout_id, reported_by=reported_by,
        )
        if alert is not None:
            logger.warning(f"Equipment fault {alert.id} reported for {item.equipment_id}")
        return alert

    def declare_pacu_red_alert(
        self,
        actor: Actor,
        surgery_id: str,
        alert_type: str | None,
        description: str,
        severity: AlertSeverity | str | None = None,
        surgeon_id: str | None = None,
        anaesthetist_id: str | None = None,
        patient_id: str | None = None,
    ) -> EscalationAlert:
        """Record a manually declared recovery-room red alert.

        Every declaration is a new episode with its own alert. The surgery's
        flag is set on the first and counted on each one after. A blank
        alert type is recorded as ``pacu_red_alert``.

        Raises:
            AuthorizationError: unless a recovery room nurse, admin or theatre manager
            ValidationError: if surgery_id or description is blank
        """
        require_role(actor, PACU_ALERT_RAISERS, "declare PACU red alerts")
        if not (description or "").strip():
            raise ValidationError("description is required")
        alert_type = alert_type or TriggerType.PACU_RED_ALERT.value

        alert = self.trigger(
            PACU_RED_ALERT_POLICY,
            entity_id=surgery_id,
            description=description.strip(),
            context={
                "alert_type": alert_type,
                "patient_id": patient_id,
                "surgeon_id": surgeon_id,
                "anaesthetist_id": anaesthetist_id,
            },
            severity=severity,
            created_by=actor.id,
        )
        logger.warning(
            f"PACU red alert {alert.id} ({alert_type}, {alert.severity}) declared by "
            f"{actor.label} for surgery {surgery_id}"
        )
        return alert

    def acknowledge(self, alert_id: str, actor: Actor) -> EscalationAlert:
        return self.store.acknowledge(alert_id, actor)

    def resolve(self, alert_id: str, actor: Actor, resolution_notes: str) -> EscalationAlert:
        return self.store.resolve(alert_id, actor, resolution_notes)
