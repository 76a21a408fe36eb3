"""Tests for equipment fault and PACU red alert escalation."""

import pytest

from periop.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from periop.escalation import (
    EQUIPMENT_FAULT_POLICY,
    AlertPriority,
    AlertSeverity,
    AlertStatus,
    TriggerType,
)

RETURN_ITEMS = [
    {"equipment_id": "EQ-1", "name": "Laryngoscope", "condition": "good"},
    {"equipment_id": "EQ-2", "name": "Suction unit", "condition": "faulty",
     "fault_description": "No vacuum"},
    {"equipment_id": "EQ-3", "name": "Infusion pump", "condition": "damaged",
     "fault_severity": "critical"},
]


def test_equipment_return_alerts_only_faulty_items(escalations):
    alert_ids = escalations.escalate_equipment_return("CO-1", RETURN_ITEMS, reported_by="U-SK")

    assert len(alert_ids) == 2
    alerts = {a.entity_id: a for a in escalations.store.list_alerts()}
    assert set(alerts) == {"EQ-2", "EQ-3"}
    assert alerts["EQ-2"].severity == AlertSeverity.HIGH.value
    assert alerts["EQ-2"].priority == AlertPriority.HIGH.value
    assert alerts["EQ-2"].description == "Suction unit returned faulty: No vacuum"
    assert alerts["EQ-3"].priority == AlertPriority.CRITICAL.value
    assert alerts["EQ-2"].recipients == ["theatre_manager", "theatre_chairman"]


def test_resubmitted_return_creates_no_new_alerts(escalations):
    first = escalations.escalate_equipment_return("CO-1", RETURN_ITEMS)
    second = escalations.escalate_equipment_return("CO-1", RETURN_ITEMS)

    assert first == second
    assert len(escalations.store.list_alerts()) == 2
    assert escalations.store.get_flag("equipment", "EQ-2").alert_count == 1


def test_same_item_on_new_checkout_is_a_new_episode(escalations):
    escalations.escalate_equipment_return("CO-1", RETURN_ITEMS[1:2])
    escalations.escalate_equipment_return("CO-2", RETURN_ITEMS[1:2])

    assert len(escalations.store.list_alerts(entity_id="EQ-2")) == 2
    assert escalations.store.get_flag("equipment", "EQ-2").alert_count == 2


def test_predicate_false_records_nothing(escalations):
    assert escalations.trigger(
        EQUIPMENT_FAULT_POLICY, "EQ-9", "fine", context={"condition": "good"},
    ) is None
    assert escalations.store.list_alerts() == []
    assert escalations.store.get_flag("equipment", "EQ-9") is None


def test_pacu_red_alert_recipients_and_default_severity(escalations, nurse):
    alert = escalations.declare_pacu_red_alert(
        nurse, "S-100", "airway", "Desaturation to 82%",
        surgeon_id="U-SUR", anaesthetist_id="U-ANA",
    )
    assert alert.trigger_type == TriggerType.PACU_RED_ALERT.value
    assert alert.severity == AlertSeverity.HIGH.value
    assert alert.recipients == ["surgeon:U-SUR", "anaesthetist:U-ANA", "theatre_manager"]
    assert alert.context["alert_type"] == "airway"


def test_pacu_without_anaesthetist(escalations, nurse):
    alert = escalations.declare_pacu_red_alert(nurse, "S-100", "bleeding", "Drain output high")
    assert alert.recipients == ["surgeon", "theatre_manager"]


def test_repeated_pacu_declarations_append(escalations, nurse):
    """Each declaration is its own alert; the flag counts them."""
    first = escalations.declare_pacu_red_alert(nurse, "S-100", "airway", "Desaturation")
    second = escalations.declare_pacu_red_alert(nurse, "S-100", "airway", "Desaturation again")

    assert first.id != second.id
    assert len(escalations.store.list_alerts(entity_id="S-100")) == 2
    flag = escalations.store.get_flag("surgery", "S-100")
    assert flag.red_alert_triggered is True
    assert flag.alert_count == 2


def test_pacu_role_gate_and_validation(escalations, surgeon, nurse):
    with pytest.raises(AuthorizationError):
        escalations.declare_pacu_red_alert(surgeon, "S-100", "airway", "Desaturation")
    with pytest.raises(ValidationError):
        escalations.declare_pacu_red_alert(nurse, "S-100", "airway", "  ")
    with pytest.raises(ValidationError):
        escalations.declare_pacu_red_alert(nurse, "S-100", "airway", "x", severity="apocalyptic")
    assert escalations.store.list_alerts() == []


def test_acknowledge_then_resolve(escalations, nurse, theatre_manager):
    alert = escalations.declare_pacu_red_alert(nurse, "S-100", "airway", "Desaturation")

    acknowledged = escalations.acknowledge(alert.id, theatre_manager)
    assert acknowledged.status == AlertStatus.ACKNOWLEDGED.value
    with pytest.raises(ConflictError):
        escalations.acknowledge(alert.id, theatre_manager)

    with pytest.raises(ValidationError):
        escalations.resolve(alert.id, theatre_manager, "")
    resolved = escalations.resolve(alert.id, theatre_manager, "Reintubated, stable")
    assert resolved.status == AlertStatus.RESOLVED.value
    assert resolved.resolution_notes == "Reintubated, stable"

    with pytest.raises(ConflictError):
        escalations.resolve(alert.id, theatre_manager, "again")
    assert escalations.store.get_flag("surgery", "S-100").red_alert_triggered is True


def test_alert_lifecycle_role_gate(escalations, nurse):
    alert = escalations.declare_pacu_red_alert(nurse, "S-100", "airway", "Desaturation")
    with pytest.raises(AuthorizationError):
        escalations.acknowledge(alert.id, nurse)
    with pytest.raises(NotFoundError):
        escalations.store.get_alert("ALT-NOPE")


def test_two_faulty_units_of_same_equipment_each_alert(escalations):
    items = [
        {"equipment_id": "LARYNGO", "name": "Laryngoscope", "condition": "faulty"},
        {"equipment_id": "LARYNGO", "name": "Laryngoscope", "condition": "damaged"},
    ]
    first = escalations.escalate_equipment_return("CO-9", items)
    second = escalations.escalate_equipment_return("CO-9", items)

    assert len(first) == 2
    assert first == second
    assert len(escalations.store.list_alerts()) == 2
    assert escalations.store.get_flag("equipment", "LARYNGO").alert_count == 2


def test_report_equipment_fault_without_checkout(escalations):
    first = escalations.report_equipment_fault("EQ-5", "Cracked blade", severity="critical")
    second = escalations.report_equipment_fault("EQ-5", "Cracked blade")

    assert first.id != second.id
    assert first.priority == AlertPriority.CRITICAL.value
    assert second.severity == AlertSeverity.HIGH.value
    assert first.description == "EQ-5 returned faulty: Cracked blade"
    assert escalations.report_equipment_fault("EQ-5", "Looks fine", condition="good") is None
    with pytest.raises(ValidationError):
        escalations.report_equipment_fault("EQ-5", " ")
    with pytest.raises(ValidationError):
        escalations.report_equipment_fault("", "Cracked blade")


def test_pacu_alert_type_defaults_to_trigger_type(escalations, nurse):
    alert = escalations.declare_pacu_red_alert(nurse, "S-200", None, "Desaturation")
    assert alert.context["alert_type"] == TriggerType.PACU_RED_ALERT.value
