"""Escalation routes for the dashboard.

Equipment fault alerts, PACU red alerts and their acknowledge/resolve
lifecycle.
"""

import logging

from flask import Blueprint, current_app, request

from periop.errors import ValidationError
from periop.escalation import EscalationEngine, EscalationStore, TriggerType
from dashboard.services.actor import get_actor_from_request
from dashboard.utils.api_response import api_success

logger = logging.getLogger(__name__)

escalations_bp = Blueprint("escalations", __name__, url_prefix="/api/escalations")


def _get_escalation_engine():
    """Get the escalation engine, initializing if needed."""
    if not hasattr(current_app, "escalation_engine"):
        current_app.escalation_engine = EscalationEngine(
            EscalationStore(db_path=current_app.config.get("ESCALATION_DB_PATH"))
        )
    return current_app.escalation_engine


@escalations_bp.route("/trigger", methods=["POST"])
def api_trigger():
    """Manually raise an escalation.

    Body: {"trigger_type": "pacu_red_alert" | "equipment_fault", "entity_id": ...,
           "description": ..., "severity": ...}

    Optional PACU fields: alert_type, surgeon_id, anaesthetist_id, patient_id.
    Optional equipment fields: condition, equipment_name, checkout_id, reported_by.
    """
    data = request.get_json(silent=True) or {}
    engine = _get_escalation_engine()

    try:
        trigger_type = TriggerType(str(data.get("trigger_type")).lower())
    except ValueError:
        raise ValidationError(
            f"trigger_type must be one of: {', '.join(t.value for t in TriggerType)}",
            details={"trigger_type": data.get("trigger_type")},
        )

    if trigger_type == TriggerType.PACU_RED_ALERT:
        actor = get_actor_from_request(data)
        alert = engine.declare_pacu_red_alert(
            actor,
            surgery_id=data.get("entity_id"),
            alert_type=data.get("alert_type"),
            description=data.get("description"),
            severity=data.get("severity"),
            surgeon_id=data.get("surgeon_id"),
            anaesthetist_id=data.get("anaesthetist_id"),
            patient_id=data.get("patient_id"),
        )
    else:
        alert = engine.report_equipment_fault(
            equipment_id=data.get("entity_id"),
            description=data.get("description"),
            severity=data.get("severity"),
            condition=data.get("condition") or "faulty",
            equipment_name=data.get("equipment_name"),
            checkout_id=data.get("checkout_id"),
            reported_by=data.get("reported_by"),
        )
        if alert is None:
            return api_success(
                data={"alert_id": None, "alert_ids": []},
                message="Item condition does not qualify for a fault alert",
            )

    return api_success(data={"alert_id": alert.id, "alert_ids": [alert.id]}, status_code=201)


@escalations_bp.route("/equipment-return", methods=["POST"])
def api_equipment_return():
    """Body: {"checkout_id": ..., "items": [...], "reported_by": ...}"""
    data = request.get_json(silent=True) or {}
    alert_ids = _get_escalation_engine().escalate_equipment_return(
        checkout_id=data.get("checkout_id"),
        items=data.get("items") or [],
        reported_by=data.get("reported_by"),
    )
    return api_success(data={"checkout_id": data.get("checkout_id"), "alert_ids": alert_ids})


@escalations_bp.route("")
def api_list():
    alerts = _get_escalation_engine().store.list_alerts(
        status=request.args.get("status"),
        trigger_type=request.args.get("trigger_type"),
        entity_id=request.args.get("entity_id"),
        limit=request.args.get("limit", 100, type=int),
    )
    return api_success(data=[a.to_dict() for a in alerts])


@escalations_bp.route("/<alert_id>")
def api_get(alert_id):
    return api_success(data=_get_escalation_engine().store.get_alert(alert_id).to_dict())


@escalations_bp.route("/flags/<entity_type>/<entity_id>")
def api_flag(entity_type, entity_id):
    flag = _get_escalation_engine().store.get_flag(entity_type, entity_id)
    return api_success(data=flag.to_dict() if flag else None)


@escalations_bp.route("/<alert_id>/acknowledge", methods=["POST"])
def api_acknowledge(alert_id):
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    alert = _get_escalation_engine().acknowledge(alert_id, actor)
    return api_success(data={"alert_id": alert.id, "status": alert.status})


@escalations_bp.route("/<alert_id>/resolve", methods=["POST"])
def api_resolve(alert_id):
    """Body: {"resolution_notes": ...}"""
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    alert = _get_escalation_engine().resolve(alert_id, actor, data.get("resolution_notes"))
    return api_success(data={"alert_id": alert.id, "status": alert.status})
